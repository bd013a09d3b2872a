"""Layer provisioning engine: resolve, reuse or install, flag, and attach provenance."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from pnpmlayer.config import BuildConfig
from pnpmlayer.dependency import DependencyManager
from pnpmlayer.layers import LayerStore
from pnpmlayer.models import (
    BOMEntry,
    BuildContext,
    BuildResult,
    DependencyDescriptor,
    LayerRecord,
)
from pnpmlayer.observability import BuildLogger, Clock, format_duration, measure, utc_now
from pnpmlayer.plan import lifecycle_flags, version_constraint
from pnpmlayer.sbom import SBOMGenerator, in_formats, lookup_format

PNPM = "pnpm"
DEPENDENCY_CACHE_KEY = "cache-checksum"


class ProvisionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    RESOLVED = "resolved"
    CACHE_HIT = "cache-hit"
    CACHE_MISS = "cache-miss"
    PROVISIONED = "provisioned"
    FAILED = "failed"


def decide_reuse(record: LayerRecord | None, dependency: DependencyDescriptor) -> bool:
    """Return whether *record* already holds exactly *dependency*.

    The comparison is on the raw checksum string, algorithm prefix included.
    """
    if record is None:
        return False
    cached = record.metadata.get(DEPENDENCY_CACHE_KEY)
    return isinstance(cached, str) and cached == dependency.checksum


@dataclass(slots=True)
class Provisioner:
    """Provision one dependency into its layer for a single build."""

    dependency_manager: DependencyManager
    sbom_generator: SBOMGenerator
    clock: Clock = utc_now
    logger: BuildLogger = field(default_factory=BuildLogger)
    config: BuildConfig = field(default_factory=BuildConfig)
    dependency_id: str = PNPM
    state: ProvisionState = field(init=False, default=ProvisionState.UNINITIALIZED)
    transitions: list[ProvisionState] = field(init=False, default_factory=list)

    def build(self, context: BuildContext) -> BuildResult:
        self.transitions = []
        self._enter(ProvisionState.UNINITIALIZED)
        try:
            result = self._provision(context)
        except Exception:
            self._enter(ProvisionState.FAILED)
            raise
        self._enter(ProvisionState.PROVISIONED)
        return result

    def _provision(self, context: BuildContext) -> BuildResult:
        info = context.buildpack_info
        self.logger.title(f"{info.name} {info.version}".strip())

        flags = lifecycle_flags(context.plan, self.dependency_id, logger=self.logger)
        self.logger.process("Resolving pnpm version", layer=self.dependency_id)
        dependency = self.dependency_manager.resolve(
            context.catalog_path,
            dependency_id=self.dependency_id,
            stack=context.stack,
            version=version_constraint(context.plan, self.dependency_id),
        )
        self._enter(ProvisionState.RESOLVED)
        self.logger.subprocess(
            f"Selected {dependency.name or dependency.id} version: {dependency.version}",
            layer=self.dependency_id,
        )
        self.logger.break_()

        if not self.config.disable_sbom:
            for name in info.sbom_formats:
                lookup_format(name)

        build_bom: tuple[BOMEntry, ...] = ()
        launch_bom: tuple[BOMEntry, ...] = ()
        if self.config.legacy_sbom:
            bom = tuple(self.dependency_manager.generate_bill_of_materials(dependency))
            build_bom = bom if flags.build else ()
            launch_bom = bom if flags.launch else ()

        store = LayerStore(context.layers_path, logger=self.logger)
        record = store.get(self.dependency_id)

        if decide_reuse(record, dependency):
            self._enter(ProvisionState.CACHE_HIT)
            self.logger.process(f"Reusing cached layer {record.path}", layer=record.name)
            record.apply_flags(flags)
            try:
                self._attach_sbom(record, dependency, context)
                store.write(record)
            except Exception:
                store.unregister(record)
                raise
        else:
            self._enter(ProvisionState.CACHE_MISS)
            self.logger.process("Executing build process", layer=record.name)
            store.reset(record)
            record.apply_flags(flags)
            try:
                self._install(record, dependency, context)
                self._attach_sbom(record, dependency, context)
                record.metadata[DEPENDENCY_CACHE_KEY] = dependency.checksum
                store.write(record)
            except Exception:
                store.discard(record)
                raise

        self.logger.break_()
        return BuildResult(layers=(record,), build_bom=build_bom, launch_bom=launch_bom)

    def _install(
        self,
        record: LayerRecord,
        dependency: DependencyDescriptor,
        context: BuildContext,
    ) -> None:
        self.logger.subprocess(
            f"Installing {dependency.name or dependency.id} {dependency.version}",
            layer=record.name,
        )
        _, duration = measure(
            self.clock,
            lambda: self.dependency_manager.deliver(
                dependency,
                cnb_path=context.cnb_path,
                layer_path=record.path,
                platform_path=context.platform_path,
            ),
        )
        self.logger.action(f"Completed in {format_duration(duration)}", layer=record.name)

    def _attach_sbom(
        self,
        record: LayerRecord,
        dependency: DependencyDescriptor,
        context: BuildContext,
    ) -> None:
        if self.config.disable_sbom:
            self.logger.subprocess("Skipping SBOM generation", layer=record.name)
            return
        self.logger.subprocess(f"Generating SBOM for {record.path}", layer=record.name)
        document, duration = measure(
            self.clock,
            lambda: self.sbom_generator.generate_from_dependency(dependency, record.path),
        )
        self.logger.action(f"Completed in {format_duration(duration)}", layer=record.name)

        formats = context.buildpack_info.sbom_formats
        self.logger.subprocess("Writing SBOM in the following format(s):", layer=record.name)
        for name in formats:
            self.logger.action(name, layer=record.name)
        record.sbom = in_formats(document, *formats)
        self.logger.debug(
            "SBOM document digest",
            layer=record.name,
            operation="sbom",
            extra={"digest": document.digest()},
        )

    def _enter(self, state: ProvisionState) -> None:
        self.state = state
        self.transitions.append(state)
        self.logger.debug(
            f"Provisioning state: {state}",
            layer=self.dependency_id,
            operation="provision",
        )
