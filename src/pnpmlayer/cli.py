"""Command-line entrypoints for the build step and the catalog retrieval tool."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TextIO

from pnpmlayer.build import Provisioner
from pnpmlayer.catalog import load_buildpack_info, load_catalog
from pnpmlayer.config import config_from_env, retrieval_config_from_env
from pnpmlayer.dependency import DependencyService
from pnpmlayer.errors import PnpmLayerError, UnwritableStoreError, ValidationError
from pnpmlayer.models import BOMEntry, BuildContext, BuildpackInfo
from pnpmlayer.observability import BuildLogger
from pnpmlayer.plan import load_plan
from pnpmlayer.retrieval import PNPM_STRATEGY, GitHubClient, retrieve, write_metadata
from pnpmlayer.sbom import DependencySBOMGenerator


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pnpmlayer")
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="Provision the pnpm layer.")
    build.add_argument("--layers", default=environ.get("CNB_LAYERS_DIR"))
    build.add_argument("--buildpack-dir", default=environ.get("CNB_BUILDPACK_DIR"))
    build.add_argument("--plan", required=True)
    build.add_argument("--stack", default=environ.get("CNB_STACK_ID", ""))
    build.add_argument("--platform", default=environ.get("CNB_PLATFORM_DIR"))
    build.add_argument("--working-dir", default=None)
    build.add_argument("--sbom-format", action="append", default=None, dest="sbom_formats")

    retrieval = commands.add_parser("retrieve", help="Generate catalog entries for new releases.")
    retrieval.add_argument("--buildpack-toml", required=True)
    retrieval.add_argument("--output", required=True)
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    env = os.environ if environ is None else environ
    out = stdout or sys.stdout
    err = stderr or sys.stderr
    args = build_parser(env).parse_args(argv)
    try:
        if args.command == "build":
            _run_build(args, env, out)
        else:
            _run_retrieve(args, env, out)
    except PnpmLayerError as exc:
        err.write(json.dumps(exc.to_dict(), sort_keys=True) + "\n")
        return 1
    return 0


def _run_build(args: argparse.Namespace, env: Mapping[str, str], out: TextIO) -> None:
    if not args.layers or not args.buildpack_dir:
        raise ValidationError(
            "Both --layers and --buildpack-dir are required.",
            hint="Pass them explicitly or set CNB_LAYERS_DIR and CNB_BUILDPACK_DIR.",
        )
    config = config_from_env(env)
    logger = BuildLogger(stream=out, level=config.log_level)
    cnb_path = Path(args.buildpack_dir)
    info = load_buildpack_info(cnb_path / "buildpack.toml")
    if args.sbom_formats:
        info = BuildpackInfo(name=info.name, version=info.version, sbom_formats=tuple(args.sbom_formats))

    context = BuildContext(
        layers_path=Path(args.layers),
        cnb_path=cnb_path,
        stack=args.stack,
        plan=load_plan(args.plan),
        buildpack_info=info,
        working_dir=Path(args.working_dir) if args.working_dir else None,
        platform_path=Path(args.platform) if args.platform else None,
    )
    provisioner = Provisioner(
        dependency_manager=DependencyService(logger=logger),
        sbom_generator=DependencySBOMGenerator(),
        logger=logger,
        config=config,
    )
    result = provisioner.build(context)
    _write_bom(context.layers_path / "build.bom.json", result.build_bom)
    _write_bom(context.layers_path / "launch.bom.json", result.launch_bom)


def _run_retrieve(args: argparse.Namespace, env: Mapping[str, str], out: TextIO) -> None:
    config = retrieval_config_from_env(env)
    logger = BuildLogger(stream=out)
    catalog = load_catalog(args.buildpack_toml)
    with GitHubClient(config.github_token) as client:
        entries = retrieve(client, PNPM_STRATEGY, catalog=catalog, logger=logger)
    write_metadata(entries, args.output)


def _write_bom(path: Path, entries: tuple[BOMEntry, ...]) -> None:
    payload = [entry.to_dict() for entry in entries]
    try:
        if not entries:
            path.unlink(missing_ok=True)
            return
        path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as exc:
        raise UnwritableStoreError(
            "Bill of materials could not be updated.",
            context={"path": str(path), "error": str(exc)},
        ) from exc
