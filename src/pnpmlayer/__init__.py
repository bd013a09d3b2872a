"""Public package entrypoint for the pnpm layer provisioner."""

from .build import DEPENDENCY_CACHE_KEY, PNPM, Provisioner, ProvisionState, decide_reuse
from .config import BuildConfig, config_from_env
from .dependency import DependencyManager, DependencyService
from .errors import (
    CorruptMetadataError,
    FetchFailedError,
    InvalidToggleError,
    NoSourceArtifactError,
    NotRequestedError,
    PnpmLayerError,
    ResolutionError,
    UnsupportedFormatError,
    UnwritableStoreError,
    ValidationError,
)
from .layers import LayerStore
from .models import (
    BOMEntry,
    BuildContext,
    BuildpackInfo,
    BuildResult,
    DependencyDescriptor,
    LayerFlags,
    LayerRecord,
    PlanEntry,
    ProvenanceBundle,
    RenderedDocument,
)
from .observability import BuildLogger

__all__ = [
    "BOMEntry",
    "BuildConfig",
    "BuildContext",
    "BuildLogger",
    "BuildResult",
    "BuildpackInfo",
    "CorruptMetadataError",
    "DEPENDENCY_CACHE_KEY",
    "DependencyDescriptor",
    "DependencyManager",
    "DependencyService",
    "FetchFailedError",
    "InvalidToggleError",
    "LayerFlags",
    "LayerRecord",
    "LayerStore",
    "NoSourceArtifactError",
    "NotRequestedError",
    "PNPM",
    "PlanEntry",
    "PnpmLayerError",
    "ProvenanceBundle",
    "ProvisionState",
    "Provisioner",
    "RenderedDocument",
    "ResolutionError",
    "UnsupportedFormatError",
    "UnwritableStoreError",
    "ValidationError",
    "config_from_env",
    "decide_reuse",
]
