"""Mirror Cydia / APT package repositories to local disk."""

__version__ = "1.0.0"

from .control import ReleaseDescriptor, extract_release_fields, parse_control
from .decompress import decompress
from .errors import (
    DecompressionError,
    InputValidationError,
    MirrorError,
    NotFoundError,
    ParseError,
    TransportError,
)
from .index import DEFAULT_ROOT_RULES, ArtifactReference, RootRelativeRule, build_artifacts
from .locator import LocatedMetadata, MetadataLocator
from .mirror import MirrorResult, MirrorStatus, RepoMirror, mirror_repository
from .state import DownloadFailure, RunHandle

__all__ = [
    "ArtifactReference",
    "DEFAULT_ROOT_RULES",
    "DecompressionError",
    "DownloadFailure",
    "InputValidationError",
    "LocatedMetadata",
    "MetadataLocator",
    "MirrorError",
    "MirrorResult",
    "MirrorStatus",
    "NotFoundError",
    "ParseError",
    "ReleaseDescriptor",
    "RepoMirror",
    "RootRelativeRule",
    "RunHandle",
    "TransportError",
    "build_artifacts",
    "decompress",
    "extract_release_fields",
    "mirror_repository",
    "parse_control",
]
