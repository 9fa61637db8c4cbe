"""Alias-metadata normalization applied before breaking-change analysis."""

from .errors import (
    MetadataError,
    MetadataInvalidError,
    MetadataRequiredError,
    MetadataVersionUnsupportedError,
    StrictMetadataRequiredError,
)
from .metadata import MetadataEnvelope, load_metadata, parse_metadata
from .normalizer import NormalizeResult, TokenRename, normalize

__all__ = [
    "MetadataEnvelope",
    "MetadataError",
    "MetadataInvalidError",
    "MetadataRequiredError",
    "MetadataVersionUnsupportedError",
    "NormalizeResult",
    "StrictMetadataRequiredError",
    "TokenRename",
    "load_metadata",
    "normalize",
    "parse_metadata",
]
