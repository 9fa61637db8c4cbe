"""Public API for schemacompat package.

High-level functions that return complete, structured results. Callers
should use these instead of driving the kernel and normalize modules
directly.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from schemacompat.contracts import CompareResult
from schemacompat.kernel.engine import analyze
from schemacompat.kernel.schema import PackageSpec, load_package_spec, parse_package_spec
from schemacompat.normalize.errors import MetadataInvalidError
from schemacompat.normalize.metadata import MetadataEnvelope, load_metadata, validate_metadata
from schemacompat.normalize.normalizer import normalize as normalize_schemas
from schemacompat.report import (
    add_normalization_max_items_one,
    add_normalization_renames,
    apply_max_changes_limit,
    build_result,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_CHANGES = 500

SchemaInput = Union[str, os.PathLike, Path, Dict[str, Any], PackageSpec]
MetadataInput = Union[str, os.PathLike, Path, Dict[str, Any], MetadataEnvelope]


@dataclass
class CompareOptions:
    """Knobs for one comparison run."""
    provider: str
    max_changes: int = DEFAULT_MAX_CHANGES  # -1 for unlimited
    normalize: bool = False


def _normalize_path(path: Union[str, os.PathLike, Path]) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


def _load_schema(value: SchemaInput) -> PackageSpec:
    if isinstance(value, PackageSpec):
        return value
    if isinstance(value, dict):
        return parse_package_spec(value)
    return load_package_spec(_normalize_path(value))


def _load_metadata(value: MetadataInput) -> MetadataEnvelope:
    if isinstance(value, MetadataEnvelope):
        validate_metadata(value)
        return value
    if isinstance(value, dict):
        try:
            envelope = MetadataEnvelope.model_validate(value)
        except ValidationError as e:
            raise MetadataInvalidError(f"metadata invalid: {e}") from e
        validate_metadata(envelope)
        return envelope
    return load_metadata(_normalize_path(value))


def compare_schemas(
    old: SchemaInput,
    new: SchemaInput,
    provider: str,
    max_changes: int = DEFAULT_MAX_CHANGES,
    old_metadata: Optional[MetadataInput] = None,
    new_metadata: Optional[MetadataInput] = None,
    normalize: bool = False,
) -> CompareResult:
    """
    Compare two schema snapshots and report breaking changes.

    Args:
        old: Baseline schema (path, decoded dict, or PackageSpec)
        new: Candidate schema (path, decoded dict, or PackageSpec)
        provider: Provider name, used to shorten tokens in new-resource lists
        max_changes: Maximum displayed breaking changes (-1 for unlimited)
        old_metadata: Alias metadata for the old schema
        new_metadata: Alias metadata for the new schema
        normalize: Rewrite alias renames and maxItemsOne flips before comparing.
            Requires both metadata inputs.

    Returns:
        CompareResult with summary, display lines and new resources/functions

    Raises:
        ValueError: If exactly one metadata input is given
        SchemaLoadError: If a schema cannot be parsed
        MetadataError: If metadata is missing or malformed
    """
    if (old_metadata is None) != (new_metadata is None):
        raise ValueError("old_metadata and new_metadata must be provided together")

    old_schema = _load_schema(old)
    new_schema = _load_schema(new)

    normalized = None
    if normalize:
        old_md = _load_metadata(old_metadata) if old_metadata is not None else None
        new_md = _load_metadata(new_metadata) if new_metadata is not None else None
        normalized = normalize_schemas(old_schema, new_schema, old_md, new_md)
        new_schema = normalized.new_schema
        logger.info(
            "normalized %d token renames and %d maxItemsOne changes",
            len(normalized.renames), len(normalized.max_items_one),
        )

    report = analyze(provider, old_schema, new_schema)
    result = build_result(report, max_changes)
    if normalized is not None:
        result = add_normalization_renames(result, normalized.renames)
        result = add_normalization_max_items_one(result, normalized.max_items_one)
    return apply_max_changes_limit(result, max_changes)


def compare(
    old: SchemaInput,
    new: SchemaInput,
    options: CompareOptions,
    old_metadata: Optional[MetadataInput] = None,
    new_metadata: Optional[MetadataInput] = None,
) -> CompareResult:
    """``compare_schemas`` driven by a CompareOptions object."""
    return compare_schemas(
        old,
        new,
        provider=options.provider,
        max_changes=options.max_changes,
        old_metadata=old_metadata,
        new_metadata=new_metadata,
        normalize=options.normalize,
    )
