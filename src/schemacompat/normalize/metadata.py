"""Historical token/field metadata: models, loading and validation.

The payload is the ``auto-aliasing`` section of a provider's
``bridge-metadata.json``: for every external (upstream) token it records the
current schema token, the schema tokens it was previously published under,
and per-field maxItemsOne history.
"""

import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MetadataInvalidError, MetadataRequiredError, MetadataVersionUnsupportedError


SUPPORTED_AUTO_ALIASING_VERSION = 1

SCOPE_RESOURCES = "resources"
SCOPE_DATASOURCES = "datasources"
SCOPES = (SCOPE_RESOURCES, SCOPE_DATASOURCES)

# pkg:module:member, where module may contain '/' (e.g. "pkg:index/widget:Widget")
_TOKEN_PATTERN = re.compile(r"^[^:\s]+:[^:\s]*:[^:\s]+$")


class FieldHistory(BaseModel):
    """Recursive maxItemsOne history for a field and its element block."""
    max_items_one: Optional[bool] = Field(None, alias="maxItemsOne")
    fields: Optional[Dict[str, Optional["FieldHistory"]]] = None
    elem: Optional["FieldHistory"] = None

    model_config = ConfigDict(populate_by_name=True)


class TokenAlias(BaseModel):
    """One historic schema token for an external token."""
    name: str = ""
    in_codegen: bool = Field(False, alias="inCodegen")
    major_version: int = Field(0, alias="majorVersion")

    model_config = ConfigDict(populate_by_name=True)


class TokenHistory(BaseModel):
    """Current and past schema tokens plus field history for one external token."""
    current: str = ""
    past: List[TokenAlias] = Field(default_factory=list)
    major_version: int = Field(0, alias="majorVersion")
    fields: Optional[Dict[str, Optional[FieldHistory]]] = None

    model_config = ConfigDict(populate_by_name=True)


class AutoAliasing(BaseModel):
    version: Optional[int] = None
    resources: Optional[Dict[str, Optional[TokenHistory]]] = None
    datasources: Optional[Dict[str, Optional[TokenHistory]]] = None

    model_config = ConfigDict(populate_by_name=True)


class MetadataEnvelope(BaseModel):
    """The subset of bridge metadata that normalization consumes."""
    auto_aliasing: Optional[AutoAliasing] = Field(None, alias="auto-aliasing")

    model_config = ConfigDict(populate_by_name=True)

    def histories(self, scope: str) -> Dict[str, Optional[TokenHistory]]:
        """Token histories for ``scope`` (empty when absent)."""
        if self.auto_aliasing is None:
            return {}
        if scope == SCOPE_RESOURCES:
            return self.auto_aliasing.resources or {}
        if scope == SCOPE_DATASOURCES:
            return self.auto_aliasing.datasources or {}
        return {}


def read_history_map(metadata: Optional[MetadataEnvelope], scope: str) -> Dict[str, Optional[TokenHistory]]:
    if metadata is None:
        return {}
    return metadata.histories(scope)


def is_schema_token(token: str) -> bool:
    """True when ``token`` is a well-formed ``pkg:module:member`` token."""
    return bool(token) and _TOKEN_PATTERN.match(token) is not None


def load_metadata(path: Union[str, Path, None]) -> MetadataEnvelope:
    """Load and validate metadata from a local file."""
    if path is None or not str(path).strip():
        raise MetadataRequiredError("metadata required: empty path")
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise MetadataRequiredError(f"metadata required: {e}") from e
    return parse_metadata(data)


def parse_metadata(data: Union[bytes, str]) -> MetadataEnvelope:
    """Parse and validate a metadata payload."""
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MetadataInvalidError(f"metadata invalid: {e}") from e
    if not data.strip():
        raise MetadataRequiredError("metadata required: empty payload")

    try:
        # json.loads rejects trailing content ("Extra data")
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        raise MetadataInvalidError(f"metadata invalid: {e}") from e
    if not isinstance(raw, dict):
        raise MetadataInvalidError(f"metadata invalid: expected a JSON object, got {type(raw).__name__}")

    try:
        metadata = MetadataEnvelope.model_validate(raw)
    except ValidationError as e:
        raise MetadataInvalidError(f"metadata invalid: {e}") from e

    validate_metadata(metadata)
    return metadata


def validate_metadata(metadata: Optional[MetadataEnvelope]) -> None:
    """Check structural invariants pydantic cannot express."""
    if metadata is None or metadata.auto_aliasing is None:
        raise MetadataRequiredError("metadata required: missing auto-aliasing payload")

    version = metadata.auto_aliasing.version
    if version is not None and version != SUPPORTED_AUTO_ALIASING_VERSION:
        raise MetadataVersionUnsupportedError(SUPPORTED_AUTO_ALIASING_VERSION, version)

    for scope in SCOPES:
        _validate_token_history_map(scope, metadata.histories(scope))


def _validate_token_history_map(kind: str, histories: Dict[str, Optional[TokenHistory]]) -> None:
    for ext_token in sorted(histories):
        history = histories[ext_token]
        where = f"{kind}[{json.dumps(ext_token)}]"
        if history is None:
            raise MetadataInvalidError(f"metadata invalid: {where} must not be null")
        if not history.current.strip():
            raise MetadataInvalidError(f"metadata invalid: {where}.current must be set")
        for i, alias in enumerate(history.past):
            if not alias.name.strip():
                raise MetadataInvalidError(f"metadata invalid: {where}.past[{i}].name must be set")
        _validate_field_history_map(f"{where}.fields", history.fields)


def _validate_field_history_map(where: str, fields: Optional[Dict[str, Optional[FieldHistory]]]) -> None:
    for name in sorted(fields or {}):
        _validate_field_history_node(fields[name], f"{where}[{json.dumps(name)}]")


def _validate_field_history_node(history: Optional[FieldHistory], where: str) -> None:
    if history is None:
        raise MetadataInvalidError(f"metadata invalid: {where} must not be null")
    _validate_field_history_map(f"{where}.fields", history.fields)
    if history.elem is not None:
        _validate_field_history_node(history.elem, f"{where}.elem")
