"""Pydantic models for package schemas (resources, functions, named types)."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_serializer, model_validator

from schemacompat._internal.canonical_json import canonical_dumps


LOCAL_TYPE_REF_PREFIX = "#/types/"


class SchemaLoadError(ValueError):
    """Raised when a schema payload cannot be parsed into a PackageSpec."""


class DiscriminatorSpec(BaseModel):
    """Discriminator for union types."""
    property_name: str = Field(..., alias="propertyName")
    mapping: Optional[Dict[str, str]] = None

    model_config = ConfigDict(populate_by_name=True)


class TypeSpec(BaseModel):
    """A (possibly recursive) type reference.

    Exactly one shape is expected to be meaningful at a time:
    - primitive: ``type`` in {string, number, integer, boolean}
    - reference: ``$ref`` (``#/types/<token>`` for local named types)
    - array: ``type == "array"`` with ``items``
    - map: ``type == "object"`` with ``additionalProperties``
    - union: ``oneOf`` with optional ``discriminator``
    """
    type: Optional[str] = None
    ref: Optional[str] = Field(None, alias="$ref")
    items: Optional["TypeSpec"] = None
    additional_properties: Optional["TypeSpec"] = Field(None, alias="additionalProperties")
    one_of: Optional[List["TypeSpec"]] = Field(None, alias="oneOf")
    discriminator: Optional[DiscriminatorSpec] = None
    plain: bool = False

    model_config = ConfigDict(populate_by_name=True)


TYPE_SPEC_FIELDS = tuple(TypeSpec.model_fields)


class PropertySpec(TypeSpec):
    """A property: type fields inline plus descriptive metadata."""
    description: Optional[str] = None
    default: Optional[Any] = None
    secret: bool = False
    deprecation_message: Optional[str] = Field(None, alias="deprecationMessage")
    replace_on_changes: bool = Field(False, alias="replaceOnChanges")
    will_replace_on_changes: bool = Field(False, alias="willReplaceOnChanges")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def as_type_spec(self) -> TypeSpec:
        """Return only the type portion of this property."""
        return TypeSpec(**{name: getattr(self, name) for name in TYPE_SPEC_FIELDS})

    def with_type_spec(self, replacement: TypeSpec) -> "PropertySpec":
        """Return a copy of this property whose type portion is ``replacement``."""
        return self.model_copy(
            update={name: getattr(replacement, name) for name in TYPE_SPEC_FIELDS}
        )


class ObjectTypeSpec(BaseModel):
    """An object shape: properties plus the ordered set of required names."""
    type: Optional[str] = None
    description: Optional[str] = None
    properties: Dict[str, PropertySpec] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ComplexTypeSpec(ObjectTypeSpec):
    """A named type entry in the schema's type table."""
    enum: Optional[List[Any]] = None


class ResourceSpec(ObjectTypeSpec):
    """A resource: output properties (inherited) plus inputs."""
    input_properties: Dict[str, PropertySpec] = Field(default_factory=dict, alias="inputProperties")
    required_inputs: List[str] = Field(default_factory=list, alias="requiredInputs")
    state_inputs: Optional[ObjectTypeSpec] = Field(None, alias="stateInputs")


class ReturnTypeSpec(BaseModel):
    """A function return type: either an object shape or a plain type."""
    object_type_spec: Optional[ObjectTypeSpec] = None
    type_spec: Optional[TypeSpec] = None

    @model_validator(mode="before")
    @classmethod
    def split_shape(cls, data: Any) -> Any:
        """Route the flat wire form to the matching shape."""
        if not isinstance(data, dict):
            return data
        if "object_type_spec" in data or "type_spec" in data:
            return data
        if "properties" in data:
            return {"object_type_spec": data}
        return {"type_spec": data}

    @model_serializer(mode="plain")
    def flatten(self) -> Dict[str, Any]:
        inner = self.object_type_spec or self.type_spec
        if inner is None:
            return {}
        return inner.model_dump(by_alias=True, exclude_none=True)


class FunctionSpec(BaseModel):
    """A callable function with optional input and output objects."""
    description: Optional[str] = None
    inputs: Optional[ObjectTypeSpec] = None
    outputs: Optional[ObjectTypeSpec] = None
    return_type: Optional[ReturnTypeSpec] = Field(None, alias="returnType")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ConfigSpec(BaseModel):
    """Package-level configuration variables."""
    variables: Dict[str, PropertySpec] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PackageSpec(BaseModel):
    """A complete schema snapshot."""
    name: str = ""
    version: Optional[str] = None
    config: ConfigSpec = Field(default_factory=ConfigSpec)
    provider: ResourceSpec = Field(default_factory=ResourceSpec)
    resources: Dict[str, ResourceSpec] = Field(default_factory=dict)
    functions: Dict[str, FunctionSpec] = Field(default_factory=dict)
    types: Dict[str, ComplexTypeSpec] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_json(self) -> str:
        """Canonical serialization using wire-format aliases."""
        return canonical_dumps(self.model_dump(by_alias=True, exclude_none=True))


def parse_package_spec(data: Union[bytes, str, Dict[str, Any]]) -> PackageSpec:
    """Parse a schema payload (raw JSON or an already-decoded dict)."""
    if isinstance(data, (bytes, str)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise SchemaLoadError(f"schema is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SchemaLoadError(f"schema must be a JSON object, got {type(data).__name__}")
    try:
        return PackageSpec.model_validate(data)
    except ValidationError as e:
        raise SchemaLoadError(f"schema failed validation: {e}") from e


def load_package_spec(path: Union[str, Path]) -> PackageSpec:
    """Load a schema from a local JSON file."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise SchemaLoadError(f"read schema: {e}") from e
    return parse_package_spec(data)


def local_type_token(ref: Optional[str]) -> Optional[str]:
    """Return the named-type token for a local ``#/types/`` ref, else None."""
    if not ref or not ref.startswith(LOCAL_TYPE_REF_PREFIX):
        return None
    token = ref[len(LOCAL_TYPE_REF_PREFIX):]
    if not token.strip():
        return None
    return token


def type_identifier(ts: Optional[TypeSpec]) -> str:
    """Ref if set, else the base type name."""
    if ts is None:
        return ""
    if ts.ref:
        return ts.ref
    return ts.type or ""


def is_array_type(ts: Optional[TypeSpec]) -> bool:
    return ts is not None and ts.type == "array"
