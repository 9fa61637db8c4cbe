"""Metadata-driven maxItemsOne rewrites.

When field history says a field's maxItemsOne flag flipped between releases,
the new schema's array-wrapped (or unwrapped) type at that field is rewritten
back to the old shape, so the engine does not report a type change the
provider's users never observe.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..kernel.pluralization import is_true_rename, pluralization_candidates
from ..kernel.schema import (
    LOCAL_TYPE_REF_PREFIX,
    ObjectTypeSpec,
    PackageSpec,
    PropertySpec,
    TypeSpec,
    is_array_type,
    local_type_token,
    type_identifier,
)
from .field_history import FieldPathEvidence, MaxItemsOneTransition, sorted_evidence_paths
from .metadata import SCOPE_DATASOURCES, SCOPE_RESOURCES, MetadataEnvelope, read_history_map
from .token_remap import TokenRemap


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldPathPart:
    name: str
    elem: bool = False


@dataclass(frozen=True)
class MaxItemsOneChange:
    """One field rewritten back to its old shape."""
    scope: str
    token: str
    location: str
    field: str
    old_type: str
    new_type: str


def parse_field_path(path: str) -> Optional[List[FieldPathPart]]:
    """Parse a flattened history path.

    ``settings[*].name`` -> ``[FieldPathPart("settings", True), FieldPathPart("name")]``.
    Returns None for empty segments or an inner ``[*]``.
    """
    if not path or not path.strip():
        return None
    parts = []
    for raw in path.split("."):
        name = raw.strip()
        if not name:
            return None
        elem = False
        if name.endswith("[*]"):
            elem = True
            name = name[: -len("[*]")]
        if not name or "[*]" in name:
            return None
        parts.append(FieldPathPart(name=name, elem=elem))
    return parts


def object_properties_for_type_spec(pkg: PackageSpec, ts: Optional[TypeSpec]) -> Optional[Dict[str, PropertySpec]]:
    """Properties of the local named type ``ts`` refers to, if any."""
    if ts is None:
        return None
    token = local_type_token(ts.ref)
    if token is None:
        return None
    named = pkg.types.get(token)
    if named is None:
        return None
    return named.properties


def lookup_type_spec_at_path(
    pkg: PackageSpec,
    props: Optional[Dict[str, PropertySpec]],
    path: List[FieldPathPart],
) -> Optional[TypeSpec]:
    """Resolve the type at ``path``, following local named-type refs.

    Each step consumes one path segment, so recursive types terminate.
    """
    current: Optional[TypeSpec] = None
    for i, part in enumerate(path):
        if i > 0:
            props = object_properties_for_type_spec(pkg, current)
        if props is None or part.name not in props:
            return None
        current = props[part.name].as_type_spec()
        if part.elem:
            if not is_array_type(current) or current.items is None:
                return None
            current = current.items
    return current


def _container_properties(
    pkg: PackageSpec,
    props: Dict[str, PropertySpec],
    parent_path: List[FieldPathPart],
) -> Optional[Dict[str, PropertySpec]]:
    if not parent_path:
        return props
    return object_properties_for_type_spec(pkg, lookup_type_spec_at_path(pkg, props, parent_path))


def is_max_items_one_type_change(old: Optional[TypeSpec], new: Optional[TypeSpec]) -> bool:
    """An exact array wrap/unwrap of a structurally identical element."""
    if old is None or new is None:
        return False
    if is_array_type(old) and not is_array_type(new):
        return _same_type_spec(old.items, new)
    if not is_array_type(old) and is_array_type(new):
        return _same_type_spec(new.items, old)
    return False


def _same_type_spec(a: Optional[TypeSpec], b: Optional[TypeSpec]) -> bool:
    if a is None or b is None:
        return False
    return a.model_dump() == b.model_dump()


def _rename_key(props: Dict[str, PropertySpec], old_key: str, new_key: str) -> Dict[str, PropertySpec]:
    return {(new_key if k == old_key else k): v for k, v in props.items()}


def _rename_required(required: List[str], old_name: str, new_name: str) -> List[str]:
    return [new_name if name == old_name else name for name in required]


# --- Named-type reference counting -------------------------------------------

def build_local_type_ref_use_counts(pkg: PackageSpec) -> Dict[str, int]:
    """Count references to each local named type from everywhere in ``pkg``.

    References a named type makes to itself are not counted.
    """
    counts: Dict[str, int] = {}

    _count_property_map(pkg.config.variables, counts)
    _count_property_map(pkg.provider.input_properties, counts)
    _count_property_map(pkg.provider.properties, counts)
    if pkg.provider.state_inputs is not None:
        _count_property_map(pkg.provider.state_inputs.properties, counts)

    for resource in pkg.resources.values():
        _count_property_map(resource.input_properties, counts)
        _count_property_map(resource.properties, counts)
        if resource.state_inputs is not None:
            _count_property_map(resource.state_inputs.properties, counts)

    for function in pkg.functions.values():
        if function.inputs is not None:
            _count_property_map(function.inputs.properties, counts)
        if function.outputs is not None:
            _count_property_map(function.outputs.properties, counts)
        if function.return_type is not None:
            if function.return_type.object_type_spec is not None:
                _count_property_map(function.return_type.object_type_spec.properties, counts)
            if function.return_type.type_spec is not None:
                _count_type_spec(function.return_type.type_spec, counts)

    for named in pkg.types.values():
        _count_property_map(named.properties, counts)

    for token, named in pkg.types.items():
        target = LOCAL_TYPE_REF_PREFIX + token
        self_refs = sum(_type_spec_ref_count(prop, target) for prop in named.properties.values())
        if self_refs:
            counts[token] = max(counts.get(token, 0) - self_refs, 0)

    return counts


def _count_property_map(props: Dict[str, PropertySpec], counts: Dict[str, int]) -> None:
    for prop in props.values():
        _count_type_spec(prop, counts)


def _count_type_spec(ts: TypeSpec, counts: Dict[str, int]) -> None:
    token = local_type_token(ts.ref)
    if token is not None:
        counts[token] = counts.get(token, 0) + 1
    if ts.items is not None:
        _count_type_spec(ts.items, counts)
    if ts.additional_properties is not None:
        _count_type_spec(ts.additional_properties, counts)
    for branch in ts.one_of or []:
        _count_type_spec(branch, counts)


def _type_spec_ref_count(ts: TypeSpec, target: str) -> int:
    count = 1 if ts.ref == target else 0
    if ts.items is not None:
        count += _type_spec_ref_count(ts.items, target)
    if ts.additional_properties is not None:
        count += _type_spec_ref_count(ts.additional_properties, target)
    for branch in ts.one_of or []:
        count += _type_spec_ref_count(branch, target)
    return count


# --- Canonical identity -> external token ------------------------------------

def canonical_external_token_index(
    scope: str,
    remap: TokenRemap,
    old_metadata: Optional[MetadataEnvelope],
    new_metadata: Optional[MetadataEnvelope],
) -> Dict[str, str]:
    """Map canonical identities back to the external token that owns them.

    A canonical claimed by two different external tokens is ambiguous and is
    left out, which disables field rewrites for it.
    """
    index: Dict[str, str] = {}
    ambiguous = set()

    def add(canonical: Optional[str], ext_token: str) -> None:
        if not canonical or not ext_token or canonical in ambiguous:
            return
        existing = index.get(canonical)
        if existing is not None and existing != ext_token:
            del index[canonical]
            ambiguous.add(canonical)
            logger.warning(
                "canonical %s in %s is claimed by %s and %s; skipping field rewrites",
                canonical, scope, existing, ext_token,
            )
            return
        index[canonical] = ext_token

    old_histories = read_history_map(old_metadata, scope)
    for ext_token in sorted(old_histories):
        history = old_histories[ext_token]
        if history is None or not history.current.strip():
            continue
        add(remap.canonical_for_old(scope, history.current), ext_token)

    new_histories = read_history_map(new_metadata, scope)
    for ext_token in sorted(new_histories):
        history = new_histories[ext_token]
        if history is None or not history.current.strip():
            continue
        add(remap.canonical_for_new(scope, history.current), ext_token)

    return index


def resolve_external_token(scope: str, token: str, remap: TokenRemap, index: Dict[str, str]) -> Optional[str]:
    canonical = remap.canonical_for_old(scope, token)
    if canonical is None:
        canonical = remap.canonical_for_new(scope, token)
    if canonical is None:
        return None
    return index.get(canonical)


# --- Rewriting -----------------------------------------------------------------

class MaxItemsOneNormalizer:
    """Rewrites ``new_schema`` in place; it must already be a private copy."""

    def __init__(self, old_schema: PackageSpec, new_schema: PackageSpec):
        self.old_schema = old_schema
        self.new_schema = new_schema
        # computed once, before any rewrite
        self.ref_counts = build_local_type_ref_use_counts(new_schema)

    def apply(
        self,
        remap: TokenRemap,
        evidence_by_scope: Dict[str, Dict[str, Dict[str, FieldPathEvidence]]],
        old_metadata: Optional[MetadataEnvelope],
        new_metadata: Optional[MetadataEnvelope],
    ) -> List[MaxItemsOneChange]:
        changes: List[MaxItemsOneChange] = []
        resource_index = canonical_external_token_index(SCOPE_RESOURCES, remap, old_metadata, new_metadata)
        function_index = canonical_external_token_index(SCOPE_DATASOURCES, remap, old_metadata, new_metadata)

        resource_evidence = evidence_by_scope.get(SCOPE_RESOURCES, {})
        for token in sorted(self.new_schema.resources):
            old_resource = self.old_schema.resources.get(token)
            if old_resource is None:
                continue
            ext_token = resolve_external_token(SCOPE_RESOURCES, token, remap, resource_index)
            evidence = resource_evidence.get(ext_token) if ext_token else None
            if not evidence:
                continue

            resource = self.new_schema.resources[token]
            inputs, required_inputs, found = self.normalize_property_map(
                SCOPE_RESOURCES, token, "inputs",
                old_resource.input_properties, resource.input_properties, resource.required_inputs,
                evidence,
            )
            changes.extend(found)
            properties, required, found = self.normalize_property_map(
                SCOPE_RESOURCES, token, "properties",
                old_resource.properties, resource.properties, resource.required,
                evidence,
            )
            changes.extend(found)
            self.new_schema.resources[token] = resource.model_copy(update={
                "input_properties": inputs,
                "required_inputs": required_inputs,
                "properties": properties,
                "required": required,
            })

        function_evidence = evidence_by_scope.get(SCOPE_DATASOURCES, {})
        for token in sorted(self.new_schema.functions):
            old_function = self.old_schema.functions.get(token)
            if old_function is None:
                continue
            ext_token = resolve_external_token(SCOPE_DATASOURCES, token, remap, function_index)
            evidence = function_evidence.get(ext_token) if ext_token else None
            if not evidence:
                continue

            function = self.new_schema.functions[token]
            update = {}
            for location, attr in (("inputs", "inputs"), ("outputs", "outputs")):
                old_obj: Optional[ObjectTypeSpec] = getattr(old_function, attr)
                new_obj: Optional[ObjectTypeSpec] = getattr(function, attr)
                if old_obj is None or new_obj is None:
                    continue
                props, required, found = self.normalize_property_map(
                    SCOPE_DATASOURCES, token, location,
                    old_obj.properties, new_obj.properties, new_obj.required,
                    evidence,
                )
                changes.extend(found)
                update[attr] = new_obj.model_copy(update={"properties": props, "required": required})
            if update:
                self.new_schema.functions[token] = function.model_copy(update=update)

        return changes

    def normalize_property_map(
        self,
        scope: str,
        token: str,
        location: str,
        old_props: Dict[str, PropertySpec],
        new_props: Dict[str, PropertySpec],
        new_required: List[str],
        evidence: Dict[str, FieldPathEvidence],
    ) -> Tuple[Dict[str, PropertySpec], List[str], List[MaxItemsOneChange]]:
        """Apply rewrites for one property map; returns (props, required, changes)."""
        changes: List[MaxItemsOneChange] = []
        if not new_props or not evidence:
            return new_props, new_required, changes

        updated = new_props
        required = new_required
        for path in sorted_evidence_paths(evidence):
            if evidence[path].transition != MaxItemsOneTransition.CHANGED:
                continue
            parts = parse_field_path(path)
            if parts is None:
                continue

            old_type = lookup_type_spec_at_path(self.old_schema, old_props, parts)
            if old_type is None:
                continue

            new_parts = parts
            renamed_from = None
            new_type = lookup_type_spec_at_path(self.new_schema, updated, parts)
            if new_type is None:
                new_parts = self._renamed_leaf_path(old_props, updated, parts)
                if new_parts is None:
                    continue
                renamed_from = new_parts[-1].name
                new_type = lookup_type_spec_at_path(self.new_schema, updated, new_parts)
            if not is_max_items_one_type_change(old_type, new_type):
                continue

            rename_to = parts[-1].name if renamed_from else None
            next_props = self._set_type_spec_at_path(updated, new_parts, old_type, rename_to)
            if next_props is None:
                continue
            updated = next_props
            if renamed_from and len(parts) == 1:
                required = _rename_required(required, renamed_from, rename_to)

            logger.info(
                "rewrote %s %s %s field %s from %s back to %s",
                scope, token, location, path, type_identifier(new_type), type_identifier(old_type),
            )
            changes.append(MaxItemsOneChange(
                scope=scope,
                token=token,
                location=location,
                field=path,
                old_type=type_identifier(old_type),
                new_type=type_identifier(new_type),
            ))

        return updated, required, changes

    def _renamed_leaf_path(
        self,
        old_props: Dict[str, PropertySpec],
        new_props: Dict[str, PropertySpec],
        parts: List[FieldPathPart],
    ) -> Optional[List[FieldPathPart]]:
        """The new-side path when only the last field was singular/plural renamed."""
        leaf = parts[-1]
        if leaf.elem:
            return None
        old_parent = _container_properties(self.old_schema, old_props, parts[:-1])
        new_parent = _container_properties(self.new_schema, new_props, parts[:-1])
        if old_parent is None or new_parent is None:
            return None
        for candidate in pluralization_candidates(leaf.name):
            if is_true_rename(leaf.name, candidate, old_parent, new_parent):
                return parts[:-1] + [FieldPathPart(name=candidate)]
        return None

    def _set_type_spec_at_path(
        self,
        props: Dict[str, PropertySpec],
        path: List[FieldPathPart],
        replacement: TypeSpec,
        rename_to: Optional[str],
    ) -> Optional[Dict[str, PropertySpec]]:
        """Return a copy of ``props`` with ``replacement`` written at ``path``.

        With ``rename_to`` set, the last segment's property also moves to
        that name.
        """
        if not path:
            return None
        part, remaining = path[0], path[1:]
        prop = props.get(part.name)
        if prop is None:
            return None
        updated_prop = self._set_type_spec_from_property(prop, part, remaining, replacement, rename_to)
        if updated_prop is None:
            return None

        out = dict(props)
        out[part.name] = updated_prop
        if rename_to and not remaining:
            out = _rename_key(out, part.name, rename_to)
        return out

    def _set_type_spec_from_property(
        self,
        prop: PropertySpec,
        part: FieldPathPart,
        remaining: List[FieldPathPart],
        replacement: TypeSpec,
        rename_to: Optional[str],
    ) -> Optional[PropertySpec]:
        current = prop.as_type_spec()
        if part.elem:
            if not is_array_type(current) or current.items is None:
                return None
            if not remaining:
                return prop.with_type_spec(current.model_copy(update={"items": replacement.model_copy(deep=True)}))
            if not self._set_type_spec_in_named_type(current.items, remaining, replacement, rename_to):
                return None
            return prop

        if not remaining:
            return prop.with_type_spec(replacement.model_copy(deep=True))
        if not self._set_type_spec_in_named_type(current, remaining, replacement, rename_to):
            return None
        return prop

    def _set_type_spec_in_named_type(
        self,
        ts: TypeSpec,
        path: List[FieldPathPart],
        replacement: TypeSpec,
        rename_to: Optional[str],
    ) -> bool:
        token = local_type_token(ts.ref)
        if token is None or token not in self.new_schema.types:
            return False
        if self.ref_counts.get(token, 0) > 1:
            logger.debug("not rewriting shared type %s (%d references)", token, self.ref_counts[token])
            return False

        named = self.new_schema.types[token]
        updated_props = self._set_type_spec_at_path(named.properties, path, replacement, rename_to)
        if updated_props is None:
            return False

        # A self-referential path may have replaced this entry further down
        # the recursion; merge into the latest copy.
        latest = self.new_schema.types[token]
        if latest is not named and len(path) > 1:
            key = path[0].name
            updated_props = {**latest.properties, key: updated_props[key]}

        update = {"properties": updated_props}
        if rename_to and len(path) == 1:
            update["required"] = _rename_required(latest.required, path[0].name, rename_to)
        self.new_schema.types[token] = latest.model_copy(update=update)
        return True
