"""Breaking-change detection between two schema snapshots.

The walk is old -> new only: anything removed, narrowed or made stricter is a
violation; pure additions are listed separately as new resources/functions.
Every map is iterated over sorted keys so violation order is reproducible.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .diagtree import Node, Severity
from .messages import (
    FUNCTIONS_CATEGORY,
    RESOURCES_CATEGORY,
    TYPES_CATEGORY,
    changed_to_max_items_one,
    changed_to_max_items_one_rename,
    changed_to_optional,
    changed_to_required,
    format_name,
    is_max_items_one_change,
    quote,
)
from .pluralization import (
    is_max_items_one_rename_required,
    is_max_items_one_rename_required_to_optional,
    max_items_one_rename,
)
from .schema import (
    FunctionSpec,
    ObjectTypeSpec,
    PackageSpec,
    PropertySpec,
    TypeSpec,
    type_identifier,
)


SIGNATURE_ADDED_ARGS = "signature change (pulumi.InvokeOptions)->T => (Args, pulumi.InvokeOptions)->T"
SIGNATURE_REMOVED_ARGS = "signature change (Args, pulumi.InvokeOptions)->T => (pulumi.InvokeOptions)->T"


@dataclass
class Report:
    """Engine output consumed by the text and JSON renderers."""
    violations: Node
    new_resources: List[str] = field(default_factory=list)
    new_functions: List[str] = field(default_factory=list)


def analyze(provider: str, old_schema: PackageSpec, new_schema: PackageSpec) -> Report:
    """Compute violations and newly introduced resources/functions."""
    new_resources = sorted(
        format_name(provider, token)
        for token in new_schema.resources
        if token not in old_schema.resources
    )
    new_functions = sorted(
        format_name(provider, token)
        for token in new_schema.functions
        if token not in old_schema.functions
    )
    return Report(
        violations=breaking_changes(old_schema, new_schema),
        new_resources=new_resources,
        new_functions=new_functions,
    )


def breaking_changes(old_schema: PackageSpec, new_schema: PackageSpec) -> Node:
    """Build the diagnostics tree for schema incompatibilities."""
    root = Node()

    for token in sorted(old_schema.resources):
        msg = root.label(RESOURCES_CATEGORY).value(token)
        new_resource = new_schema.resources.get(token)
        if new_resource is None:
            msg.set_description(Severity.DANGER, "missing")
            continue
        old_resource = old_schema.resources[token]

        _compare_properties(
            msg.label("inputs"),
            old_resource.input_properties,
            new_resource.input_properties,
            missing=lambda name: "missing",
        )
        _compare_properties(
            msg.label("properties"),
            old_resource.properties,
            new_resource.properties,
            missing=lambda name: f"missing output {quote(name)}",
        )

        old_required_inputs = set(old_resource.required_inputs)
        for name in new_resource.required_inputs:
            if name in old_required_inputs:
                continue
            if is_max_items_one_rename_required(
                name, old_required_inputs, old_resource.input_properties, new_resource.input_properties
            ):
                continue
            msg.label("required inputs").value(name).set_description(
                Severity.INFO, changed_to_required("input")
            )

        # Moving an output from required to optional is breaking. A property
        # that disappeared entirely is already reported as missing.
        _check_no_longer_required(
            msg.label("required"),
            old_resource.required,
            new_resource.required,
            old_resource.properties,
            new_resource.properties,
        )

    for token in sorted(old_schema.functions):
        msg = root.label(FUNCTIONS_CATEGORY).value(token)
        new_function = new_schema.functions.get(token)
        if new_function is None:
            msg.set_description(Severity.DANGER, "missing")
            continue
        _compare_function(msg, old_schema.functions[token], new_function)

    for token in sorted(old_schema.types):
        msg = root.label(TYPES_CATEGORY).value(token)
        new_type = new_schema.types.get(token)
        if new_type is None:
            msg.set_description(Severity.DANGER, "missing")
            continue
        old_type = old_schema.types[token]

        _compare_properties(
            msg.label("properties"),
            old_type.properties,
            new_type.properties,
            missing=lambda name: "missing",
        )

        # A shared type may be consumed as an input or as an output, so it
        # inherits the strictness of both directions.
        _check_no_longer_required(
            msg.label("required"),
            old_type.required,
            new_type.required,
            old_type.properties,
            new_type.properties,
        )
        old_required = set(old_type.required)
        for name in new_type.required:
            if name in old_required:
                continue
            if is_max_items_one_rename_required(name, old_required, old_type.properties, new_type.properties):
                continue
            msg.label("required").value(name).set_description(
                Severity.INFO, changed_to_required("property")
            )

    root.prune()
    return root


def _compare_function(msg: Node, old: FunctionSpec, new: FunctionSpec) -> None:
    if old.inputs is not None:
        inputs = msg.label("inputs")
        new_input_props = new.inputs.properties if new.inputs is not None else None
        _compare_properties(
            inputs,
            old.inputs.properties,
            new_input_props,
            missing=lambda name: f"missing input {quote(name)}",
        )
        if new.inputs is not None:
            old_required = set(old.inputs.required)
            for name in new.inputs.required:
                if name in old_required:
                    continue
                if is_max_items_one_rename_required(
                    name, old_required, old.inputs.properties, new.inputs.properties
                ):
                    continue
                inputs.label("required").value(name).set_description(
                    Severity.INFO, changed_to_required("input")
                )

    # Going between zero and non-zero arguments changes the generated call
    # convention, independent of any property-level differences.
    had_args, has_args = _has_args(old.inputs), _has_args(new.inputs)
    if not had_args and has_args:
        msg.set_description(Severity.DANGER, SIGNATURE_ADDED_ARGS)
    elif had_args and not has_args:
        msg.set_description(Severity.DANGER, SIGNATURE_REMOVED_ARGS)

    if old.outputs is not None:
        outputs = msg.label("outputs")
        new_output_props = new.outputs.properties if new.outputs is not None else None
        _compare_properties(
            outputs,
            old.outputs.properties,
            new_output_props,
            missing=lambda name: "missing output",
        )
        _check_no_longer_required(
            outputs.label("required"),
            old.outputs.required,
            new.outputs.required if new.outputs is not None else [],
            old.outputs.properties,
            new_output_props or {},
        )


def _has_args(spec: Optional[ObjectTypeSpec]) -> bool:
    return spec is not None and len(spec.properties) > 0


def _compare_properties(
    msg: Node,
    old_props: Dict[str, PropertySpec],
    new_props: Optional[Dict[str, PropertySpec]],
    missing,
) -> None:
    """Compare one property map; ``new_props=None`` means the container vanished."""
    for name in sorted(old_props):
        prop_msg = msg.value(name)
        old_prop = old_props[name]
        if new_props is None:
            prop_msg.set_description(Severity.WARN, missing(name))
            continue

        new_prop = new_props.get(name)
        if new_prop is None:
            candidate = max_items_one_rename(name, old_prop, new_props)
            if candidate is not None:
                prop_msg.set_description(
                    Severity.WARN,
                    changed_to_max_items_one_rename(
                        type_identifier(old_prop), type_identifier(new_props[candidate]), candidate
                    ),
                )
                continue
            prop_msg.set_description(Severity.WARN, missing(name))
            continue

        validate_types(old_prop.as_type_spec(), new_prop.as_type_spec(), prop_msg)


def _check_no_longer_required(
    msg: Node,
    old_required: List[str],
    new_required: List[str],
    old_props: Dict[str, PropertySpec],
    new_props: Dict[str, PropertySpec],
) -> None:
    new_required_set = set(new_required)
    for name in old_required:
        if name in new_required_set or name not in new_props:
            continue
        if is_max_items_one_rename_required_to_optional(name, new_required_set, old_props, new_props):
            continue
        msg.value(name).set_description(Severity.INFO, changed_to_optional("property"))


def validate_types(old: Optional[TypeSpec], new: Optional[TypeSpec], msg: Node) -> None:
    """Recursively compare two type shapes and record differences on ``msg``.

    Named-type refs are compared by identity and never dereferenced, so a
    self-referential type graph cannot make this loop.
    """
    if old is None and new is None:
        return
    if new is None:
        msg.set_description(Severity.WARN, f"had {_describe(old)} but now has no type")
        return
    if old is None:
        msg.set_description(Severity.WARN, f"had no type but now has {_describe(new)}")
        return

    old_type = type_identifier(old)
    new_type = type_identifier(new)
    if old_type != new_type:
        if is_max_items_one_change(old, new):
            msg.set_description(Severity.WARN, changed_to_max_items_one(old_type, new_type))
            return
        msg.set_description(Severity.WARN, f"type changed from {quote(old_type)} to {quote(new_type)}")

    validate_types(old.items, new.items, msg.label("items"))
    validate_types(old.additional_properties, new.additional_properties, msg.label("additional properties"))


def _describe(ts: TypeSpec) -> str:
    return ts.model_dump_json(by_alias=True, exclude_none=True, exclude_defaults=True)
