"""Category labels and message builders shared by the engine and renderers."""

import json
from typing import Optional

from .schema import TypeSpec, is_array_type, type_identifier


RESOURCES_CATEGORY = "Resources"
FUNCTIONS_CATEGORY = "Functions"
TYPES_CATEGORY = "Types"


def quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def changed_to_required(kind: str) -> str:
    return f"{kind} has changed to Required"


def changed_to_optional(kind: str) -> str:
    return f"{kind} is no longer Required"


def changed_to_max_items_one(old_type: str, new_type: str) -> str:
    return f"type changed from {quote(old_type)} to {quote(new_type)} (max-items-one)"


def changed_to_max_items_one_rename(old_type: str, new_type: str, new_name: str) -> str:
    return (
        f"type changed from {quote(old_type)} to {quote(new_type)} "
        f"(max-items-one; renamed to {quote(new_name)})"
    )


def format_name(provider: str, token: str) -> str:
    """Rewrite a token into provider-relative dot notation.

    ``my-pkg:index:Widget`` with provider ``my-pkg`` becomes ``index.Widget``.
    """
    prefix = f"{provider}:"
    if token.startswith(prefix):
        token = token[len(prefix):]
    return token.replace(":", ".")


def _same_type_identifier(a: Optional[TypeSpec], b: Optional[TypeSpec]) -> bool:
    if a is None or b is None:
        return False
    a_id = type_identifier(a)
    if not a_id:
        return False
    return a_id == type_identifier(b)


def is_max_items_one_change(old: Optional[TypeSpec], new: Optional[TypeSpec]) -> bool:
    """True for scalar<->array transitions whose element type is stable."""
    if old is None or new is None:
        return False
    if is_array_type(old) and not is_array_type(new):
        return _same_type_identifier(old.items, new)
    if not is_array_type(old) and is_array_type(new):
        return _same_type_identifier(new.items, old)
    return False
