"""Singular/plural rename checks for maxItemsOne shape changes.

A property that flips between a single value and a single-element array is
usually renamed at the same time (``filter`` -> ``filters``). These helpers
detect that pairing so the engine can report a shape change instead of a
missing property plus an unrelated new one.
"""

from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Set, Tuple

import inflect

from .messages import is_max_items_one_change
from .schema import PropertySpec


_inflector = inflect.engine()


def _is_inflection(singular: Optional[str], plural: Optional[str]) -> bool:
    if not singular or not plural or singular == plural:
        return False
    # inflect pluralizes "-s" words it does not know ("filters", "acces") by
    # appending another "s".
    if singular.endswith("s") and plural == singular + "s":
        return False
    return True


@lru_cache(maxsize=4096)
def _candidate_pair(name: str) -> Tuple[Optional[str], Optional[str]]:
    if not name:
        return None, None

    # Each candidate must inflect back to name; inflect singularizes some
    # singular words ("address" -> "addres").
    plural = _inflector.plural_noun(name) or None
    if not _is_inflection(name, plural) or _inflector.singular_noun(plural) != name:
        plural = None
    singular = _inflector.singular_noun(name) or None
    if not _is_inflection(singular, name) or _inflector.plural_noun(singular) != name:
        singular = None

    first: Optional[str] = None
    second: Optional[str] = None
    for candidate in (plural, singular):
        if not candidate or candidate == name or candidate == first:
            continue
        if first is None:
            first = candidate
        elif second is None:
            second = candidate
    return first, second


def _candidates(name: str) -> Iterable[str]:
    return (c for c in _candidate_pair(name) if c)


def pluralization_candidates(name: str) -> List[str]:
    """Singular/plural variants of ``name`` (empty when there are none)."""
    return list(_candidates(name))


def max_items_one_rename(
    old_name: str,
    old_prop: PropertySpec,
    new_props: Dict[str, PropertySpec],
) -> Optional[str]:
    """Return the new name ``old_name`` was renamed to with a maxItemsOne change, if any."""
    for candidate in _candidates(old_name):
        new_prop = new_props.get(candidate)
        if new_prop is None:
            continue
        if is_max_items_one_change(old_prop, new_prop):
            return candidate
    return None


def is_true_rename(
    old_name: str,
    new_name: str,
    old_props: Dict[str, PropertySpec],
    new_props: Dict[str, PropertySpec],
) -> bool:
    """The old key was removed and the new key did not already exist."""
    if not old_name or not new_name or old_name == new_name:
        return False
    if old_name not in old_props or new_name not in new_props:
        return False
    if old_name in new_props:
        return False
    if new_name in old_props:
        return False
    return True


def is_max_items_one_rename_required(
    new_name: str,
    old_required: Set[str],
    old_props: Dict[str, PropertySpec],
    new_props: Dict[str, PropertySpec],
) -> bool:
    """A newly required name is explained by a maxItemsOne rename of a required property."""
    new_prop = new_props.get(new_name) if new_name else None
    if new_prop is None:
        return False
    for candidate in _candidates(new_name):
        if candidate not in old_required:
            continue
        if not is_true_rename(candidate, new_name, old_props, new_props):
            continue
        if is_max_items_one_change(old_props[candidate], new_prop):
            return True
    return False


def is_max_items_one_rename_required_to_optional(
    old_name: str,
    new_required: Set[str],
    old_props: Dict[str, PropertySpec],
    new_props: Dict[str, PropertySpec],
) -> bool:
    """A no-longer-required name moved to a still-required maxItemsOne rename."""
    old_prop = old_props.get(old_name) if old_name else None
    if old_prop is None:
        return False
    for candidate in _candidates(old_name):
        if candidate not in new_required:
            continue
        if not is_true_rename(old_name, candidate, old_props, new_props):
            continue
        if is_max_items_one_change(old_prop, new_props[candidate]):
            return True
    return False
