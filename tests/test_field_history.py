"""Tests for maxItemsOne field evidence."""

import pytest

from schemacompat.normalize.field_history import (
    MaxItemsOneTransition,
    build_field_history_evidence,
    classify_max_items_one_transition,
    flatten_field_history,
    sorted_evidence_paths,
)
from schemacompat.normalize.metadata import FieldHistory, SCOPE_DATASOURCES, SCOPE_RESOURCES


def test_flatten_nested_history():
    fields = {
        "a": FieldHistory.model_validate({
            "maxItemsOne": True,
            "fields": {"b": {"maxItemsOne": False}},
            "elem": {"maxItemsOne": True, "fields": {"c": {}}},
        })
    }

    assert flatten_field_history(fields) == {
        "a": True,
        "a.b": False,
        "a[*]": True,
        "a[*].c": None,
    }


def test_flatten_empty():
    assert flatten_field_history(None) == {}
    assert flatten_field_history({}) == {}


@pytest.mark.parametrize(
    "old,new,expected",
    [
        (None, True, MaxItemsOneTransition.UNKNOWN),
        (False, None, MaxItemsOneTransition.UNKNOWN),
        (True, True, MaxItemsOneTransition.UNCHANGED),
        (False, False, MaxItemsOneTransition.UNCHANGED),
        (True, False, MaxItemsOneTransition.CHANGED),
        (False, True, MaxItemsOneTransition.CHANGED),
    ],
)
def test_classify_transition(old, new, expected):
    assert classify_max_items_one_transition(old, new) is expected


def test_build_evidence(make_metadata):
    old = make_metadata(resources={
        "pkg_widget": {
            "current": "pkg:index:Widget",
            "fields": {"filter": {"maxItemsOne": True}, "tags": {"maxItemsOne": False}},
        }
    })
    new = make_metadata(resources={
        "pkg_widget": {
            "current": "pkg:index:Widget",
            "fields": {"filter": {"maxItemsOne": False}, "extra": {"maxItemsOne": True}},
        },
        "pkg_empty": {"current": "pkg:index:Empty"},
    })

    evidence = build_field_history_evidence(old, new)
    widget = evidence.for_scope(SCOPE_RESOURCES)["pkg_widget"]

    assert sorted_evidence_paths(widget) == ["extra", "filter", "tags"]
    assert widget["filter"].old is True
    assert widget["filter"].new is False
    assert widget["filter"].transition is MaxItemsOneTransition.CHANGED
    assert widget["tags"].transition is MaxItemsOneTransition.UNKNOWN
    assert widget["extra"].transition is MaxItemsOneTransition.UNKNOWN
    assert "pkg_empty" not in evidence.resources
    assert evidence.for_scope(SCOPE_DATASOURCES) == {}
    assert evidence.for_scope("types") == {}


def test_sorted_evidence_paths_of_none():
    assert sorted_evidence_paths(None) == []
