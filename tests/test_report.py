"""Tests for result assembly, normalization folding and renderers."""

import io
import json

import pytest

from schemacompat.codes import ChangeCategory
from schemacompat.contracts import CompareResult, SummaryItem
from schemacompat.kernel.engine import analyze
from schemacompat.kernel.schema import load_package_spec
from schemacompat.normalize.max_items import MaxItemsOneChange
from schemacompat.normalize.metadata import SCOPE_DATASOURCES, SCOPE_RESOURCES
from schemacompat.normalize.normalizer import TokenRename
from schemacompat.report import (
    RenderError,
    add_normalization_max_items_one,
    add_normalization_renames,
    apply_max_changes_limit,
    build_result,
    classify,
    count_described,
    render_json,
    render_summary,
    render_text,
)


class _BrokenWriter:
    def write(self, _):
        raise OSError("disk full")


@pytest.fixture
def fixture_report(fixtures_dir):
    old = load_package_spec(fixtures_dir / "compare" / "schema-old.json")
    new = load_package_spec(fixtures_dir / "compare" / "schema-new.json")
    return analyze("my-pkg", old, new)


@pytest.mark.parametrize(
    "path,description,expected",
    [
        ('Resources: "r": inputs: "a"', "missing", ChangeCategory.MISSING_INPUT),
        ('Types: "t": properties: "a"', "missing", ChangeCategory.MISSING_PROPERTY),
        ('Functions: "f": inputs: "a"', 'missing input "a"', ChangeCategory.MISSING_INPUT),
        ('Resources: "r": properties: "a"', 'missing output "a"', ChangeCategory.MISSING_OUTPUT),
        ('Functions: "f": outputs: "a"', "missing output", ChangeCategory.MISSING_OUTPUT),
        ('Resources: "r"', "missing", ChangeCategory.MISSING_RESOURCE),
        ('Functions: "f"', "missing", ChangeCategory.MISSING_FUNCTION),
        ('Types: "t"', "missing", ChangeCategory.MISSING_TYPE),
        ('Resources: "r": inputs: "a"', 'type changed from "string" to "array" (max-items-one)',
         ChangeCategory.MAX_ITEMS_ONE_CHANGED),
        ('Resources: "r": inputs: "a"', 'type changed from "string" to "integer"', ChangeCategory.TYPE_CHANGED),
        ('Types: "t": properties: "a"', "had no type but now has {}", ChangeCategory.TYPE_CHANGED),
        ('Resources: "r": required inputs: "a"', "input has changed to Required",
         ChangeCategory.OPTIONAL_TO_REQUIRED),
        ('Resources: "r": required: "a"', "property is no longer Required", ChangeCategory.REQUIRED_TO_OPTIONAL),
        ('Functions: "f"', "signature change (pulumi.InvokeOptions)->T => (Args, pulumi.InvokeOptions)->T",
         ChangeCategory.SIGNATURE_CHANGED),
        ('Resources: "r"', "something else", ChangeCategory.OTHER),
    ],
)
def test_classify(path, description, expected):
    assert classify(path, description) is expected


def test_build_result_from_fixture(fixture_report):
    result = build_result(fixture_report, -1)

    assert [(item.category, item.count) for item in result.summary] == [
        ("missing-function", 1),
        ("missing-output", 2),
        ("missing-property", 1),
        ("missing-resource", 1),
        ("optional-to-required", 1),
        ("required-to-optional", 1),
        ("type-changed", 1),
    ]
    missing_output = next(item for item in result.summary if item.category == "missing-output")
    assert missing_output.entries == [
        'Functions: "my-pkg:index:getWidget": outputs: "id" missing output',
        'Resources: "my-pkg:index:Widget": properties: "name" missing output "name"',
    ]
    assert '- `🔴` "my-pkg:index:RemovedResource": missing' in result.breaking_changes
    assert '- `🟡` "my-pkg:index:getWidget": outputs: "id": missing output' in result.breaking_changes
    assert "" not in result.breaking_changes
    assert count_described(result.breaking_changes) == 8
    assert result.new_resources == ["index.ZetaResource", "module.AlphaResource"]
    assert result.new_functions == []
    assert result.renames == []
    assert result.max_items_one == []


def test_build_result_caps_display(fixture_report):
    full = build_result(fixture_report, -1)
    capped = build_result(fixture_report, 2)

    assert count_described(capped.breaking_changes) == 2
    # summary always counts everything
    assert capped.summary == full.summary


def test_fold_renames_into_empty_result():
    renames = [
        TokenRename(SCOPE_RESOURCES, "pkg:index:Gadget", "pkg:index:RenamedGadget"),
        TokenRename(SCOPE_DATASOURCES, "pkg:index:getGadget", "pkg:index:getRenamedGadget"),
    ]

    result = add_normalization_renames(CompareResult(), renames)

    assert result.breaking_changes == []
    assert result.normalized_changes == [
        'Functions: "pkg:index:getGadget" renamed to "pkg:index:getRenamedGadget"',
        'Resources: "pkg:index:Gadget" renamed to "pkg:index:RenamedGadget"',
    ]
    assert [(item.category, item.count) for item in result.summary] == [
        ("renamed-function", 1),
        ("renamed-resource", 1),
    ]
    assert result.summary[1].entries == ['Resources: "pkg:index:Gadget" renamed to "pkg:index:RenamedGadget"']
    assert result.renames == renames


def test_fold_keeps_breaking_changes_and_merges_summary():
    base = CompareResult(
        summary=[
            SummaryItem(category="max-items-one-changed", count=1, entries=["b"]),
            SummaryItem(category="type-changed", count=1, entries=["c"]),
        ],
        breaking_changes=["existing line"],
        new_resources=["index.Widget"],
    )
    change = MaxItemsOneChange(SCOPE_RESOURCES, "pkg:index:Widget", "inputs", "filter", "string", "array")

    result = add_normalization_max_items_one(base, [change])

    assert result.breaking_changes == ["existing line"]
    assert result.normalized_changes == [
        'Resources: "pkg:index:Widget": inputs: "filter" maxItemsOne changed from "string" to "array"',
    ]
    assert result.summary[0] == SummaryItem(
        category="max-items-one-changed",
        count=2,
        entries=['Resources: "pkg:index:Widget": inputs: "filter" maxItemsOne changed from "string" to "array"', "b"],
    )
    assert result.summary[1].category == "type-changed"
    assert result.new_resources == ["index.Widget"]
    assert result.max_items_one == [change]
    # input untouched
    assert base.breaking_changes == ["existing line"]
    assert base.summary[0].count == 1


def test_fold_datasource_max_items_one_uses_functions_label():
    change = MaxItemsOneChange(SCOPE_DATASOURCES, "pkg:index:getWidget", "outputs", "tag", "array", "string")

    result = add_normalization_max_items_one(CompareResult(), [change])

    assert result.normalized_changes == [
        'Functions: "pkg:index:getWidget": outputs: "tag" maxItemsOne changed from "array" to "string"'
    ]


def test_fold_nothing_returns_copy():
    base = CompareResult(breaking_changes=["line"])

    result = add_normalization_renames(base, [])

    assert result == base
    assert result is not base


@pytest.mark.parametrize("limit,expected", [(-1, 4), (0, 0), (2, 2), (4, 4), (10, 4)])
def test_apply_max_changes_limit(limit, expected):
    base = CompareResult(breaking_changes=["a", "b", "c", "d"])

    result = apply_max_changes_limit(base, limit)

    assert result.breaking_changes == ["a", "b", "c", "d"][:expected]
    assert base.breaking_changes == ["a", "b", "c", "d"]


def test_apply_max_changes_limit_keeps_headings_free():
    base = CompareResult(breaking_changes=["####  Resources: ", "- a", '-  "w": ', "    - b", "    - c"])

    result = apply_max_changes_limit(base, 2)

    assert result.breaking_changes == ["####  Resources: ", "- a", '-  "w": ', "    - b"]


def test_render_text_no_changes():
    out = io.StringIO()
    render_text(out, CompareResult())

    assert out.getvalue() == (
        "### Does the PR have any schema changes?\n\n"
        "Looking good! No breaking changes found.\n"
        "No new resources/functions.\n"
    )


def test_render_text_single_change_and_new_items():
    out = io.StringIO()
    render_text(out, CompareResult(
        breaking_changes=["#### `🔴` Resources: ", '- `🔴` "r1": missing'],
        new_resources=["index.Zeta", "index.Alpha"],
        new_functions=["index.getAlpha"],
    ))

    assert out.getvalue() == (
        "### Does the PR have any schema changes?\n\n"
        "Found 1 breaking change: \n"
        "#### `🔴` Resources: \n"
        '- `🔴` "r1": missing\n'
        "\n#### New resources:\n\n"
        "- `index.Alpha`\n"
        "- `index.Zeta`\n"
        "\n#### New functions:\n\n"
        "- `index.getAlpha`\n"
    )


def test_render_text_counts_described_lines(fixture_report):
    out = io.StringIO()
    render_text(out, build_result(fixture_report, -1))

    text = out.getvalue()
    assert "Found 8 breaking changes:\n" in text
    assert "- `index.ZetaResource`" in text
    assert "No new resources/functions." not in text


def test_render_text_normalized_changes_are_not_breaking():
    result = add_normalization_renames(
        CompareResult(), [TokenRename(SCOPE_RESOURCES, "pkg:index:Gadget", "pkg:index:RenamedGadget")]
    )
    out = io.StringIO()
    render_text(out, result)

    assert out.getvalue() == (
        "### Does the PR have any schema changes?\n\n"
        "Looking good! No breaking changes found.\n"
        "\n#### Normalized changes:\n\n"
        '- Resources: "pkg:index:Gadget" renamed to "pkg:index:RenamedGadget"\n'
        "No new resources/functions.\n"
    )


def test_render_summary():
    out = io.StringIO()
    render_summary(out, CompareResult(summary=[
        SummaryItem(category="missing-resource", count=2),
        SummaryItem(category="type-changed", count=1),
    ]))
    assert out.getvalue() == "Summary by category:\n- missing-resource: 2\n- type-changed: 1\n"

    empty = io.StringIO()
    render_summary(empty, CompareResult())
    assert empty.getvalue() == "No breaking changes found.\n"


def test_render_json_payload_shape():
    out = io.StringIO()
    render_json(out, CompareResult(
        summary=[SummaryItem(category="missing-resource", count=1, entries=['Resources: "r" missing'])],
        breaking_changes=['- `🔴` "r": missing'],
        new_functions=["index.b", "index.a"],
        renames=[TokenRename(SCOPE_RESOURCES, "pkg:index:A", "pkg:index:B")],
    ))

    payload = json.loads(out.getvalue())
    assert list(payload) == [
        "summary", "breaking_changes", "new_resources", "new_functions", "normalized_changes",
    ]
    assert payload["summary"] == [
        {"category": "missing-resource", "count": 1, "entries": ['Resources: "r" missing']}
    ]
    assert payload["breaking_changes"] == ['- `🔴` "r": missing']
    assert payload["new_resources"] == []
    assert payload["new_functions"] == ["index.a", "index.b"]
    assert "🔴" in out.getvalue()


@pytest.mark.parametrize(
    "render,message",
    [
        (render_text, "write compare text output"),
        (render_summary, "write summary output"),
        (render_json, "write compare JSON"),
    ],
)
def test_render_write_failures(render, message):
    with pytest.raises(RenderError, match=message):
        render(_BrokenWriter(), CompareResult())
