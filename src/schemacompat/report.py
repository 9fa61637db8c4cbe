"""Summaries and renderers for comparison results.

Text output keeps the pull-request comment layout: a heading, a
"Found N breaking changes" line, the violation tree, the changes explained
by metadata normalization and the list of newly added resources and
functions. Normalized changes are never counted as breaking.
"""

import json
from io import StringIO
from typing import Dict, Iterable, List, TextIO

from schemacompat.codes import ChangeCategory
from schemacompat.contracts import CompareResult, SummaryItem
from schemacompat.kernel.diagtree import Node, node_entry, node_path
from schemacompat.kernel.engine import Report
from schemacompat.kernel.messages import FUNCTIONS_CATEGORY, RESOURCES_CATEGORY, quote
from schemacompat.normalize.max_items import MaxItemsOneChange
from schemacompat.normalize.metadata import SCOPE_DATASOURCES
from schemacompat.normalize.normalizer import TokenRename


class RenderError(Exception):
    """Raised when rendered output cannot be written."""


def classify(path: str, description: str) -> ChangeCategory:
    """Map a violation (tree path + description) to its summary category."""
    if path.startswith("Resources:") and ": inputs:" in path and description == "missing":
        return ChangeCategory.MISSING_INPUT
    if path.startswith("Types:") and ": properties:" in path and description == "missing":
        return ChangeCategory.MISSING_PROPERTY
    if description.startswith("missing input"):
        return ChangeCategory.MISSING_INPUT
    if description.startswith("missing output"):
        return ChangeCategory.MISSING_OUTPUT
    if description == "missing":
        if path.startswith("Resources:"):
            return ChangeCategory.MISSING_RESOURCE
        if path.startswith("Functions:"):
            return ChangeCategory.MISSING_FUNCTION
        if path.startswith("Types:"):
            return ChangeCategory.MISSING_TYPE
    if "max-items-one" in description:
        return ChangeCategory.MAX_ITEMS_ONE_CHANGED
    if "type changed" in description or "had no type" in description or "now has no type" in description:
        return ChangeCategory.TYPE_CHANGED
    if "has changed to Required" in description:
        return ChangeCategory.OPTIONAL_TO_REQUIRED
    if "is no longer Required" in description:
        return ChangeCategory.REQUIRED_TO_OPTIONAL
    if "signature change" in description:
        return ChangeCategory.SIGNATURE_CHANGED
    return ChangeCategory.OTHER


def summarize(violations: Node) -> List[SummaryItem]:
    """Count described violations per category, with sorted unique entries."""
    counts: Dict[str, int] = {}
    entries: Dict[str, List[str]] = {}

    def visit(node: Node) -> None:
        if not node.description:
            return
        category = classify(node_path(node), node.description).value
        counts[category] = counts.get(category, 0) + 1
        entry = node_entry(node)
        if entry:
            entries.setdefault(category, []).append(entry)

    violations.walk_displayed(visit)
    return [
        SummaryItem(category=category, count=counts[category], entries=_sorted_unique(entries.get(category, [])))
        for category in sorted(counts)
    ]


def split_violations(violations: Node, max_changes: int) -> List[str]:
    """Rendered violation tree as a list of non-empty lines."""
    text = render_violations(violations, max_changes)
    return [line for line in text.split("\n") if line]


def render_violations(violations: Node, max_changes: int) -> str:
    buf = StringIO()
    violations.display(buf, max_changes)
    return buf.getvalue()


def build_result(report: Report, max_changes: int) -> CompareResult:
    """Assemble a CompareResult from an engine report."""
    return CompareResult(
        summary=summarize(report.violations),
        breaking_changes=split_violations(report.violations, max_changes),
        new_resources=sorted(report.new_resources),
        new_functions=sorted(report.new_functions),
    )


def rename_entry(rename: TokenRename) -> str:
    category = FUNCTIONS_CATEGORY if rename.scope == SCOPE_DATASOURCES else RESOURCES_CATEGORY
    return f"{category}: {quote(rename.old_token)} renamed to {quote(rename.new_token)}"


def max_items_one_entry(change: MaxItemsOneChange) -> str:
    category = FUNCTIONS_CATEGORY if change.scope == SCOPE_DATASOURCES else RESOURCES_CATEGORY
    return (
        f"{category}: {quote(change.token)}: {change.location}: {quote(change.field)} "
        f"maxItemsOne changed from {quote(change.old_type)} to {quote(change.new_type)}"
    )


def add_normalization_renames(result: CompareResult, renames: Iterable[TokenRename]) -> CompareResult:
    """Record token renames as normalized changes."""
    renames = list(renames)
    additions = {}
    for rename in renames:
        category = (
            ChangeCategory.RENAMED_FUNCTION if rename.scope == SCOPE_DATASOURCES
            else ChangeCategory.RENAMED_RESOURCE
        )
        additions.setdefault(category.value, []).append(rename_entry(rename))
    folded = _fold(result, additions)
    folded.renames = list(result.renames) + renames
    return folded


def add_normalization_max_items_one(result: CompareResult, changes: Iterable[MaxItemsOneChange]) -> CompareResult:
    """Record maxItemsOne rewrites as normalized changes."""
    changes = list(changes)
    additions = {}
    if changes:
        additions[ChangeCategory.MAX_ITEMS_ONE_CHANGED.value] = [max_items_one_entry(c) for c in changes]
    folded = _fold(result, additions)
    folded.max_items_one = list(result.max_items_one) + changes
    return folded


def _fold(result: CompareResult, additions: Dict[str, List[str]]) -> CompareResult:
    if not additions:
        return result.model_copy(deep=True)

    lines = [entry for entries in additions.values() for entry in entries]

    by_category = {item.category: item for item in result.summary}
    for category, entries in additions.items():
        existing = by_category.get(category)
        if existing is None:
            by_category[category] = SummaryItem(category=category, count=len(entries), entries=_sorted_unique(entries))
        else:
            by_category[category] = SummaryItem(
                category=category,
                count=existing.count + len(entries),
                entries=_sorted_unique(list(existing.entries) + entries),
            )

    folded = result.model_copy(deep=True)
    folded.normalized_changes = sorted(list(result.normalized_changes) + lines)
    folded.summary = [by_category[category] for category in sorted(by_category)]
    return folded


def apply_max_changes_limit(result: CompareResult, max_changes: int) -> CompareResult:
    """Keep at most ``max_changes`` described lines; a negative cap means unlimited.

    Heading lines do not count toward the cap.
    """
    if max_changes < 0 or count_described(result.breaking_changes) <= max_changes:
        return result
    kept: List[str] = []
    described = 0
    for line in result.breaking_changes:
        if described >= max_changes:
            break
        kept.append(line)
        if _is_described(line):
            described += 1
    capped = result.model_copy(deep=True)
    capped.breaking_changes = kept
    return capped


def _is_described(line: str) -> bool:
    return not line.endswith(": ")


def count_described(lines: Iterable[str]) -> int:
    """Lines that carry a change description (heading-only lines end in ': ')."""
    return sum(1 for line in lines if _is_described(line))


def render_text(out: TextIO, result: CompareResult) -> None:
    """Write the human-readable pull-request comment."""
    try:
        _write_text(out, result)
    except OSError as e:
        raise RenderError(f"write compare text output: {e}") from e


def _write_text(out: TextIO, result: CompareResult) -> None:
    out.write("### Does the PR have any schema changes?\n\n")
    count = count_described(result.breaking_changes)
    if count == 0:
        out.write("Looking good! No breaking changes found.\n")
    elif count == 1:
        out.write("Found 1 breaking change: \n")
    else:
        out.write(f"Found {count} breaking changes:\n")
    if result.breaking_changes:
        out.write("\n".join(result.breaking_changes) + "\n")

    if result.normalized_changes:
        out.write("\n#### Normalized changes:\n\n")
        for entry in result.normalized_changes:
            out.write(f"- {entry}\n")

    new_resources = sorted(result.new_resources)
    new_functions = sorted(result.new_functions)
    if new_resources:
        out.write("\n#### New resources:\n\n")
        for name in new_resources:
            out.write(f"- `{name}`\n")
    if new_functions:
        out.write("\n#### New functions:\n\n")
        for name in new_functions:
            out.write(f"- `{name}`\n")
    if not new_resources and not new_functions:
        out.write("No new resources/functions.\n")


def render_summary(out: TextIO, result: CompareResult) -> None:
    """Write category counts only."""
    try:
        if not result.summary:
            out.write("No breaking changes found.\n")
            return
        out.write("Summary by category:\n")
        for item in result.summary:
            out.write(f"- {item.category}: {item.count}\n")
    except OSError as e:
        raise RenderError(f"write summary output: {e}") from e


def result_payload(result: CompareResult) -> dict:
    """Deterministic JSON-ready payload (sorted lists, no null slices)."""
    summary = sorted(
        (
            {"category": item.category, "count": item.count, "entries": sorted(item.entries)}
            for item in result.summary
        ),
        key=lambda item: (item["category"], item["count"]),
    )
    return {
        "summary": summary,
        "breaking_changes": list(result.breaking_changes),
        "new_resources": sorted(result.new_resources),
        "new_functions": sorted(result.new_functions),
        "normalized_changes": sorted(result.normalized_changes),
    }


def render_json(out: TextIO, result: CompareResult) -> None:
    """Write the result as indented JSON."""
    try:
        out.write(json.dumps(result_payload(result), indent=2, ensure_ascii=False))
        out.write("\n")
    except OSError as e:
        raise RenderError(f"write compare JSON: {e}") from e


def _sorted_unique(values: Iterable[str]) -> List[str]:
    return sorted(set(values))
