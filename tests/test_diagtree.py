"""Tests for the diagnostic tree: visibility, pruning, display and walking."""

import io

import pytest

from schemacompat.kernel.diagtree import Node, Severity, node_entry, node_path


def _display(root: Node, max_items: int = -1):
    out = io.StringIO()
    count = root.display(out, max_items)
    return out.getvalue(), count


def test_label_and_value_are_create_or_fetch():
    root = Node()
    first = root.label("Resources").value("r1")
    second = root.label("Resources").value("r1")
    assert first is second
    assert len(root.subfields) == 1
    assert first.title == '"r1"'


def test_empty_title_rejected():
    with pytest.raises(ValueError):
        Node().label("")


def test_set_description_marks_ancestors_visible():
    root = Node()
    leaf = root.label("Resources").value("r1").label("inputs").value("name")
    sibling = root.label("Resources").value("r2")

    leaf.set_description(Severity.WARN, "missing")

    assert leaf.visible
    assert leaf.parent.visible
    assert root.label("Resources").visible
    assert not sibling.visible
    assert leaf.parent.description == ""


def test_path_titles_skip_untitled_root():
    root = Node()
    leaf = root.label("Resources").value("pkg:index:Res").label("inputs").value("name")
    leaf.set_description(Severity.WARN, "missing")

    assert leaf.path_titles() == ["Resources", '"pkg:index:Res"', "inputs", '"name"']
    assert node_path(leaf) == 'Resources: "pkg:index:Res": inputs: "name"'
    assert node_entry(leaf) == 'Resources: "pkg:index:Res": inputs: "name" missing'


def test_prune_drops_invisible_and_is_idempotent():
    root = Node()
    root.label("Resources").value("r1").set_description(Severity.DANGER, "missing")
    root.label("Resources").value("r2")
    root.label("Functions").value("f1")

    root.prune()
    root.prune()

    assert [child.title for child in root.subfields] == ["Resources"]
    assert [child.title for child in root.subfields[0].subfields] == ['"r1"']


def test_walk_displayed_visits_visible_nodes_only():
    root = Node()
    root.label("Resources").value("r1").set_description(Severity.DANGER, "missing")
    root.label("Resources").value("r2")

    titled = []
    root.walk_displayed(lambda node: titled.append(node.title) if node.title else None)

    assert titled == ["Resources", '"r1"']


def test_display_single_violation():
    root = Node()
    root.label("Resources").value("r1").set_description(Severity.DANGER, "missing")
    root.label("Resources").value("r2")

    text, count = _display(root)

    assert count == 1
    assert text == "\n#### `🔴` Resources: \n- `🔴` \"r1\": missing\n"


def test_display_collapses_unique_successor_chain():
    root = Node()
    root.label("Resources").value("tok").label("inputs").value("prop").set_description(Severity.WARN, "missing")

    text, count = _display(root)

    assert count == 1
    assert '- `🟡` "tok": inputs: "prop": missing' in text.splitlines()


def test_display_sorts_siblings_below_top_level():
    root = Node()
    resources = root.label("Resources")
    resources.value("zeta").set_description(Severity.DANGER, "missing")
    resources.value("alpha").set_description(Severity.DANGER, "missing")

    text, count = _display(root)
    lines = text.splitlines()

    assert count == 2
    assert lines.index('- `🔴` "alpha": missing') < lines.index('- `🔴` "zeta": missing')
    # two visible children: no single severity to inherit
    assert "####  Resources: " in lines


def test_display_keeps_top_level_insertion_order():
    root = Node()
    root.label("Types").value("t").set_description(Severity.DANGER, "missing")
    root.label("Functions").value("f").set_description(Severity.DANGER, "missing")

    text, _ = _display(root)

    assert text.index("Types") < text.index("Functions")


def test_display_caps_described_items():
    root = Node()
    resources = root.label("Resources")
    for name in ("a", "b", "c"):
        resources.value(name).set_description(Severity.DANGER, "missing")

    text, count = _display(root, 2)

    assert count == 2
    assert '"a"' in text and '"b"' in text
    assert '"c"' not in text


def test_display_unlimited_and_zero():
    root = Node()
    resources = root.label("Resources")
    for name in ("a", "b", "c"):
        resources.value(name).set_description(Severity.DANGER, "missing")

    _, unlimited = _display(root, -1)
    text, none = _display(root, 0)

    assert unlimited == 3
    assert none == 0
    assert text == ""


def test_display_deeper_levels_are_indented():
    root = Node()
    widget = root.label("Resources").value("w")
    widget.label("required").value("a").set_description(Severity.INFO, "property is no longer Required")
    widget.label("inputs").value("b").set_description(Severity.WARN, "missing")

    text, count = _display(root)
    lines = text.splitlines()

    assert count == 2
    assert '-  "w": ' in lines
    assert '    - `🟡` inputs: "b": missing' in lines
    assert '    - `🟢` required: "a": property is no longer Required' in lines


def test_empty_tree_displays_nothing():
    text, count = _display(Node())
    assert count == 0
    assert text == ""
