"""Hierarchical diagnostic tree with severity and display pruning.

A tree is built fresh per comparison run. Nodes are created on demand with
``label``/``value`` and only become visible once ``set_description`` is
called on them or on one of their descendants. ``prune`` drops the
invisible remainder before rendering.
"""

import json
from enum import Enum
from typing import Callable, List, Optional, TextIO


class Severity(str, Enum):
    """Severity glyphs used when rendering a node."""
    NONE = ""
    INFO = "`🟢`"
    WARN = "`🟡`"
    DANGER = "`🔴`"


class Node:
    """A uniquely titled node in the diagnostic tree."""

    def __init__(self, title: str = "", parent: Optional["Node"] = None):
        self.title = title
        self.description = ""
        self.severity = Severity.NONE
        self.subfields: List["Node"] = []
        self._visible = False
        self._parent = parent  # non-owning

    def __repr__(self) -> str:
        return f"Node(title={self.title!r}, severity={self.severity.name}, description={self.description!r})"

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def parent(self) -> Optional["Node"]:
        return self._parent

    def _subfield(self, name: str) -> "Node":
        if not name:
            raise ValueError("diagnostic node titles must not be empty")
        for child in self.subfields:
            if child.title == name:
                return child
        child = Node(title=name, parent=self)
        self.subfields.append(child)
        return child

    def label(self, name: str) -> "Node":
        """Create or fetch the child titled ``name``."""
        return self._subfield(name)

    def value(self, value: str) -> "Node":
        """Create or fetch the child titled with the quoted literal ``value``."""
        return self._subfield(json.dumps(value, ensure_ascii=False))

    def set_description(self, severity: Severity, message: str) -> None:
        """Describe this node and make it (and its ancestors) visible."""
        ancestor = self._parent
        while ancestor is not None and not ancestor._visible:
            ancestor._visible = True
            ancestor = ancestor._parent
        self._visible = True
        self.description = message
        self.severity = severity

    def prune(self) -> None:
        """Drop invisible subtrees. Safe to call more than once."""
        self.subfields = [child for child in self.subfields if child._visible]
        for child in self.subfields:
            child.prune()

    def path_titles(self) -> List[str]:
        """Titles from the first level below the root down to this node."""
        parts: List[str] = []
        node: Optional[Node] = self
        while node is not None:
            if node.title:
                parts.append(node.title)
            node = node._parent
        parts.reverse()
        return parts

    def walk_displayed(self, visit: Callable[["Node"], None]) -> None:
        """Visit every visible node in display order (depth first)."""
        self._walk_displayed(visit, 0)

    def _walk_displayed(self, visit: Callable[["Node"], None], level: int) -> None:
        if not self._visible:
            return
        visit(self)
        for child in self._ordered_children(level):
            child._walk_displayed(visit, level + 1)

    def display(self, out: TextIO, max_items: int) -> int:
        """Render the tree and return how many described nodes were written.

        ``max_items`` caps the described nodes written; -1 means unlimited.
        """
        remaining = None if max_items < 0 else max_items
        return self._display(out, 0, True, remaining)

    def _display(self, out: TextIO, level: int, prefix: bool, remaining: Optional[int]) -> int:
        if not self._visible or (remaining is not None and remaining <= 0):
            return 0

        displayed = 0
        if self.title:
            line = ""
            if prefix:
                line = f"{_level_prefix(level)} {self._chain_severity().value} "
            line += self.title + ": "
            if self.description:
                displayed += 1
                line += self.description
            out.write(line)

        if level > 1 and self.severity == Severity.NONE:
            successor = self._unique_successor()
            if successor is not None:
                return successor._display(out, level, False, _less(remaining, displayed)) + displayed

        out.write("\n")

        for child in self._ordered_children(level):
            displayed += child._display(out, level + 1, True, _less(remaining, displayed))
        return displayed

    def _ordered_children(self, level: int) -> List["Node"]:
        # Root children keep insertion order; deeper levels sort by title.
        if level > 0:
            return sorted(self.subfields, key=lambda child: child.title)
        return list(self.subfields)

    def _unique_successor(self) -> Optional["Node"]:
        successor = None
        for child in self.subfields:
            if not child._visible:
                continue
            if successor is not None:
                return None
            successor = child
        return successor

    def _chain_severity(self) -> Severity:
        node: Optional[Node] = self
        while node is not None:
            successor = node._unique_successor()
            if successor is None:
                return node.severity
            node = successor
        return Severity.NONE


def _level_prefix(level: int) -> str:
    if level == 0:
        return "###"
    if level == 1:
        return "####"
    if level < 0:
        return ""
    return "  " * ((level - 2) * 2) + "-"


def _less(remaining: Optional[int], used: int) -> Optional[int]:
    if remaining is None:
        return None
    return remaining - used


def node_path(node: Optional[Node]) -> str:
    """Join a node's path titles with ': '."""
    if node is None:
        return ""
    return ": ".join(node.path_titles())


def node_entry(node: Optional[Node]) -> str:
    """Path plus description, as used in summary entries."""
    if node is None:
        return ""
    path = node_path(node)
    if not node.description:
        return path
    if not path:
        return node.description
    return f"{path} {node.description}"
