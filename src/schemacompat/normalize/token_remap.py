"""Canonical token identities from old/new alias histories.

Tokens that ever appeared together under one history entry (a current token
and its past aliases) belong to the same identity. Identities are computed
per scope with a disjoint set; resources and datasources never share one.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .metadata import SCOPES, MetadataEnvelope, TokenHistory, is_schema_token, read_history_map


logger = logging.getLogger(__name__)


class UnionFind:
    """Path-compressing, union-by-rank disjoint set over strings."""

    def __init__(self):
        self._parent: Dict[str, str] = {}
        self._rank: Dict[str, int] = {}

    def add(self, x: str) -> None:
        if x in self._parent:
            return
        self._parent[x] = x
        self._rank[x] = 0

    def find(self, x: str) -> str:
        if x not in self._parent:
            self.add(x)
            return x
        root = x
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[x] != root:
            self._parent[x], x = root, self._parent[x]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if self._rank[ra] < self._rank[rb]:
            self._parent[ra] = rb
        elif self._rank[ra] > self._rank[rb]:
            self._parent[rb] = ra
        else:
            self._parent[rb] = ra
            self._rank[ra] += 1

    def tokens(self) -> List[str]:
        return sorted(self._parent)


@dataclass(frozen=True)
class CanonicalAmbiguity:
    """A component whose members claim more than one current token on one side."""
    scope: str
    canonical: str
    snapshot: str  # "old" | "new"
    currents: tuple


@dataclass
class _Entry:
    snapshot: str
    current: str
    tokens: List[str]


@dataclass
class _Component:
    old_tokens: Set[str] = field(default_factory=set)
    new_tokens: Set[str] = field(default_factory=set)
    old_currents: Set[str] = field(default_factory=set)
    new_currents: Set[str] = field(default_factory=set)


@dataclass
class TokenRemap:
    """Old/new schema token -> canonical identity, per scope."""
    old_to_canonical: Dict[str, Dict[str, str]] = field(default_factory=lambda: {s: {} for s in SCOPES})
    new_to_canonical: Dict[str, Dict[str, str]] = field(default_factory=lambda: {s: {} for s in SCOPES})
    ambiguities: List[CanonicalAmbiguity] = field(default_factory=list)

    def canonical_for_old(self, scope: str, token: str) -> Optional[str]:
        return self.old_to_canonical.get(scope, {}).get(token)

    def canonical_for_new(self, scope: str, token: str) -> Optional[str]:
        return self.new_to_canonical.get(scope, {}).get(token)

    def old_tokens_for_canonical(self, scope: str, canonical: str) -> List[str]:
        return _members(self.old_to_canonical.get(scope, {}), canonical)

    def new_tokens_for_canonical(self, scope: str, canonical: str) -> List[str]:
        return _members(self.new_to_canonical.get(scope, {}), canonical)


def _members(mapping: Dict[str, str], canonical: str) -> List[str]:
    return sorted(token for token, c in mapping.items() if c == canonical)


def build_token_remap(
    old_metadata: Optional[MetadataEnvelope],
    new_metadata: Optional[MetadataEnvelope],
) -> TokenRemap:
    """Resolve canonical identities for every token named in either envelope."""
    remap = TokenRemap()
    for scope in SCOPES:
        _build_scope(
            remap,
            scope,
            read_history_map(old_metadata, scope),
            read_history_map(new_metadata, scope),
        )
    return remap


def _build_scope(
    remap: TokenRemap,
    scope: str,
    old_map: Dict[str, Optional[TokenHistory]],
    new_map: Dict[str, Optional[TokenHistory]],
) -> None:
    uf = UnionFind()
    entries = _snapshot_entries("old", old_map, uf) + _snapshot_entries("new", new_map, uf)

    component_tokens: Dict[str, List[str]] = {}
    for token in uf.tokens():
        component_tokens.setdefault(uf.find(token), []).append(token)

    components = {root: _Component() for root in component_tokens}
    for entry in entries:
        if not entry.tokens:
            continue
        state = components[uf.find(entry.tokens[0])]
        if entry.snapshot == "old":
            state.old_tokens.update(entry.tokens)
            if entry.current:
                state.old_currents.add(entry.current)
        else:
            state.new_tokens.update(entry.tokens)
            if entry.current:
                state.new_currents.add(entry.current)

    old_by_token = remap.old_to_canonical[scope]
    new_by_token = remap.new_to_canonical[scope]
    for root in sorted(component_tokens):
        state = components[root]
        canonical = select_canonical(component_tokens[root], state.old_currents, state.new_currents)
        for snapshot, currents in (("old", state.old_currents), ("new", state.new_currents)):
            if len(currents) > 1:
                ambiguity = CanonicalAmbiguity(scope, canonical, snapshot, tuple(sorted(currents)))
                logger.warning(
                    "ambiguous %s alias history in %s: %s all resolve to %s",
                    snapshot, scope, ", ".join(ambiguity.currents), canonical,
                )
                remap.ambiguities.append(ambiguity)
        for token in state.old_tokens:
            old_by_token[token] = canonical
        for token in state.new_tokens:
            new_by_token[token] = canonical


def _snapshot_entries(snapshot: str, histories: Dict[str, Optional[TokenHistory]], uf: UnionFind) -> List[_Entry]:
    entries: List[_Entry] = []
    for ext_token in sorted(histories):
        history = histories[ext_token]
        if history is None:
            continue

        current = ""
        tokens: List[str] = []
        if is_schema_token(history.current):
            current = history.current
            tokens.append(history.current)
        for alias in history.past:
            if is_schema_token(alias.name):
                tokens.append(alias.name)

        tokens = _unique_sorted(tokens)
        for token in tokens:
            uf.add(token)
        for token in tokens[1:]:
            uf.union(tokens[0], token)

        entries.append(_Entry(snapshot=snapshot, current=current, tokens=tokens))
    return entries


def select_canonical(component_tokens: Iterable[str], old_currents: Set[str], new_currents: Set[str]) -> str:
    """Pick the representative token for one component.

    Preference: the single new-side current token, else the single old-side
    current token, else the lexicographically smallest member.
    """
    if len(new_currents) == 1:
        return next(iter(new_currents))
    if len(old_currents) == 1:
        return next(iter(old_currents))
    tokens = sorted(component_tokens)
    return tokens[0] if tokens else ""


def _unique_sorted(values: Iterable[str]) -> List[str]:
    return sorted({v for v in values if v.strip()})
