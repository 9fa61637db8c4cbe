"""Per-field maxItemsOne evidence from old/new metadata.

Field histories are flattened into dotted paths (``a.b``, ``a[*]``,
``a[*].b``) and each path's old/new maxItemsOne flags are compared.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .metadata import (
    SCOPE_DATASOURCES,
    SCOPE_RESOURCES,
    FieldHistory,
    MetadataEnvelope,
    TokenHistory,
    read_history_map,
)


class MaxItemsOneTransition(str, Enum):
    UNKNOWN = "unknown"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass(frozen=True)
class FieldPathEvidence:
    old: Optional[bool]
    new: Optional[bool]
    transition: MaxItemsOneTransition


# external token -> flattened path -> evidence
TokenFieldEvidence = Dict[str, Dict[str, FieldPathEvidence]]


@dataclass
class FieldHistoryEvidence:
    resources: TokenFieldEvidence = field(default_factory=dict)
    datasources: TokenFieldEvidence = field(default_factory=dict)

    def for_scope(self, scope: str) -> TokenFieldEvidence:
        if scope == SCOPE_RESOURCES:
            return self.resources
        if scope == SCOPE_DATASOURCES:
            return self.datasources
        return {}


def build_field_history_evidence(
    old_metadata: Optional[MetadataEnvelope],
    new_metadata: Optional[MetadataEnvelope],
) -> FieldHistoryEvidence:
    return FieldHistoryEvidence(
        resources=_build_token_field_evidence(
            read_history_map(old_metadata, SCOPE_RESOURCES),
            read_history_map(new_metadata, SCOPE_RESOURCES),
        ),
        datasources=_build_token_field_evidence(
            read_history_map(old_metadata, SCOPE_DATASOURCES),
            read_history_map(new_metadata, SCOPE_DATASOURCES),
        ),
    )


def flatten_field_history(fields: Optional[Dict[str, Optional[FieldHistory]]]) -> Dict[str, Optional[bool]]:
    """Flatten a field history tree into ``path -> maxItemsOne`` (None when unset)."""
    out: Dict[str, Optional[bool]] = {}
    for name in sorted(fields or {}):
        _flatten_node(name, fields[name], out)
    return out


def _flatten_node(path: str, history: Optional[FieldHistory], out: Dict[str, Optional[bool]]) -> None:
    if history is None:
        return
    out[path] = history.max_items_one
    for name in sorted(history.fields or {}):
        _flatten_node(f"{path}.{name}", history.fields[name], out)
    if history.elem is not None:
        _flatten_node(f"{path}[*]", history.elem, out)


def classify_max_items_one_transition(old: Optional[bool], new: Optional[bool]) -> MaxItemsOneTransition:
    if old is None or new is None:
        return MaxItemsOneTransition.UNKNOWN
    if old == new:
        return MaxItemsOneTransition.UNCHANGED
    return MaxItemsOneTransition.CHANGED


def sorted_evidence_paths(evidence: Optional[Dict[str, FieldPathEvidence]]) -> List[str]:
    return sorted(evidence or {})


def _build_token_field_evidence(
    old_map: Dict[str, Optional[TokenHistory]],
    new_map: Dict[str, Optional[TokenHistory]],
) -> TokenFieldEvidence:
    out: TokenFieldEvidence = {}
    for token in sorted(set(old_map) | set(new_map)):
        old_paths = _flatten_token_fields(old_map.get(token))
        new_paths = _flatten_token_fields(new_map.get(token))
        paths = sorted(set(old_paths) | set(new_paths))
        if not paths:
            continue
        out[token] = {
            path: FieldPathEvidence(
                old=old_paths.get(path),
                new=new_paths.get(path),
                transition=classify_max_items_one_transition(old_paths.get(path), new_paths.get(path)),
            )
            for path in paths
        }
    return out


def _flatten_token_fields(history: Optional[TokenHistory]) -> Dict[str, Optional[bool]]:
    if history is None:
        return {}
    return flatten_field_history(history.fields)
