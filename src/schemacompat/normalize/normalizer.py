"""Metadata-driven schema normalization.

Rewrites the new schema so that changes which are invisible to users
(resource/function token renames recorded as aliases, maxItemsOne flips
recorded in field history) no longer look like breaking changes. The old
schema is returned untouched; the new schema is returned as a copy.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, TypeVar

from ..kernel.schema import PackageSpec
from .errors import StrictMetadataRequiredError
from .field_history import FieldHistoryEvidence, build_field_history_evidence
from .max_items import MaxItemsOneNormalizer, MaxItemsOneChange
from .metadata import SCOPE_DATASOURCES, SCOPE_RESOURCES, MetadataEnvelope
from .token_remap import CanonicalAmbiguity, TokenRemap, build_token_remap


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TokenRename:
    scope: str
    old_token: str
    new_token: str


@dataclass
class NormalizeResult:
    old_schema: PackageSpec
    new_schema: PackageSpec
    renames: List[TokenRename] = field(default_factory=list)
    max_items_one: List[MaxItemsOneChange] = field(default_factory=list)
    ambiguities: List[CanonicalAmbiguity] = field(default_factory=list)


@dataclass
class NormalizationContext:
    """Token identities and field evidence precomputed from both metadata payloads."""
    old_metadata: MetadataEnvelope
    new_metadata: MetadataEnvelope
    token_remap: TokenRemap
    field_evidence: FieldHistoryEvidence

    @classmethod
    def build(
        cls,
        old_metadata: Optional[MetadataEnvelope],
        new_metadata: Optional[MetadataEnvelope],
    ) -> "NormalizationContext":
        """Strict construction: both sides must provide metadata."""
        if old_metadata is None or new_metadata is None:
            raise StrictMetadataRequiredError(
                missing_old=old_metadata is None,
                missing_new=new_metadata is None,
            )
        return cls(
            old_metadata=old_metadata,
            new_metadata=new_metadata,
            token_remap=build_token_remap(old_metadata, new_metadata),
            field_evidence=build_field_history_evidence(old_metadata, new_metadata),
        )


def normalize(
    old_schema: PackageSpec,
    new_schema: PackageSpec,
    old_metadata: Optional[MetadataEnvelope],
    new_metadata: Optional[MetadataEnvelope],
) -> NormalizeResult:
    """Normalize ``new_schema`` against ``old_schema`` using alias metadata.

    Raises:
        StrictMetadataRequiredError: if either metadata payload is missing.
    """
    context = NormalizationContext.build(old_metadata, new_metadata)
    remap = context.token_remap
    normalized_new = clone_package_spec(new_schema)

    resources, resource_renames = normalize_scope_tokens(
        SCOPE_RESOURCES, old_schema.resources, normalized_new.resources, remap
    )
    functions, function_renames = normalize_scope_tokens(
        SCOPE_DATASOURCES, old_schema.functions, normalized_new.functions, remap
    )
    normalized_new.resources = resources
    normalized_new.functions = functions

    renames = sorted(
        resource_renames + function_renames,
        key=lambda r: (r.scope, r.old_token, r.new_token),
    )
    for rename in renames:
        logger.info("treating %s %s as renamed from %s", rename.scope, rename.new_token, rename.old_token)

    rewriter = MaxItemsOneNormalizer(old_schema, normalized_new)
    max_items_one = rewriter.apply(
        remap,
        {
            SCOPE_RESOURCES: context.field_evidence.resources,
            SCOPE_DATASOURCES: context.field_evidence.datasources,
        },
        old_metadata,
        new_metadata,
    )
    max_items_one.sort(key=lambda c: (c.scope, c.token, c.location, c.field))

    return NormalizeResult(
        old_schema=old_schema,
        new_schema=normalized_new,
        renames=renames,
        max_items_one=max_items_one,
        ambiguities=list(remap.ambiguities),
    )


def clone_package_spec(spec: PackageSpec) -> PackageSpec:
    """Copy-on-write snapshot: the maps normalization replaces entries in are copied."""
    return spec.model_copy(update={
        "resources": dict(spec.resources),
        "functions": dict(spec.functions),
        "types": dict(spec.types),
    })


def normalize_scope_tokens(
    scope: str,
    old_map: Dict[str, T],
    new_map: Dict[str, T],
    remap: TokenRemap,
) -> Tuple[Dict[str, T], List[TokenRename]]:
    """Re-key ``new_map`` entries under their old token where identity is 1:1."""
    old_by_canonical = _group_by_canonical(old_map, lambda token: remap.canonical_for_old(scope, token))
    new_by_canonical = _group_by_canonical(new_map, lambda token: remap.canonical_for_new(scope, token))

    rename_targets: Dict[str, str] = {}
    renames: List[TokenRename] = []
    for canonical in sorted(old_by_canonical):
        new_tokens = new_by_canonical.get(canonical)
        if new_tokens is None:
            continue
        old_tokens = old_by_canonical[canonical]
        if len(old_tokens) != 1 or len(new_tokens) != 1:
            continue
        old_token, new_token = old_tokens[0], new_tokens[0]
        if old_token == new_token:
            continue
        # Re-keying onto a token the new schema already uses would drop an entry.
        if old_token in new_map:
            logger.debug("not renaming %s to %s: target already present", new_token, old_token)
            continue
        rename_targets[new_token] = old_token
        renames.append(TokenRename(scope=scope, old_token=old_token, new_token=new_token))

    normalized = {rename_targets.get(token, token): new_map[token] for token in sorted(new_map)}
    return normalized, renames


def _group_by_canonical(tokens: Dict[str, T], canonical_for) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for token in tokens:
        canonical = canonical_for(token)
        if canonical is None:
            continue
        grouped.setdefault(canonical, []).append(token)
    return {canonical: sorted(set(members)) for canonical, members in grouped.items()}
