"""Public result models for schemacompat package."""

from typing import List

from pydantic import BaseModel, Field

from schemacompat.normalize.max_items import MaxItemsOneChange
from schemacompat.normalize.normalizer import TokenRename


class SummaryItem(BaseModel):
    """Count and entries for one change category."""
    category: str  # a ChangeCategory value
    count: int
    entries: List[str] = Field(default_factory=list)  # sorted, unique


class CompareResult(BaseModel):
    """Structured output of one schema comparison."""
    summary: List[SummaryItem] = Field(default_factory=list)  # sorted by category
    breaking_changes: List[str] = Field(default_factory=list)  # display lines, capped
    new_resources: List[str] = Field(default_factory=list)  # sorted
    new_functions: List[str] = Field(default_factory=list)  # sorted
    normalized_changes: List[str] = Field(default_factory=list)  # sorted, not counted as breaking
    renames: List[TokenRename] = Field(default_factory=list)  # only when normalized
    max_items_one: List[MaxItemsOneChange] = Field(default_factory=list)  # only when normalized
