"""Summary category constants for schemacompat comparison results.

These constants prevent stringly-typed categories and keep summary output
stable for clients that group on them.
"""

from enum import Enum


class ChangeCategory(str, Enum):
    """Summary categories for breaking changes."""

    # Removals
    MISSING_INPUT = "missing-input"
    MISSING_OUTPUT = "missing-output"
    MISSING_PROPERTY = "missing-property"
    MISSING_RESOURCE = "missing-resource"
    MISSING_FUNCTION = "missing-function"
    MISSING_TYPE = "missing-type"

    # Shape and strictness
    MAX_ITEMS_ONE_CHANGED = "max-items-one-changed"
    TYPE_CHANGED = "type-changed"
    OPTIONAL_TO_REQUIRED = "optional-to-required"
    REQUIRED_TO_OPTIONAL = "required-to-optional"
    SIGNATURE_CHANGED = "signature-changed"

    # Metadata normalization
    RENAMED_RESOURCE = "renamed-resource"
    RENAMED_FUNCTION = "renamed-function"

    OTHER = "other"
