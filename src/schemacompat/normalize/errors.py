"""Typed failures raised by metadata loading and strict normalization.

None of these are retryable: they describe the payloads that were handed in,
and normalization halts as soon as one is raised.
"""


class MetadataError(Exception):
    """Base class for metadata failures."""


class MetadataRequiredError(MetadataError):
    """Metadata is missing (empty path, unreadable file, empty payload)."""


class MetadataInvalidError(MetadataError):
    """Metadata payload shape or content is malformed."""


class MetadataVersionUnsupportedError(MetadataError):
    """Metadata declares a known-but-unsupported auto-aliasing version."""

    def __init__(self, expected: int, found: int):
        self.expected = expected
        self.found = found
        super().__init__(f"metadata version unsupported: expected {expected} got {found}")


class StrictMetadataRequiredError(MetadataRequiredError):
    """Strict normalization was requested without both metadata payloads."""

    def __init__(self, missing_old: bool, missing_new: bool):
        self.missing_old = missing_old
        self.missing_new = missing_new
        if missing_old and missing_new:
            detail = ": missing old and new metadata"
        elif missing_old:
            detail = ": missing old metadata"
        elif missing_new:
            detail = ": missing new metadata"
        else:
            detail = ""
        super().__init__(f"strict normalization metadata required{detail}")
