"""schemacompat: backward-compatibility checks for package schemas."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("schemacompat")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from schemacompat.api import CompareOptions, compare, compare_schemas
from schemacompat.contracts import CompareResult, SummaryItem
from schemacompat.codes import ChangeCategory

__all__ = [
    "__version__",
    "compare",
    "compare_schemas",
    "CompareOptions",
    "CompareResult",
    "SummaryItem",
    "ChangeCategory",
]
