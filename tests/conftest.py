"""Pytest configuration for tests.

No sys.path hacks - tests should import from the installed schemacompat package.
"""

import json
from pathlib import Path

import pytest

from schemacompat.kernel.schema import PackageSpec, parse_package_spec
from schemacompat.normalize.metadata import MetadataEnvelope, parse_metadata


FIXTURES = Path(__file__).resolve().parent.parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def make_schema():
    """Build a PackageSpec from keyword sections (resources=..., functions=..., types=...)."""
    def _make(**sections) -> PackageSpec:
        data = {"name": "pkg"}
        data.update(sections)
        return parse_package_spec(data)
    return _make


@pytest.fixture
def make_metadata():
    """Build a validated MetadataEnvelope from resources/datasources history maps."""
    def _make(resources=None, datasources=None, version=1) -> MetadataEnvelope:
        payload = {"auto-aliasing": {"version": version}}
        if resources is not None:
            payload["auto-aliasing"]["resources"] = resources
        if datasources is not None:
            payload["auto-aliasing"]["datasources"] = datasources
        return parse_metadata(json.dumps(payload))
    return _make
