# ABOUTME: Shared pytest fixtures for libris tests.
# ABOUTME: Provides sample provider records, a fake provider registry, and catalog JSON files.

import json
from pathlib import Path

import pytest

from libris.discovery.registry import ProviderRegistry
from libris.metadata.types import MetadataRecord
from tests.fixtures.providers import FakeProvider, make_record


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def gatsby_records() -> list[MetadataRecord]:
    """Three provider answers describing The Great Gatsby, with minor disagreements."""
    return [
        make_record(
            "openlibrary",
            confidence=0.9,
            title="The Great Gatsby",
            authors=("F. Scott Fitzgerald",),
            isbn=("9780743273565",),
            publisher="Scribner",
            publication_date="2004-09-30",
            subjects=("Fiction", "Classics"),
            page_count=180,
            language="eng",
        ),
        make_record(
            "googlebooks",
            confidence=0.85,
            title="The Great Gatsby",
            authors=("Fitzgerald, F. Scott",),
            isbn=("0743273567",),
            publisher="Scribner",
            publication_date="2004",
            subjects=("fiction",),
            page_count=180,
            language="en",
        ),
        make_record(
            "loc",
            confidence=0.8,
            title="Great Gatsby",
            authors=("F. Scott Fitzgerald",),
            isbn=("978-0-7432-7356-5",),
            publisher="Charles Scribner's Sons",
            publication_date="2004-09",
            page_count=182,
            language="English",
        ),
    ]


@pytest.fixture
def fake_registry() -> ProviderRegistry:
    """Registry with two healthy fake providers of different priority."""
    registry = ProviderRegistry()
    registry.register(
        FakeProvider("alpha", priority=90, records=[make_record("alpha", title="Dune")])
    )
    registry.register(
        FakeProvider("beta", priority=50, records=[make_record("beta", title="Dune Messiah")])
    )
    return registry


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    """A JSON catalog with three existing entries."""
    entries = [
        {
            "id": "1",
            "title": "The Great Gatsby",
            "authors": ["F. Scott Fitzgerald"],
            "isbn": "9780743273565",
            "publication_date": "2004",
            "publisher": "Scribner",
        },
        {
            "id": "2",
            "title": "Tender Is the Night",
            "authors": ["F. Scott Fitzgerald"],
            "isbn": "9780684801544",
            "publication_date": "1995",
            "publisher": "Scribner",
        },
        {
            "id": "3",
            "title": "A Study in Scarlet",
            "authors": ["Arthur Conan Doyle"],
            "publication_date": "1887",
            "publisher": "Ward Lock & Co",
        },
    ]
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(entries))
    return path
