"""Shared pytest fixtures for all test suites."""

from __future__ import annotations

import pytest

from tests.fakes import FakePlaces, api_place
from trip_intel.errors import DocumentFetchError
from trip_intel.store import DocumentRef, InMemoryDocumentStore


@pytest.fixture
def doc_ref() -> DocumentRef:
    return DocumentRef("trip-1", "doc-1")


@pytest.fixture
def store(doc_ref: DocumentRef) -> InMemoryDocumentStore:
    """In-memory store seeded with the parent document as the upload pipeline creates it."""
    s = InMemoryDocumentStore()
    s.seed(
        doc_ref.path,
        {
            "original_file_name": "boarding_pass_123.png",
            "download_url": "https://storage.example/doc.png",
            "type": "other",
        },
    )
    return s


@pytest.fixture
def airport_places() -> FakePlaces:
    return FakePlaces(
        {
            "CCU airport": [api_place("place-ccu", "Netaji Subhas Chandra Bose International Airport", "Kolkata, India")],
            "BLR airport": [api_place("place-blr", "Kempegowda International Airport", "Bengaluru, India")],
        }
    )


@pytest.fixture
def fetch_error() -> DocumentFetchError:
    return DocumentFetchError("Download failed: 404")
