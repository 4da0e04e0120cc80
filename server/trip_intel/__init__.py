"""
trip_intel package

Public API:
    - handle_document_created(payload, settings, store) -> IngestOutcome
    - DocumentIngestTrigger
    - ClassificationEngine, classify_by_filename
    - FlightExtractor, HotelExtractor
    - EnrichmentPipeline, PlaceResolver, DurationEstimator, TimestampNormalizer
    - PersistenceWriter, InMemoryDocumentStore
    - Settings
"""

__version__ = "1.0.0"

from .classifier import ClassificationEngine, classify_by_filename
from .config import Settings
from .durations import DurationEstimator
from .enrichment import EnrichmentPipeline
from .extraction_engine import FlightExtractor, HotelExtractor
from .persistence import PersistenceWriter
from .place_resolver import PlaceResolver
from .store import DocumentRef, InMemoryDocumentStore
from .timestamps import TimestampNormalizer
from .trigger import DocumentIngestTrigger, handle_document_created

__all__ = [
    "__version__",
    "ClassificationEngine",
    "classify_by_filename",
    "Settings",
    "DurationEstimator",
    "EnrichmentPipeline",
    "FlightExtractor",
    "HotelExtractor",
    "PersistenceWriter",
    "PlaceResolver",
    "DocumentRef",
    "InMemoryDocumentStore",
    "TimestampNormalizer",
    "DocumentIngestTrigger",
    "handle_document_created",
]
