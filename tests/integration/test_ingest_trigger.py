"""Integration tests for the document ingest trigger, end to end over in-memory fakes."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from tests.fakes import TWO_LEG_EXTRACTION, FakeFetcher, FakePlaces, FakeVisionModel
from trip_intel.classifier import ClassificationEngine
from trip_intel.config import Settings
from trip_intel.enrichment import EnrichmentPipeline
from trip_intel.errors import DocumentFetchError
from trip_intel.models import DocumentCreatedEvent
from trip_intel.persistence import FLIGHT_COLLECTION, PersistenceWriter
from trip_intel.place_resolver import PlaceResolver
from trip_intel.store import DocumentRef, InMemoryDocumentStore
from trip_intel.trigger import CLASSIFIED_OTHER, DONE, DocumentIngestTrigger, handle_document_created


def _event(**overrides) -> DocumentCreatedEvent:
    fields = {
        "trip_id": "trip-1",
        "document_id": "doc-1",
        "file_name": "boarding_pass_123.png",
        "download_url": "https://storage.example/doc.png",
    }
    fields.update(overrides)
    return DocumentCreatedEvent(**fields)


def _trigger(
    store: InMemoryDocumentStore,
    vision=None,
    places: FakePlaces = None,
    fetcher: FakeFetcher = None,
    **enrichment_kwargs,
) -> DocumentIngestTrigger:
    return DocumentIngestTrigger(
        classifier=ClassificationEngine(vision),
        enrichment=EnrichmentPipeline(PlaceResolver(places or FakePlaces()), **enrichment_kwargs),
        writer=PersistenceWriter(store),
        store=store,
        fetcher=fetcher or FakeFetcher(),
        vision=vision,
    )


@pytest.mark.asyncio
async def test_flight_document_two_legs(
    store: InMemoryDocumentStore, doc_ref: DocumentRef, airport_places: FakePlaces
) -> None:
    vision = FakeVisionModel(label="flight", extraction=TWO_LEG_EXTRACTION)

    outcome = await _trigger(store, vision, airport_places).handle(_event())

    assert outcome.state == DONE
    assert outcome.label == "flight"
    assert outcome.committed
    assert outcome.records_written == 2
    assert outcome.errors == []

    parent = await store.get(doc_ref.path)
    assert parent["type"] == "flight"
    legs = {c["flight_index"]: (leg_id, c) for leg_id, c in store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}").items()}
    assert sorted(legs) == [0, 1]

    first_id, first = legs[0]
    assert first["departure_time"] == datetime(2025, 7, 24, 11, 45)
    assert first["booking_reference"] == "PNR42X"
    assert first["origin_place_id"] == "place-ccu"
    assert set(store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}/{first_id}/places")) == {
        "origin_place",
        "destination_place",
    }

    second_id, second = legs[1]
    # XYZ did not resolve; only BLR gets a place doc
    assert "destination_place_id" not in second
    assert list(store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}/{second_id}/places")) == ["origin_place"]


@pytest.mark.asyncio
async def test_other_label_is_terminal(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(label="banana")

    outcome = await _trigger(store, vision).handle(_event())

    assert outcome.state == CLASSIFIED_OTHER
    assert outcome.label == "other"
    parent = await store.get(doc_ref.path)
    assert "classified_at" not in parent
    assert [json_mode for _, json_mode in vision.calls] == [False]


@pytest.mark.asyncio
async def test_missing_download_url_does_nothing(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    fetcher = FakeFetcher()

    outcome = await _trigger(store, FakeVisionModel(), fetcher=fetcher).handle(_event(download_url=None))

    assert outcome.errors
    assert fetcher.calls == []
    assert "classified_at" not in await store.get(doc_ref.path)


@pytest.mark.asyncio
async def test_fetch_failure_writes_nothing(
    store: InMemoryDocumentStore, doc_ref: DocumentRef, fetch_error: DocumentFetchError
) -> None:
    outcome = await _trigger(store, FakeVisionModel(), fetcher=FakeFetcher(error=fetch_error)).handle(_event())

    assert outcome.state == DONE
    assert not outcome.committed
    assert outcome.errors[0].startswith("classifying")
    assert (await store.get(doc_ref.path))["type"] == "other"


@pytest.mark.asyncio
async def test_classification_failure_writes_nothing(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(classify_error=RuntimeError("model unavailable"))

    outcome = await _trigger(store, vision).handle(_event())

    assert outcome.label is None
    assert "classified_at" not in await store.get(doc_ref.path)


@pytest.mark.asyncio
async def test_malformed_extraction_still_records_label(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(label="flight", extraction="I could not find any flights.")

    outcome = await _trigger(store, vision).handle(_event())

    assert outcome.committed
    assert outcome.records_written == 0
    assert (await store.get(doc_ref.path))["type"] == "flight"
    assert store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}") == {}


@pytest.mark.asyncio
async def test_extraction_call_failure_still_records_label(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(label="hotel", extract_error=RuntimeError("deadline"))

    outcome = await _trigger(store, vision).handle(_event(file_name="hotel.pdf"))

    assert outcome.committed
    assert outcome.errors and outcome.errors[0].startswith("extracting")
    assert (await store.get(doc_ref.path))["type"] == "hotel"


@pytest.mark.asyncio
async def test_non_extractable_label_is_classification_only(
    store: InMemoryDocumentStore, doc_ref: DocumentRef
) -> None:
    vision = FakeVisionModel(label="passport")

    outcome = await _trigger(store, vision).handle(_event(file_name="passport.jpg"))

    assert outcome.committed
    assert (await store.get(doc_ref.path))["type"] == "passport"
    assert [json_mode for _, json_mode in vision.calls] == [False]


@pytest.mark.asyncio
async def test_without_vision_model_uses_filename(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    fetcher = FakeFetcher()

    outcome = await _trigger(store, None, fetcher=fetcher).handle(_event(file_name="Hotel_Booking.pdf"))

    assert outcome.label == "hotel"
    assert outcome.records_written == 0
    assert fetcher.calls == []
    assert (await store.get(doc_ref.path))["type"] == "hotel"


@pytest.mark.asyncio
async def test_commit_failure_falls_back_to_label_update(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(label="flight", extraction=TWO_LEG_EXTRACTION)
    trigger = _trigger(store, vision)

    with patch.object(PersistenceWriter, "write", new=AsyncMock(return_value=None)):
        outcome = await trigger.handle(_event())

    assert not outcome.committed
    assert "persisting: batch commit failed" in outcome.errors
    assert (await store.get(doc_ref.path))["type"] == "flight"
    assert store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}") == {}


@pytest.mark.asyncio
async def test_unexpected_error_never_escapes(store: InMemoryDocumentStore) -> None:
    vision = FakeVisionModel(label="flight", extraction=TWO_LEG_EXTRACTION)
    trigger = _trigger(store, vision)

    with patch.object(PersistenceWriter, "write", new=AsyncMock(side_effect=RuntimeError("disk on fire"))):
        outcome = await trigger.handle(_event())

    assert outcome.state == DONE
    assert any("disk on fire" in e for e in outcome.errors)


@pytest.mark.asyncio
async def test_backfill_flows_into_stored_leg(store: InMemoryDocumentStore, doc_ref: DocumentRef) -> None:
    vision = FakeVisionModel(label="flight", extraction=TWO_LEG_EXTRACTION)

    await _trigger(store, vision, enable_duration_backfill=True).handle(_event())

    legs = {c["flight_index"]: c for c in store.children(f"{doc_ref.path}/{FLIGHT_COLLECTION}").values()}
    # BLR->XYZ is not in the table and first letters differ
    assert legs[1]["arrival_time"] == datetime(2025, 7, 28, 15, 10)
    assert legs[1]["arrival_time_source"] == "duration_estimate"
    assert legs[0]["arrival_time_source"] == "document"


@pytest.mark.asyncio
async def test_handle_document_created_from_payload(
    store: InMemoryDocumentStore, doc_ref: DocumentRef, airport_places: FakePlaces
) -> None:
    payload = {
        "params": {"tripId": "trip-1", "documentId": "doc-1"},
        "data": {
            "original_file_name": "eticket.pdf",
            "download_url": "https://storage.example/doc.png",
            "type": "other",
        },
    }
    settings = Settings(places_api_key="test-key")

    outcome = await handle_document_created(
        payload,
        settings,
        store,
        vision=FakeVisionModel(label="flight", extraction=TWO_LEG_EXTRACTION),
        fetcher=FakeFetcher(),
        places=airport_places,
    )

    assert outcome.committed
    assert outcome.records_written == 2
    assert (await store.get(doc_ref.path))["type"] == "flight"


@pytest.mark.asyncio
async def test_handle_document_created_with_missing_ids(store: InMemoryDocumentStore) -> None:
    outcome = await handle_document_created(
        {"params": {}, "data": {}},
        Settings(places_api_key="test-key"),
        store,
        vision=FakeVisionModel(),
        fetcher=FakeFetcher(),
        places=FakePlaces(),
    )

    assert outcome.state == DONE
    assert outcome.errors == ["missing trip or document id"]
