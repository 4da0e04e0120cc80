"""Unit tests for the flight and accommodation enrichment pipeline."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from tests.fakes import FakePlaces, api_place
from trip_intel.enrichment import EnrichmentPipeline
from trip_intel.flight_status import FlightStatusClient
from trip_intel.models import Accommodation, ExtractionResult, FlightLeg
from trip_intel.place_resolver import PlaceResolver


def _leg(**fields) -> FlightLeg:
    base = {
        "flight_number": "6E2341",
        "origin_code": "CCU",
        "destination_code": "BLR",
        "departure_time": "2025-07-24T11:45:00",
    }
    base.update(fields)
    return FlightLeg.model_validate(base)


def _pipeline(places: FakePlaces, **kwargs) -> EnrichmentPipeline:
    return EnrichmentPipeline(PlaceResolver(places), **kwargs)


@pytest.mark.asyncio
async def test_departure_keeps_local_wall_clock(airport_places: FakePlaces) -> None:
    enriched = await _pipeline(airport_places).enrich_flight(0, _leg(departure_time="2025-07-24T11:45:00Z"))

    assert enriched.departure_time == datetime(2025, 7, 24, 11, 45)
    assert enriched.to_fields()["departure_time"].hour == 11


@pytest.mark.asyncio
async def test_resolver_miss_keeps_fields_and_omits_place_keys() -> None:
    enriched = await _pipeline(FakePlaces()).enrich_flight(0, _leg(seat="14C"))

    fields = enriched.to_fields()
    assert fields["origin_code"] == "CCU"
    assert fields["seat"] == "14C"
    for key in ("origin_place_id", "origin_place_name", "destination_place_id", "destination_place_name"):
        assert key not in fields


@pytest.mark.asyncio
async def test_resolved_airports_are_attached(airport_places: FakePlaces) -> None:
    fields = (await _pipeline(airport_places).enrich_flight(0, _leg())).to_fields()

    assert fields["origin_place_id"] == "place-ccu"
    assert fields["destination_place_id"] == "place-blr"
    assert fields["destination_place_name"] == "Kempegowda International Airport"


@pytest.mark.asyncio
async def test_distinct_codes_resolved_once_per_run(airport_places: FakePlaces) -> None:
    result = ExtractionResult(
        kind="flight",
        records=[
            (0, _leg()),
            (1, _leg(origin_code="BLR", destination_code="CCU", departure_time="2025-07-28T09:10:00")),
        ],
    )

    enriched = await _pipeline(airport_places).enrich_flights(result)

    assert [e.index for e in enriched] == [0, 1]
    assert sorted(q for q, _, _ in airport_places.calls) == ["BLR airport", "CCU airport"]


@pytest.mark.asyncio
async def test_unparseable_departure_is_none_with_warning() -> None:
    enriched = await _pipeline(FakePlaces()).enrich_flight(0, _leg(departure_time="sometime"))

    assert enriched.departure_time is None
    assert "departure_time unparseable" in enriched.warnings


@pytest.mark.asyncio
async def test_arrival_left_missing_when_backfill_disabled() -> None:
    enriched = await _pipeline(FakePlaces()).enrich_flight(0, _leg())

    assert enriched.arrival_time is None
    assert "arrival_time_source" not in enriched.to_fields()


@pytest.mark.asyncio
async def test_backfill_uses_route_duration() -> None:
    pipeline = _pipeline(FakePlaces(), enable_duration_backfill=True)

    enriched = await pipeline.enrich_flight(0, _leg())

    assert enriched.arrival_time == datetime(2025, 7, 24, 14, 15)
    assert enriched.arrival_source == "duration_estimate"


@pytest.mark.asyncio
async def test_backfill_prefers_flight_status() -> None:
    status = AsyncMock()
    status.scheduled_arrival.return_value = datetime(2025, 7, 24, 14, 30)
    pipeline = _pipeline(FakePlaces(), flight_status=status, enable_duration_backfill=True)

    enriched = await pipeline.enrich_flight(0, _leg())

    assert enriched.arrival_time == datetime(2025, 7, 24, 14, 30)
    assert enriched.to_fields()["arrival_time_source"] == "flight_status"
    status.scheduled_arrival.assert_awaited_once_with("6E2341", datetime(2025, 7, 24, 11, 45))


@pytest.mark.asyncio
async def test_backfill_does_not_override_document_arrival() -> None:
    pipeline = _pipeline(FakePlaces(), enable_duration_backfill=True)

    enriched = await pipeline.enrich_flight(0, _leg(arrival_time="2025-07-24T14:05:00"))

    assert enriched.arrival_time == datetime(2025, 7, 24, 14, 5)
    assert enriched.arrival_source == "document"


@pytest.mark.asyncio
async def test_one_failing_leg_does_not_drop_the_others() -> None:
    original = EnrichmentPipeline.attach_airports

    def flaky(enriched, airports):
        if enriched.index == 1:
            raise RuntimeError("bad leg")
        return original(enriched, airports)

    result = ExtractionResult(kind="flight", records=[(0, _leg()), (1, _leg()), (2, _leg())])
    with patch.object(EnrichmentPipeline, "attach_airports", side_effect=flaky):
        enriched = await _pipeline(FakePlaces()).enrich_flights(result)

    assert [e.index for e in enriched] == [0, 2]


@pytest.mark.asyncio
async def test_accommodation_prefers_resolved_address() -> None:
    places = FakePlaces(
        {"The Leela Palace, Old Airport Rd": [api_place("place-leela", "The Leela Palace", "23 Old Airport Rd, Bengaluru 560008")]}
    )
    acc = Accommodation(hotel_name="The Leela Palace", address="Old Airport Rd", check_in_date="2025-07-24")
    result = ExtractionResult(kind="hotel", records=[(0, acc)])

    [enriched] = await _pipeline(places).enrich_accommodations(result)

    fields = enriched.to_fields()
    assert fields["place_id"] == "place-leela"
    assert fields["address"] == "23 Old Airport Rd, Bengaluru 560008"
    assert fields["check_in_date"] == datetime(2025, 7, 24)
    assert fields["place"]["place_type"] == "lodging"


@pytest.mark.asyncio
async def test_accommodation_without_match_keeps_extracted_address() -> None:
    acc = Accommodation(hotel_name="Tiny Guesthouse", address="Lane 4")

    enriched = await _pipeline(FakePlaces()).enrich_accommodation(0, acc)

    fields = enriched.to_fields()
    assert fields["address"] == "Lane 4"
    assert "place_id" not in fields
    assert "place" not in fields


@pytest.mark.asyncio
async def test_malformed_hotel_place_keeps_the_stay() -> None:
    places = FakePlaces({"The Leela Palace, Old Airport Rd": [{"id": "p1", "formattedAddress": 12345}]})
    acc = Accommodation(hotel_name="The Leela Palace", address="Old Airport Rd")
    result = ExtractionResult(kind="hotel", records=[(0, acc)])

    [enriched] = await _pipeline(places).enrich_accommodations(result)

    assert enriched.place is None
    assert enriched.to_fields()["address"] == "Old Airport Rd"


@pytest.mark.asyncio
async def test_malformed_flight_status_falls_back_to_route_duration() -> None:
    status = FlightStatusClient("key")
    body = {"flights": [{"scheduled_out": "2025-07-24T06:15:00Z", "origin": "CCU"}]}
    pipeline = _pipeline(FakePlaces(), flight_status=status, enable_duration_backfill=True)

    with patch.object(status, "_do_get", new=AsyncMock(return_value=(200, body))):
        enriched = await pipeline.enrich_flight(0, _leg())

    assert enriched.arrival_time == datetime(2025, 7, 24, 14, 15)
    assert enriched.arrival_source == "duration_estimate"
