"""
Enrichment of extracted itinerary records.

Each record runs through a short pipeline of total stages (they log and
degrade, they do not raise):

    flight leg:     normalize_times -> attach_airports -> backfill_arrival (optional)
    accommodation:  normalize_dates -> attach_hotel

A record whose enrichment still blows up is dropped on its own; the rest of
the document carries on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .durations import DurationEstimator
from .flight_status import FlightStatusClient
from .logging_utils import get_logger, log_event
from .models import (
    Accommodation,
    EnrichedAccommodation,
    EnrichedFlightLeg,
    ExtractionResult,
    FlightLeg,
    PlaceRecord,
)
from .place_resolver import PlaceResolver
from .timestamps import TimestampNormalizer

logger = get_logger("tripintel.enrichment")

AirportMap = Dict[str, Optional[PlaceRecord]]


class EnrichmentPipeline:
    def __init__(
        self,
        resolver: PlaceResolver,
        *,
        estimator: Optional[DurationEstimator] = None,
        flight_status: Optional[FlightStatusClient] = None,
        enable_duration_backfill: bool = False,
    ) -> None:
        self._resolver = resolver
        self._estimator = estimator or DurationEstimator()
        self._flight_status = flight_status
        self._backfill = enable_duration_backfill

    # ---------------- flight stages ----------------

    @staticmethod
    def normalize_times(enriched: EnrichedFlightLeg) -> EnrichedFlightLeg:
        leg = enriched.leg
        enriched.departure_time = TimestampNormalizer.normalize(leg.departure_time, "departure_time")
        enriched.arrival_time = TimestampNormalizer.normalize(leg.arrival_time, "arrival_time")
        if leg.departure_time and enriched.departure_time is None:
            enriched.warnings.append("departure_time unparseable")
        if leg.arrival_time and enriched.arrival_time is None:
            enriched.warnings.append("arrival_time unparseable")
        if enriched.arrival_time is not None:
            enriched.arrival_source = "document"
        return enriched

    @staticmethod
    def attach_airports(enriched: EnrichedFlightLeg, airports: AirportMap) -> EnrichedFlightLeg:
        leg = enriched.leg
        if leg.origin_code:
            enriched.origin_place = airports.get(leg.origin_code)
        if leg.destination_code:
            enriched.destination_place = airports.get(leg.destination_code)
        return enriched

    async def backfill_arrival(self, enriched: EnrichedFlightLeg) -> EnrichedFlightLeg:
        if not self._backfill:
            return enriched
        if enriched.arrival_time is not None or enriched.departure_time is None:
            return enriched

        leg = enriched.leg
        if self._flight_status is not None:
            arrival = await self._flight_status.scheduled_arrival(leg.flight_number, enriched.departure_time)
            if arrival is not None and arrival > enriched.departure_time:
                enriched.arrival_time = arrival
                enriched.arrival_source = "flight_status"
                return enriched

        if leg.origin_code and leg.destination_code:
            duration = self._estimator.estimate(leg.origin_code, leg.destination_code)
            enriched.arrival_time = enriched.departure_time + duration
            enriched.arrival_source = "duration_estimate"
            log_event(
                logger.logger,
                "arrival_estimated",
                flight_number=leg.flight_number,
                origin=leg.origin_code,
                destination=leg.destination_code,
                hours=duration.total_seconds() / 3600,
            )
        return enriched

    async def resolve_airports(self, codes: Sequence[str]) -> AirportMap:
        """Resolve distinct airport codes concurrently; one lookup per code per run."""
        unique = list(dict.fromkeys(c for c in codes if c))
        if not unique:
            return {}
        results = await asyncio.gather(
            *(self._resolver.resolve_airport(c) for c in unique), return_exceptions=True
        )
        airports: AirportMap = {}
        for code, res in zip(unique, results):
            if isinstance(res, BaseException):
                log_event(logger.logger, "airport_lookup_crashed", level=logging.WARNING, code=code, error=repr(res))
                airports[code] = None
            else:
                airports[code] = res
        return airports

    async def enrich_flight(
        self, index: int, leg: FlightLeg, airports: Optional[AirportMap] = None
    ) -> EnrichedFlightLeg:
        if airports is None:
            airports = await self.resolve_airports([leg.origin_code or "", leg.destination_code or ""])
        enriched = EnrichedFlightLeg(index=index, leg=leg)
        self.normalize_times(enriched)
        self.attach_airports(enriched, airports)
        await self.backfill_arrival(enriched)
        return enriched

    async def enrich_flights(self, result: ExtractionResult) -> List[EnrichedFlightLeg]:
        legs: List[Tuple[int, FlightLeg]] = [
            (i, r) for i, r in result.records if isinstance(r, FlightLeg)
        ]
        if not legs:
            return []

        logger.start_timer("enrich_flights")
        codes: List[str] = []
        for _, leg in legs:
            codes.extend([leg.origin_code or "", leg.destination_code or ""])
        airports = await self.resolve_airports(codes)

        outcomes = await asyncio.gather(
            *(self.enrich_flight(i, leg, airports) for i, leg in legs), return_exceptions=True
        )
        enriched = self._keep_successes("flight", [i for i, _ in legs], outcomes)
        log_event(
            logger.logger,
            "flights_enriched",
            extracted=len(legs),
            enriched=len(enriched),
            airports_resolved=sum(1 for p in airports.values() if p),
            duration_ms=int(logger.end_timer("enrich_flights") * 1000),
        )
        return enriched

    # ---------------- accommodation stages ----------------

    @staticmethod
    def normalize_dates(enriched: EnrichedAccommodation) -> EnrichedAccommodation:
        acc = enriched.accommodation
        enriched.check_in_date = TimestampNormalizer.normalize(acc.check_in_date, "check_in_date")
        enriched.check_out_date = TimestampNormalizer.normalize(acc.check_out_date, "check_out_date")
        if acc.check_in_date and enriched.check_in_date is None:
            enriched.warnings.append("check_in_date unparseable")
        if acc.check_out_date and enriched.check_out_date is None:
            enriched.warnings.append("check_out_date unparseable")
        return enriched

    async def attach_hotel(self, enriched: EnrichedAccommodation) -> EnrichedAccommodation:
        acc = enriched.accommodation
        enriched.place = await self._resolver.resolve_hotel(acc.hotel_name, acc.address)
        return enriched

    async def enrich_accommodation(self, index: int, accommodation: Accommodation) -> EnrichedAccommodation:
        enriched = EnrichedAccommodation(index=index, accommodation=accommodation)
        self.normalize_dates(enriched)
        await self.attach_hotel(enriched)
        return enriched

    async def enrich_accommodations(self, result: ExtractionResult) -> List[EnrichedAccommodation]:
        stays: List[Tuple[int, Accommodation]] = [
            (i, r) for i, r in result.records if isinstance(r, Accommodation)
        ]
        if not stays:
            return []

        logger.start_timer("enrich_accommodations")
        outcomes = await asyncio.gather(
            *(self.enrich_accommodation(i, acc) for i, acc in stays), return_exceptions=True
        )
        enriched = self._keep_successes("hotel", [i for i, _ in stays], outcomes)
        log_event(
            logger.logger,
            "accommodations_enriched",
            extracted=len(stays),
            enriched=len(enriched),
            places_resolved=sum(1 for e in enriched if e.place),
            duration_ms=int(logger.end_timer("enrich_accommodations") * 1000),
        )
        return enriched

    # ---------------- helpers ----------------

    @staticmethod
    def _keep_successes(kind: str, indices: List[int], outcomes: list) -> list:
        kept = []
        for index, outcome in zip(indices, outcomes):
            if isinstance(outcome, BaseException):
                log_event(
                    logger.logger,
                    "record_enrichment_failed",
                    level=logging.WARNING,
                    kind=kind,
                    index=index,
                    error=repr(outcome),
                )
                continue
            kept.append(outcome)
        return kept
