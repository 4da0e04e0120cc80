"""
Document ingest trigger: one invocation per newly created trip document.

    received -> classifying -> classified-other            (terminal)
                            -> classified-specific -> extracting -> enriching -> persisting -> done

The handler never raises. Redelivery by the host is the only retry.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .classifier import ClassificationEngine
from .config import Settings
from .durations import DurationEstimator
from .enrichment import EnrichmentPipeline
from .errors import ClassificationError, DocumentFetchError
from .extraction_engine import extractor_for
from .flight_status import FlightStatusClient
from .logging_utils import get_logger, log_event, new_correlation_id, set_correlation_id
from .models import (
    DEFAULT_DOCUMENT_TYPE,
    EXTRACTABLE_TYPES,
    DocumentCreatedEvent,
    DocumentImage,
    EnrichedAccommodation,
    EnrichedFlightLeg,
    ExtractionResult,
    IngestOutcome,
)
from .persistence import PersistenceWriter
from .place_resolver import PlaceResolver
from .places_client import PlacesClient
from .store import DocumentRef, DocumentStore
from .vision import DocumentFetcher, VisionModel, build_vision_model

logger = get_logger("tripintel.trigger")

RECEIVED = "received"
CLASSIFYING = "classifying"
CLASSIFIED_OTHER = "classified-other"
CLASSIFIED_SPECIFIC = "classified-specific"
EXTRACTING = "extracting"
ENRICHING = "enriching"
PERSISTING = "persisting"
DONE = "done"


class DocumentIngestTrigger:
    def __init__(
        self,
        *,
        classifier: ClassificationEngine,
        enrichment: EnrichmentPipeline,
        writer: PersistenceWriter,
        store: DocumentStore,
        fetcher: DocumentFetcher,
        vision: Optional[VisionModel] = None,
    ) -> None:
        self._classifier = classifier
        self._enrichment = enrichment
        self._writer = writer
        self._store = store
        self._fetcher = fetcher
        self._vision = vision

    def _transition(self, outcome: IngestOutcome, state: str) -> None:
        log_event(
            logger.logger,
            "ingest_state",
            from_state=outcome.state,
            to_state=state,
            trip_id=outcome.trip_id,
            document_id=outcome.document_id,
        )
        outcome.state = state

    def _fail(self, outcome: IngestOutcome, stage: str, error: BaseException, level: int = logging.ERROR) -> None:
        outcome.errors.append(f"{stage}: {error}")
        log_event(
            logger.logger,
            "ingest_stage_failed",
            level=level,
            stage=stage,
            trip_id=outcome.trip_id,
            document_id=outcome.document_id,
            error=repr(error),
        )

    async def handle(self, event: DocumentCreatedEvent) -> IngestOutcome:
        outcome = IngestOutcome(trip_id=event.trip_id, document_id=event.document_id, state=RECEIVED)
        new_correlation_id("run-")
        logger.start_timer("ingest")
        try:
            await self._run(event, outcome)
        except Exception as e:
            # Last line of defence: never surface to the host scheduler
            self._fail(outcome, outcome.state, e)
        finally:
            if outcome.state != CLASSIFIED_OTHER:
                outcome.state = DONE
            log_event(
                logger.logger,
                "ingest_finished",
                trip_id=outcome.trip_id,
                document_id=outcome.document_id,
                state=outcome.state,
                label=outcome.label,
                records_written=outcome.records_written,
                committed=outcome.committed,
                errors=len(outcome.errors),
                duration_ms=int(logger.end_timer("ingest") * 1000),
            )
            set_correlation_id(None)
        return outcome

    async def _run(self, event: DocumentCreatedEvent, outcome: IngestOutcome) -> None:
        if not event.trip_id or not event.document_id:
            outcome.errors.append("missing trip or document id")
            log_event(logger.logger, "ingest_missing_identity", level=logging.WARNING)
            return
        if not event.file_name or not event.download_url:
            outcome.errors.append("missing file name or download url")
            log_event(
                logger.logger,
                "ingest_missing_input",
                level=logging.WARNING,
                trip_id=event.trip_id,
                document_id=event.document_id,
                has_file_name=bool(event.file_name),
                has_download_url=bool(event.download_url),
            )
            return

        ref = DocumentRef(event.trip_id, event.document_id)

        # classifying
        self._transition(outcome, CLASSIFYING)
        image: Optional[DocumentImage] = None
        try:
            if self._classifier.uses_model:
                image = await self._fetcher.fetch(event.download_url, event.file_name)
            label = await self._classifier.classify(image, event.file_name)
        except (DocumentFetchError, ClassificationError) as e:
            self._fail(outcome, CLASSIFYING, e)
            return
        outcome.label = label

        if label == DEFAULT_DOCUMENT_TYPE:
            self._transition(outcome, CLASSIFIED_OTHER)
            return
        self._transition(outcome, CLASSIFIED_SPECIFIC)

        flights: List[EnrichedFlightLeg] = []
        accommodations: List[EnrichedAccommodation] = []
        booking_reference: Optional[str] = None
        extracted_at: Optional[datetime] = None

        extractor = extractor_for(label, self._vision) if label in EXTRACTABLE_TYPES else None
        if extractor is not None and image is not None:
            # extracting
            self._transition(outcome, EXTRACTING)
            result: Optional[ExtractionResult] = None
            try:
                result = await extractor.extract(image)
                extracted_at = datetime.now(timezone.utc)
            except Exception as e:
                self._fail(outcome, EXTRACTING, e, level=logging.WARNING)

            if result is not None and not result.found:
                log_event(
                    logger.logger,
                    "extraction_empty",
                    kind=result.kind,
                    reason=result.reason,
                    document_id=event.document_id,
                )

            # enriching
            if result is not None and result.found:
                self._transition(outcome, ENRICHING)
                booking_reference = result.booking_reference
                try:
                    if label == "flight":
                        flights = await self._enrichment.enrich_flights(result)
                    else:
                        accommodations = await self._enrichment.enrich_accommodations(result)
                except Exception as e:
                    self._fail(outcome, ENRICHING, e, level=logging.WARNING)

        # persisting
        self._transition(outcome, PERSISTING)
        written = await self._writer.write(
            ref,
            label,
            flights=flights,
            accommodations=accommodations,
            booking_reference=booking_reference,
            extracted_at=extracted_at,
        )
        if written is not None:
            outcome.committed = True
            outcome.records_written = written
            return

        outcome.errors.append("persisting: batch commit failed")
        # Batch lost; still record the classification on its own
        try:
            await self._store.update(ref.path, {"type": label, "classified_at": datetime.now(timezone.utc)})
        except Exception as e:
            self._fail(outcome, "classification_update", e)


async def handle_document_created(
    payload: Dict[str, Any],
    settings: Settings,
    store: DocumentStore,
    *,
    vision: Optional[VisionModel] = None,
    fetcher: Optional[DocumentFetcher] = None,
    places: Optional[Any] = None,
) -> IngestOutcome:
    """Host entry point: wires collaborators for one invocation and runs the trigger."""
    try:
        event = DocumentCreatedEvent.from_payload(payload)
    except Exception as e:
        log_event(logger.logger, "ingest_bad_event", level=logging.WARNING, error=repr(e))
        return IngestOutcome(trip_id="", document_id="", state=DONE, errors=[f"bad event: {e}"])

    try:
        if vision is None:
            vision = build_vision_model(settings)

        async with AsyncExitStack() as stack:
            if places is None:
                places = await stack.enter_async_context(
                    PlacesClient(settings.places_api_key, settings.places_base_url, timeout=settings.http_timeout)
                )

            flight_status: Optional[FlightStatusClient] = None
            if settings.enable_duration_backfill and settings.flightaware_api_key:
                flight_status = await stack.enter_async_context(
                    FlightStatusClient(
                        settings.flightaware_api_key,
                        settings.aeroapi_base_url,
                        timeout=settings.http_timeout,
                    )
                )

            trigger = DocumentIngestTrigger(
                classifier=ClassificationEngine(vision),
                enrichment=EnrichmentPipeline(
                    PlaceResolver(places),
                    estimator=DurationEstimator(),
                    flight_status=flight_status,
                    enable_duration_backfill=settings.enable_duration_backfill,
                ),
                writer=PersistenceWriter(store, stable_child_ids=settings.stable_child_ids),
                store=store,
                fetcher=fetcher or DocumentFetcher(),
                vision=vision,
            )
            return await trigger.handle(event)
    except Exception as e:
        log_event(logger.logger, "ingest_setup_failed", level=logging.ERROR, error=repr(e))
        return IngestOutcome(
            trip_id=event.trip_id,
            document_id=event.document_id,
            state=DONE,
            errors=[f"setup: {e}"],
        )
