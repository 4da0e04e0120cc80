from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from .logging_utils import log_event
from .models import EnrichedAccommodation, EnrichedFlightLeg
from .store import DocumentRef, DocumentStore

logger = logging.getLogger("tripintel.persistence")

FLIGHT_COLLECTION = "flight_info"
ACCOMMODATION_COLLECTION = "accommodation_info"
PLACES_COLLECTION = "places"
ORIGIN_PLACE_ID = "origin_place"
DESTINATION_PLACE_ID = "destination_place"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def stable_child_id(document_id: str, kind: str, index: int) -> str:
    return hashlib.sha1(f"{document_id}:{kind}:{index}".encode("utf-8")).hexdigest()[:20]


class PersistenceWriter:
    """Writes one run's classification and child records as a single atomic batch."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        stable_child_ids: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._stable_ids = stable_child_ids
        self._clock = clock

    def _child_id(self, ref: DocumentRef, kind: str, index: int) -> str:
        if self._stable_ids:
            return stable_child_id(ref.document_id, kind, index)
        return self._store.new_id()

    async def write(
        self,
        ref: DocumentRef,
        label: str,
        *,
        flights: Sequence[EnrichedFlightLeg] = (),
        accommodations: Sequence[EnrichedAccommodation] = (),
        booking_reference: Optional[str] = None,
        extracted_at: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Commit the batch; returns the number of flight/accommodation records written,
        or None when the commit failed. Never raises.
        """
        now = self._clock()
        extracted_at = extracted_at or now
        batch = self._store.batch()
        batch.update(ref.path, {"type": label, "classified_at": now})

        records = 0
        places = 0
        for leg in flights:
            leg_id = self._child_id(ref, "flight", leg.index)
            leg_path = ref.child(FLIGHT_COLLECTION, leg_id)
            data: Dict[str, Any] = {
                **leg.to_fields(),
                "flight_index": leg.index,
                "booking_reference": booking_reference,
                "extracted_at": extracted_at,
                "created_at": now,
            }
            batch.set(leg_path, data)
            records += 1

            for place_doc_id, place in (
                (ORIGIN_PLACE_ID, leg.origin_place),
                (DESTINATION_PLACE_ID, leg.destination_place),
            ):
                if place is None:
                    continue
                batch.set(
                    f"{leg_path}/{PLACES_COLLECTION}/{place_doc_id}",
                    {**place.to_record(), "created_at": now},
                )
                places += 1

        for acc in accommodations:
            acc_id = self._child_id(ref, "hotel", acc.index)
            batch.set(
                ref.child(ACCOMMODATION_COLLECTION, acc_id),
                {
                    **acc.to_fields(),
                    "accommodation_index": acc.index,
                    "booking_reference": booking_reference,
                    "extracted_at": extracted_at,
                    "created_at": now,
                },
            )
            records += 1

        try:
            await batch.commit()
        except Exception as e:
            log_event(
                logger,
                "persistence_commit_failed",
                level=logging.ERROR,
                document=ref.path,
                label=label,
                records=records,
                error=repr(e),
            )
            return None

        log_event(
            logger,
            "persistence_committed",
            document=ref.path,
            label=label,
            records=records,
            places=places,
            booking_reference=booking_reference,
        )
        return records
