# extraction_engine.py
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Tuple, Type, Union

from .errors import DocumentFetchError, ExtractionFailure
from .logging_utils import get_logger, log_event
from .models import (
    Accommodation,
    ExtractionResult,
    FlightLeg,
    RecordError,
    clean_text,
    validate_record,
)
from .prompts import FLIGHT_EXTRACTION_PROMPT, HOTEL_EXTRACTION_PROMPT
from .utils import strip_code_fences
from .vision import VisionModel

logger = get_logger("tripintel.extraction_engine")


class StructuredExtractor:
    """Prompt the vision model for a JSON record array and validate each element."""

    kind: str = ""
    prompt: str = ""
    array_field: str = ""
    record_model: Type[Union[FlightLeg, Accommodation]]

    def __init__(self, model: VisionModel) -> None:
        self._model = model

    def parse(self, text: str) -> ExtractionResult:
        """Turn raw model text into an ExtractionResult; malformed output means no records."""
        cleaned = strip_code_fences(text)
        try:
            data = json.loads(cleaned)
        except (json.JSONDecodeError, TypeError) as e:
            log_event(
                logger.logger,
                "extraction_parse_error",
                level=logging.WARNING,
                kind=self.kind,
                error=str(e),
                raw_output=(text or "")[:500],
            )
            return ExtractionResult(kind=self.kind, reason="model output is not valid JSON")

        if not isinstance(data, dict):
            return ExtractionResult(kind=self.kind, reason="model output is not a JSON object")

        raw_records = data.get(self.array_field)
        booking_reference = clean_text(data.get("booking_reference"))
        if not isinstance(raw_records, list) or not raw_records:
            return ExtractionResult(
                kind=self.kind,
                booking_reference=booking_reference,
                reason=f"no {self.array_field} found",
            )

        records: List[Tuple[int, Any]] = []
        rejected: List[RecordError] = []
        for idx, raw in enumerate(raw_records):
            outcome = validate_record(raw, self.record_model, idx)
            if isinstance(outcome, RecordError):
                log_event(
                    logger.logger,
                    "extraction_record_rejected",
                    level=logging.WARNING,
                    kind=self.kind,
                    index=idx,
                    reason=outcome.reason[:300],
                )
                rejected.append(outcome)
            else:
                records.append((idx, outcome))

        return ExtractionResult(
            kind=self.kind,
            records=records,
            booking_reference=booking_reference,
            rejected=rejected,
            reason=None if records else f"no valid {self.array_field}",
        )

    async def extract(self, image: Any) -> ExtractionResult:
        op = f"extract_{self.kind}"
        logger.start_timer(op)
        try:
            text = await self._model.generate(self.prompt, image, json_output=True)
        except DocumentFetchError:
            logger.end_timer(op)
            raise
        except Exception as e:
            logger.end_timer(op)
            raise ExtractionFailure(f"{self.kind} extraction call failed: {e!r}") from e

        result = self.parse(text)
        log_event(
            logger.logger,
            "extraction_finished",
            kind=self.kind,
            records=len(result.records),
            rejected=len(result.rejected),
            has_booking_reference=bool(result.booking_reference),
            reason=result.reason,
            duration_ms=int(logger.end_timer(op) * 1000),
        )
        return result


class FlightExtractor(StructuredExtractor):
    kind = "flight"
    prompt = FLIGHT_EXTRACTION_PROMPT
    array_field = "flights"
    record_model = FlightLeg


class HotelExtractor(StructuredExtractor):
    kind = "hotel"
    prompt = HOTEL_EXTRACTION_PROMPT
    array_field = "accommodations"
    record_model = Accommodation


def extractor_for(label: str, model: Optional[VisionModel]) -> Optional[StructuredExtractor]:
    if model is None:
        return None
    if label == FlightExtractor.kind:
        return FlightExtractor(model)
    if label == HotelExtractor.kind:
        return HotelExtractor(model)
    return None
