from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from .errors import ClassificationError, DocumentFetchError
from .logging_utils import log_event
from .models import DEFAULT_DOCUMENT_TYPE, DocumentImage, coerce_document_type
from .prompts import CLASSIFICATION_PROMPT
from .vision import VisionModel

logger = logging.getLogger("tripintel.classifier")

# Checked in order; first keyword hit wins. Train and cruise come before flight
# since "ticket" also appears in their filenames.
FILENAME_KEYWORDS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("passport", ("passport",)),
    ("visa", ("visa",)),
    ("train", ("train", "rail", "irctc")),
    ("cruise", ("cruise",)),
    ("flight", ("boarding", "flight", "ticket", "airline", "eticket", "e-ticket")),
    ("hotel", ("hotel", "accommodation", "lodging", "airbnb", "hostel", "resort")),
    ("rental", ("rental", "car_hire", "car-hire", "hertz", "avis")),
    ("insurance", ("insurance",)),
)


def classify_by_filename(filename: Optional[str]) -> str:
    name = (filename or "").lower()
    for label, keywords in FILENAME_KEYWORDS:
        if any(k in name for k in keywords):
            return label
    return DEFAULT_DOCUMENT_TYPE


class ClassificationEngine:
    """Single-label document classification over the fixed taxonomy."""

    def __init__(self, model: Optional[VisionModel]) -> None:
        self._model = model

    @property
    def uses_model(self) -> bool:
        return self._model is not None

    async def classify(self, image: Optional[DocumentImage], filename: str) -> str:
        if self._model is None:
            label = classify_by_filename(filename)
            log_event(logger, "classified_by_filename", label=label, field_filename=filename)
            return label

        if image is None:
            raise ClassificationError("no document image to classify")

        try:
            raw = await self._model.generate(CLASSIFICATION_PROMPT, image)
        except DocumentFetchError as e:
            raise ClassificationError(str(e)) from e
        except Exception as e:
            raise ClassificationError(f"vision model call failed: {e!r}") from e

        label = coerce_document_type(raw)
        if label == DEFAULT_DOCUMENT_TYPE and (raw or "").strip().lower() != DEFAULT_DOCUMENT_TYPE:
            log_event(
                logger,
                "classification_coerced",
                level=logging.WARNING,
                raw_output=(raw or "")[:100],
            )
        log_event(logger, "classified_by_model", label=label, field_filename=filename)
        return label
