from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# ─────────────────────────────────────────────────────────────────────────────
# TAXONOMY
# ─────────────────────────────────────────────────────────────────────────────

DOCUMENT_TYPES: Tuple[str, ...] = (
    "passport",
    "visa",
    "flight",
    "train",
    "hotel",
    "rental",
    "cruise",
    "insurance",
    "other",
)
DEFAULT_DOCUMENT_TYPE = "other"
EXTRACTABLE_TYPES = frozenset({"flight", "hotel"})


def coerce_document_type(value: Any) -> str:
    """Map arbitrary model output onto the taxonomy; anything unknown is "other"."""
    if not isinstance(value, str):
        return DEFAULT_DOCUMENT_TYPE
    label = value.strip().lower()
    return label if label in DOCUMENT_TYPES else DEFAULT_DOCUMENT_TYPE


# Placeholder strings models use for "not present"
_NULLISH = {"", "null", "none", "n/a", "na", "unknown", "-", "--"}
_IATA_RE = re.compile(r"^[A-Z]{3}$")


def clean_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        v = str(v)
    if not isinstance(v, str):
        return None
    v = v.strip()
    return None if v.lower() in _NULLISH else v


def _parse_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v)
    if isinstance(v, str):
        m = re.search(r"-?\d+", v.replace(",", ""))
        return int(m.group()) if m else None
    return None


def _parse_amount(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        m = re.search(r"-?\d+(?:\.\d+)?", v.replace(",", ""))
        return float(m.group()) if m else None
    return None


# ─────────────────────────────────────────────────────────────────────────────
# DOCUMENT INPUT
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DocumentImage:
    data: bytes
    mime_type: str
    filename: str = ""

    @property
    def is_pdf(self) -> bool:
        return "pdf" in self.mime_type.lower() or self.data[:4] == b"%PDF"


class DocumentCreatedEvent(BaseModel):
    """A created-record event for trips/{tripId}/documents/{documentId}."""

    trip_id: str
    document_id: str
    file_name: Optional[str] = None
    download_url: Optional[str] = None
    current_type: str = DEFAULT_DOCUMENT_TYPE

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DocumentCreatedEvent":
        params = payload.get("params") or {}
        data = payload.get("data") or {}
        return cls(
            trip_id=str(params.get("tripId") or ""),
            document_id=str(params.get("documentId") or ""),
            file_name=clean_text(data.get("original_file_name")) or clean_text(data.get("file_name")),
            download_url=clean_text(data.get("download_url")),
            current_type=coerce_document_type(data.get("type")),
        )


# ─────────────────────────────────────────────────────────────────────────────
# PLACES
# ─────────────────────────────────────────────────────────────────────────────


class GeoPoint(BaseModel):
    latitude: float
    longitude: float


class PlaceRecord(BaseModel):
    place_id: str
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    location: Optional[GeoPoint] = None
    place_type: str

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump()


# ─────────────────────────────────────────────────────────────────────────────
# EXTRACTED RECORDS
# ─────────────────────────────────────────────────────────────────────────────

FLIGHT_FIELDS: Tuple[str, ...] = (
    "flight_number",
    "airline",
    "origin_code",
    "destination_code",
    "departure_time",
    "arrival_time",
    "gate",
    "terminal",
    "seat",
    "confirmation_number",
    "passenger_name",
    "ticket_number",
    "class_of_service",
    "status",
)

ACCOMMODATION_FIELDS: Tuple[str, ...] = (
    "hotel_name",
    "address",
    "check_in_date",
    "check_out_date",
    "reservation_number",
    "confirmation_number",
    "guest_name",
    "room_type",
    "room_number",
    "number_of_guests",
    "number_of_nights",
    "hotel_chain",
    "phone_number",
    "email",
    "total_amount",
    "currency",
    "cancellation_policy",
    "special_requests",
    "payment_status",
)


class FlightLeg(BaseModel):
    model_config = ConfigDict(extra="ignore")

    flight_number: Optional[str] = None
    airline: Optional[str] = None
    origin_code: Optional[str] = None
    destination_code: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    gate: Optional[str] = None
    terminal: Optional[str] = None
    seat: Optional[str] = None
    confirmation_number: Optional[str] = None
    passenger_name: Optional[str] = None
    ticket_number: Optional[str] = None
    class_of_service: Optional[str] = None
    status: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _clean(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("flight_number")
    @classmethod
    def _clean_flight_number(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return v
        return re.sub(r"[^\w]", "", v.upper()) or None

    @field_validator("origin_code", "destination_code")
    @classmethod
    def _validate_airport(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        code = v.upper()
        return code if _IATA_RE.match(code) else None

    def has_content(self) -> bool:
        return any(getattr(self, f) for f in FLIGHT_FIELDS)


_ACCOMMODATION_TEXT_FIELDS = tuple(
    f for f in ACCOMMODATION_FIELDS if f not in ("number_of_guests", "number_of_nights", "total_amount")
)


class Accommodation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hotel_name: Optional[str] = None
    address: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    reservation_number: Optional[str] = None
    confirmation_number: Optional[str] = None
    guest_name: Optional[str] = None
    room_type: Optional[str] = None
    room_number: Optional[str] = None
    number_of_guests: Optional[int] = None
    number_of_nights: Optional[int] = None
    hotel_chain: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    total_amount: Optional[float] = None
    currency: Optional[str] = None
    cancellation_policy: Optional[str] = None
    special_requests: Optional[str] = None
    payment_status: Optional[str] = None

    @field_validator(*_ACCOMMODATION_TEXT_FIELDS, mode="before")
    @classmethod
    def _clean(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("number_of_guests", "number_of_nights", mode="before")
    @classmethod
    def _count(cls, v: Any) -> Optional[int]:
        n = _parse_int(v)
        return n if n is not None and n >= 0 else None

    @field_validator("total_amount", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Optional[float]:
        return _parse_amount(v)

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    def has_content(self) -> bool:
        return any(getattr(self, f) is not None for f in ACCOMMODATION_FIELDS)


class RecordError(BaseModel):
    index: int
    reason: str
    raw: Any = None


RecordT = TypeVar("RecordT", FlightLeg, Accommodation)


def validate_record(
    raw: Any, model: Type[RecordT], index: int
) -> Union[RecordT, RecordError]:
    """Validate one untrusted element; returns the record or a RecordError, never raises."""
    if not isinstance(raw, dict):
        return RecordError(index=index, reason=f"expected object, got {type(raw).__name__}", raw=raw)
    try:
        record = model.model_validate(raw)
    except ValidationError as e:
        return RecordError(index=index, reason=str(e), raw=raw)
    if not record.has_content():
        return RecordError(index=index, reason="no usable fields", raw=raw)
    return record


class ExtractionResult(BaseModel):
    kind: str
    records: List[Tuple[int, Union[FlightLeg, Accommodation]]] = Field(default_factory=list)
    booking_reference: Optional[str] = None
    rejected: List[RecordError] = Field(default_factory=list)
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.records)


# ─────────────────────────────────────────────────────────────────────────────
# ENRICHED RECORDS
# ─────────────────────────────────────────────────────────────────────────────


class EnrichedFlightLeg(BaseModel):
    index: int
    leg: FlightLeg
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    arrival_source: Optional[str] = None
    origin_place: Optional[PlaceRecord] = None
    destination_place: Optional[PlaceRecord] = None
    warnings: List[str] = Field(default_factory=list)

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = self.leg.model_dump()
        fields["departure_time"] = self.departure_time
        fields["arrival_time"] = self.arrival_time
        if self.arrival_source:
            fields["arrival_time_source"] = self.arrival_source
        if self.origin_place:
            fields["origin_place_id"] = self.origin_place.place_id
            fields["origin_place_name"] = self.origin_place.name
        if self.destination_place:
            fields["destination_place_id"] = self.destination_place.place_id
            fields["destination_place_name"] = self.destination_place.name
        return fields


class EnrichedAccommodation(BaseModel):
    index: int
    accommodation: Accommodation
    check_in_date: Optional[datetime] = None
    check_out_date: Optional[datetime] = None
    place: Optional[PlaceRecord] = None
    warnings: List[str] = Field(default_factory=list)

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = self.accommodation.model_dump()
        fields["check_in_date"] = self.check_in_date
        fields["check_out_date"] = self.check_out_date
        if self.place:
            fields["place_id"] = self.place.place_id
            if self.place.formatted_address:
                fields["address"] = self.place.formatted_address
            fields["place"] = self.place.to_record()
        return fields


# ─────────────────────────────────────────────────────────────────────────────
# RUN OUTCOME
# ─────────────────────────────────────────────────────────────────────────────


class IngestOutcome(BaseModel):
    trip_id: str
    document_id: str
    state: str = "received"
    label: Optional[str] = None
    records_written: int = 0
    committed: bool = False
    errors: List[str] = Field(default_factory=list)
