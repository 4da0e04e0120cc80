CLASSIFICATION_PROMPT = """You are a travel document classifier.

Look at this document and decide which ONE of these types it is:

- passport: a passport data page or passport cover
- visa: a visa, e-visa, entry permit, or travel authorisation (ESTA, eTA, ETIAS)
- flight: a flight ticket, e-ticket, boarding pass, or airline booking confirmation / itinerary
- train: a train or rail ticket or rail booking confirmation
- hotel: a hotel, hostel, resort, or holiday-rental booking / reservation confirmation
- rental: a car rental or vehicle hire agreement or booking
- cruise: a cruise booking, cruise ticket, or boarding document
- insurance: a travel insurance policy or certificate
- other: anything that does not clearly fit one of the types above

RULES:
1. Answer with EXACTLY one word from this list: passport, visa, flight, train, hotel, rental, cruise, insurance, other
2. No punctuation, no explanation, no quotes.
3. If unsure, answer: other"""


FLIGHT_EXTRACTION_PROMPT = """You are a flight itinerary extraction engine.

This document is a flight ticket, boarding pass, or airline booking confirmation.
Extract EVERY flight leg shown. A round trip or connection has one entry per leg, in document order.

Return ONLY valid JSON with this structure:
{
  "booking_reference": "ABC123" or null,
  "flights": [
    {
      "flight_number": "6E2341" or null,
      "airline": "IndiGo" or null,
      "origin_code": "CCU" or null,
      "destination_code": "BLR" or null,
      "departure_time": "YYYY-MM-DDTHH:MM:SS" or null,
      "arrival_time": "YYYY-MM-DDTHH:MM:SS" or null,
      "gate": "12" or null,
      "terminal": "T2" or null,
      "seat": "14C" or null,
      "confirmation_number": "..." or null,
      "passenger_name": "..." or null,
      "ticket_number": "..." or null,
      "class_of_service": "Economy" or null,
      "status": "Confirmed" or null
    }
  ]
}

CRITICAL TIME RULES:
1. departure_time and arrival_time MUST be the EXACT local clock time printed on the document.
2. DO NOT convert between timezones. DO NOT add or apply any UTC offset. DO NOT append "Z".
   If the ticket says "24 Jul 2025 11:45", return "2025-07-24T11:45:00".
3. Always use the shape YYYY-MM-DDTHH:MM:SS (24-hour clock, seconds = 00 when not shown).
4. If the arrival date is not printed but the arrival time is, use the departure date
   (or the next day when the document marks +1).

OTHER RULES:
- origin_code / destination_code are 3-letter IATA airport codes, uppercase.
- booking_reference is the PNR / booking code shared by all legs, if shown.
- If a field is not visible, set it to null. Never invent values.
- If this document contains no flights, return {"booking_reference": null, "flights": []}."""


HOTEL_EXTRACTION_PROMPT = """You are a hotel booking extraction engine.

This document is a hotel, hostel, resort, or holiday-rental booking confirmation.
Extract EVERY stay shown. Multiple properties or separate stays get one entry each, in document order.

Return ONLY valid JSON with this structure:
{
  "booking_reference": "..." or null,
  "accommodations": [
    {
      "hotel_name": "..." or null,
      "address": "..." or null,
      "check_in_date": "YYYY-MM-DDTHH:MM:SS" or null,
      "check_out_date": "YYYY-MM-DDTHH:MM:SS" or null,
      "reservation_number": "..." or null,
      "confirmation_number": "..." or null,
      "guest_name": "..." or null,
      "room_type": "..." or null,
      "room_number": "..." or null,
      "number_of_guests": 2 or null,
      "number_of_nights": 3 or null,
      "hotel_chain": "..." or null,
      "phone_number": "..." or null,
      "email": "..." or null,
      "total_amount": 123.45 or null,
      "currency": "INR" or null,
      "cancellation_policy": "..." or null,
      "special_requests": "..." or null,
      "payment_status": "Paid" or null
    }
  ]
}

CRITICAL DATE RULES:
1. check_in_date / check_out_date use the shape YYYY-MM-DDTHH:MM:SS.
2. If the document states a check-in or check-out time (e.g. "Check-in from 14:00"), use it exactly
   as printed, in local time. DO NOT convert timezones and DO NOT append "Z".
3. If no time is stated, use T00:00:00.

OTHER RULES:
- total_amount is a number only, without currency symbols or thousands separators.
- currency is a 3-letter ISO code.
- number_of_guests and number_of_nights are integers.
- If a field is not visible, set it to null. Never invent values.
- If this document contains no stays, return {"booking_reference": null, "accommodations": []}."""
