from __future__ import annotations

from tripdochub.modules.documents.models import DocumentCategory
from tripdochub.modules.extraction.repair import KNOWN_DETAIL_KEYS

_CATEGORY_LIST = ", ".join(f'"{c.value}"' for c in DocumentCategory)

_CATEGORY_LABELS = {
    DocumentCategory.FLIGHT: "flights",
    DocumentCategory.ACCOMMODATION: "accommodations",
    DocumentCategory.CAR_RENTAL: "car rentals",
    DocumentCategory.MEDICAL: "medical / travel insurance",
    DocumentCategory.EVENT: "events",
}

_ADDRESS_HINT = (
    "Address fields must be complete street addresses including city and country, so they "
    "can be opened in a map. Phone numbers should keep their international prefix."
)


def _details_block() -> str:
    lines = []
    for category, label in _CATEGORY_LABELS.items():
        keys = ", ".join(KNOWN_DETAIL_KEYS[category])
        lines.append(f"- For {label}: {keys}")
    return "\n".join(lines)


def _fields_block(document_type_examples: str) -> str:
    return (
        "For each booking found, extract:\n"
        f"1. category: one of {_CATEGORY_LIST}\n"
        f"2. documentType: the kind of document (e.g. {document_type_examples})\n"
        '3. title: a short, clear title (e.g. "TLV → BUD" for a flight, '
        '"Grand Budapest Hotel" for a hotel)\n'
        "4. subtitle: extra context such as airline or rental company, or null\n"
        "5. documentDate: the primary date of the booking (flight date, check-in date, "
        "event date) in ISO 8601 format, or null\n"
        "6. details: an object of string values, using these keys where present:\n"
        + _details_block()
        + "\n\n"
        + _ADDRESS_HINT
    )


DOCUMENT_PROMPT = (
    "You are a travel document parser. Analyze the attached document (image or PDF) and "
    "extract every booking it contains.\n\n"
    + _fields_block(
        '"eTicket", "Boarding Pass", "Booking Confirmation", "Insurance Policy", '
        '"Event Ticket", "Receipt"'
    )
    + "\n\nReturn a JSON object with a \"documents\" array holding one entry per booking. "
    "A round-trip ticket is two bookings. If nothing is found, return an empty array."
)

EMAIL_PROMPT = (
    "You are a travel booking email parser. The text below is a forwarded email that may "
    "contain booking confirmations, itineraries or reservation details.\n\n"
    + _fields_block(
        '"eTicket", "Booking Confirmation", "Itinerary", "Reservation", "Receipt"'
    )
    + "\n\nReturn a JSON object with a \"documents\" array holding one entry per booking. "
    "If the email holds no travel bookings, return an empty array. Only extract actual "
    "bookings; ignore promotional content, newsletters and general travel tips."
)


def email_context(*, subject: str | None, sender: str | None) -> str:
    header = ""
    if subject:
        header += f"Email Subject: {subject}\n"
    if sender:
        header += f"From: {sender}\n"
    return header + "\nEmail Content:\n"
