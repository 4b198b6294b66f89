"""
Post-processing of the free-text `details` the extraction oracle returns.

Turns raw strings into values the client can act on directly (tap-to-call, tap-to-navigate,
tap-to-email). Nothing in here raises: every value is either repaired or passed through
unchanged.

Phone handling is a heuristic, not a numbering-plan parser. A national number whose
leading digits happen to equal a calling code (e.g. a long Brazilian-looking "55...")
gets a "+" it should not have; a short international number without "+"/"00" is left
alone.
"""

from __future__ import annotations

import re
from typing import Any

from tripdochub.modules.documents.models import DocumentCategory

_COMMON_KEYS = ("confirmationNumber", "phoneNumber", "emailAddress")

KNOWN_DETAIL_KEYS: dict[DocumentCategory, tuple[str, ...]] = {
    DocumentCategory.FLIGHT: _COMMON_KEYS
    + (
        "airline",
        "flightNumber",
        "departureAirport",
        "arrivalAirport",
        "departureTime",
        "arrivalTime",
        "departureAddress",
        "arrivalAddress",
        "seatNumber",
        "terminal",
        "gate",
        "passengerName",
    ),
    DocumentCategory.ACCOMMODATION: _COMMON_KEYS
    + ("hotelName", "checkInDate", "checkOutDate", "roomType", "address", "guestName"),
    DocumentCategory.CAR_RENTAL: _COMMON_KEYS
    + (
        "carCompany",
        "pickupLocation",
        "dropoffLocation",
        "pickupAddress",
        "dropoffAddress",
        "pickupTime",
        "dropoffTime",
        "vehicleType",
    ),
    DocumentCategory.MEDICAL: _COMMON_KEYS
    + ("insuranceProvider", "policyNumber", "coveragePeriod"),
    DocumentCategory.EVENT: _COMMON_KEYS
    + ("eventName", "eventDate", "eventTime", "venue", "venueAddress"),
    DocumentCategory.OTHER: _COMMON_KEYS,
}

# Address keys that may be handed to a map, in preference order.
NAVIGATION_KEYS: dict[DocumentCategory, tuple[str, ...]] = {
    DocumentCategory.ACCOMMODATION: ("address",),
    DocumentCategory.CAR_RENTAL: ("pickupAddress", "dropoffAddress"),
    DocumentCategory.EVENT: ("venueAddress",),
    DocumentCategory.FLIGHT: ("arrivalAddress", "departureAddress"),
}

COUNTRY_CALLING_CODES: tuple[str, ...] = (
    "1", "7", "20", "27", "30", "31", "32", "33", "34", "36", "39", "40", "41", "43", "44",
    "45", "46", "47", "48", "49", "52", "55", "60", "61", "62", "63", "64", "65", "66", "81",
    "82", "84", "86", "90", "91", "351", "353", "358", "420", "852", "886", "971", "972",
)  # fmt: skip

AIRPORT_ADDRESSES: dict[str, str] = {
    "AMS": "Amsterdam Airport Schiphol, Evert van de Beekstraat 202, Schiphol, Netherlands",
    "ATH": "Athens International Airport, Attiki Odos, Spata, Greece",
    "ATL": "Hartsfield-Jackson Atlanta International Airport, Atlanta, GA, USA",
    "BCN": "Barcelona-El Prat Airport, El Prat de Llobregat, Barcelona, Spain",
    "BER": "Berlin Brandenburg Airport, Willy-Brandt-Platz, Schonefeld, Germany",
    "BKK": "Suvarnabhumi Airport, Bang Phli, Samut Prakan, Thailand",
    "BOS": "Boston Logan International Airport, 1 Harborside Dr, Boston, MA, USA",
    "BUD": "Budapest Ferenc Liszt International Airport, 1185 Budapest, Hungary",
    "CDG": "Paris Charles de Gaulle Airport, 95700 Roissy-en-France, France",
    "CPH": "Copenhagen Airport, Lufthavnsboulevarden 6, Kastrup, Denmark",
    "DEN": "Denver International Airport, 8500 Pena Blvd, Denver, CO, USA",
    "DFW": "Dallas/Fort Worth International Airport, 2400 Aviation Dr, DFW Airport, TX, USA",
    "DXB": "Dubai International Airport, Dubai, United Arab Emirates",
    "DUB": "Dublin Airport, Collinstown, Dublin, Ireland",
    "EWR": "Newark Liberty International Airport, 3 Brewster Rd, Newark, NJ, USA",
    "FCO": "Rome Fiumicino Airport, Via dell'Aeroporto di Fiumicino, Fiumicino, Italy",
    "FRA": "Frankfurt Airport, 60547 Frankfurt am Main, Germany",
    "GVA": "Geneva Airport, Route de l'Aeroport 21, Le Grand-Saconnex, Switzerland",
    "HKG": "Hong Kong International Airport, 1 Sky Plaza Rd, Chek Lap Kok, Hong Kong",
    "HND": "Tokyo Haneda Airport, Hanedakuko, Ota City, Tokyo, Japan",
    "IAD": "Washington Dulles International Airport, 1 Saarinen Cir, Dulles, VA, USA",
    "ICN": "Incheon International Airport, 272 Gonghang-ro, Incheon, South Korea",
    "IST": "Istanbul Airport, Tayakadin, Arnavutkoy, Istanbul, Turkey",
    "JFK": "John F. Kennedy International Airport, Queens, New York, NY 11430, USA",
    "LAX": "Los Angeles International Airport, 1 World Way, Los Angeles, CA 90045, USA",
    "LCA": "Larnaca International Airport, Larnaca, Cyprus",
    "LGW": "London Gatwick Airport, Horley, Gatwick RH6 0NP, United Kingdom",
    "LHR": "London Heathrow Airport, Longford, Hounslow TW6, United Kingdom",
    "LIS": "Lisbon Humberto Delgado Airport, Alameda das Comunidades Portuguesas, Lisbon, Portugal",
    "MAD": "Adolfo Suarez Madrid-Barajas Airport, Av de la Hispanidad, Madrid, Spain",
    "MIA": "Miami International Airport, 2100 NW 42nd Ave, Miami, FL, USA",
    "MUC": "Munich Airport, Nordallee 25, 85356 Munich, Germany",
    "MXP": "Milan Malpensa Airport, 21010 Ferno, Varese, Italy",
    "NRT": "Narita International Airport, 1-1 Furugome, Narita, Chiba, Japan",
    "ORD": "O'Hare International Airport, 10000 W O'Hare Ave, Chicago, IL, USA",
    "OSL": "Oslo Airport Gardermoen, Edvard Munchs veg, Gardermoen, Norway",
    "PRG": "Vaclav Havel Airport Prague, Aviaticka, 161 08 Prague 6, Czech Republic",
    "SFO": "San Francisco International Airport, San Francisco, CA 94128, USA",
    "SIN": "Singapore Changi Airport, Airport Blvd, Singapore",
    "STN": "London Stansted Airport, Bassingbourn Rd, Stansted CM24 1QW, United Kingdom",
    "SYD": "Sydney Kingsford Smith Airport, Mascot NSW 2020, Australia",
    "TLV": "Ben Gurion Airport, Tel Aviv, Israel",
    "VIE": "Vienna International Airport, 1300 Schwechat, Austria",
    "VRN": "Verona Villafranca Airport, Caselle, Verona, Italy",
    "WAW": "Warsaw Chopin Airport, Zwirki i Wigury 1, Warsaw, Poland",
    "YYZ": "Toronto Pearson International Airport, 6301 Silver Dart Dr, Mississauga, ON, Canada",
    "ZRH": "Zurich Airport, 8058 Zurich, Switzerland",
}

_ADDRESS_KEYWORDS = re.compile(
    r"street|str\.|avenue|ave\.|road|rd\.|boulevard|blvd\.|highway|hwy\.|lane|ln\.|"
    r"drive|dr\.|airport|terminal|plaza|center|centre",
    re.IGNORECASE,
)
_IATA_EXACT = re.compile(r"^[A-Za-z]{3}$")
_IATA_IN_PARENS = re.compile(r"\(([A-Z]{3})\)")
_IATA_TOKEN = re.compile(r"\b([A-Z]{3})\b")


def normalize_phone(phone: str | None) -> str | None:
    if not phone:
        return phone
    formatted = phone.strip()
    if not formatted or formatted.startswith("+"):
        return formatted
    if formatted.startswith("00"):
        return "+" + formatted[2:]
    # "(555) 123-4567" style is national notation; leave it alone.
    if not formatted[0].isdigit():
        return formatted

    digits = re.sub(r"\D", "", formatted)
    for prefix in COUNTRY_CALLING_CODES:
        if digits.startswith(prefix) and len(formatted) > len(prefix) + 6:
            return "+" + formatted
    return formatted


def is_navigable_address(address: str | None) -> bool:
    if not address or not address.strip():
        return False
    return (
        any(ch.isdigit() for ch in address)
        or _ADDRESS_KEYWORDS.search(address) is not None
        or "," in address
    )


def airport_code(value: str | None) -> str | None:
    """IATA code out of values like "TLV", "Tel Aviv (TLV)" or "BUD Budapest"."""
    if not value:
        return None
    s = value.strip()
    if _IATA_EXACT.match(s):
        return s.upper()
    m = _IATA_IN_PARENS.search(s) or _IATA_TOKEN.search(s)
    return m.group(1) if m else None


def resolve_airport_address(code: str | None, *, terminal: str | None = None) -> str | None:
    if not code:
        return None
    address = AIRPORT_ADDRESSES.get(code.strip().upper())
    if not address:
        return None
    terminal = (terminal or "").strip()
    if terminal:
        label = terminal if terminal.lower().startswith("terminal") else f"Terminal {terminal}"
        address = f"{label}, {address}"
    return address


def coerce_details(raw: Any) -> dict[str, str]:
    """Flatten the oracle's `details` into a string map; nested values are dropped."""
    if not isinstance(raw, dict):
        return {}
    out: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            value = "yes" if value else "no"
        text = str(value).strip()
        if text:
            out[key.strip()] = text
    return out


def repair_details(category: DocumentCategory, details: dict[str, str]) -> dict[str, str]:
    out = dict(details)

    phone = out.get("phoneNumber")
    if phone:
        out["phoneNumber"] = normalize_phone(phone) or phone

    email = out.get("emailAddress")
    if email:
        out["emailAddress"] = email.removeprefix("mailto:").strip()

    if category == DocumentCategory.FLIGHT:
        for address_key, airport_key, terminal in (
            ("departureAddress", "departureAirport", out.get("terminal")),
            ("arrivalAddress", "arrivalAirport", None),
        ):
            if is_navigable_address(out.get(address_key)):
                continue
            resolved = resolve_airport_address(
                airport_code(out.get(airport_key)), terminal=terminal
            )
            if resolved:
                out[address_key] = resolved
    return out


def navigation_address(category: DocumentCategory, details: dict[str, str]) -> str | None:
    for key in NAVIGATION_KEYS.get(category, ()):
        value = details.get(key)
        if is_navigable_address(value):
            return value
    return None


def known_details(category: DocumentCategory, details: dict[str, str]) -> dict[str, str]:
    keys = KNOWN_DETAIL_KEYS.get(category, _COMMON_KEYS)
    return {k: details[k] for k in keys if details.get(k)}
