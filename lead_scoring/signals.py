"""
Text signal extraction for CarBot lead scoring.

Keyword tables cover German, English, Turkish and Polish in one flat list
per concern, so a single substring scan handles all four languages.
Matching is plain case-insensitive containment: no tokenizing, no word
boundaries. "motor" therefore also fires inside "motorrad".
"""

import re
from typing import Any, Iterable, List, Optional, Sequence

URGENCY_KEYWORDS = (
    "sofort", "dringend", "notfall", "hilfe", "kaputt", "defekt",
    "immediately", "urgent", "emergency", "help", "broken",
    "acil", "yardım", "bozuk", "arızalı",
    "pilnie", "natychmiast", "pomoc", "zepsuty",
)

TIME_PRESSURE_KEYWORDS = (
    "heute", "morgen", "asap", "schnell",
    "today", "tomorrow", "quickly", "fast",
    "bugün", "yarın", "hızlı", "çabuk",
    "dziś", "jutro", "szybko", "natychmiast",
)

PURCHASE_INTENT_KEYWORDS = (
    "kaufen", "buchen", "bestellen", "reservieren", "termin",
    "buy", "book", "order", "reserve", "appointment",
    "satın al", "rezervasyon", "randevu",
    "kupić", "zamówić", "rezerwacja", "wizyta",
)

SERVICE_INTENT_KEYWORDS = (
    "reparatur", "wartung", "service", "inspektion",
    "repair", "maintenance", "inspection",
    "tamir", "bakım", "servis",
    "naprawa", "konserwacja", "serwis",
)

HIGH_VALUE_SERVICE_KEYWORDS = (
    "tüv", "hauptuntersuchung", "bremsen", "motor",
    "inspection", "brakes", "engine",
    "muayene", "fren",
    "przegląd", "hamulce", "silnik",
)

POLITENESS_KEYWORDS = (
    "bitte", "danke", "vielen dank", "freundliche grüße",
    "please", "thank you", "thanks", "best regards",
    "lütfen", "teşekkür", "saygılar",
    "proszę", "dziękuję", "pozdrawiam",
)

TECHNICAL_KEYWORDS = (
    "motor", "getriebe", "bremse", "kupplung", "turbo",
    "engine", "transmission", "brake", "clutch",
    "şanzıman", "fren", "debriyaj",
    "silnik", "skrzynia", "hamulec", "sprzęgło",
)

# Markers of a "complex" user message (engagement)
QUESTION_KEYWORDS = (
    "?", "wie", "how", "wann", "when",
    "kosten", "cost", "preis", "price",
)

PRICE_KEYWORDS = ("kosten", "preis", "cost", "price")

VEHICLE_DETAIL_KEYWORDS = ("km", "baujahr", "model")

_YEAR_PATTERN = re.compile(r"\d{4}")


def normalize(text: Optional[Any]) -> str:
    """Lowercase text for matching; None and non-strings become ''."""
    if not isinstance(text, str):
        return ""
    return text.lower()


def matched_keywords(text: Optional[str], keywords: Sequence[str]) -> List[str]:
    """Return the distinct keywords contained in text, in table order."""
    haystack = normalize(text)
    if not haystack:
        return []
    return [kw for kw in dict.fromkeys(keywords) if kw in haystack]


def contains_any(text: Optional[str], keywords: Iterable[str]) -> bool:
    """True if any keyword occurs in text."""
    haystack = normalize(text)
    return bool(haystack) and any(kw in haystack for kw in keywords)


def count_occurrences(text: Optional[str], keyword: str) -> int:
    """Count non-overlapping occurrences of keyword in text."""
    haystack = normalize(text)
    if not haystack or not keyword:
        return 0
    return haystack.count(keyword)


def has_vehicle_details(text: Optional[str]) -> bool:
    """A year-like number, mileage, or model/build-year mention."""
    haystack = normalize(text)
    if not haystack:
        return False
    return bool(_YEAR_PATTERN.search(haystack)) or contains_any(
        haystack, VEHICLE_DETAIL_KEYWORDS
    )


def transcript(contents: Iterable[Optional[str]]) -> str:
    """Join message contents into one lowercased string."""
    return " ".join(normalize(c) for c in contents)
