"""Location parsing: country inference, coordinate annotations, query building."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from config import settings

DEFAULT_COUNTRY_CODE = "us"

# Checked in order; the first country whose token appears in the location wins.
COUNTRY_TOKENS: List[Tuple[str, Tuple[str, ...]]] = [
    ("gb", ("united kingdom", "great britain", "uk", "england", "scotland", "wales", "northern ireland")),
    ("us", ("united states", "usa", "america")),
    ("es", ("spain", "españa")),
    ("ca", ("canada",)),
    ("au", ("australia",)),
    ("de", ("germany", "deutschland")),
    ("fr", ("france",)),
    ("it", ("italy", "italia")),
    ("ie", ("ireland",)),
]

# Exact match against the last comma-separated segment, checked before token scanning.
COUNTRY_SEGMENTS: Dict[str, str] = {
    "uk": "gb",
    "gb": "gb",
    "united kingdom": "gb",
    "great britain": "gb",
    "england": "gb",
    "scotland": "gb",
    "wales": "gb",
    "northern ireland": "gb",
    "us": "us",
    "usa": "us",
    "united states": "us",
    "united states of america": "us",
    "america": "us",
    "spain": "es",
    "canada": "ca",
    "australia": "au",
    "germany": "de",
    "france": "fr",
    "italy": "it",
    "ireland": "ie",
}

# Tokens that, when present in an address, place it in the country.
ADDRESS_COUNTRY_TOKENS: Dict[str, Tuple[str, ...]] = {
    "gb": ("uk", "united kingdom", "england", "scotland", "wales", "northern ireland", "gb"),
    "us": ("usa", "united states", "us"),
    # Bare codes like "ca" or "de" collide with US states and street particles.
    "es": ("spain", "españa"),
    "ca": ("canada",),
    "au": ("australia",),
    "de": ("germany", "deutschland"),
    "fr": ("france",),
    "it": ("italy", "italia"),
    "ie": ("ireland",),
}

COORDINATE_ANNOTATION = re.compile(
    r"@\s*-?\d{1,3}(?:\.\d+)?\s*,\s*-?\d{1,3}(?:\.\d+)?(?:\s*,\s*\d+(?:\.\d+)?z)?",
    flags=re.IGNORECASE,
)
TRAILING_US = re.compile(r"(?:^|[\s,])us\.?$", flags=re.IGNORECASE)
# US addresses usually end in "ST 12345" rather than naming the country.
US_STATE_ZIP = re.compile(r"\b[A-Z]{2}\s+\d{5}(?:-\d{4})?\b")


@dataclass(frozen=True)
class SearchBias:
    latitude: float
    longitude: float
    radius_meters: int

    def as_params(self) -> Dict[str, Any]:
        return {
            "ll": f"@{self.latitude},{self.longitude},14z",
            "radius": self.radius_meters,
        }


@dataclass(frozen=True)
class LocationQuery:
    query: str
    location: str
    country_code: str
    bias: Optional[SearchBias] = None

    @property
    def search_text(self) -> str:
        if not self.location:
            return self.query
        return f"{self.query} in {self.location}"


def _contains_token(text: str, token: str) -> bool:
    return re.search(rf"(?<![a-z]){re.escape(token)}(?![a-z])", text) is not None


def strip_coordinate_annotation(location: str) -> str:
    """Remove embedded ``@lat,lng`` annotations from free-text locations."""
    cleaned = COORDINATE_ANNOTATION.sub("", str(location or ""))
    cleaned = re.sub(r"\s{2,}", " ", cleaned)
    return cleaned.strip(" ,")


def infer_country_code(location: str) -> str:
    text = strip_coordinate_annotation(location).lower()
    if not text:
        return DEFAULT_COUNTRY_CODE

    last_segment = text.rsplit(",", 1)[-1].strip().rstrip(".")
    if last_segment in COUNTRY_SEGMENTS:
        return COUNTRY_SEGMENTS[last_segment]

    for code, tokens in COUNTRY_TOKENS:
        if any(_contains_token(text, token) for token in tokens):
            return code
    if TRAILING_US.search(text):
        return "us"
    return DEFAULT_COUNTRY_CODE


def address_mentions_country(address: Any, country_code: str) -> bool:
    raw = str(address or "")
    text = raw.lower()
    if not text:
        return False
    if country_code == "us" and US_STATE_ZIP.search(raw):
        return True
    tokens = ADDRESS_COUNTRY_TOKENS.get(country_code, (country_code,))
    return any(_contains_token(text, token) for token in tokens)


def _parse_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_search_bias(lat: Any, lng: Any, radius_km: Any = None) -> Optional[SearchBias]:
    """Build a radius bias from explicit coordinates; invalid input means no bias."""
    latitude = _parse_float(lat)
    longitude = _parse_float(lng)
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        return None

    radius = _parse_float(radius_km)
    if radius is None or radius <= 0:
        radius = settings.LEAD_FINDER_DEFAULT_RADIUS_KM
    radius_meters = int(min(radius * 1000, settings.LEAD_FINDER_MAX_RADIUS_METERS))
    return SearchBias(latitude=latitude, longitude=longitude, radius_meters=radius_meters)


def build_location_query(
    query: str,
    location: str,
    *,
    lat: Any = None,
    lng: Any = None,
    radius_km: Any = None,
) -> LocationQuery:
    cleaned_location = strip_coordinate_annotation(location)
    return LocationQuery(
        query=str(query or "").strip(),
        location=cleaned_location,
        country_code=infer_country_code(location),
        bias=parse_search_bias(lat, lng, radius_km),
    )
