"""Canonical lead shape: field extraction, dedupe, and data-quality scoring."""

from __future__ import annotations

import html
import json
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

MAX_CATEGORIES = 20
HOURS_FALLBACK = "Hours available on request"

TITLE_KEYS = ("title", "name", "businessName")
ADDRESS_KEYS = ("address", "formattedAddress", "formatted_address", "vicinity")
PHONE_KEYS = ("phone", "phoneNumber", "phone_number", "formatted_phone_number")
WEBSITE_KEYS = ("website", "link", "url", "websiteUrl")
RATING_KEYS = ("rating", "ratingValue", "stars")
REVIEWS_KEYS = ("reviewsCount", "reviews", "user_ratings_total", "ratingCount")
PLACE_ID_KEYS = ("placeId", "place_id", "cid")
THUMBNAIL_KEYS = ("thumbnail", "thumbnailUrl", "imageUrl")
PRICE_KEYS = ("priceLevel", "price_level", "price")
HOURS_KEYS = ("hours", "workingHours", "openingHours", "operating_hours")
CATEGORY_LIST_KEYS = ("categories", "types")
CATEGORY_TEXT_KEYS = ("category", "type")

HTML_TAG = re.compile(r"<[^>]+>")


def _first_present(raw: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        return None
    # NaN and infinities are not valid JSON numbers.
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if number is None:
        return None
    return int(number)


def extract_place_id(raw: Dict[str, Any]) -> Optional[str]:
    value = _first_present(raw, PLACE_ID_KEYS)
    return _clean_text(value)


def _coordinate_pair(node: Any) -> Tuple[Optional[float], Optional[float]]:
    if not isinstance(node, dict):
        return None, None
    latitude = _to_float(node.get("latitude", node.get("lat")))
    longitude = _to_float(node.get("longitude", node.get("lng", node.get("lon"))))
    return latitude, longitude


def extract_coordinates(raw: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    """Direct fields, then ``coordinates``, then ``gps_coordinates``; first full pair wins."""
    for node in (raw, raw.get("coordinates"), raw.get("gps_coordinates")):
        latitude, longitude = _coordinate_pair(node)
        if latitude is not None and longitude is not None:
            return latitude, longitude
    return None, None


def coerce_hours(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = html.unescape(HTML_TAG.sub(" ", value))
        text = re.sub(r"\s+", " ", text).strip()
        return text or None
    if isinstance(value, (list, tuple)):
        parts = [coerce_hours(item) if not isinstance(item, dict) else _json_hours(item) for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or None
    if isinstance(value, dict):
        return _json_hours(value)
    return _clean_text(value)


def _json_hours(value: Dict[str, Any]) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        return HOURS_FALLBACK


def normalize_price_level(value: Any) -> Optional[str]:
    """``"$$"`` and ``2`` both normalize to ``"2"``."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "any":
        return None
    if set(text) <= {"$", "£", "€"}:
        return str(len(text))
    number = _to_int(text)
    if number is not None:
        return str(number)
    return text


def extract_categories(raw: Dict[str, Any]) -> List[str]:
    categories: List[str] = []
    listed = _first_present(raw, CATEGORY_LIST_KEYS)
    if isinstance(listed, (list, tuple)):
        categories = [str(item).strip() for item in listed if str(item or "").strip()]
    elif isinstance(listed, str):
        categories = [listed.strip()]
    if not categories:
        single = _clean_text(_first_present(raw, CATEGORY_TEXT_KEYS))
        if single:
            categories = [single]
    return categories[:MAX_CATEGORIES]


def compute_data_quality(result: Dict[str, Any]) -> int:
    score = 0
    if result.get("latitude") is not None and result.get("longitude") is not None:
        score += 2
    for key in ("website", "phone", "hours"):
        if result.get(key):
            score += 1
    return min(score, 5)


def normalize_result(raw: Dict[str, Any]) -> Dict[str, Any]:
    latitude, longitude = extract_coordinates(raw)
    result: Dict[str, Any] = {
        "title": _clean_text(_first_present(raw, TITLE_KEYS)),
        "address": _clean_text(_first_present(raw, ADDRESS_KEYS)),
        "phone": _clean_text(_first_present(raw, PHONE_KEYS)),
        "website": _clean_text(_first_present(raw, WEBSITE_KEYS)),
        "rating": _to_float(_first_present(raw, RATING_KEYS)),
        "reviewsCount": _to_int(_first_present(raw, REVIEWS_KEYS)),
        "placeId": extract_place_id(raw),
        "categories": extract_categories(raw),
        "thumbnail": _clean_text(_first_present(raw, THUMBNAIL_KEYS)),
        "priceLevel": normalize_price_level(_first_present(raw, PRICE_KEYS)),
        "latitude": latitude,
        "longitude": longitude,
        "hours": coerce_hours(_first_present(raw, HOURS_KEYS)),
    }
    result["dataQuality"] = compute_data_quality(result)
    # Unknown fields are omitted rather than sent as null.
    return {key: value for key, value in result.items() if value is not None}


def dedupe_results(raw_results: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop repeats of a place id, keeping the first one seen; id-less results always pass."""
    seen: Set[str] = set()
    unique: List[Dict[str, Any]] = []
    for raw in raw_results:
        if not isinstance(raw, dict):
            continue
        place_id = extract_place_id(raw)
        if place_id is not None:
            if place_id in seen:
                continue
            seen.add(place_id)
        unique.append(raw)
    return unique


def normalize_results(raw_results: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [normalize_result(raw) for raw in dedupe_results(raw_results)]
