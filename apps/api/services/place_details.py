"""Read-through Redis cache for place-detail lookups."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from config import settings
from services.lead_normalizer import compute_data_quality, normalize_result
from services.search_provider import SearchProviderClient, UpstreamShapeError, parse_upstream_payload

logger = logging.getLogger(__name__)

ENRICHABLE_FIELDS = ("phone", "website", "hours", "address", "latitude", "longitude", "thumbnail")


def _place_cache_key(place_id: str) -> str:
    return f"lead_finder:place:{place_id}"


def _cache_enabled() -> bool:
    return bool((settings.REDIS_URL or "").strip()) and int(settings.PLACE_DETAILS_CACHE_TTL_SECONDS) > 0


async def _load_cached_place(place_id: str) -> Optional[Dict[str, Any]]:
    if not _cache_enabled():
        return None

    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        raw = await client.get(_place_cache_key(place_id))
        if not raw:
            return None
        parsed = json.loads(raw)
        return parsed if isinstance(parsed, dict) else None
    except Exception as exc:
        logger.warning("Place details cache read failed for %s: %s", place_id, exc)
        return None
    finally:
        await client.aclose()


async def _store_cached_place(place_id: str, payload: Dict[str, Any]) -> None:
    if not _cache_enabled():
        return

    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.setex(
            _place_cache_key(place_id),
            int(settings.PLACE_DETAILS_CACHE_TTL_SECONDS),
            json.dumps(payload, separators=(",", ":"), ensure_ascii=True),
        )
    except Exception as exc:
        logger.warning("Place details cache write failed for %s: %s", place_id, exc)
    finally:
        await client.aclose()


async def get_place_details(
    provider: SearchProviderClient,
    place_id: str,
    country_code: str = "us",
) -> Optional[Dict[str, Any]]:
    """Return the raw upstream payload for a place, or None if unavailable."""
    place_key = str(place_id or "").strip()
    if not place_key:
        return None

    cached = await _load_cached_place(place_key)
    if cached is not None:
        return cached

    try:
        payload = await provider.lookup_place(place_key, country_code)
    except Exception as exc:
        logger.warning("Place details lookup failed for %s: %s", place_key, exc)
        return None

    await _store_cached_place(place_key, payload)
    return payload


def _details_record(payload: Dict[str, Any], place_id: str) -> Optional[Dict[str, Any]]:
    try:
        candidates = parse_upstream_payload(payload).results
    except UpstreamShapeError:
        candidates = [payload]
    for candidate in candidates:
        normalized = normalize_result(candidate)
        if normalized.get("placeId") in (None, place_id):
            return normalized
    return None


async def enrich_result_details(
    provider: SearchProviderClient,
    results: List[Dict[str, Any]],
    place_id: str,
    country_code: str,
) -> List[Dict[str, Any]]:
    """Fill missing contact fields on the result matching ``place_id``."""
    target = next((item for item in results if item.get("placeId") == place_id), None)
    if target is None:
        return results

    payload = await get_place_details(provider, place_id, country_code)
    if not payload:
        return results
    details = _details_record(payload, place_id)
    if not details:
        return results

    for key in ENRICHABLE_FIELDS:
        if target.get(key) is None and details.get(key) is not None:
            target[key] = details[key]
    target["dataQuality"] = compute_data_quality(target)
    return results
