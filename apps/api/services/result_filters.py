"""Post-fetch filters, the hard result cap, and the address-based location check."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from config import settings
from services.geography import address_mentions_country
from services.lead_normalizer import normalize_price_level


def effective_result_cap(requested: Any) -> int:
    hard_cap = max(int(settings.LEAD_FINDER_HARD_RESULT_CAP), 1)
    try:
        wanted = int(requested)
    except (TypeError, ValueError):
        wanted = int(settings.LEAD_FINDER_DEFAULT_MAX_RESULTS)
    if wanted <= 0:
        wanted = int(settings.LEAD_FINDER_DEFAULT_MAX_RESULTS)
    return min(wanted, hard_cap)


def apply_result_filters(
    results: List[Dict[str, Any]],
    *,
    min_rating: Optional[float] = None,
    max_rating: Optional[float] = None,
    price_level: Optional[str] = None,
    max_results: Any = None,
) -> List[Dict[str, Any]]:
    filtered = list(results)
    if min_rating is not None:
        filtered = [item for item in filtered if item.get("rating") is not None and item["rating"] >= min_rating]
    if max_rating is not None:
        filtered = [item for item in filtered if item.get("rating") is not None and item["rating"] <= max_rating]

    wanted_price = normalize_price_level(price_level)
    if wanted_price is not None:
        filtered = [item for item in filtered if item.get("priceLevel") == wanted_price]

    return filtered[: effective_result_cap(max_results)]


def address_location_warning(
    results: List[Dict[str, Any]],
    country_code: str,
    location: str,
) -> Optional[str]:
    """Warn when too few result addresses mention the expected country."""
    if not results:
        return None
    matching = sum(1 for item in results if address_mentions_country(item.get("address"), country_code))
    share = matching / len(results)
    if share >= float(settings.LEAD_FINDER_LOCATION_MATCH_THRESHOLD):
        return None
    return (
        f"Only {matching} of {len(results)} results appear to be in {country_code.upper()}. "
        f'The provider may have misread "{location}"; try adding a city and country.'
    )


def no_results_warning(query: str, location: str) -> str:
    return f'No businesses found for "{query}" in "{location}". Try a broader search term or a nearby location.'
