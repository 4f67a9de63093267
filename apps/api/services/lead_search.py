"""Lead search orchestration: balance check, fetch, normalize, filter, settle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import (
    EntitlementRequiredError,
    InsufficientCreditsError,
    MissingParametersError,
    ProviderConfigurationError,
)
from services.credits import resolve_credit_balance, settle_search
from services.geography import build_location_query
from services.lead_normalizer import normalize_results
from services.place_details import enrich_result_details
from services.result_filters import (
    address_location_warning,
    apply_result_filters,
    effective_result_cap,
    no_results_warning,
)
from services.search_provider import SearchProviderClient, fetch_search_pages

logger = logging.getLogger(__name__)


@dataclass
class LeadSearchParams:
    query: Optional[str]
    location: Optional[str]
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None
    radius_km: Optional[float] = None
    max_results: Optional[int] = None
    price_level: Optional[str] = None
    open_now: bool = False
    place_id: Optional[str] = None
    lat: Any = None
    lng: Any = None


def _allowed_plans() -> set:
    return {str(plan).strip().lower() for plan in settings.LEAD_FINDER_ALLOWED_PLANS}


async def run_lead_search_service(
    *,
    user_id: str,
    params: LeadSearchParams,
    db: AsyncSession,
    provider: Optional[SearchProviderClient],
) -> Dict[str, Any]:
    query = str(params.query or "").strip()
    location = str(params.location or "").strip()
    if not query or not location:
        raise MissingParametersError()

    snapshot = await resolve_credit_balance(user_id, db)
    if snapshot.plan_type not in _allowed_plans():
        raise EntitlementRequiredError(f"The {snapshot.plan_type} plan does not include lead finder searches.")
    if snapshot.total_remaining <= 0:
        raise InsufficientCreditsError(
            "You have no searches remaining this month. Please purchase a package to continue searching."
        )
    if provider is None:
        raise ProviderConfigurationError("SEARCH_PROVIDER_API_KEY is not configured.")

    max_results = effective_result_cap(params.max_results)
    location_query = build_location_query(
        query,
        location,
        lat=params.lat,
        lng=params.lng,
        radius_km=params.radius_km,
    )
    logger.info(
        "Lead search user=%s q=%r gl=%s biased=%s max_results=%d",
        user_id,
        location_query.search_text,
        location_query.country_code,
        location_query.bias is not None,
        max_results,
    )

    fetched = await fetch_search_pages(provider, location_query, max_results)
    leads = normalize_results(fetched.raw_results)

    if params.place_id and leads:
        leads = await enrich_result_details(provider, leads, params.place_id, location_query.country_code)

    results = apply_result_filters(
        leads,
        min_rating=params.min_rating,
        max_rating=params.max_rating,
        price_level=params.price_level,
        max_results=max_results,
    )

    location_warning = fetched.location_warning
    if not fetched.raw_results:
        location_warning = no_results_warning(query, location_query.location or location)
    else:
        location_warning = (
            address_location_warning(results, location_query.country_code, location_query.location or location)
            or location_warning
        )

    ledger = await settle_search(
        db,
        user_id=user_id,
        snapshot=snapshot,
        query=query,
        location=location,
        results_count=len(results),
    )
    logger.info(
        "Lead search settled user=%s results=%d pages=%d stop=%s decremented=%s source=%s",
        user_id,
        len(results),
        fetched.pages_fetched,
        fetched.stop_reason,
        ledger.credit_decremented,
        ledger.credit_source,
    )

    payload: Dict[str, Any] = {
        "results": results,
        "remaining_searches": ledger.remaining_searches,
    }
    if location_warning:
        payload["location_warning"] = location_warning
    return payload
