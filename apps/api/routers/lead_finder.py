"""Lead finder router: metered search, balance, usage, and search packages."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import require_search_provider_key
from database import get_db
from exceptions import LeadFinderError
from models.user import User
from routers.auth_scope import AuthContext, ensure_admin_or_self, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.credits import get_usage_summary, resolve_credit_balance
from services.lead_search import LeadSearchParams, run_lead_search_service
from services.packages import grant_search_credits_service, list_search_packages_service
from services.search_provider import SearchProviderClient

router = APIRouter()
logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class PackageGrantRequest(BaseModel):
    user_id: Optional[str] = None
    package_id: Optional[str] = None
    credits: Optional[int] = Field(default=None, ge=1, le=100000)
    expiry_date: Optional[datetime] = None


def get_search_provider() -> Optional[SearchProviderClient]:
    try:
        api_key = require_search_provider_key()
    except ValueError:
        return None
    return SearchProviderClient(api_key=api_key)


async def _ensure_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(id=user_id, email=f"{user_id}@local.invalid")
    db.add(user)
    await db.flush()
    return user


@router.get("/search")
async def search_leads(
    query: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    min_rating: Optional[float] = Query(default=None, alias="minRating"),
    max_rating: Optional[float] = Query(default=None, alias="maxRating"),
    radius: Optional[float] = Query(default=None),
    max_results: Optional[int] = Query(default=None, alias="maxResults"),
    price_level: Optional[str] = Query(default=None, alias="priceLevel"),
    open_now: bool = Query(default=False, alias="openNow"),
    place_id: Optional[str] = Query(default=None, alias="placeId"),
    lat: Optional[str] = Query(default=None),
    lng: Optional[str] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("lead_finder_search", limit=30, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    provider: Optional[SearchProviderClient] = Depends(get_search_provider),
):
    params = LeadSearchParams(
        query=query,
        location=location,
        min_rating=min_rating,
        max_rating=max_rating,
        radius_km=radius,
        max_results=max_results,
        price_level=price_level,
        open_now=open_now,
        place_id=place_id,
        lat=lat,
        lng=lng,
    )
    try:
        if params.query and params.location:
            await _ensure_user(db, auth.user_id)
        return await run_lead_search_service(user_id=auth.user_id, params=params, db=db, provider=provider)
    except (LeadFinderError, HTTPException):
        raise
    except Exception as exc:
        logger.exception("Lead search failed for user %s", auth.user_id)
        raise HTTPException(status_code=500, detail=f"Search failed: {exc}") from exc


@router.get("/remaining-searches")
async def remaining_searches(
    user_id: Optional[str] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("lead_finder_balance", limit=120, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    snapshot = await resolve_credit_balance(scoped_user_id, db)
    return JSONResponse(content=snapshot.as_response(), headers=NO_STORE_HEADERS)


@router.get("/usage")
async def usage_summary(
    user_id: Optional[str] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("lead_finder_usage", limit=60, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    return await get_usage_summary(scoped_user_id, db)


@router.get("/packages")
async def list_packages(
    _rate_limit: None = Depends(rate_limit("lead_finder_packages", limit=60, window_seconds=60)),
    _auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"packages": await list_search_packages_service(db)}


@router.post("/packages/grant")
async def grant_package(
    request: PackageGrantRequest,
    _rate_limit: None = Depends(rate_limit("lead_finder_grant", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    target_user_id = ensure_admin_or_self(auth, request.user_id)
    if not request.package_id and request.credits is None:
        raise HTTPException(status_code=422, detail="Provide package_id or credits.")

    await _ensure_user(db, target_user_id)
    return await grant_search_credits_service(
        user_id=target_user_id,
        db=db,
        package_id=request.package_id,
        credits=request.credits,
        expiry_date=request.expiry_date,
    )
