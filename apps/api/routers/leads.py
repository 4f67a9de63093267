"""Saved leads router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.leads import (
    delete_lead_service,
    list_leads_service,
    save_lead_service,
    update_lead_service,
)

router = APIRouter()


class LeadPayload(BaseModel):
    business_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    place_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None
    status: Optional[str] = None


async def _ensure_user(db: AsyncSession, user_id: str) -> None:
    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none():
        return
    db.add(User(id=user_id, email=f"{user_id}@local.invalid"))
    await db.flush()


@router.get("")
async def list_leads(
    _rate_limit: None = Depends(rate_limit("lead_finder_leads", limit=120, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"leads": await list_leads_service(auth.user_id, db)}


@router.post("")
async def save_lead(
    request: LeadPayload,
    _rate_limit: None = Depends(rate_limit("lead_finder_leads", limit=120, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_user(db, auth.user_id)
    return await save_lead_service(auth.user_id, request.model_dump(exclude_unset=True), db)


@router.put("/{lead_id}")
async def update_lead(
    lead_id: str,
    request: LeadPayload,
    _rate_limit: None = Depends(rate_limit("lead_finder_leads", limit=120, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_lead_service(auth.user_id, lead_id, request.model_dump(exclude_unset=True), db)


@router.delete("/{lead_id}", status_code=204)
async def delete_lead(
    lead_id: str,
    _rate_limit: None = Depends(rate_limit("lead_finder_leads", limit=120, window_seconds=60)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await delete_lead_service(auth.user_id, lead_id, db)
    return Response(status_code=204)
