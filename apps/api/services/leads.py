"""Saved lead CRUD scoped to a single user."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.lead import Lead

EDITABLE_FIELDS = (
    "business_name",
    "address",
    "phone",
    "website",
    "rating",
    "place_id",
    "latitude",
    "longitude",
    "notes",
    "status",
)


def _lead_payload(lead: Lead) -> Dict[str, Any]:
    payload = {field: getattr(lead, field) for field in EDITABLE_FIELDS}
    payload["id"] = lead.id
    payload["created_at"] = lead.created_at.isoformat() if lead.created_at else None
    payload["updated_at"] = lead.updated_at.isoformat() if lead.updated_at else None
    return payload


async def _get_owned_lead(user_id: str, lead_id: str, db: AsyncSession) -> Lead:
    result = await db.execute(select(Lead).where(Lead.id == lead_id, Lead.user_id == user_id))
    lead = result.scalar_one_or_none()
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found.")
    return lead


async def list_leads_service(user_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(select(Lead).where(Lead.user_id == user_id).order_by(Lead.created_at.desc()))
    return [_lead_payload(lead) for lead in result.scalars().all()]


async def save_lead_service(user_id: str, payload: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
    business_name = str(payload.get("business_name") or "").strip()
    if not business_name:
        raise HTTPException(status_code=400, detail="Business name is required")

    lead = Lead(user_id=user_id, **{field: payload.get(field) for field in EDITABLE_FIELDS if field in payload})
    lead.business_name = business_name
    if not lead.status:
        lead.status = "new"
    db.add(lead)
    await db.commit()
    await db.refresh(lead)
    return _lead_payload(lead)


async def update_lead_service(user_id: str, lead_id: str, payload: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
    lead = await _get_owned_lead(user_id, lead_id, db)
    for field in EDITABLE_FIELDS:
        if field in payload:
            setattr(lead, field, payload[field])
    if not str(lead.business_name or "").strip():
        raise HTTPException(status_code=400, detail="Business name is required")
    await db.commit()
    await db.refresh(lead)
    return _lead_payload(lead)


async def delete_lead_service(user_id: str, lead_id: str, db: AsyncSession) -> None:
    lead = await _get_owned_lead(user_id, lead_id, db)
    await db.delete(lead)
    await db.commit()
