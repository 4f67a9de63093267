"""Search package catalog and manual credit grants."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.search_package import SearchPackage, UserSearchPackage
from services.credits import resolve_credit_balance

logger = logging.getLogger(__name__)


def _package_payload(package: SearchPackage) -> Dict[str, Any]:
    return {
        "id": package.id,
        "name": package.name,
        "description": package.description,
        "searches_count": package.searches_count,
        "price": package.price,
    }


async def list_search_packages_service(db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(SearchPackage)
        .where(SearchPackage.active.is_(True))
        .order_by(SearchPackage.searches_count.asc())
    )
    return [_package_payload(package) for package in result.scalars().all()]


async def grant_search_credits_service(
    *,
    user_id: str,
    db: AsyncSession,
    package_id: Optional[str] = None,
    credits: Optional[int] = None,
    expiry_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Attach a new credit package to the user. No payment is captured here."""
    catalog_package: Optional[SearchPackage] = None
    if package_id:
        result = await db.execute(
            select(SearchPackage).where(SearchPackage.id == package_id, SearchPackage.active.is_(True))
        )
        catalog_package = result.scalar_one_or_none()
        if catalog_package is None:
            raise HTTPException(status_code=404, detail="Package not found.")

    grant = int(credits) if credits is not None else int(catalog_package.searches_count if catalog_package else 0)
    if grant <= 0:
        raise HTTPException(status_code=422, detail="credits must be greater than 0")

    entry = UserSearchPackage(
        user_id=user_id,
        package_id=catalog_package.id if catalog_package else None,
        remaining_searches=grant,
        expiry_date=expiry_date,
    )
    db.add(entry)
    await db.commit()
    logger.info("Granted %d search credits to user %s (package=%s)", grant, user_id, entry.package_id)

    snapshot = await resolve_credit_balance(user_id, db)
    return {
        "ok": True,
        "user_package_id": entry.id,
        "credits_added": grant,
        "total_remaining": snapshot.total_remaining,
    }
