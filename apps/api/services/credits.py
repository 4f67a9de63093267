"""Search credit balance resolution and ledger bookkeeping.

A user's searchable balance has two tiers:

* a monthly allowance looked up per plan and counted down by the user's
  ``lead_searches`` audit rows for the current calendar month, and
* purchased ``user_search_packages``, consumed oldest purchase first.

Balance reads always go to the database; nothing is cached between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.lead_search import LeadSearch
from models.profile import Profile
from models.search_package import UserSearchPackage
from models.usage_limit import UsageLimit
from models.user import User
from services.attempts import RecoverableFailure, Success, run_attempts

logger = logging.getLogger(__name__)

PLAN_TYPES = ("free", "pro", "enterprise")
CREDIT_SOURCE_MONTHLY = "monthly"
CREDIT_SOURCE_PACKAGE = "package"


@dataclass(frozen=True)
class TierResolution:
    tier: Optional[str]
    errored: bool = False


@dataclass(frozen=True)
class CreditSnapshot:
    """Immutable view of a user's balance at one instant."""

    plan_type: str = "free"
    monthly_limit: int = 0
    monthly_used: int = 0
    remaining_monthly: int = 0
    package_remaining: int = 0
    package_id_to_decrement: Optional[str] = None
    package_current_value: int = 0

    @property
    def total_remaining(self) -> int:
        return max(self.remaining_monthly, 0) + max(self.package_remaining, 0)

    def as_response(self) -> Dict[str, Any]:
        return {
            "remaining_searches": self.total_remaining,
            "monthly_allowance_remaining": self.remaining_monthly,
            "purchased_remaining": self.package_remaining,
            "subscription_tier": self.plan_type,
        }


@dataclass(frozen=True)
class DecrementTarget:
    kind: Literal["none", "monthly", "package"]
    package_id: Optional[str] = None
    expected_remaining: int = 0


@dataclass(frozen=True)
class LedgerOutcome:
    credit_decremented: bool
    remaining_searches: int
    credit_source: Optional[str] = None
    search_recorded: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_start(now: Optional[datetime] = None) -> datetime:
    current = now or _utc_now()
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def plan_type_for_tier(tier: Optional[str]) -> str:
    normalized = str(tier or "").strip().lower()
    if normalized in PLAN_TYPES:
        return normalized
    return "free"


async def resolve_subscription_tier(user_id: str, db: AsyncSession) -> TierResolution:
    """Read the tier from the profile, falling back to the user record."""

    # Each read runs under a savepoint so a failed query does not abort the
    # request transaction on PostgreSQL.
    async def _from_profile():
        async with db.begin_nested():
            result = await db.execute(select(Profile.subscription_tier).where(Profile.id == user_id))
            tier = result.scalar_one_or_none()
        if tier:
            return Success(tier)
        return RecoverableFailure("profile has no subscription tier")

    async def _from_user_record():
        async with db.begin_nested():
            result = await db.execute(select(User.subscription_level).where(User.id == user_id))
            tier = result.scalar_one_or_none()
        if tier:
            return Success(tier)
        return RecoverableFailure("user record has no subscription level")

    outcome = await run_attempts(
        [
            ("profile_tier", _from_profile),
            ("user_record_tier", _from_user_record),
        ]
    )
    if isinstance(outcome, Success):
        return TierResolution(tier=str(outcome.value))
    return TierResolution(tier=None, errored=bool(getattr(outcome, "errored", False)))


async def get_monthly_limit(plan_type: str, db: AsyncSession) -> int:
    result = await db.execute(
        select(UsageLimit.monthly_limit).where(
            UsageLimit.plan_type == plan_type,
            UsageLimit.feature_name == settings.LEAD_FINDER_FEATURE_NAME,
        )
    )
    limit = result.scalar_one_or_none()
    return max(int(limit or 0), 0)


async def count_monthly_searches(user_id: str, db: AsyncSession, now: Optional[datetime] = None) -> int:
    # Package-funded searches are audited but do not draw on the monthly allowance.
    result = await db.execute(
        select(func.count(LeadSearch.id)).where(
            LeadSearch.user_id == user_id,
            LeadSearch.created_at >= month_start(now),
            or_(LeadSearch.credit_source.is_(None), LeadSearch.credit_source != CREDIT_SOURCE_PACKAGE),
        )
    )
    return int(result.scalar() or 0)


def _active_package_conditions(user_id: str, now: datetime):
    return (
        UserSearchPackage.user_id == user_id,
        UserSearchPackage.remaining_searches > 0,
        or_(UserSearchPackage.expiry_date.is_(None), UserSearchPackage.expiry_date > now),
    )


async def get_oldest_active_package(
    user_id: str, db: AsyncSession, now: Optional[datetime] = None
) -> Optional[UserSearchPackage]:
    result = await db.execute(
        select(UserSearchPackage)
        .where(*_active_package_conditions(user_id, now or _utc_now()))
        .order_by(UserSearchPackage.purchase_date.asc(), UserSearchPackage.id.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def sum_active_package_credits(user_id: str, db: AsyncSession, now: Optional[datetime] = None) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(UserSearchPackage.remaining_searches), 0)).where(
            *_active_package_conditions(user_id, now or _utc_now())
        )
    )
    return int(result.scalar() or 0)


async def resolve_credit_balance(
    user_id: str, db: AsyncSession, now: Optional[datetime] = None
) -> CreditSnapshot:
    """Compute the current balance; any unexpected failure yields an empty balance."""
    current = now or _utc_now()
    try:
        tier = await resolve_subscription_tier(user_id, db)
        plan_type = plan_type_for_tier(tier.tier)
        if tier.tier is None and tier.errored:
            logger.warning("Tier lookup failed for user %s; monthly allowance set to 0", user_id)
            monthly_limit = 0
        else:
            monthly_limit = await get_monthly_limit(plan_type, db)

        monthly_used = await count_monthly_searches(user_id, db, current)
        remaining_monthly = max(0, monthly_limit - monthly_used)

        oldest = await get_oldest_active_package(user_id, db, current)
        package_remaining = await sum_active_package_credits(user_id, db, current)
    except Exception as exc:
        logger.warning("Credit balance resolution failed for user %s: %s", user_id, exc)
        return CreditSnapshot()

    return CreditSnapshot(
        plan_type=plan_type,
        monthly_limit=monthly_limit,
        monthly_used=monthly_used,
        remaining_monthly=remaining_monthly,
        package_remaining=package_remaining,
        package_id_to_decrement=oldest.id if oldest else None,
        package_current_value=max(int(oldest.remaining_searches or 0), 0) if oldest else 0,
    )


def resolve_decrement_source(snapshot: CreditSnapshot) -> DecrementTarget:
    """Pick what a completed search should be charged to. Packages win over monthly."""
    if snapshot.package_id_to_decrement and snapshot.package_current_value > 0:
        return DecrementTarget(
            kind="package",
            package_id=snapshot.package_id_to_decrement,
            expected_remaining=snapshot.package_current_value,
        )
    if snapshot.remaining_monthly > 0:
        return DecrementTarget(kind="monthly")
    return DecrementTarget(kind="none")


async def decrement_package(db: AsyncSession, package_id: str, expected_remaining: int) -> bool:
    """Compare-and-swap decrement; False when another writer got there first."""
    result = await db.execute(
        update(UserSearchPackage)
        .where(
            UserSearchPackage.id == package_id,
            UserSearchPackage.remaining_searches == expected_remaining,
            UserSearchPackage.remaining_searches > 0,
        )
        .values(remaining_searches=UserSearchPackage.remaining_searches - 1, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(result.rowcount or 0) == 1


async def record_search(
    db: AsyncSession,
    *,
    user_id: str,
    query: str,
    location: str,
    results_count: int,
    credit_source: Optional[str],
) -> bool:
    """Insert the audit row. Best effort, never retried."""
    try:
        db.add(
            LeadSearch(
                user_id=user_id,
                search_query=query,
                location=location,
                results_count=max(int(results_count), 0),
                credit_source=credit_source,
            )
        )
        await db.commit()
    except Exception as exc:
        logger.warning("Failed to record lead search for user %s: %s", user_id, exc)
        await db.rollback()
        return False
    return True


async def settle_search(
    db: AsyncSession,
    *,
    user_id: str,
    snapshot: CreditSnapshot,
    query: str,
    location: str,
    results_count: int,
) -> LedgerOutcome:
    """Charge one credit for a completed search, then audit it."""
    target = resolve_decrement_source(snapshot)
    decremented = False
    credit_source: Optional[str] = None

    if target.kind == "package":
        try:
            decremented = await decrement_package(db, target.package_id, target.expected_remaining)
        except Exception as exc:
            logger.warning("Package decrement failed for user %s package %s: %s", user_id, target.package_id, exc)
            await db.rollback()
            decremented = False
        if decremented:
            credit_source = CREDIT_SOURCE_PACKAGE
        else:
            logger.warning(
                "Search credit not decremented for user %s: package %s changed or update failed",
                user_id,
                target.package_id,
            )
    elif target.kind == "monthly":
        decremented = True
        credit_source = CREDIT_SOURCE_MONTHLY

    recorded = await record_search(
        db,
        user_id=user_id,
        query=query,
        location=location,
        results_count=results_count,
        credit_source=credit_source,
    )

    remaining = snapshot.total_remaining - 1 if decremented else snapshot.total_remaining
    return LedgerOutcome(
        credit_decremented=decremented,
        remaining_searches=max(remaining, 0),
        credit_source=credit_source,
        search_recorded=recorded,
    )


async def get_usage_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    snapshot = await resolve_credit_balance(user_id, db)
    history_result = await db.execute(
        select(LeadSearch)
        .where(LeadSearch.user_id == user_id)
        .order_by(LeadSearch.created_at.desc())
        .limit(50)
    )
    packages_result = await db.execute(
        select(UserSearchPackage)
        .where(UserSearchPackage.user_id == user_id)
        .order_by(UserSearchPackage.purchase_date.desc())
    )
    return {
        "user_id": user_id,
        "remaining_searches": snapshot.total_remaining,
        "monthly_limit": snapshot.monthly_limit,
        "used_searches": snapshot.monthly_used,
        "search_history": [
            {
                "id": entry.id,
                "search_query": entry.search_query,
                "location": entry.location,
                "results_count": entry.results_count,
                "credit_source": entry.credit_source,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in history_result.scalars().all()
        ],
        "purchased_packages": [
            {
                "id": package.id,
                "package_id": package.package_id,
                "remaining_searches": package.remaining_searches,
                "purchase_date": package.purchase_date.isoformat() if package.purchase_date else None,
                "expiry_date": package.expiry_date.isoformat() if package.expiry_date else None,
            }
            for package in packages_result.scalars().all()
        ],
    }
