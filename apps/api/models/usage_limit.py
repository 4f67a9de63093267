"""UsageLimit model for per-plan monthly feature allowances."""

import uuid

from sqlalchemy import Column, Integer, String, UniqueConstraint

from database import Base


class UsageLimit(Base):
    """Monthly allowance for one feature on one plan."""

    __tablename__ = "usage_limits"
    __table_args__ = (UniqueConstraint("plan_type", "feature_name", name="uq_usage_limits_plan_feature"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_type = Column(String, nullable=False, index=True)
    feature_name = Column(String, nullable=False, index=True)
    monthly_limit = Column(Integer, nullable=False, default=0)
