"""LeadSearch model: one audit row per search that reached the provider."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class LeadSearch(Base):
    """Search audit record; also the source of monthly usage counts."""

    __tablename__ = "lead_searches"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    search_query = Column(String, nullable=False)
    location = Column(String, nullable=False)
    results_count = Column(Integer, nullable=False, default=0)
    credit_source = Column(String, nullable=True)  # monthly, package, or NULL when nothing was charged
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="lead_searches")
