"""Profile model carrying the subscription tier."""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Profile(Base):
    """Account profile; primary source of the subscription tier."""

    __tablename__ = "profiles"

    id = Column(String, ForeignKey("users.id"), primary_key=True)
    subscription_tier = Column(String, nullable=True)  # free, pro, enterprise
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="profile")
