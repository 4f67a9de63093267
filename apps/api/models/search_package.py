"""Search package catalog and purchased credit packages."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class SearchPackage(Base):
    """Purchasable bundle of extra lead searches."""

    __tablename__ = "search_packages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    searches_count = Column(Integer, nullable=False)
    price = Column(Float, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserSearchPackage(Base):
    """Credits a user holds from one package purchase. Only ever decremented."""

    __tablename__ = "user_search_packages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(String, ForeignKey("search_packages.id"), nullable=True)
    remaining_searches = Column(Integer, nullable=False, default=0)
    purchase_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="search_packages")
    package = relationship("SearchPackage")
