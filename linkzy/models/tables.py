"""
Database models.

Design principles:
  - Links are mutable (click/impression counters, earnings), owned by one profile
  - Config rows are process-wide singletons keyed by string
  - Ads live in their own table, one row per ad, pinned to a funnel page
  - ad_visits / ad_clicks / downloads are append-only (no updates/deletes)
"""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    supabase_id = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    links = relationship("Link", back_populates="owner")


class UserRole(Base):
    """0 or 1 active row per user after a role change (delete-then-insert)."""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(10), nullable=False)  # "user" or "admin"
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_user_roles_role"),
    )


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

class Link(Base):
    __tablename__ = "links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    original_url = Column(Text, nullable=False)
    short_code = Column(String(32), nullable=False, unique=True, index=True)

    clicks = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(12, 4), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("Profile", back_populates="links")

    __table_args__ = (
        Index("ix_links_owner_created", "owner_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Singleton config rows + ad inventory
# ---------------------------------------------------------------------------

class ConfigEntry(Base):
    """Key/value singletons: ad_funnel_config, cpm_rate, cpc_rate."""
    __tablename__ = "config"

    key = Column(String(100), primary_key=True)
    value = Column(JSONB, nullable=False)
    version = Column(Integer, nullable=False, default=1)  # bumped on every write
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Ad(Base):
    __tablename__ = "ads"

    id = Column(String(64), primary_key=True)  # ad_{epoch_ms}_{random}
    page_number = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=False)
    link_url = Column(Text, nullable=False)
    order = Column("order", Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)  # slot within the page's list
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("page_number BETWEEN 1 AND 4", name="ck_ads_page_number"),
        Index("ix_ads_page_position", "page_number", "position"),
    )


# ---------------------------------------------------------------------------
# Event tables (append-only)
# ---------------------------------------------------------------------------

class AdVisit(Base):
    __tablename__ = "ad_visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    page = Column(Integer, nullable=False, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now())


class AdClick(Base):
    __tablename__ = "ad_clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_id = Column(String(64), nullable=False, index=True)  # no FK: clicks outlive deleted ads
    ts = Column(DateTime(timezone=True), server_default=func.now())


class Download(Base):
    __tablename__ = "downloads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    # Signature of the page-4 token that produced this row; unique so a
    # completion token can only be redeemed once.
    completion_token = Column(String(64), nullable=True, unique=True, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now())
