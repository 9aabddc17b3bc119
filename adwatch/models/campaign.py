import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adwatch.database import Base


class Campaign(Base):
    """A provider campaign. ``sync_enabled`` is cleared when the provider
    reports the campaign gone; rows are never hard-deleted by a sync."""

    __tablename__ = "campaigns"
    __table_args__ = (
        UniqueConstraint("ad_account_id", "campaign_id", name="uq_campaign_account"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ad_account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ad_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    campaign_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="ACTIVE", index=True)
    objective: Mapped[str | None] = mapped_column(String(50))
    daily_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    lifetime_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    ad_account = relationship("AdAccount", back_populates="campaigns")
    ad_sets = relationship("AdSet", back_populates="campaign", cascade="all, delete-orphan")

    @property
    def effective_budget(self) -> Decimal:
        """Daily budget when set, else lifetime budget, else zero."""
        return self.daily_budget or self.lifetime_budget or Decimal("0")


class AdSet(Base):
    """Meta ad set or Google ad group."""

    __tablename__ = "ad_sets"
    __table_args__ = (
        UniqueConstraint("campaign_id", "ad_set_id", name="uq_ad_set_campaign"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ad_set_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="ACTIVE")
    optimization_goal: Mapped[str | None] = mapped_column(String(50))
    billing_event: Mapped[str | None] = mapped_column(String(50))
    bid_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    daily_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    lifetime_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    targeting: Mapped[dict | None] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    campaign = relationship("Campaign", back_populates="ad_sets")
    ads = relationship("Ad", back_populates="ad_set", cascade="all, delete-orphan")


class Ad(Base):
    __tablename__ = "ads"
    __table_args__ = (
        UniqueConstraint("ad_set_id", "ad_id", name="uq_ad_ad_set"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ad_set_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ad_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ad_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="ACTIVE")
    creative_id: Mapped[str | None] = mapped_column(String(50))
    creative_name: Mapped[str | None] = mapped_column(String(500))
    creative_type: Mapped[str | None] = mapped_column(String(50))
    creative_url: Mapped[str | None] = mapped_column(String(2000))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    ad_set = relationship("AdSet", back_populates="ads")
