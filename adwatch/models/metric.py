import uuid
import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from adwatch.database import Base


class Metric(Base):
    """Daily performance for a campaign, optionally per ad.

    Rows are overwritten on re-sync, keyed by (campaign_id, date, ad_id).
    """

    __tablename__ = "metrics"
    __table_args__ = (
        UniqueConstraint("campaign_id", "date", "ad_id", name="uq_metric_campaign_date_ad"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ad_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ads.id", ondelete="SET NULL"), index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    # Core metrics
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    spend: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    conversions: Mapped[int] = mapped_column(Integer, default=0)
    conversion_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    ctr: Mapped[Decimal] = mapped_column(Numeric(10, 4), default=0)
    cpc: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)

    # Action-derived metrics
    link_clicks: Mapped[int] = mapped_column(Integer, default=0)
    page_views: Mapped[int] = mapped_column(Integer, default=0)
    initiated_checkout: Mapped[int] = mapped_column(Integer, default=0)
    purchases: Mapped[int] = mapped_column(Integer, default=0)
    results: Mapped[int] = mapped_column(Integer, default=0)
    messages: Mapped[int] = mapped_column(Integer, default=0)
    cost_per_result: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)
    cost_per_message: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)

    # Video
    video_views_25: Mapped[int] = mapped_column(Integer, default=0)
    video_views_50: Mapped[int] = mapped_column(Integer, default=0)
    video_views_75: Mapped[int] = mapped_column(Integer, default=0)
    video_views_100: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )


class MetricBreakdown(Base):
    """Campaign-level daily totals split by age, gender or region."""

    __tablename__ = "metric_breakdowns"
    __table_args__ = (
        UniqueConstraint(
            "campaign_id", "date", "breakdown_type", "breakdown_value",
            name="uq_breakdown_campaign_date_type_value",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    breakdown_type: Mapped[str] = mapped_column(String(20), nullable=False)  # age, gender, region
    breakdown_value: Mapped[str] = mapped_column(String(100), nullable=False)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    spend: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    conversions: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
