"""create integration, campaign, metric, alert and sync tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

- integrations, ad_accounts
- campaigns, ad_sets, ads
- metrics, metric_breakdowns
- campaign_alerts (partial unique index on active thresholds)
- sync_logs, sync_schedules
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ---- Integrations ----

    op.create_table(
        "integrations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("provider", sa.String(20), nullable=False, index=True),
        sa.Column("access_token", sa.Text, nullable=False),
        sa.Column("refresh_token", sa.Text),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), server_default="active", index=True),
        sa.Column("config", postgresql.JSONB, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "provider", name="uq_integration_user_provider"),
    )

    op.create_table(
        "ad_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("integration_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("account_id", sa.String(50), nullable=False, index=True),
        sa.Column("account_name", sa.String(300), nullable=False),
        sa.Column("currency", sa.String(10)),
        sa.Column("timezone", sa.String(100)),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("integration_id", "account_id", name="uq_ad_account_integration"),
    )

    # ---- Campaign structure ----

    op.create_table(
        "campaigns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("ad_account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("ad_accounts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("campaign_id", sa.String(50), nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("status", sa.String(30), server_default="ACTIVE", index=True),
        sa.Column("objective", sa.String(50)),
        sa.Column("daily_budget", sa.Numeric(14, 2)),
        sa.Column("lifetime_budget", sa.Numeric(14, 2)),
        sa.Column("start_date", sa.Date),
        sa.Column("end_date", sa.Date),
        sa.Column("sync_enabled", sa.Boolean, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("ad_account_id", "campaign_id", name="uq_campaign_account"),
    )

    op.create_table(
        "ad_sets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ad_set_id", sa.String(50), nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("status", sa.String(30), server_default="ACTIVE"),
        sa.Column("optimization_goal", sa.String(50)),
        sa.Column("billing_event", sa.String(50)),
        sa.Column("bid_amount", sa.Numeric(14, 2)),
        sa.Column("daily_budget", sa.Numeric(14, 2)),
        sa.Column("lifetime_budget", sa.Numeric(14, 2)),
        sa.Column("start_date", sa.Date),
        sa.Column("end_date", sa.Date),
        sa.Column("targeting", postgresql.JSONB),
        *_timestamps(),
        sa.UniqueConstraint("campaign_id", "ad_set_id", name="uq_ad_set_campaign"),
    )

    op.create_table(
        "ads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("ad_set_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("ad_sets.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ad_id", sa.String(50), nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("status", sa.String(30), server_default="ACTIVE"),
        sa.Column("creative_id", sa.String(50)),
        sa.Column("creative_name", sa.String(500)),
        sa.Column("creative_type", sa.String(50)),
        sa.Column("creative_url", sa.String(2000)),
        *_timestamps(),
        sa.UniqueConstraint("ad_set_id", "ad_id", name="uq_ad_ad_set"),
    )

    # ---- Metrics ----

    op.create_table(
        "metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ad_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("ads.id", ondelete="SET NULL"), index=True),
        sa.Column("date", sa.Date, nullable=False, index=True),
        sa.Column("impressions", sa.Integer, server_default="0"),
        sa.Column("clicks", sa.Integer, server_default="0"),
        sa.Column("spend", sa.Numeric(14, 2), server_default="0"),
        sa.Column("conversions", sa.Integer, server_default="0"),
        sa.Column("conversion_value", sa.Numeric(14, 2), server_default="0"),
        sa.Column("ctr", sa.Numeric(10, 4), server_default="0"),
        sa.Column("cpc", sa.Numeric(14, 4), server_default="0"),
        sa.Column("link_clicks", sa.Integer, server_default="0"),
        sa.Column("page_views", sa.Integer, server_default="0"),
        sa.Column("initiated_checkout", sa.Integer, server_default="0"),
        sa.Column("purchases", sa.Integer, server_default="0"),
        sa.Column("results", sa.Integer, server_default="0"),
        sa.Column("messages", sa.Integer, server_default="0"),
        sa.Column("cost_per_result", sa.Numeric(14, 4), server_default="0"),
        sa.Column("cost_per_message", sa.Numeric(14, 4), server_default="0"),
        sa.Column("video_views_25", sa.Integer, server_default="0"),
        sa.Column("video_views_50", sa.Integer, server_default="0"),
        sa.Column("video_views_75", sa.Integer, server_default="0"),
        sa.Column("video_views_100", sa.Integer, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("campaign_id", "date", "ad_id", name="uq_metric_campaign_date_ad"),
    )

    op.create_table(
        "metric_breakdowns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("breakdown_type", sa.String(20), nullable=False),
        sa.Column("breakdown_value", sa.String(100), nullable=False),
        sa.Column("impressions", sa.Integer, server_default="0"),
        sa.Column("clicks", sa.Integer, server_default="0"),
        sa.Column("spend", sa.Numeric(14, 2), server_default="0"),
        sa.Column("conversions", sa.Integer, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "campaign_id", "date", "breakdown_type", "breakdown_value",
            name="uq_breakdown_campaign_date_type_value",
        ),
    )

    # ---- Alerts ----

    op.create_table(
        "campaign_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("alert_type", sa.String(50), nullable=False),
        sa.Column("threshold_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("current_amount", sa.Numeric(14, 2), server_default="0"),
        sa.Column("is_active", sa.Boolean, server_default="true", index=True),
        sa.Column("triggered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_campaign_alert_active_threshold",
        "campaign_alerts",
        ["campaign_id", "threshold_amount"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # ---- Sync bookkeeping ----

    op.create_table(
        "sync_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("integration_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("integrations.id", ondelete="CASCADE"), index=True),
        sa.Column("function_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), server_default="running", index=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("accounts_synced", sa.Integer, server_default="0"),
        sa.Column("campaigns_synced", sa.Integer, server_default="0"),
        sa.Column("metrics_synced", sa.Integer, server_default="0"),
        sa.Column("error_message", sa.Text),
        sa.Column("error_details", postgresql.JSONB),
    )

    op.create_table(
        "sync_schedules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("sync_type", sa.String(20), server_default="full"),
        sa.Column("frequency", sa.String(20), server_default="daily"),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        sa.Column("last_sync_at", sa.DateTime(timezone=True)),
        sa.Column("next_sync_at", sa.DateTime(timezone=True), index=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("sync_schedules")
    op.drop_table("sync_logs")
    op.drop_index("uq_campaign_alert_active_threshold", table_name="campaign_alerts")
    op.drop_table("campaign_alerts")
    op.drop_table("metric_breakdowns")
    op.drop_table("metrics")
    op.drop_table("ads")
    op.drop_table("ad_sets")
    op.drop_table("campaigns")
    op.drop_table("ad_accounts")
    op.drop_table("integrations")
