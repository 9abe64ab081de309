"""Create the StockAlert tables.

Initial migration: user accounts, drug catalogue, USSD sessions, stock
alerts, supplier preferences, alert distributions and airtime rewards.

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _text_array(name: str, default: str = "'{}'") -> sa.Column:
    return sa.Column(
        name, ARRAY(sa.Text), nullable=False, server_default=sa.text(default),
    )


def upgrade() -> None:
    # --- Accounts ---
    op.create_table(
        "user_accounts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("name", sa.Text, nullable=True),
        sa.Column("facility_name", sa.Text, nullable=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("phone_number", sa.Text, nullable=True),
        sa.Column("location", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_user_accounts_role", "user_accounts", ["role"])
    op.create_index("ix_user_accounts_phone_number", "user_accounts", ["phone_number"])

    # --- Drug catalogue ---
    op.create_table(
        "drugs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("category", sa.Text, nullable=False),
        sa.Column("unit", sa.String(40), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.UniqueConstraint("category", "name", name="uq_drug_category_name"),
    )
    op.create_index("ix_drugs_category", "drugs", ["category"])

    # --- USSD sessions ---
    op.create_table(
        "ussd_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", sa.Text, nullable=False, unique=True),
        sa.Column("phone_number", sa.Text, nullable=False),
        sa.Column("service_code", sa.Text, nullable=False),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("network_code", sa.String(10), nullable=True),
        sa.Column("current_level", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        sa.Column("session_data", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("end_reason", sa.Text, nullable=True),
        sa.Column("started_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_activity_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("ended_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'expired', 'cancelled')",
            name="ck_ussd_session_status",
        ),
        sa.CheckConstraint(
            "expires_at >= last_activity_at",
            name="ck_ussd_session_expiry_after_activity",
        ),
    )
    op.create_index("ix_ussd_sessions_phone_number", "ussd_sessions", ["phone_number"])
    op.create_index("ix_ussd_sessions_status", "ussd_sessions", ["status"])
    op.create_index(
        "ix_ussd_sessions_active_expiry",
        "ussd_sessions",
        ["expires_at"],
        postgresql_where=sa.text("status = 'active'"),
    )

    # --- Stock alerts ---
    op.create_table(
        "stock_alerts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("hospital_id", UUID(as_uuid=True), sa.ForeignKey("user_accounts.id"), nullable=False),
        sa.Column("hospital_name", sa.Text, nullable=False),
        sa.Column("facility_name", sa.Text, nullable=False),
        sa.Column("drugs", JSONB, nullable=False),
        sa.Column("overall_urgency", sa.String(20), nullable=False),
        sa.Column("location", JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'ussd'")),
        sa.Column("session_id", sa.Text, nullable=True),
        sa.Column("reporter_phone", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("resolved_at", TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_stock_alerts_hospital_id", "stock_alerts", ["hospital_id"])
    op.create_index("ix_stock_alerts_status", "stock_alerts", ["status"])
    op.create_index(
        "ix_stock_alerts_hospital_created", "stock_alerts", ["hospital_id", "created_at"],
    )
    op.create_index(
        "ux_stock_alerts_session_id",
        "stock_alerts",
        ["session_id"],
        unique=True,
        postgresql_where=sa.text("session_id IS NOT NULL"),
    )

    # --- Supplier preferences ---
    op.create_table(
        "supplier_preferences",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "supplier_id", UUID(as_uuid=True), sa.ForeignKey("user_accounts.id"),
            nullable=False, unique=True,
        ),
        _text_array("drug_categories"),
        _text_array("urgency_levels"),
        _text_array("geographic_regions"),
        sa.Column("max_distance_km", sa.Float, nullable=True),
        sa.Column("minimum_order_value", sa.Float, nullable=True),
        sa.Column("business_hours_start", sa.String(5), nullable=True),
        sa.Column("business_hours_end", sa.String(5), nullable=True),
        _text_array("working_days"),
        _text_array("notification_methods", "'{sms}'"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
    )

    # --- Delivery audit ---
    op.create_table(
        "alert_distributions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("alert_id", UUID(as_uuid=True), sa.ForeignKey("stock_alerts.id"), nullable=False),
        sa.Column("supplier_id", UUID(as_uuid=True), sa.ForeignKey("user_accounts.id"), nullable=False),
        sa.Column("supplier_name", sa.Text, nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("recipient", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message_id", sa.Text, nullable=True),
        sa.Column("cost", sa.Text, nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("sent_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_retry_at", TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_alert_distributions_alert", "alert_distributions", ["alert_id"])
    op.create_index(
        "ix_alert_distributions_failed",
        "alert_distributions",
        ["created_at"],
        postgresql_where=sa.text("status = 'failed'"),
    )

    op.create_table(
        "airtime_rewards",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("user_accounts.id"), nullable=False),
        sa.Column("alert_id", UUID(as_uuid=True), sa.ForeignKey("stock_alerts.id"), nullable=False),
        sa.Column("phone_number", sa.Text, nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("request_id", sa.Text, nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_airtime_rewards_alert_id", "airtime_rewards", ["alert_id"])


def downgrade() -> None:
    op.drop_table("airtime_rewards")
    op.drop_table("alert_distributions")
    op.drop_table("supplier_preferences")
    op.drop_table("stock_alerts")
    op.drop_table("ussd_sessions")
    op.drop_table("drugs")
    op.drop_table("user_accounts")
