"""Baseline: users, bio content, promos, notifications, email, billing, admin log, analytics.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create the full schema."""
    # --- Users ---
    op.create_table(
        "users",
        _pk(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(256), nullable=True),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("username", sa.String(30), nullable=False, unique=True),
        sa.Column("username_is_custom", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("bio", sa.String(500), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("theme_color", sa.String(16), nullable=True),
        sa.Column("background_color", sa.String(16), nullable=True),
        sa.Column("template", sa.String(64), server_default="default", nullable=False),
        sa.Column("background_image", sa.Text(), nullable=True),
        sa.Column("background_video", sa.Text(), nullable=True),
        sa.Column("card_background_color", sa.String(16), nullable=True),
        sa.Column("custom_text", sa.Text(), nullable=True),
        sa.Column("is_published", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_banned", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_premium", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("premium_plan_type", sa.String(16), nullable=True),
        _ts("premium_started_at"),
        _ts("premium_expires_at"),
        sa.Column("stripe_customer_id", sa.String(64), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(64), nullable=True),
        sa.Column("ban_reason", sa.Text(), nullable=True),
        _ts("banned_at"),
        sa.Column("banned_by", sa.Integer(), nullable=True),
        sa.Column("admin_role", sa.String(32), nullable=True),
        sa.Column("admin_permissions", postgresql.JSONB(), nullable=True),
        _ts("admin_created_at"),
        sa.Column("admin_created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("last_login"),
    )
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_premium_plan "
        "CHECK (premium_plan_type IS NULL OR premium_plan_type IN ('monthly', 'lifetime', 'promo'))"
    )

    # --- Bio content ---
    op.create_table(
        "bio_links",
        _pk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("icon", sa.String(128), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("layout", sa.String(32), server_default="simple", nullable=False),
        sa.Column("background_color", sa.String(16), nullable=True),
        sa.Column("text_color", sa.String(16), nullable=True),
        sa.Column("is_transparent", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_visible", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("order", sa.Integer(), server_default="0", nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_bio_links_user_id", "bio_links", ["user_id"])

    op.create_table(
        "social_links",
        _pk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(64), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("icon", sa.String(128), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_social_links_user_id", "social_links", ["user_id"])

    # --- Promo codes ---
    op.create_table(
        "promo_codes",
        _pk(),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("premium_duration_days", sa.Integer(), nullable=False),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("current_redemptions", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "assigned_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        _ts("expires_at"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.execute(
        "ALTER TABLE promo_codes ADD CONSTRAINT ck_promo_codes_redemptions "
        "CHECK (max_redemptions IS NULL OR current_redemptions <= max_redemptions)"
    )

    op.create_table(
        "promo_code_redemptions",
        _pk(),
        sa.Column(
            "promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("premium_duration_days", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("promo_code_id", "user_id", name="uq_promo_redemption_user"),
    )

    # --- Notifications ---
    op.create_table(
        "notification_broadcasts",
        _pk(),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("target_type", sa.String(16), nullable=False),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("send_email", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("recipients_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("emails_sent", sa.Integer(), server_default="0", nullable=False),
        sa.Column("emails_failed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "notifications",
        _pk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "broadcast_id",
            sa.Integer(),
            sa.ForeignKey("notification_broadcasts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("email_sent", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index(
        "ix_notifications_user_unread",
        "notifications",
        ["user_id"],
        postgresql_where=sa.text("is_read = false"),
    )

    # --- Bulk email ---
    op.create_table(
        "sent_emails",
        _pk(),
        sa.Column("from_email", sa.String(320), nullable=False),
        sa.Column("from_name", sa.String(128), nullable=True),
        sa.Column("subject", sa.String(512), nullable=False),
        sa.Column("body_html", sa.Text(), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("target_type", sa.String(16), nullable=False),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("recipients_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("sent_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("failed_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("sent_by", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("sent_at"),
    )

    op.create_table(
        "email_recipients",
        _pk(),
        sa.Column(
            "sent_email_id", sa.Integer(), sa.ForeignKey("sent_emails.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("user_email", sa.String(320), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("sent_at"),
    )
    op.create_index("ix_email_recipients_sent_email_id", "email_recipients", ["sent_email_id"])

    # --- Billing ---
    op.create_table(
        "billing_transactions",
        _pk(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("plan_type", sa.String(16), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=True),
        sa.Column("external_id", sa.String(128), nullable=False, unique=True),
        sa.Column("gateway", sa.String(16), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_billing_transactions_email", "billing_transactions", ["email"])

    # --- Admin audit log ---
    op.create_table(
        "admin_logs",
        _pk(),
        sa.Column("admin_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("target_type", sa.String(32), nullable=True),
        sa.Column("target_id", sa.String(64), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_admin_logs_created_at", "admin_logs", ["created_at"])

    # --- Analytics ---
    op.create_table(
        "page_views",
        _pk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("visitor_id", sa.String(64), nullable=False),
        sa.Column("referrer", sa.Text(), nullable=True),
        _ts("created_at", nullable=False),
        _ts("last_seen", nullable=False),
    )
    op.create_index("ix_page_views_user_id", "page_views", ["user_id"])
    op.create_index("ix_page_views_user_last_seen", "page_views", ["user_id", "last_seen"])

    op.create_table(
        "link_clicks",
        _pk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("link_id", sa.Integer(), sa.ForeignKey("bio_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("visitor_id", sa.String(64), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_index("ix_link_clicks_user_id", "link_clicks", ["user_id"])
    op.create_index("ix_link_clicks_link_id", "link_clicks", ["link_id"])


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    for table in (
        "link_clicks",
        "page_views",
        "admin_logs",
        "billing_transactions",
        "email_recipients",
        "sent_emails",
        "notifications",
        "notification_broadcasts",
        "promo_code_redemptions",
        "promo_codes",
        "social_links",
        "bio_links",
        "users",
    ):
        op.drop_table(table)
