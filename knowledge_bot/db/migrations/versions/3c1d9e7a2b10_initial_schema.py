"""Initial schema for the knowledge bot service.

- companies
- admin_users
- bots
- users
- files
- file_events
- user_notification_preferences
- admin_action_logs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d9e7a2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _pk() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')

    op.create_table(
        "companies",
        _pk(),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("subscription_status", sa.Text(), nullable=False, server_default="trial"),
        sa.Column("plan_level", sa.Text(), nullable=False, server_default="starter"),
        sa.Column("storage_used_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("storage_limit_bytes", sa.BigInteger(), nullable=False, server_default=sa.text("2147483648")),
        sa.Column("storage_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("default_notifications_enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("default_batch_size_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("default_notification_delay_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("notification_quota_daily", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("notification_quota_monthly", sa.Integer(), nullable=False, server_default="1000"),
        *_timestamps(),
    )
    op.create_index("ix_companies_stripe_customer_id", "companies", ["stripe_customer_id"])
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS ux_companies_name_ci ON companies (lower(btrim(name)));")

    op.create_table(
        "admin_users",
        _pk(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("firstname", sa.Text(), nullable=True),
        sa.Column("lastname", sa.Text(), nullable=True),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "bots",
        _pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("bot_id", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("company_id", sa.UUID(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("processing_enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("auto_correction_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("max_retry_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("retry_delay_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("jwt_token", sa.Text(), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("folder_path", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_bots_company_id", "bots", ["company_id"])
    op.create_index("ix_bots_bot_id", "bots", ["bot_id"])

    op.create_table(
        "users",
        _pk(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("role", sa.Text(), nullable=False, server_default="authenticated"),
        sa.Column("company_id", sa.UUID(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True),
        sa.Column("bot_id", sa.UUID(), sa.ForeignKey("bots.id", ondelete="SET NULL"), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("notification_channel", sa.Text(), nullable=False, server_default="email"),
        sa.Column("notification_frequency", sa.Text(), nullable=False, server_default="immediate"),
        sa.Column("email_format", sa.Text(), nullable=False, server_default="html"),
        sa.Column("include_failures", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("include_successes", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("include_processing", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("cc_email", sa.Text(), nullable=True),
        sa.Column("notification_grouping_window", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("billing_notifications", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("subscription_reminders", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("storage_limit_warnings", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("trial_ending_alerts", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"])
    op.create_index("ix_users_bot_id", "users", ["bot_id"])

    op.create_table(
        "files",
        _pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("hash", sa.Text(), nullable=False),
        sa.Column("ext", sa.Text(), nullable=True),
        sa.Column("mime", sa.Text(), nullable=True),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("storage_key", sa.Text(), nullable=True),
        sa.Column("provider", sa.Text(), nullable=False, server_default="aws-s3"),
        sa.Column("source_type", sa.Text(), nullable=True),
        sa.Column("folder_path", sa.Text(), nullable=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("bot_id", sa.UUID(), sa.ForeignKey("bots.id", ondelete="SET NULL"), nullable=True),
        sa.Column("company_id", sa.UUID(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_files_user_id", "files", ["user_id"])
    op.create_index("ix_files_bot_id", "files", ["bot_id"])
    op.create_index("ix_files_company_id", "files", ["company_id"])

    op.create_table(
        "file_events",
        _pk(),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("processing_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("file_document_id", sa.UUID(), nullable=True),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("file_type", sa.Text(), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("bot_id", sa.UUID(), nullable=True),
        sa.Column("company_id", sa.UUID(), nullable=True),
        sa.Column("batch_id", sa.Text(), nullable=True),
        sa.Column("retry_attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_time_seconds", sa.Float(), nullable=True),
        sa.Column("chunks_created", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_file_events_file_document_id", "file_events", ["file_document_id"])
    op.create_index("ix_file_events_bot_id", "file_events", ["bot_id"])
    op.create_index("ix_file_events_company_id", "file_events", ["company_id"])
    op.create_index("ix_file_events_batch_id", "file_events", ["batch_id"])

    op.create_table(
        "user_notification_preferences",
        _pk(),
        sa.Column("company_id", sa.UUID(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bot_id", sa.UUID(), sa.ForeignKey("bots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("notification_enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("batch_size_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("notification_delay_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("email_format", sa.Text(), nullable=False, server_default="html"),
        sa.Column("include_success_details", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("include_error_details", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "bot_id", "user_id", name="uq_user_notification_preferences_scope"),
    )
    op.create_index(
        "ix_user_notification_preferences_company_id", "user_notification_preferences", ["company_id"]
    )

    op.create_table(
        "admin_action_logs",
        _pk(),
        sa.Column("admin_user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column(
            "target_company_id", sa.UUID(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("details", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_admin_action_logs_target_company_id", "admin_action_logs", ["target_company_id"])


def downgrade() -> None:
    op.drop_table("admin_action_logs")
    op.drop_table("user_notification_preferences")
    op.drop_table("file_events")
    op.drop_table("files")
    op.drop_table("users")
    op.drop_table("bots")
    op.drop_table("admin_users")
    op.execute("DROP INDEX IF EXISTS ux_companies_name_ci;")
    op.drop_table("companies")
