"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Users, invite codes, refresh-token sessions, role defaults and the usage
ledger. Role defaults are seeded here: admin unlimited, user 500K/10M.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("username", sa.String(30), nullable=False),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("password_hash", sa.String, nullable=False),
        sa.Column(
            "password_format", sa.String, nullable=False, server_default="bcrypt"
        ),
        sa.Column("role", sa.String, nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "daily_token_limit", sa.Integer, nullable=False, server_default="-1"
        ),
        sa.Column(
            "monthly_token_limit", sa.Integer, nullable=False, server_default="-1"
        ),
        sa.Column(
            "failed_login_attempts", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('admin', 'user')", name="ck_user_role"),
        sa.CheckConstraint(
            "password_format IN ('bcrypt', 'legacy_plaintext')",
            name="ck_user_password_format",
        ),
        sa.CheckConstraint("daily_token_limit >= -1", name="ck_user_daily_limit"),
        sa.CheckConstraint("monthly_token_limit >= -1", name="ck_user_monthly_limit"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index(
        "uq_users_username_lower",
        "users",
        [sa.text("lower(username)")],
        unique=True,
    )

    # --- invite_codes ---
    op.create_table(
        "invite_codes",
        sa.Column(
            "invite_code_id", UUID(as_uuid=True), primary_key=True, nullable=False
        ),
        sa.Column("code", sa.String, nullable=False),
        sa.Column("is_used", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_by",
            UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "used_by",
            UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_invite_codes_invite_code_id",
        "invite_codes",
        ["invite_code_id"],
        unique=True,
    )
    op.create_index("ix_invite_codes_code", "invite_codes", ["code"], unique=True)

    # --- sessions ---
    op.create_table(
        "sessions",
        sa.Column("session_id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("ix_sessions_session_id", "sessions", ["session_id"], unique=True)
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_token_hash", "sessions", ["token_hash"], unique=True)
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    # --- role_defaults ---
    role_defaults = op.create_table(
        "role_defaults",
        sa.Column("role", sa.String, primary_key=True),
        sa.Column("daily_token_limit", sa.Integer, nullable=False),
        sa.Column("monthly_token_limit", sa.Integer, nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.bulk_insert(
        role_defaults,
        [
            {"role": "admin", "daily_token_limit": -1, "monthly_token_limit": -1},
            {
                "role": "user",
                "daily_token_limit": 500000,
                "monthly_token_limit": 10000000,
            },
        ],
    )

    # --- usage_logs ---
    op.create_table(
        "usage_logs",
        sa.Column(
            "usage_log_id", UUID(as_uuid=True), primary_key=True, nullable=False
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("endpoint", sa.String, nullable=False),
        sa.Column("tokens_input", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tokens_output", sa.Integer, nullable=False, server_default="0"),
        sa.Column("model", sa.String, nullable=True),
        sa.Column("project_id", sa.String, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_usage_logs_user_created", "usage_logs", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_usage_logs_user_created", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_table("role_defaults")
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_token_hash", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_index("ix_sessions_session_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_invite_codes_code", table_name="invite_codes")
    op.drop_index("ix_invite_codes_invite_code_id", table_name="invite_codes")
    op.drop_table("invite_codes")
    op.drop_index("uq_users_username_lower", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_user_id", table_name="users")
    op.drop_table("users")
