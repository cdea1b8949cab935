"""Initial schema: users, sessions, audit logs, registry, officials, templates, sms outbox.

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3a7c1e9b2d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(64), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=True),
            sa.Column("role", sa.String(32), nullable=False, server_default="staff"),
            sa.Column("status", sa.String(16), nullable=False, server_default="inactive"),
            sa.Column("last_login_at", sa.DateTime(timezone=False), nullable=True),
            *_timestamps(),
        )

    # Sessions may already exist from a previous deployment sharing the database.
    if not insp.has_table("sessions"):
        op.create_table(
            "sessions",
            sa.Column("session_id", sa.String(128), primary_key=True),
            sa.Column("expires", sa.Integer(), nullable=False),
            sa.Column("data", sa.Text(), nullable=True),
        )
        op.create_index("idx_sessions_expires", "sessions", ["expires"])

    if not insp.has_table("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_username", sa.String(64), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )
        op.create_index("idx_audit_logs_action", "audit_logs", ["action"])
        op.create_index("idx_audit_logs_created_at", "audit_logs", ["created_at"])

    if not insp.has_table("officials"):
        op.create_table(
            "officials",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("position", sa.String(128), nullable=False),
            sa.Column("term_start", sa.Date(), nullable=True),
            sa.Column("term_end", sa.Date(), nullable=True),
            sa.Column("contact_number", sa.String(32), nullable=True),
            sa.Column("photo_path", sa.String(512), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_officials_name", "officials", ["name"])
        op.create_index("idx_officials_position", "officials", ["position"])

    if not insp.has_table("senior_citizens"):
        op.create_table(
            "senior_citizens",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("osca_id", sa.String(64), nullable=False, unique=True),
            sa.Column("first_name", sa.String(128), nullable=False),
            sa.Column("middle_name", sa.String(128), nullable=True),
            sa.Column("last_name", sa.String(128), nullable=False),
            sa.Column("birthdate", sa.Date(), nullable=False),
            sa.Column("sex", sa.String(16), nullable=True),
            sa.Column("civil_status", sa.String(32), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("barangay", sa.String(128), nullable=True),
            sa.Column("contact_number", sa.String(32), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            sa.Column("remarks", sa.Text(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_senior_citizens_last_name", "senior_citizens", ["last_name"])
        op.create_index("idx_senior_citizens_barangay", "senior_citizens", ["barangay"])
        op.create_index("idx_senior_citizens_status", "senior_citizens", ["status"])

    if not insp.has_table("templates"):
        op.create_table(
            "templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("category", sa.String(64), nullable=True),
            sa.Column("body", sa.Text(), nullable=False),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if not insp.has_table("sms_messages"):
        op.create_table(
            "sms_messages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("recipient", sa.String(32), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="queued"),
            sa.Column("template_id", sa.Integer(), sa.ForeignKey("templates.id", ondelete="SET NULL"), nullable=True),
            sa.Column(
                "senior_citizen_id",
                sa.Integer(),
                sa.ForeignKey("senior_citizens.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("sent_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_sms_messages_created_at", "sms_messages", ["created_at"])
        op.create_index("idx_sms_messages_status", "sms_messages", ["status"])


def downgrade() -> None:
    op.drop_table("sms_messages")
    op.drop_table("templates")
    op.drop_table("senior_citizens")
    op.drop_table("officials")
    op.drop_table("audit_logs")
    op.drop_table("sessions")
    op.drop_table("users")
