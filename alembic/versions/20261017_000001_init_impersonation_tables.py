"""Initial impersonation tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SYSTEM_ROLES = ("system_admin", "company_admin", "team_lead", "frontline_worker")
SESSION_STATES = ("active", "ended_manual", "ended_timeout", "ended_emergency")
AUDIT_OPERATIONS = ("start", "start_failed", "end", "timeout", "emergency_terminate")


def upgrade() -> None:
    op.create_table(
        "company",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "user",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column(
            "role",
            sa.Enum(*SYSTEM_ROLES, name="system_role"),
            nullable=False,
            server_default="frontline_worker",
        ),
        sa.Column("company_id", sa.String(), sa.ForeignKey("company.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_company_id", "user", ["company_id"])

    op.create_table(
        "auth_session",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("session_token", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_auth_session_user_id", "auth_session", ["user_id"])
    op.create_index("ix_auth_session_session_token", "auth_session", ["session_token"], unique=True)

    op.create_table(
        "impersonation_session",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("admin_user_id", sa.String(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("target_user_id", sa.String(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("session_token", sa.String(), nullable=False, comment="Bearer token for the impersonated client"),
        sa.Column("original_session_token", sa.String(), nullable=False, comment="Admin credential restored when impersonation ends"),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "state",
            sa.Enum(*SESSION_STATES, name="impersonation_state"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("terminated_at", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False, comment="Why impersonation was needed (support ticket #, etc.)"),
        sa.Column("correlation_id", sa.String(), nullable=False),
    )
    op.create_index("ix_impersonation_session_admin_user_id", "impersonation_session", ["admin_user_id"])
    op.create_index("ix_impersonation_session_target_user_id", "impersonation_session", ["target_user_id"])
    op.create_index("ix_impersonation_session_session_token", "impersonation_session", ["session_token"], unique=True)
    op.create_index("ix_impersonation_session_correlation_id", "impersonation_session", ["correlation_id"])
    op.create_index("idx_impersonation_admin_active", "impersonation_session", ["admin_user_id", "is_active"])
    op.create_index("idx_impersonation_active_expires", "impersonation_session", ["is_active", "expires_at"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("operation", sa.Enum(*AUDIT_OPERATIONS, name="audit_operation"), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("correlation_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("input_data", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])
    op.create_index("ix_audit_log_operation", "audit_log", ["operation"])
    op.create_index("ix_audit_log_correlation_id", "audit_log", ["correlation_id"])
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("idx_audit_correlation_timestamp", "audit_log", ["correlation_id", "timestamp"])
    op.create_index("idx_audit_operation_timestamp", "audit_log", ["operation", "timestamp"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("impersonation_session")
    op.drop_table("auth_session")
    op.drop_table("user")
    op.drop_table("company")
    sa.Enum(name="audit_operation").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="impersonation_state").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="system_role").drop(op.get_bind(), checkfirst=True)
