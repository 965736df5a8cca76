"""Hub session store and audit trail."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_01_hub_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "hub_sessions",
        sa.Column("session_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("access_code", sa.String(length=32), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("cultural_context", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_world_index", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("worlds", sa.JSON(), nullable=False),
        sa.Column("progress", sa.JSON(), nullable=False),
    )
    op.create_index("ix_hub_sessions_access_code", "hub_sessions", ["access_code"], unique=True)
    op.create_index("ix_hub_sessions_tenant", "hub_sessions", ["tenant_id"])
    op.create_index("ix_hub_sessions_user", "hub_sessions", ["user_id"])

    op.create_table(
        "hub_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "session_id",
            sa.String(length=64),
            sa.ForeignKey("hub_sessions.session_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_hub_audit_events_session", "hub_audit_events", ["session_id"])


def downgrade() -> None:
    op.drop_index("ix_hub_audit_events_session", table_name="hub_audit_events")
    op.drop_table("hub_audit_events")
    op.drop_index("ix_hub_sessions_user", table_name="hub_sessions")
    op.drop_index("ix_hub_sessions_tenant", table_name="hub_sessions")
    op.drop_index("ix_hub_sessions_access_code", table_name="hub_sessions")
    op.drop_table("hub_sessions")
