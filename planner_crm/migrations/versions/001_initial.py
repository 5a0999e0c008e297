"""Initial pipeline schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Funnel
    op.create_table(
        "funnel",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("order_position", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("generates_contract", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("auto_create_next", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("contract_prompt_text", sa.Text),
        *_timestamps(),
    )
    op.create_index("ix_funnel_order_position", "funnel", ["order_position"])

    # Funnel stage
    op.create_table(
        "funnel_stage",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("funnel_id", sa.Uuid, sa.ForeignKey("funnel.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("color", sa.String(30), nullable=False, server_default="gray"),
        sa.Column("order_position", sa.Integer, nullable=False, server_default="1"),
        sa.Column("sla_hours", sa.Integer),
        sa.Column("is_proposal_milestone", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("funnel_id", "order_position", name="uq_stage_funnel_position"),
    )
    op.create_index("ix_funnel_stage_funnel_id", "funnel_stage", ["funnel_id"])

    # Lost reason
    op.create_table(
        "lost_reason",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # Contact
    op.create_table(
        "contact",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("owner_id", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_contact_email", "contact", ["email"])
    op.create_index("ix_contact_owner_id", "contact", ["owner_id"])

    # Opportunity
    op.create_table(
        "opportunity",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("contact_id", sa.Uuid, sa.ForeignKey("contact.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("current_funnel_id", sa.Uuid, sa.ForeignKey("funnel.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("current_stage_id", sa.Uuid, sa.ForeignKey("funnel_stage.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("stage_entered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("proposal_value", sa.Float),
        sa.Column("total_contract_value", sa.Float),
        sa.Column("lost_reason_id", sa.String(100), sa.ForeignKey("lost_reason.id", ondelete="RESTRICT")),
        sa.Column("lost_at", sa.DateTime(timezone=True)),
        sa.Column("lost_from_stage_id", sa.Uuid, sa.ForeignKey("funnel_stage.id", ondelete="SET NULL")),
        sa.Column("converted_at", sa.DateTime(timezone=True)),
        sa.Column("notes", sa.Text),
        sa.Column("created_by", sa.String(100)),
        sa.Column("row_version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("proposal_value IS NULL OR proposal_value >= 0", name="ck_opportunity_proposal_value"),
        sa.CheckConstraint(
            "(status = 'lost') = (lost_reason_id IS NOT NULL AND lost_at IS NOT NULL)",
            name="ck_opportunity_lost_fields",
        ),
    )
    op.create_index("ix_opportunity_contact_id", "opportunity", ["contact_id"])
    op.create_index("ix_opportunity_current_funnel_id", "opportunity", ["current_funnel_id"])
    op.create_index("ix_opportunity_current_stage_id", "opportunity", ["current_stage_id"])
    op.create_index("ix_opportunity_status", "opportunity", ["status"])

    # Opportunity history (append-only)
    op.create_table(
        "opportunity_history",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("opportunity_id", sa.Uuid, sa.ForeignKey("opportunity.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_stage_id", sa.Uuid, sa.ForeignKey("funnel_stage.id", ondelete="SET NULL")),
        sa.Column("to_stage_id", sa.Uuid, sa.ForeignKey("funnel_stage.id", ondelete="SET NULL")),
        sa.Column("changed_by", sa.String(100)),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_opportunity_history_opportunity_id", "opportunity_history", ["opportunity_id"])
    op.create_index("ix_opportunity_history_created_at", "opportunity_history", ["created_at"])

    # Notification
    op.create_table(
        "notification",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text),
        sa.Column("link", sa.String(300)),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_type", "notification", ["type"])
    op.create_index("ix_notification_link", "notification", ["link"])


def downgrade() -> None:
    op.drop_table("notification")
    op.drop_table("opportunity_history")
    op.drop_table("opportunity")
    op.drop_table("contact")
    op.drop_table("lost_reason")
    op.drop_table("funnel_stage")
    op.drop_table("funnel")
