"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the workflow tables (cases, fields, views) and the checkpoint
store (checkpoints, undo_log).
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- cases ---
    op.create_table(
        "cases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("model", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- fields ---
    op.create_table(
        "fields",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("caseid", sa.Integer, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(50), nullable=False, server_default="Text"),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("required", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("options", sa.JSON, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
    )
    op.create_index("ix_fields_caseid", "fields", ["caseid"])

    # --- views ---
    op.create_table(
        "views",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("caseid", sa.Integer, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("model", sa.JSON, nullable=False),
    )
    op.create_index("ix_views_caseid", "views", ["caseid"])

    # --- checkpoints ---
    op.create_table(
        "checkpoints",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("caseid", sa.Integer, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("user_command", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("source", sa.String(10), nullable=False, server_default="LLM"),
        sa.Column("tools_executed", sa.JSON, nullable=False),
        sa.Column("changes_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('active', 'committed', 'rolled_back', 'historical')",
            name="checkpoint_status",
        ),
        sa.CheckConstraint("source IN ('LLM', 'MCP', 'API')", name="checkpoint_source"),
    )
    op.create_index(
        "checkpoints_caseid_idx", "checkpoints", ["caseid", sa.text("created_at DESC")]
    )

    # --- undo_log ---
    op.create_table(
        "undo_log",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer, "sqlite"), primary_key=True, autoincrement=True),
        sa.Column(
            "checkpoint_id",
            sa.String(36),
            sa.ForeignKey("checkpoints.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("caseid", sa.Integer, sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("operation", sa.String(10), nullable=False),
        sa.Column("table_name", sa.String(255), nullable=False),
        sa.Column("primary_key", sa.JSON, nullable=False),
        sa.Column("previous_data", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("operation IN ('insert', 'update', 'delete')", name="undo_operation"),
    )
    op.create_index("undo_log_checkpoint_idx", "undo_log", ["checkpoint_id", sa.text("id DESC")])
    op.create_index("undo_log_caseid_idx", "undo_log", ["caseid"])


def downgrade() -> None:
    op.drop_table("undo_log")
    op.drop_table("checkpoints")
    op.drop_table("views")
    op.drop_table("fields")
    op.drop_table("cases")
