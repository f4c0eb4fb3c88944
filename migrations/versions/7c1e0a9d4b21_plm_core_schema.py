"""plm_core_schema

Creates the PLM core tables:
  - users, projects, project_members : identity and project scope
  - parts, part_revisions : parts with append-only revision history
  - bom_items : parent → child BOM edges
  - change_orders + approvers / affected parts / audit trail
  - audit_logs : part and BOM mutation log

Tables are created conditionally (IF NOT EXISTS semantics) so the migration
can run against a database that already received them via db.create_all().

Revision ID: 7c1e0a9d4b21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e0a9d4b21"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Identity ──────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "project_members" not in existing:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role_in_project", sa.String(length=100), nullable=True),
            sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        )
        op.create_index("ix_project_members_project", "project_members", ["project_id"])
        op.create_index("ix_project_members_user", "project_members", ["user_id"])

    # ── Parts & revisions ─────────────────────────────────────────────────
    if "parts" not in existing:
        op.create_table(
            "parts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("part_number", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                      comment="draft | active | obsolete"),
            # FK to part_revisions added below, once that table exists
            sa.Column("current_revision_id", sa.Integer(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "part_number", name="uq_part_project_number"),
        )
        op.create_index("ix_parts_project_id", "parts", ["project_id"])
        op.create_index("ix_parts_project_status", "parts", ["project_id", "status"])

    if "part_revisions" not in existing:
        op.create_table(
            "part_revisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("part_id", sa.Integer(), nullable=False),
            sa.Column("revision_code", sa.String(length=10), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("changes", sa.JSON(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["part_id"], ["parts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("part_id", "revision_code", name="uq_revision_part_code"),
        )
        op.create_index("ix_part_revisions_part_id", "part_revisions", ["part_id"])
        if bind.dialect.name != "sqlite":
            op.create_foreign_key(
                "fk_parts_current_revision", "parts", "part_revisions",
                ["current_revision_id"], ["id"], ondelete="SET NULL",
            )

    if "bom_items" not in existing:
        op.create_table(
            "bom_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("parent_part_id", sa.Integer(), nullable=False),
            sa.Column("child_part_id", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.String(length=32), nullable=False, server_default="1"),
            sa.Column("unit", sa.String(length=20), nullable=False, server_default="EA"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_part_id"], ["parts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["child_part_id"], ["parts.id"], ondelete="CASCADE"),
            sa.CheckConstraint("parent_part_id <> child_part_id", name="ck_bom_no_self_reference"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bom_items_project_id", "bom_items", ["project_id"])
        op.create_index("ix_bom_items_parent", "bom_items", ["parent_part_id"])
        op.create_index("ix_bom_items_child", "bom_items", ["child_part_id"])

    # ── Change orders ─────────────────────────────────────────────────────
    if "change_orders" not in existing:
        op.create_table(
            "change_orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=3), nullable=False, comment="ECR | ECN"),
            sa.Column("number", sa.String(length=20), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                      comment="draft | submitted | in_review | approved | rejected | implemented"),
            sa.Column("requester_id", sa.Integer(), nullable=True),
            sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("implemented_revision_id", sa.String(length=64), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "type", "number", name="uq_change_order_number"),
        )
        op.create_index("ix_change_orders_project_id", "change_orders", ["project_id"])
        op.create_index("ix_change_orders_requester_id", "change_orders", ["requester_id"])
        op.create_index("ix_change_orders_project_status", "change_orders", ["project_id", "status"])

    if "change_order_approvers" not in existing:
        op.create_table(
            "change_order_approvers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("change_order_id", sa.Integer(), nullable=False),
            sa.Column("approver_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="pending"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["change_order_id"], ["change_orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("change_order_id", "approver_id", name="uq_change_order_approver"),
        )
        op.create_index("ix_change_order_approvers_change_order_id", "change_order_approvers", ["change_order_id"])
        op.create_index("ix_change_order_approvers_approver_id", "change_order_approvers", ["approver_id"])

    if "change_order_affected_parts" not in existing:
        op.create_table(
            "change_order_affected_parts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("change_order_id", sa.Integer(), nullable=False),
            sa.Column("part_id", sa.Integer(), nullable=False),
            sa.Column("impact_description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["change_order_id"], ["change_orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["part_id"], ["parts.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("change_order_id", "part_id", name="uq_change_order_affected_part"),
        )
        op.create_index("ix_change_order_affected_parts_change_order_id", "change_order_affected_parts", ["change_order_id"])
        op.create_index("ix_change_order_affected_parts_part_id", "change_order_affected_parts", ["part_id"])

    if "change_order_audit_trail" not in existing:
        op.create_table(
            "change_order_audit_trail",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("change_order_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=20), nullable=True),
            sa.Column("to_status", sa.String(length=20), nullable=False),
            sa.Column("changed_by", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["change_order_id"], ["change_orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["changed_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_change_order_audit_trail_change_order_id", "change_order_audit_trail", ["change_order_id"])

    # ── Generic audit log ─────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_project", "audit_logs", ["project_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])
        op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("change_order_audit_trail")
    op.drop_table("change_order_affected_parts")
    op.drop_table("change_order_approvers")
    op.drop_table("change_orders")
    op.drop_table("bom_items")
    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        op.drop_constraint("fk_parts_current_revision", "parts", type_="foreignkey")
    op.drop_table("part_revisions")
    op.drop_table("parts")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("users")
