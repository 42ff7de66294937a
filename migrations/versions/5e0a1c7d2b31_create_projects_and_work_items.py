"""create_projects_and_work_items

Create `projects` and `work_items` tables for the Epic → Feature → Story →
Task/Bug hierarchy.

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 5e0a1c7d2b31
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e0a1c7d2b31"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=10), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("target_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )

    if "work_items" not in existing_tables:
        op.create_table(
            "work_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("external_id", sa.String(length=20), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="TODO"),
            sa.Column("priority", sa.String(length=20), nullable=True, server_default="MEDIUM"),
            sa.Column("assignee", sa.String(length=100), nullable=True),
            sa.Column("estimate", sa.Numeric(precision=10, scale=2), nullable=True),
            sa.Column("actual_hours", sa.Numeric(precision=10, scale=2), nullable=True),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["work_items.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("external_id"),
        )
        op.create_index("ix_work_items_project_id", "work_items", ["project_id"])
        op.create_index("ix_work_items_parent_id", "work_items", ["parent_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "work_items" in existing_tables:
        op.drop_index("ix_work_items_parent_id", table_name="work_items")
        op.drop_index("ix_work_items_project_id", table_name="work_items")
        op.drop_table("work_items")
    if "projects" in existing_tables:
        op.drop_table("projects")
