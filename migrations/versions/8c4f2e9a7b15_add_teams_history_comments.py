"""add_teams_history_comments

Add `teams` / `team_members`, the `work_item_history` and `comments` activity
tables, `projects.team_id`, and the tag and bug-detail columns on
`work_items`.

Tables and columns are created conditionally so the revision is safe on
databases already built via db.create_all().

Revision ID: 8c4f2e9a7b15
Revises: 5e0a1c7d2b31
Create Date: 2026-10-17 14:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "8c4f2e9a7b15"
down_revision = "5e0a1c7d2b31"
branch_labels = None
depends_on = None

_WORK_ITEM_COLUMNS = (
    ("tags", sa.Text()),
    ("bug_type", sa.String(length=50)),
    ("severity", sa.String(length=50)),
    ("current_behavior", sa.Text()),
    ("expected_behavior", sa.Text()),
    ("reference_url", sa.String(length=500)),
)


def _columns(inspector, table):
    return {c["name"] for c in inspector.get_columns(table)}


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "teams" not in existing_tables:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "team_members" not in existing_tables:
        op.create_table(
            "team_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="MEMBER"),
            sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id", "email", name="uq_team_member_email"),
        )
        op.create_index("ix_team_members_team_id", "team_members", ["team_id"])

    if "team_id" not in _columns(inspector, "projects"):
        with op.batch_alter_table("projects") as batch_op:
            batch_op.add_column(sa.Column("team_id", sa.Integer(), nullable=True))
            batch_op.create_foreign_key(
                "fk_projects_team_id", "teams", ["team_id"], ["id"], ondelete="SET NULL",
            )
            batch_op.create_index("ix_projects_team_id", ["team_id"])

    missing = [
        (name, type_) for name, type_ in _WORK_ITEM_COLUMNS
        if name not in _columns(inspector, "work_items")
    ]
    if missing:
        with op.batch_alter_table("work_items") as batch_op:
            for name, type_ in missing:
                batch_op.add_column(sa.Column(name, type_, nullable=True))

    if "work_item_history" not in existing_tables:
        op.create_table(
            "work_item_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_item_id", sa.Integer(), nullable=False),
            sa.Column("field_name", sa.String(length=100), nullable=False),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("change_type", sa.String(length=50), nullable=False,
                      server_default="UPDATED"),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["work_item_id"], ["work_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "idx_history_item_ts", "work_item_history", ["work_item_id", "created_at"],
        )

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_item_id", sa.Integer(), nullable=False),
            sa.Column("author", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["work_item_id"], ["work_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_comments_work_item_id", "comments", ["work_item_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "comments" in existing_tables:
        op.drop_index("ix_comments_work_item_id", table_name="comments")
        op.drop_table("comments")
    if "work_item_history" in existing_tables:
        op.drop_index("idx_history_item_ts", table_name="work_item_history")
        op.drop_table("work_item_history")

    present = [
        name for name, _ in _WORK_ITEM_COLUMNS
        if name in _columns(inspector, "work_items")
    ]
    if present:
        with op.batch_alter_table("work_items") as batch_op:
            for name in present:
                batch_op.drop_column(name)

    if "team_id" in _columns(inspector, "projects"):
        with op.batch_alter_table("projects") as batch_op:
            batch_op.drop_index("ix_projects_team_id")
            batch_op.drop_constraint("fk_projects_team_id", type_="foreignkey")
            batch_op.drop_column("team_id")

    if "team_members" in existing_tables:
        op.drop_index("ix_team_members_team_id", table_name="team_members")
        op.drop_table("team_members")
    if "teams" in existing_tables:
        op.drop_table("teams")
