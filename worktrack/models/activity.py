"""
Worktrack
Work item activity — field-change history and comments.

Models:
    - WorkItemHistory: append-only, one row per changed field.
    - Comment: free-text discussion on a work item.
"""

from datetime import datetime, timezone
from decimal import Decimal

from worktrack.models import db

CHANGE_TYPES = {"CREATED", "UPDATED"}

# fields whose edits are written to work_item_history
TRACKED_FIELDS = (
    "title", "status", "priority", "assignee",
    "estimate", "actual_hours", "parent_id",
)


def history_value(value):
    """Render a column value for the text-typed old/new history columns."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class WorkItemHistory(db.Model):
    """
    Immutable record of one field change on a work item.

    Derived aggregate writes from the rollup engine are not recorded.
    """

    __tablename__ = "work_item_history"
    __table_args__ = (
        db.Index("idx_history_item_ts", "work_item_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    work_item_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_name = db.Column(db.String(100), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    change_type = db.Column(
        db.String(50), nullable=False, default="UPDATED",
        comment="CREATED | UPDATED",
    )
    actor = db.Column(
        db.String(150), nullable=False, default="system",
        comment="Display name of whoever made the change",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "change_type": self.change_type,
            "actor": self.actor,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkItemHistory {self.id}: item={self.work_item_id} {self.field_name}>"


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    work_item_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    author = db.Column(db.String(150), nullable=False, default="system")
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "author": self.author,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Comment {self.id} on item {self.work_item_id}>"
