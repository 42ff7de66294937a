"""
Worktrack
Work item domain model — Epic → Feature → Story → Task/Bug.

Aggregation types (STORY, FEATURE, EPIC) carry derived estimate /
actual_hours: the sum of their direct children, maintained by
``worktrack.services.rollup_engine``. Leaf types (TASK, BUG) carry
values authored by users.
"""

from datetime import datetime, timezone
from decimal import Decimal

from worktrack.models import db

# ── Shared constants ─────────────────────────────────────────────────────

ITEM_TYPES = {"EPIC", "FEATURE", "STORY", "TASK", "BUG"}
AGGREGATION_TYPES = frozenset({"STORY", "FEATURE", "EPIC"})
LEAF_TYPES = frozenset({"TASK", "BUG"})

STATUSES = {"TODO", "IN_PROGRESS", "ON_HOLD", "DONE"}
DONE = "DONE"
INITIAL_STATUS = "TODO"

PRIORITIES = {"LOW", "MEDIUM", "HIGH", "CRITICAL"}

# ── Bug details (BUG items only)
BUG_TYPES = {"BUG", "DEFECT", "PROD_INCIDENT"}
SEVERITIES = {"LOW", "MEDIUM", "HIGH"}
BUG_FIELDS = ("bug_type", "severity", "current_behavior", "expected_behavior", "reference_url")
# bug types that must describe current vs expected behaviour
BEHAVIOR_REQUIRED_BUG_TYPES = {"DEFECT", "PROD_INCIDENT"}

# parent type → child types it may hold
ALLOWED_CHILD_TYPES = {
    "EPIC": {"FEATURE"},
    "FEATURE": {"STORY", "BUG"},
    "STORY": {"TASK", "BUG"},
    "TASK": set(),
    "BUG": {"TASK"},
}


def is_valid_parent_child(parent_type: str, child_type: str) -> bool:
    """Return True if ``child_type`` may be placed under ``parent_type``."""
    return child_type in ALLOWED_CHILD_TYPES.get(parent_type, set())


def _decimal_to_json(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class WorkItem(db.Model):
    """
    A single node in a project's work-item forest.

    Lifecycle: TODO ↔ IN_PROGRESS ↔ ON_HOLD ↔ DONE (any → any), except
    that an aggregation-type item may only enter DONE once every direct
    child is DONE (see ``worktrack.services.completion_gate``).
    """

    __tablename__ = "work_items"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(
        db.String(20), nullable=False, unique=True,
        comment="Human-readable key, e.g. PROJ-001",
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("work_items.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    # ── Identification
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(
        db.String(20), nullable=False,
        comment="EPIC | FEATURE | STORY | TASK | BUG",
    )

    # ── Lifecycle
    status = db.Column(
        db.String(20), nullable=False, default=INITIAL_STATUS,
        comment="TODO | IN_PROGRESS | ON_HOLD | DONE",
    )
    priority = db.Column(
        db.String(20), default="MEDIUM",
        comment="LOW | MEDIUM | HIGH | CRITICAL",
    )
    assignee = db.Column(db.String(100), default="", comment="Assignee display name")
    tags = db.Column(db.Text, nullable=True, comment="Comma-separated labels")

    # ── Effort (derived for aggregation types)
    estimate = db.Column(
        db.Numeric(10, 2), nullable=True,
        comment="Story points for STORY, hours otherwise",
    )
    actual_hours = db.Column(db.Numeric(10, 2), nullable=True)

    # ── Dates
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Bug details
    bug_type = db.Column(db.String(50), nullable=True, comment="BUG | DEFECT | PROD_INCIDENT")
    severity = db.Column(db.String(50), nullable=True, comment="LOW | MEDIUM | HIGH")
    current_behavior = db.Column(db.Text, nullable=True)
    expected_behavior = db.Column(db.Text, nullable=True)
    reference_url = db.Column(db.String(500), nullable=True)

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

    # ── Relationships
    history = db.relationship(
        "WorkItemHistory", backref="work_item", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "Comment", backref="work_item", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_aggregate(self) -> bool:
        return self.type in AGGREGATION_TYPES

    @property
    def tag_list(self) -> list[str]:
        return [t for t in (self.tags or "").split(",") if t]

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "project_id": self.project_id,
            "parent_id": self.parent_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
            "tags": self.tag_list,
            "estimate": _decimal_to_json(self.estimate),
            "actual_hours": _decimal_to_json(self.actual_hours),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "bug_type": self.bug_type,
            "severity": self.severity,
            "current_behavior": self.current_behavior,
            "expected_behavior": self.expected_behavior,
            "reference_url": self.reference_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WorkItem {self.id}: {self.external_id} [{self.type}]>"
