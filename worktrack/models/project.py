"""Project domain model — container for the work-item hierarchy."""

from datetime import datetime, timezone

from worktrack.models import db

PROJECT_STATUSES = {"PLANNING", "ACTIVE", "ARCHIVED", "COMPLETED"}


class Project(db.Model):
    """A project owns a forest of work items and supplies their key prefix."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(
        db.String(10), nullable=False, unique=True,
        comment="Short upper-case prefix for work item ids, e.g. PROJ",
    )
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="ACTIVE",
        comment="PLANNING | ACTIVE | ARCHIVED | COMPLETED",
    )
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    target_date = db.Column(db.DateTime(timezone=True), nullable=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

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
    work_items = db.relationship(
        "WorkItem", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "team_id": self.team_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "target_date": self.target_date.isoformat() if self.target_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.key}>"
