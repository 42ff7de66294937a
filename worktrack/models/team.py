"""Team domain model — teams own projects; members are directory entries."""

from datetime import datetime, timezone

from worktrack.models import db

MEMBER_ROLES = {"ADMIN", "MEMBER", "VIEWER"}


class Team(db.Model):
    """A group of people working on one or more projects."""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

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
    members = db.relationship(
        "TeamMember", backref="team", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TeamMember.name",
    )
    projects = db.relationship("Project", backref="team", lazy="dynamic")

    def to_dict(self, include_members=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "member_count": self.members.count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_members:
            result["members"] = [m.to_dict() for m in self.members]
        return result

    def __repr__(self):
        return f"<Team {self.id}: {self.name}>"


class TeamMember(db.Model):
    """Person on a team, identified within it by email."""

    __tablename__ = "team_members"
    __table_args__ = (
        db.UniqueConstraint("team_id", "email", name="uq_team_member_email"),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default="MEMBER",
        comment="ADMIN | MEMBER | VIEWER",
    )
    joined_at = db.Column(
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
            "team_id": self.team_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }

    def __repr__(self):
        return f"<TeamMember {self.id}: {self.email} ({self.role})>"
