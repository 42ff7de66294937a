"""Team service layer — teams, their members and the projects they own.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from worktrack.core.exceptions import ConflictError, NotFoundError, ValidationError
from worktrack.models import db
from worktrack.models.project import Project
from worktrack.models.team import MEMBER_ROLES, Team, TeamMember
from worktrack.services.validation import choice, text_field

logger = logging.getLogger(__name__)


def _is_active(data: dict) -> bool:
    value = data["is_active"]
    if not isinstance(value, bool):
        raise ValidationError("is_active must be true or false", details={"is_active": value})
    return value


def _email(data: dict) -> str:
    email = (text_field(data, "email", max_length=200) or "").lower()
    if "@" not in email:
        raise ValidationError("A valid email is required", details={"email": data.get("email")})
    return email


def _ensure_email_free(team: Team, email: str, member_id: int | None = None) -> None:
    query = select(TeamMember.id).where(
        TeamMember.team_id == team.id, TeamMember.email == email,
    )
    if member_id is not None:
        query = query.where(TeamMember.id != member_id)
    if db.session.execute(query).scalar_one_or_none() is not None:
        raise ConflictError(resource="TeamMember", field="email", value=email)


# ── Teams ────────────────────────────────────────────────────────────────────

def get_team(team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def list_teams(active_only: bool = False):
    query = Team.query
    if active_only:
        query = query.filter(Team.is_active.is_(True))
    return query.order_by(Team.name, Team.id)


def create_team(data: dict) -> Team:
    name = text_field(data, "name", max_length=100)
    if not name:
        raise ValidationError("Team name is required", details={"name": "required"})

    team = Team(
        name=name,
        description=text_field(data, "description"),
        is_active=_is_active(data) if "is_active" in data else True,
    )
    db.session.add(team)
    db.session.flush()
    logger.info("Team created id=%s name=%s", team.id, team.name)
    return team


def update_team(team: Team, data: dict) -> Team:
    if "name" in data:
        name = text_field(data, "name", max_length=100)
        if not name:
            raise ValidationError("Team name cannot be empty")
        team.name = name
    if "description" in data:
        team.description = text_field(data, "description")
    if "is_active" in data:
        team.is_active = _is_active(data)
    db.session.flush()
    return team


def delete_team(team: Team) -> None:
    """Delete a team and its memberships. Its projects stay, without a team."""
    released = team.projects.all()
    for project in released:
        project.team_id = None
    logger.info(
        "Team deleted id=%s name=%s projects_released=%d", team.id, team.name, len(released),
    )
    db.session.delete(team)
    db.session.flush()


def list_team_projects(team: Team) -> list[Project]:
    return team.projects.order_by(Project.name, Project.id).all()


# ── Members ──────────────────────────────────────────────────────────────────

def list_members(team: Team) -> list[TeamMember]:
    return team.members.all()


def get_member(team: Team, member_id: int) -> TeamMember:
    member = db.session.get(TeamMember, member_id)
    if member is None or member.team_id != team.id:
        raise NotFoundError(resource="TeamMember", resource_id=member_id)
    return member


def add_member(team: Team, data: dict) -> TeamMember:
    """Add a member. Raises ConflictError when the email is already on the team."""
    name = text_field(data, "name", max_length=100)
    if not name:
        raise ValidationError("Member name is required", details={"name": "required"})
    email = _email(data)
    role = choice(data.get("role") or "MEMBER", MEMBER_ROLES, "role")
    _ensure_email_free(team, email)

    member = TeamMember(team_id=team.id, name=name, email=email, role=role)
    db.session.add(member)
    db.session.flush()
    logger.info("Team member added team_id=%s member_id=%s role=%s", team.id, member.id, role)
    return member


def update_member(member: TeamMember, data: dict) -> TeamMember:
    if "name" in data:
        name = text_field(data, "name", max_length=100)
        if not name:
            raise ValidationError("Member name cannot be empty")
        member.name = name
    if "email" in data:
        email = _email(data)
        _ensure_email_free(member.team, email, member_id=member.id)
        member.email = email
    if "role" in data:
        member.role = choice(data["role"], MEMBER_ROLES, "role")
    db.session.flush()
    return member


def remove_member(member: TeamMember) -> None:
    logger.info("Team member removed team_id=%s member_id=%s", member.team_id, member.id)
    db.session.delete(member)
    db.session.flush()
