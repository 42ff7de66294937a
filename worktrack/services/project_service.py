"""Project service layer.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select

from worktrack.core.exceptions import ConflictError, NotFoundError, ValidationError
from worktrack.models import db
from worktrack.models.project import PROJECT_STATUSES, Project
from worktrack.models.team import Team
from worktrack.services.validation import choice, date_field, optional_id, text_field

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")


def _normalize_key(raw) -> str:
    key = raw.strip().upper() if isinstance(raw, str) else ""
    if not _KEY_RE.match(key):
        raise ValidationError(
            "key must be 2-10 letters or digits, starting with a letter",
            details={"key": raw},
        )
    return key


def _apply_dates(project: Project, data: dict) -> None:
    for field in ("start_date", "target_date"):
        if field in data:
            setattr(project, field, date_field(data, field))


def _resolve_team(raw_team_id) -> int | None:
    team_id = optional_id(raw_team_id, "team_id")
    if team_id is not None and db.session.get(Team, team_id) is None:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team_id


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_projects(status: str | None = None, team_id: int | None = None):
    """Return a query of projects, optionally filtered by status and team."""
    query = Project.query
    if status:
        query = query.filter(Project.status == status.upper())
    if team_id is not None:
        query = query.filter(Project.team_id == team_id)
    return query.order_by(Project.name, Project.id)


def create_project(data: dict) -> Project:
    """Create a project.

    Raises:
        ValidationError: name missing, key malformed, status unknown.
        NotFoundError: team_id does not exist.
        ConflictError: key already used by another project.
    """
    name = text_field(data, "name", max_length=100)
    if not name:
        raise ValidationError("Project name is required", details={"name": "required"})

    key = _normalize_key(data.get("key"))
    existing = db.session.execute(
        select(Project.id).where(Project.key == key)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(resource="Project", field="key", value=key)

    status = choice(data.get("status") or "ACTIVE", PROJECT_STATUSES, "status")

    project = Project(
        key=key,
        name=name,
        description=text_field(data, "description"),
        status=status,
        team_id=_resolve_team(data.get("team_id")),
    )
    _apply_dates(project, data)
    db.session.add(project)
    db.session.flush()
    logger.info("Project created id=%s key=%s team_id=%s", project.id, project.key, project.team_id)
    return project


def update_project(project: Project, data: dict) -> Project:
    """Update mutable project fields. The key is fixed once work items exist."""
    if "name" in data:
        name = text_field(data, "name", max_length=100)
        if not name:
            raise ValidationError("Project name cannot be empty")
        project.name = name

    if "description" in data:
        project.description = text_field(data, "description")

    if "status" in data:
        project.status = choice(data["status"], PROJECT_STATUSES, "status")

    if "team_id" in data:
        project.team_id = _resolve_team(data["team_id"])

    if "key" in data:
        key = _normalize_key(data["key"])
        if key != project.key:
            if project.work_items.count():
                raise ValidationError(
                    "Project key cannot change once work items exist",
                    details={"key": project.key},
                )
            clash = db.session.execute(
                select(Project.id).where(Project.key == key, Project.id != project.id)
            ).scalar_one_or_none()
            if clash is not None:
                raise ConflictError(resource="Project", field="key", value=key)
            project.key = key

    _apply_dates(project, data)
    db.session.flush()
    return project


def delete_project(project: Project) -> None:
    """Delete a project together with all its work items."""
    logger.info("Project deleted id=%s key=%s", project.id, project.key)
    db.session.delete(project)
    db.session.flush()
