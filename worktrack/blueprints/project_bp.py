"""
Worktrack
Project Blueprint — CRUD API for projects plus project-wide rollup repair.

Endpoints:
    GET    /api/v1/projects                     — List projects (?status=, ?team_id=)
    POST   /api/v1/projects                     — Create project
    GET    /api/v1/projects/<id>                — Detail (+ ?include_totals=1)
    PUT    /api/v1/projects/<id>                — Update project
    DELETE /api/v1/projects/<id>                — Delete project and its items
    POST   /api/v1/projects/<id>/recalculate    — Rebuild all rolled-up totals
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import func, select

from worktrack.blueprints import json_body, paginate_query, register_service_error_handlers
from worktrack.models import db
from worktrack.models.work_item import WorkItem
from worktrack.services import project_service, work_item_service
from worktrack.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_service_error_handlers(project_bp)


def _top_level_totals(project_id):
    """Sum effort over the project's top-level items (their subtrees are rolled up)."""
    estimate, actual = db.session.execute(
        select(
            func.coalesce(func.sum(WorkItem.estimate), 0),
            func.coalesce(func.sum(WorkItem.actual_hours), 0),
        ).where(WorkItem.project_id == project_id, WorkItem.parent_id.is_(None))
    ).one()
    return {"estimate": float(estimate), "actual_hours": float(actual)}


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """List projects. Query params: status, team_id."""
    query = project_service.list_projects(
        status=request.args.get("status"),
        team_id=request.args.get("team_id", type=int),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [p.to_dict() for p in items], "total": total}), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    project = project_service.create_project(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    result = project.to_dict()
    if request.args.get("include_totals", "").lower() in ("1", "true", "yes"):
        result["totals"] = _top_level_totals(project.id)
    return jsonify(result), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project = project_service.get_project(project_id)
    project = project_service.update_project(project, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project = project_service.get_project(project_id)
    project_service.delete_project(project)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Project deleted"}), 200


@project_bp.route("/projects/<int:project_id>/recalculate", methods=["POST"])
def recalculate_project(project_id):
    """Rebuild every STORY / FEATURE / EPIC total in the project."""
    project = project_service.get_project(project_id)
    stats = work_item_service.recalculate_project(project)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stats), 200
