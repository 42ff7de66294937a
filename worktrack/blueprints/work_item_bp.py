"""
Worktrack
Work Item Blueprint — CRUD API for Epics, Features, Stories, Tasks and Bugs.

Endpoints:
    GET    /api/v1/projects/<pid>/work-items         — List (filter: type, status, parent_id)
    POST   /api/v1/projects/<pid>/work-items         — Create item
    GET    /api/v1/work-items/<id>                    — Detail (+ ?include_children=1)
    PUT    /api/v1/work-items/<id>                    — Update item (incl. re-parent)
    DELETE /api/v1/work-items/<id>                    — Delete childless item
    PATCH  /api/v1/work-items/<id>/status             — Gated status change
    GET    /api/v1/work-items/<id>/children           — Direct children
    GET    /api/v1/work-items/<id>/completion         — Can this item move to DONE?
    POST   /api/v1/work-items/<id>/recalculate        — Re-run rollup from this item
    GET    /api/v1/work-items/<id>/history            — Field changes, newest first
    GET    /api/v1/work-items/<id>/comments           — Comments, oldest first
    POST   /api/v1/work-items/<id>/comments           — Add comment
    DELETE /api/v1/comments/<id>                      — Delete comment

Mutating responses carry ``rollup_warning`` when the field change was saved
but the parent totals could not be recomputed. The optional ``X-Actor``
header names who made the change.
"""

import logging

from flask import Blueprint, jsonify, request

from worktrack.blueprints import (
    json_body,
    paginate_query,
    register_service_error_handlers,
    request_actor,
)
from worktrack.services import project_service, work_item_service as svc
from worktrack.utils.errors import E, api_error
from worktrack.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

work_item_bp = Blueprint("work_item", __name__, url_prefix="/api/v1")
register_service_error_handlers(work_item_bp)


def _item_response(item, warning, status_code=200):
    body = item.to_dict()
    if warning:
        body["rollup_warning"] = warning
    return jsonify(body), status_code


def _required_string(data, field):
    """400 response if ``field`` is missing, blank or not a string; else None."""
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        return api_error(E.VALIDATION_INVALID, f"{field} must be a string")
    if not (value or "").strip():
        return api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    return None


@work_item_bp.route("/projects/<int:project_id>/work-items", methods=["GET"])
def list_work_items(project_id):
    """List work items for a project.

    Query params:
        type      — EPIC | FEATURE | STORY | TASK | BUG
        status    — TODO | IN_PROGRESS | ON_HOLD | DONE
        parent_id — direct children of an item (use 0 for top-level items)
    """
    project_service.get_project(project_id)
    query = svc.list_work_items(project_id, {
        "type": request.args.get("type"),
        "status": request.args.get("status"),
        "parent_id": request.args.get("parent_id"),
    })
    items, total = paginate_query(query)
    return jsonify({"items": [i.to_dict() for i in items], "total": total}), 200


@work_item_bp.route("/projects/<int:project_id>/work-items", methods=["POST"])
def create_work_item(project_id):
    project = project_service.get_project(project_id)
    data = json_body()
    for field in ("title", "type"):
        err = _required_string(data, field)
        if err:
            return err

    item, warning = svc.create_work_item(project, data, actor=request_actor())
    err = db_commit_or_error()
    if err:
        return err
    return _item_response(item, warning, 201)


@work_item_bp.route("/work-items/<int:item_id>", methods=["GET"])
def get_work_item(item_id):
    item = svc.get_work_item(item_id)
    result = item.to_dict()
    if request.args.get("include_children", "").lower() in ("1", "true", "yes"):
        result["children"] = [c.to_dict() for c in svc.get_children(item)]
    return jsonify(result), 200


@work_item_bp.route("/work-items/<int:item_id>", methods=["PUT"])
def update_work_item(item_id):
    item = svc.get_work_item(item_id)
    item, warning = svc.update_work_item(item, json_body(), actor=request_actor())
    err = db_commit_or_error()
    if err:
        return err
    return _item_response(item, warning)


@work_item_bp.route("/work-items/<int:item_id>", methods=["DELETE"])
def delete_work_item(item_id):
    item = svc.get_work_item(item_id)
    warning = svc.delete_work_item(item)
    err = db_commit_or_error()
    if err:
        return err
    body = {"message": "Work item deleted"}
    if warning:
        body["rollup_warning"] = warning
    return jsonify(body), 200


@work_item_bp.route("/work-items/<int:item_id>/status", methods=["PATCH"])
def change_status(item_id):
    """Change status. DONE on a STORY / FEATURE / EPIC requires all children DONE.

    Body: {"status": "DONE"}
    Returns 409 with the blocking children when the gate refuses.
    """
    item = svc.get_work_item(item_id)
    data = json_body()
    err = _required_string(data, "status")
    if err:
        return err

    item, warning = svc.change_status(item, data["status"], actor=request_actor())
    err = db_commit_or_error()
    if err:
        return err
    return _item_response(item, warning)


@work_item_bp.route("/work-items/<int:item_id>/children", methods=["GET"])
def list_children(item_id):
    item = svc.get_work_item(item_id)
    children = svc.get_children(item)
    return jsonify({"items": [c.to_dict() for c in children], "total": len(children)}), 200


@work_item_bp.route("/work-items/<int:item_id>/completion", methods=["GET"])
def completion_check(item_id):
    """Preview the completion gate without changing anything."""
    check = svc.completion_gate().can_complete(item_id)
    body = check.to_dict()
    body["message"] = check.summary()
    return jsonify(body), 200


@work_item_bp.route("/work-items/<int:item_id>/recalculate", methods=["POST"])
def recalculate(item_id):
    item = svc.get_work_item(item_id)
    svc.recalculate_from(item)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# History & comments
# ═════════════════════════════════════════════════════════════════════════════

@work_item_bp.route("/work-items/<int:item_id>/history", methods=["GET"])
def list_history(item_id):
    item = svc.get_work_item(item_id)
    rows = svc.list_history(item)
    return jsonify({"items": [h.to_dict() for h in rows], "total": len(rows)}), 200


@work_item_bp.route("/work-items/<int:item_id>/comments", methods=["GET"])
def list_comments(item_id):
    item = svc.get_work_item(item_id)
    comments = svc.list_comments(item)
    return jsonify({"items": [c.to_dict() for c in comments], "total": len(comments)}), 200


@work_item_bp.route("/work-items/<int:item_id>/comments", methods=["POST"])
def add_comment(item_id):
    item = svc.get_work_item(item_id)
    comment = svc.add_comment(item, json_body(), actor=request_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201


@work_item_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    comment = svc.get_comment(comment_id)
    svc.delete_comment(comment)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Comment deleted"}), 200
