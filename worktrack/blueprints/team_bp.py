"""
Worktrack
Team Blueprint — teams, their members and the projects they own.

Endpoints:
    GET    /api/v1/teams                                — List teams (?active=1)
    POST   /api/v1/teams                                — Create team
    GET    /api/v1/teams/<id>                           — Detail (+ ?include_members=1)
    PUT    /api/v1/teams/<id>                           — Update team
    DELETE /api/v1/teams/<id>                           — Delete team (projects keep running)
    GET    /api/v1/teams/<id>/members                   — List members
    POST   /api/v1/teams/<id>/members                   — Add member
    PUT    /api/v1/teams/<id>/members/<member_id>       — Update member
    DELETE /api/v1/teams/<id>/members/<member_id>       — Remove member
    GET    /api/v1/teams/<id>/projects                  — Projects owned by the team
"""

from flask import Blueprint, jsonify, request

from worktrack.blueprints import json_body, paginate_query, register_service_error_handlers
from worktrack.services import team_service
from worktrack.utils.helpers import db_commit_or_error

team_bp = Blueprint("team", __name__, url_prefix="/api/v1")
register_service_error_handlers(team_bp)


def _flag(name):
    return request.args.get(name, "").lower() in ("1", "true", "yes")


@team_bp.route("/teams", methods=["GET"])
def list_teams():
    query = team_service.list_teams(active_only=_flag("active"))
    items, total = paginate_query(query)
    return jsonify({"items": [t.to_dict() for t in items], "total": total}), 200


@team_bp.route("/teams", methods=["POST"])
def create_team():
    team = team_service.create_team(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(team.to_dict()), 201


@team_bp.route("/teams/<int:team_id>", methods=["GET"])
def get_team(team_id):
    team = team_service.get_team(team_id)
    return jsonify(team.to_dict(include_members=_flag("include_members"))), 200


@team_bp.route("/teams/<int:team_id>", methods=["PUT"])
def update_team(team_id):
    team = team_service.update_team(team_service.get_team(team_id), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(team.to_dict()), 200


@team_bp.route("/teams/<int:team_id>", methods=["DELETE"])
def delete_team(team_id):
    team_service.delete_team(team_service.get_team(team_id))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Team deleted"}), 200


@team_bp.route("/teams/<int:team_id>/projects", methods=["GET"])
def list_team_projects(team_id):
    projects = team_service.list_team_projects(team_service.get_team(team_id))
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)}), 200


# ── Members ──────────────────────────────────────────────────────────────────


@team_bp.route("/teams/<int:team_id>/members", methods=["GET"])
def list_members(team_id):
    members = team_service.list_members(team_service.get_team(team_id))
    return jsonify({"items": [m.to_dict() for m in members], "total": len(members)}), 200


@team_bp.route("/teams/<int:team_id>/members", methods=["POST"])
def add_member(team_id):
    member = team_service.add_member(team_service.get_team(team_id), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(member.to_dict()), 201


@team_bp.route("/teams/<int:team_id>/members/<int:member_id>", methods=["PUT"])
def update_member(team_id, member_id):
    team = team_service.get_team(team_id)
    member = team_service.update_member(team_service.get_member(team, member_id), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(member.to_dict()), 200


@team_bp.route("/teams/<int:team_id>/members/<int:member_id>", methods=["DELETE"])
def remove_member(team_id, member_id):
    team = team_service.get_team(team_id)
    team_service.remove_member(team_service.get_member(team, member_id))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Member removed"}), 200
