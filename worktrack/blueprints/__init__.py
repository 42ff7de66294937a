"""
Worktrack
Blueprint registry helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from worktrack.core.exceptions import (
    CompletionBlockedError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from worktrack.models import db
from worktrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def json_body() -> dict:
    """Request JSON as a dict; an empty body is {}.

    Raises:
        ValidationError: the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def request_actor() -> str | None:
    """Display name of the caller, passed by the upstream gateway."""
    return request.headers.get("X-Actor")


def register_service_error_handlers(bp):
    """Map service-layer exceptions to JSON responses for one blueprint.

    Every handler rolls back the session: nothing flushed by a failed
    request may reach the next commit.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(CompletionBlockedError)
    def _handle_completion_blocked(error: CompletionBlockedError):
        db.session.rollback()
        return api_error(
            E.CONFLICT_STATE, "Cannot mark as Done: " + str(error), details=error.details,
        )

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(DataIntegrityError)
    def _handle_integrity(error: DataIntegrityError):
        db.session.rollback()
        logger.error(
            "Data integrity failure endpoint=%s item_id=%s: %s",
            request.endpoint, error.item_id, error,
        )
        return api_error(E.DATA_INTEGRITY, "Work item hierarchy is corrupted")

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error endpoint=%s", request.endpoint)
        return api_error(E.DATABASE, "Database error")
