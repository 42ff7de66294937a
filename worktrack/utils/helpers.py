"""Shared helpers for blueprints and services.

parse_date:     returns None on empty input, raises ValueError on bad input
parse_decimal:  returns None on empty input, raises ValueError on bad or
                negative input
db_commit_or_error: commit or return a ready-made error response
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from worktrack.models import db
from worktrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO date, ISO datetime or DD.MM.YYYY) to an aware datetime.

    Returns None for empty input. Raises ValueError for anything else that
    does not parse.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%d.%m.%Y")
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}") from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_decimal(value, field="value"):
    """Parse a non-negative hours / points value.

    Accepts numbers and numeric strings. Empty string and None → None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number") from None
    if not number.is_finite():
        raise ValueError(f"{field} must be a number")
    if number < 0:
        raise ValueError(f"{field} must not be negative")
    return number.quantize(Decimal("0.01"))


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError   → 409 (duplicate / constraint violation)
    SQLAlchemyError  → 500 (connection / lock issues)
    """
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        return api_error(E.DATABASE, "Database error")
