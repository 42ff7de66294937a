"""Field coercion shared by the service layer.

Every helper takes the raw JSON value, so a number where a string is
expected (or the reverse) ends as a ValidationError (HTTP 422) instead of
an AttributeError deep inside a service.
"""

from __future__ import annotations

from worktrack.core.exceptions import ValidationError
from worktrack.utils.helpers import parse_date, parse_decimal


def choice(value, allowed, field: str) -> str:
    """Upper-case ``value`` and check it against ``allowed``."""
    if not isinstance(value, str) or value.strip().upper() not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(allowed))}",
            details={field: value},
        )
    return value.strip().upper()


def text_field(data: dict, field: str, *, max_length: int | None = None) -> str | None:
    """Stripped string value of ``data[field]``; None when absent or null."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: value})
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            details={field: f"{len(value)} characters"},
        )
    return value


def decimal_field(data: dict, field: str):
    try:
        return parse_decimal(data.get(field), field=field)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: data.get(field)}) from None


def date_field(data: dict, field: str):
    try:
        return parse_date(data.get(field))
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: data.get(field)}) from None


def optional_id(value, field: str) -> int | None:
    """Integer id from JSON; None / "" mean "no reference"."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value}) from None


def actor_name(actor) -> str:
    """Display name recorded on history rows; anything unusable becomes ``system``."""
    if isinstance(actor, str) and actor.strip():
        return actor.strip()[:150]
    return "system"
