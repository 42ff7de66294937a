"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from worktrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkItem", resource_id=42)
    raise ValidationError("Title is required", details={"title": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "WorkItem").
        resource_id: The PK that was looked up. Included in logs and messages.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (e.g. invalid parent/child type pair, editing a derived field).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class CompletionBlockedError(ValidationError):
    """Raised when an aggregation-type item cannot enter DONE yet.

    Carries the ``CompletionCheck`` so callers can list the children that
    are still open. Maps to HTTP 409.
    """

    def __init__(self, check) -> None:
        self.check = check
        super().__init__(
            check.summary() or "Item cannot be completed",
            details=check.to_dict(),
        )


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DataIntegrityError(Exception):
    """Raised when stored data violates a structural invariant.

    The rollup engine raises it when a parent chain is longer than the
    configured depth bound, which means the chain loops back on itself.
    Never swallowed: it points at corruption upstream of the engine.

    Args:
        message: What was detected.
        item_id: The item at which the walk stopped.
    """

    def __init__(self, message: str, item_id: int | str | None = None) -> None:
        self.item_id = item_id
        super().__init__(message)
