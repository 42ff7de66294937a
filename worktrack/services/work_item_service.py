"""Work item service layer — CRUD plus the rollup / completion hooks.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Work item creation with type / parent / bug-detail validation
- Work item update (fields, re-parenting, status)
- Status change — **completion gate enforced** for STORY / FEATURE / EPIC
- Deletion (refused while child items exist)
- Field-change history and comments
- Manual and project-wide rollup repair

Rollup trigger points (``RollupEngine.recalculate``):
    create with parent           → parent chain
    estimate / actual_hours edit → parent chain
    re-parent                    → old chain first, then new chain
    delete with parent           → parent chain
    DONE auto-fills actual_hours → parent chain

Mutating operations return ``(item, rollup_warning)``. The warning is None
unless a rollup hit a DataIntegrityError: the edit itself stays flushed,
the failure is logged at ERROR and reported back to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select

from worktrack.core.exceptions import (
    CompletionBlockedError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from worktrack.models import db
from worktrack.models.activity import (
    TRACKED_FIELDS,
    Comment,
    WorkItemHistory,
    history_value,
)
from worktrack.models.project import Project
from worktrack.models.work_item import (
    AGGREGATION_TYPES,
    BEHAVIOR_REQUIRED_BUG_TYPES,
    BUG_FIELDS,
    BUG_TYPES,
    DONE,
    INITIAL_STATUS,
    ITEM_TYPES,
    LEAF_TYPES,
    PRIORITIES,
    SEVERITIES,
    STATUSES,
    WorkItem,
    is_valid_parent_child,
)
from worktrack.services.completion_gate import CompletionGate
from worktrack.services.rollup_engine import DEFAULT_MAX_DEPTH, RollupEngine
from worktrack.services.validation import (
    actor_name,
    choice,
    date_field,
    decimal_field,
    optional_id,
    text_field,
)
from worktrack.services.work_item_store import SqlAlchemyWorkItemStore

logger = logging.getLogger(__name__)

ROLLUP_FAILED_MESSAGE = "Saved, but rolled-up totals could not be updated. Try again."

_DATE_FIELDS = ("start_date", "end_date")
_EFFORT_FIELDS = ("estimate", "actual_hours")


# ── Collaborators ────────────────────────────────────────────────────────────

def _max_depth() -> int:
    return int(current_app.config.get("ROLLUP_MAX_DEPTH", DEFAULT_MAX_DEPTH))


def rollup_engine() -> RollupEngine:
    return RollupEngine(SqlAlchemyWorkItemStore(), max_depth=_max_depth())


def completion_gate() -> CompletionGate:
    return CompletionGate(SqlAlchemyWorkItemStore())


def _run_rollups(*parent_ids) -> str | None:
    """Recalculate every given parent chain, in order.

    A corrupted chain does not stop the chains after it. Returns the
    warning if any of them failed.
    """
    engine = rollup_engine()
    failed = False
    for parent_id in parent_ids:
        if parent_id is None:
            continue
        try:
            engine.recalculate(parent_id)
        except DataIntegrityError:
            logger.exception("Rollup failed starting at work item id=%s", parent_id)
            failed = True
    return ROLLUP_FAILED_MESSAGE if failed else None


# ── Validation helpers ───────────────────────────────────────────────────────

def _is_descendant(candidate: WorkItem, ancestor_id: int) -> bool:
    """True if ``ancestor_id`` appears on ``candidate``'s parent chain."""
    current = candidate
    for _ in range(_max_depth()):
        if current.parent_id is None:
            return False
        if current.parent_id == ancestor_id:
            return True
        current = db.session.get(WorkItem, current.parent_id)
        if current is None:
            return False
    raise DataIntegrityError(
        f"Parent chain above work item {candidate.id} does not terminate",
        item_id=candidate.id,
    )


def _resolve_parent(project_id: int, raw_parent_id, child_type: str,
                    item: WorkItem | None = None) -> WorkItem | None:
    """Load and validate the requested parent for an item of ``child_type``."""
    parent_id = optional_id(raw_parent_id, "parent_id")
    if parent_id is None:
        return None

    parent = db.session.get(WorkItem, parent_id)
    if parent is None:
        raise NotFoundError(resource="Parent work item", resource_id=parent_id)
    if parent.project_id != project_id:
        raise ValidationError(
            "Parent work item belongs to a different project",
            details={"parent_id": parent_id},
        )
    if not is_valid_parent_child(parent.type, child_type):
        raise ValidationError(
            f"A {child_type} cannot be placed under a {parent.type}",
            details={"parent_type": parent.type, "child_type": child_type},
        )
    if item is not None and item.id is not None:
        if parent.id == item.id or _is_descendant(parent, item.id):
            raise ValidationError(
                "A work item cannot be moved under itself or one of its descendants",
                details={"parent_id": parent_id},
            )
    return parent


def _tags_field(data: dict) -> str | None:
    """Normalize ``tags`` (list or comma-separated string) to stored form."""
    raw = data.get("tags")
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, list) and all(isinstance(t, str) for t in raw):
        parts = [p for t in raw for p in t.split(",")]
    else:
        raise ValidationError(
            "tags must be a list of strings or a comma-separated string",
            details={"tags": raw},
        )
    tags = []
    for part in parts:
        tag = part.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return ",".join(tags) or None


def _bug_details(item_type: str, data: dict, item: WorkItem | None = None) -> dict:
    """Validated bug columns for a BUG; rejects bug details on other types.

    On update, ``item`` supplies the values the request leaves unchanged.
    """
    if item_type != "BUG":
        supplied = sorted(f for f in BUG_FIELDS if data.get(f) not in (None, ""))
        if supplied:
            raise ValidationError(
                f"Bug details can only be set on BUG items, not on a {item_type}",
                details={"fields": supplied},
            )
        return {}

    values = {f: getattr(item, f) if item is not None else None for f in BUG_FIELDS}
    for field in BUG_FIELDS:
        if field in data:
            max_length = 500 if field == "reference_url" else None
            values[field] = text_field(data, field, max_length=max_length) or None

    values["bug_type"] = choice(values["bug_type"] or "BUG", BUG_TYPES, "bug_type")
    values["severity"] = choice(values["severity"] or "LOW", SEVERITIES, "severity")
    if values["bug_type"] in BEHAVIOR_REQUIRED_BUG_TYPES and not (
        values["current_behavior"] and values["expected_behavior"]
    ):
        raise ValidationError(
            "current_behavior and expected_behavior are required for a "
            f"{values['bug_type']}",
            details={"bug_type": values["bug_type"]},
        )
    return values


def _external_id(project: Project, data: dict) -> str:
    requested = text_field(data, "external_id", max_length=20)
    if not requested:
        return generate_external_id(project)
    taken = db.session.execute(
        select(WorkItem.id).where(WorkItem.external_id == requested)
    ).scalar_one_or_none()
    if taken is not None:
        raise ConflictError(resource="WorkItem", field="external_id", value=requested)
    return requested


def generate_external_id(project: Project) -> str:
    """Next free ``<KEY>-NNN`` id for the project (at least 3 digits)."""
    count = db.session.execute(
        select(func.count(WorkItem.id)).where(WorkItem.project_id == project.id)
    ).scalar_one()
    number = count + 1
    while True:
        candidate = f"{project.key}-{number:03d}"
        taken = db.session.execute(
            select(WorkItem.id).where(WorkItem.external_id == candidate)
        ).scalar_one_or_none()
        if taken is None:
            return candidate
        number += 1


# ── History ──────────────────────────────────────────────────────────────────

def _snapshot(item: WorkItem) -> dict:
    return {field: getattr(item, field) for field in TRACKED_FIELDS}


def _record_changes(item: WorkItem, before: dict, actor: str) -> int:
    """Append one UPDATED history row per tracked field that changed."""
    written = 0
    for field in TRACKED_FIELDS:
        old, new = before[field], getattr(item, field)
        if old == new:
            continue
        db.session.add(WorkItemHistory(
            work_item_id=item.id,
            field_name=field,
            old_value=history_value(old),
            new_value=history_value(new),
            change_type="UPDATED",
            actor=actor,
        ))
        written += 1
    return written


# ── Status ───────────────────────────────────────────────────────────────────

def _apply_status(item: WorkItem, new_status: str) -> bool:
    """
    Move ``item`` to ``new_status`` in memory.

    Entering DONE runs the completion gate for aggregation types, stamps
    completed_at and, for a TASK/BUG without actual hours, copies the
    estimate into actual_hours. Leaving DONE clears completed_at; DONE
    ancestors are left as they are.

    Returns:
        True if actual_hours was auto-filled (caller must roll up).
    """
    if new_status == item.status:
        return False

    filled = False
    if new_status == DONE:
        if item.type in AGGREGATION_TYPES and item.id is not None:
            check = completion_gate().can_complete(item.id)
            if not check.allowed:
                raise CompletionBlockedError(check)
        item.completed_at = datetime.now(timezone.utc)
        if item.type in LEAF_TYPES and not item.actual_hours and item.estimate:
            item.actual_hours = item.estimate
            filled = True
    elif item.status == DONE:
        item.completed_at = None
        logger.info("Work item id=%s reopened (%s → %s)", item.id, item.status, new_status)

    item.status = new_status
    return filled


# ── Queries ──────────────────────────────────────────────────────────────────

def get_work_item(item_id: int) -> WorkItem:
    item = db.session.get(WorkItem, item_id)
    if item is None:
        raise NotFoundError(resource="WorkItem", resource_id=item_id)
    return item


def list_work_items(project_id: int, filters: dict | None = None):
    """Return a query of a project's work items.

    Filters:
        type, status — exact match (case-insensitive)
        parent_id    — direct children of that item; 0 for top-level items
    """
    filters = filters or {}
    query = WorkItem.query.filter_by(project_id=project_id)

    for field in ("type", "status"):
        value = filters.get(field)
        if value:
            query = query.filter(getattr(WorkItem, field) == value.upper())

    parent_id = optional_id(filters.get("parent_id"), "parent_id")
    if parent_id == 0:
        query = query.filter(WorkItem.parent_id.is_(None))
    elif parent_id is not None:
        query = query.filter(WorkItem.parent_id == parent_id)

    return query.order_by(WorkItem.updated_at.desc(), WorkItem.id.desc())


def get_children(item: WorkItem) -> list[WorkItem]:
    return SqlAlchemyWorkItemStore().get_children(item.id)


def list_history(item: WorkItem) -> list[WorkItemHistory]:
    """Field changes of ``item``, newest first."""
    return item.history.order_by(
        WorkItemHistory.created_at.desc(), WorkItemHistory.id.desc(),
    ).all()


# ── Mutations ────────────────────────────────────────────────────────────────

def create_work_item(project: Project, data: dict, actor: str | None = None):
    """Create a work item under ``project``.

    Returns:
        (WorkItem, rollup_warning)

    Raises:
        ValidationError: bad field values, derived effort supplied for an
            aggregation type, bug details on a non-BUG, or an invalid
            parent/child pairing.
        NotFoundError: parent_id does not exist.
        ConflictError: the requested external_id is already in use.
    """
    title = text_field(data, "title", max_length=200)
    if not title:
        raise ValidationError("Work item title is required", details={"title": "required"})

    item_type = choice(data.get("type"), ITEM_TYPES, "type")
    status = choice(data.get("status") or INITIAL_STATUS, STATUSES, "status")
    priority = choice(data.get("priority") or "MEDIUM", PRIORITIES, "priority")

    estimate = decimal_field(data, "estimate")
    actual_hours = decimal_field(data, "actual_hours")
    if item_type in AGGREGATION_TYPES and (estimate is not None or actual_hours is not None):
        raise ValidationError(
            f"estimate and actual_hours are calculated from child items for a {item_type}",
            details={"type": item_type},
        )
    bug_details = _bug_details(item_type, data)

    parent = _resolve_parent(project.id, data.get("parent_id"), item_type)

    item = WorkItem(
        project_id=project.id,
        parent_id=parent.id if parent else None,
        external_id=_external_id(project, data),
        title=title,
        description=text_field(data, "description") or "",
        type=item_type,
        status=INITIAL_STATUS,
        priority=priority,
        assignee=text_field(data, "assignee", max_length=100) or "",
        tags=_tags_field(data),
        estimate=estimate,
        actual_hours=actual_hours,
        start_date=date_field(data, "start_date"),
        end_date=date_field(data, "end_date"),
        **bug_details,
    )
    _apply_status(item, status)

    db.session.add(item)
    db.session.flush()
    db.session.add(WorkItemHistory(
        work_item_id=item.id,
        field_name="item",
        new_value=item.external_id,
        change_type="CREATED",
        actor=actor_name(actor),
    ))
    logger.info(
        "Work item created id=%s external_id=%s type=%s parent_id=%s",
        item.id, item.external_id, item.type, item.parent_id,
    )

    warning = _run_rollups(item.parent_id)
    return item, warning


def update_work_item(item: WorkItem, data: dict, actor: str | None = None):
    """Update a work item from a partial field dict.

    ``type`` and ``project_id`` are immutable. Effort fields may only be
    edited on TASK / BUG items. Changing ``parent_id`` re-parents the item.

    Returns:
        (WorkItem, rollup_warning)
    """
    if "type" in data:
        requested = data["type"]
        if not isinstance(requested, str) or requested.strip().upper() != item.type:
            raise ValidationError("Work item type cannot be changed", details={"type": item.type})
    if "project_id" in data and data["project_id"] != item.project_id:
        raise ValidationError("Work item project cannot be changed")

    title = text_field(data, "title", max_length=200)
    if "title" in data and not title:
        raise ValidationError("Work item title cannot be empty")

    effort = {}
    for field in _EFFORT_FIELDS:
        if field in data:
            value = decimal_field(data, field)
            if value != getattr(item, field):
                if item.type in AGGREGATION_TYPES:
                    raise ValidationError(
                        f"{field} is calculated from child items for a {item.type}",
                        details={field: data[field]},
                    )
                effort[field] = value

    bug_details = _bug_details(item.type, data, item)

    new_parent_id = item.parent_id
    if "parent_id" in data:
        parent = _resolve_parent(item.project_id, data["parent_id"], item.type, item=item)
        new_parent_id = parent.id if parent else None

    new_status = None
    if "status" in data:
        new_status = choice(data["status"], STATUSES, "status")

    new_priority = None
    if "priority" in data:
        new_priority = choice(data["priority"], PRIORITIES, "priority")

    text_updates = {}
    if title:
        text_updates["title"] = title
    for field, max_length in (("description", None), ("assignee", 100)):
        if field in data:
            text_updates[field] = text_field(data, field, max_length=max_length) or ""
    dates = {field: date_field(data, field) for field in _DATE_FIELDS if field in data}
    tags = _tags_field(data) if "tags" in data else item.tags

    # ── all input validated; mutate
    before = _snapshot(item)
    old_parent_id = item.parent_id

    if new_priority:
        item.priority = new_priority
    for field, value in {**text_updates, **dates, **effort, **bug_details}.items():
        setattr(item, field, value)
    item.tags = tags
    item.parent_id = new_parent_id

    filled = False
    if new_status is not None:
        filled = _apply_status(item, new_status)

    _record_changes(item, before, actor_name(actor))
    db.session.flush()

    if old_parent_id != new_parent_id:
        logger.info(
            "Work item id=%s re-parented %s → %s", item.id, old_parent_id, new_parent_id,
        )
        warning = _run_rollups(old_parent_id, new_parent_id)
    elif effort or filled:
        warning = _run_rollups(item.parent_id)
    else:
        warning = None
    return item, warning


def change_status(item: WorkItem, new_status, actor: str | None = None):
    """Gated status transition.

    Raises:
        CompletionBlockedError: DONE requested while direct children are open.

    Returns:
        (WorkItem, rollup_warning)
    """
    status = choice(new_status, STATUSES, "status")
    before = _snapshot(item)
    filled = _apply_status(item, status)
    _record_changes(item, before, actor_name(actor))
    db.session.flush()
    logger.info("Work item id=%s status %s → %s", item.id, before["status"], item.status)

    warning = _run_rollups(item.parent_id) if filled else None
    return item, warning


def delete_work_item(item: WorkItem) -> str | None:
    """Delete a childless work item and remove its contribution from its parent.

    History and comments go with it.

    Returns:
        rollup_warning (None on success)
    """
    children = SqlAlchemyWorkItemStore().get_children(item.id)
    if children:
        raise ValidationError(
            "Cannot delete a work item that has child items",
            details={"child_count": len(children)},
        )

    parent_id = item.parent_id
    logger.info("Work item deleted id=%s external_id=%s", item.id, item.external_id)
    db.session.delete(item)
    db.session.flush()
    return _run_rollups(parent_id)


# ── Comments ─────────────────────────────────────────────────────────────────

def list_comments(item: WorkItem) -> list[Comment]:
    return item.comments.order_by(Comment.created_at, Comment.id).all()


def get_comment(comment_id: int) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError(resource="Comment", resource_id=comment_id)
    return comment


def add_comment(item: WorkItem, data: dict, actor: str | None = None) -> Comment:
    """Add a comment. ``author`` defaults to the acting user's display name."""
    content = text_field(data, "content")
    if not content:
        raise ValidationError("Comment content is required", details={"content": "required"})
    author = text_field(data, "author", max_length=150) or actor_name(actor)

    comment = Comment(work_item_id=item.id, author=author, content=content)
    db.session.add(comment)
    db.session.flush()
    logger.info("Comment added id=%s work_item_id=%s", comment.id, item.id)
    return comment


def delete_comment(comment: Comment) -> None:
    logger.info("Comment deleted id=%s work_item_id=%s", comment.id, comment.work_item_id)
    db.session.delete(comment)
    db.session.flush()


# ── Rollup repair ────────────────────────────────────────────────────────────

def recalculate_from(item: WorkItem) -> None:
    """Manually re-run the rollup starting at ``item`` (or its parent, for leaves).

    Raises:
        DataIntegrityError: the parent chain loops.
    """
    start_id = item.id if item.type in AGGREGATION_TYPES else item.parent_id
    rollup_engine().recalculate(start_id)


def recalculate_project(project: Project) -> dict:
    """
    Rebuild every aggregate in a project, deepest items first.

    Useful after bulk imports or manual data corrections.

    Returns:
        dict with keys: items_total, aggregates_recalculated
    """
    items = WorkItem.query.filter_by(project_id=project.id).all()
    by_id = {i.id: i for i in items}
    max_depth = _max_depth()

    def depth_of(item: WorkItem) -> int:
        depth = 0
        current = item
        while current.parent_id is not None and current.parent_id in by_id:
            depth += 1
            if depth > max_depth:
                raise DataIntegrityError(
                    f"Parent chain above work item {item.id} exceeds {max_depth} levels",
                    item_id=item.id,
                )
            current = by_id[current.parent_id]
        return depth

    aggregates = [i for i in items if i.type in AGGREGATION_TYPES]
    aggregates.sort(key=depth_of, reverse=True)

    engine = rollup_engine()
    for aggregate in aggregates:
        engine.refresh(aggregate)

    logger.info(
        "Project rollup rebuilt project_id=%s items=%d aggregates=%d",
        project.id, len(items), len(aggregates),
    )
    return {"items_total": len(items), "aggregates_recalculated": len(aggregates)}
