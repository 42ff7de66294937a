"""Work item store — the persistence contract used by the rollup engine and
completion gate.

Only three operations are needed:
    get_work_item(id)                          → item or None
    get_children(parent_id)                    → direct children, unordered
    update_aggregates(id, estimate, actual)    → raises NotFoundError if absent

Transaction policy: the SQLAlchemy store flushes, never commits.
The route handler owns db.session.commit().
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select

from worktrack.core.exceptions import NotFoundError
from worktrack.models import db
from worktrack.models.work_item import WorkItem

logger = logging.getLogger(__name__)


class WorkItemStore(Protocol):
    """Structural type for anything the core can read and write through."""

    def get_work_item(self, item_id: int): ...

    def get_children(self, parent_id: int) -> list: ...

    def update_aggregates(
        self, item_id: int, estimate: Decimal, actual_hours: Decimal,
    ) -> None: ...


class SqlAlchemyWorkItemStore:
    """WorkItemStore backed by the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def get_work_item(self, item_id: int) -> WorkItem | None:
        return self.session.get(WorkItem, item_id)

    def get_children(self, parent_id: int) -> list[WorkItem]:
        return list(
            self.session.execute(
                select(WorkItem).where(WorkItem.parent_id == parent_id)
            ).scalars()
        )

    def update_aggregates(
        self, item_id: int, estimate: Decimal, actual_hours: Decimal,
    ) -> None:
        item = self.session.get(WorkItem, item_id)
        if item is None:
            raise NotFoundError(resource="WorkItem", resource_id=item_id)
        item.estimate = estimate
        item.actual_hours = actual_hours
        item.updated_at = datetime.now(timezone.utc)
        self.session.flush()
        logger.debug(
            "Aggregates stored item_id=%s estimate=%s actual_hours=%s",
            item_id, estimate, actual_hours,
        )
