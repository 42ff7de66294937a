"""
Work Items — Estimate / Actual Hours Rollup Engine

Propagates effort totals from a changed item upward through its parents:
  TASK/BUG (authored) → STORY → FEATURE → EPIC (derived)

Key Rules:
  - An aggregation-type item (STORY, FEATURE, EPIC) holds the sum of its
    DIRECT children's estimate and actual_hours; a missing value counts as 0
  - Leaf types (TASK, BUG) are never rewritten
  - Always recomputed from current children, never adjusted by deltas,
    so a repeated or interrupted run converges on the next trigger
  - A parent that no longer exists ends the walk silently
  - A chain longer than max_depth means a cycle → DataIntegrityError

Usage:
    from worktrack.services.rollup_engine import RollupEngine
    from worktrack.services.work_item_store import SqlAlchemyWorkItemStore

    engine = RollupEngine(SqlAlchemyWorkItemStore())
    engine.recalculate(item.parent_id)
"""

from __future__ import annotations

import logging
from decimal import Decimal

from worktrack.core.exceptions import DataIntegrityError
from worktrack.models.work_item import AGGREGATION_TYPES

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10

ZERO = Decimal("0")


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def sum_children(children) -> tuple[Decimal, Decimal]:
    """
    Sum estimate and actual_hours over ``children``.

    Returns:
        (total_estimate, total_actual_hours), both Decimal; None counts as 0.
    """
    total_estimate = ZERO
    total_actual = ZERO
    for child in children:
        total_estimate += _as_decimal(child.estimate)
        total_actual += _as_decimal(child.actual_hours)
    return total_estimate, total_actual


class RollupEngine:
    """Keeps aggregation-type ancestors consistent with their children."""

    def __init__(self, store, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.store = store
        self.max_depth = max_depth

    def refresh(self, item) -> bool:
        """
        Recompute one aggregation-type item from its direct children.

        Returns:
            True if the item was rewritten, False if it is a leaf type.
        """
        if item.type not in AGGREGATION_TYPES:
            return False
        children = self.store.get_children(item.id)
        estimate, actual = sum_children(children)
        self.store.update_aggregates(item.id, estimate, actual)
        logger.debug(
            "Rolled up %s id=%s from %d children: estimate=%s actual_hours=%s",
            item.type, item.id, len(children), estimate, actual,
        )
        return True

    def recalculate(self, parent_id) -> None:
        """
        Recompute ``parent_id`` and every aggregation-type ancestor above it.

        Args:
            parent_id: Item suspected to need recomputation, typically the
                parent of a just-mutated item. None is a no-op.

        Raises:
            DataIntegrityError: The chain did not end within max_depth levels.
            NotFoundError / SQLAlchemyError: Store failures, propagated as-is.
        """
        current_id = parent_id
        levels = 0
        while current_id is not None:
            if levels >= self.max_depth:
                logger.error(
                    "Rollup aborted: parent chain from id=%s exceeds %d levels "
                    "(stopped at id=%s)", parent_id, self.max_depth, current_id,
                )
                raise DataIntegrityError(
                    f"Parent chain starting at work item {parent_id} exceeds "
                    f"{self.max_depth} levels; the hierarchy contains a cycle",
                    item_id=current_id,
                )

            parent = self.store.get_work_item(current_id)
            if parent is None:
                logger.debug("Rollup stopped: work item id=%s no longer exists", current_id)
                return

            if not self.refresh(parent):
                return

            levels += 1
            current_id = parent.parent_id
