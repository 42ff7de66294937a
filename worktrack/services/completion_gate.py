"""
Work Items — Completion Gate

An aggregation-type item (STORY, FEATURE, EPIC) may move to DONE only when
every DIRECT child is DONE. Only one level is inspected: the same rule was
applied when each child was itself completed, so the whole subtree is DONE
by induction.

Leaf items (TASK, BUG) are never gated. Reopening is never gated.

Usage:
    from worktrack.services.completion_gate import CompletionGate

    check = CompletionGate(store).can_complete(item_id)
    if not check.allowed:
        raise CompletionBlockedError(check)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from worktrack.core.exceptions import NotFoundError
from worktrack.models.work_item import AGGREGATION_TYPES, DONE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionCheck:
    """Outcome of ``CompletionGate.can_complete``."""

    allowed: bool
    blocking_children: list = field(default_factory=list)
    item_type: str | None = None

    def summary(self) -> str | None:
        """User-facing explanation of what remains, or None when allowed."""
        if self.allowed:
            return None
        noun = (self.item_type or "item").lower()
        child_types = ", ".join(c.type.lower() for c in self.blocking_children)
        return (
            f"This {noun} has {len(self.blocking_children)} incomplete child "
            f"item(s): {child_types}. Complete all child items first."
        )

    def blocking_counts(self) -> dict:
        counts: dict[str, int] = {}
        for child in self.blocking_children:
            counts[child.type] = counts.get(child.type, 0) + 1
        return counts

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "blocking_count": len(self.blocking_children),
            "blocking_by_type": self.blocking_counts(),
            "blocking_children": [
                {
                    "id": c.id,
                    "external_id": getattr(c, "external_id", None),
                    "title": getattr(c, "title", None),
                    "type": c.type,
                    "status": c.status,
                }
                for c in self.blocking_children
            ],
        }


class CompletionGate:
    """Read-only check run before persisting a transition to DONE."""

    def __init__(self, store):
        self.store = store

    def can_complete(self, item_id) -> CompletionCheck:
        """
        Decide whether ``item_id`` may move to DONE.

        Raises:
            NotFoundError: The item does not exist.
        """
        item = self.store.get_work_item(item_id)
        if item is None:
            raise NotFoundError(resource="WorkItem", resource_id=item_id)

        if item.type not in AGGREGATION_TYPES:
            return CompletionCheck(allowed=True, item_type=item.type)

        blocking = [c for c in self.store.get_children(item.id) if c.status != DONE]
        if blocking:
            logger.info(
                "Completion blocked for %s id=%s: %d open child item(s)",
                item.type, item.id, len(blocking),
            )
        return CompletionCheck(
            allowed=not blocking,
            blocking_children=blocking,
            item_type=item.type,
        )
