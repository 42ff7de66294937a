"""
Worktrack
Tests — Completion gate against the in-memory store double.
"""

import pytest

from worktrack.core.exceptions import CompletionBlockedError, NotFoundError
from worktrack.services.completion_gate import CompletionCheck, CompletionGate


def _story_with_tasks(store, *statuses):
    store.add(1, "STORY")
    for idx, status in enumerate(statuses, start=2):
        store.add(idx, "TASK", parent_id=1, status=status)


def test_gate_blocks_when_a_child_is_open(memory_store):
    _story_with_tasks(memory_store, "DONE", "IN_PROGRESS")

    check = CompletionGate(memory_store).can_complete(1)

    assert check.allowed is False
    assert check.blocking_children == [memory_store.items[3]]


def test_gate_allows_when_all_children_done(memory_store):
    _story_with_tasks(memory_store, "DONE", "DONE")

    check = CompletionGate(memory_store).can_complete(1)

    assert check.allowed is True
    assert check.blocking_children == []


def test_gate_allows_story_without_children(memory_store):
    memory_store.add(1, "STORY")
    assert CompletionGate(memory_store).can_complete(1).allowed is True


@pytest.mark.parametrize("leaf_type", ["TASK", "BUG"])
def test_leaf_items_always_completable(memory_store, leaf_type):
    memory_store.add(1, "STORY")
    memory_store.add(2, leaf_type, parent_id=1)
    memory_store.add(3, "TASK", parent_id=1, status="ON_HOLD")
    memory_store.add(4, "TASK", parent_id=2, status="TODO")

    check = CompletionGate(memory_store).can_complete(2)

    assert check.allowed is True
    assert check.blocking_children == []


def test_gate_checks_direct_children_only(memory_store):
    memory_store.add(1, "FEATURE")
    memory_store.add(2, "STORY", parent_id=1, status="DONE")
    memory_store.add(3, "TASK", parent_id=2, status="IN_PROGRESS")

    assert CompletionGate(memory_store).can_complete(1).allowed is True


def test_gate_lists_every_blocking_child(memory_store):
    memory_store.add(1, "EPIC")
    memory_store.add(2, "FEATURE", parent_id=1, status="TODO")
    memory_store.add(3, "FEATURE", parent_id=1, status="ON_HOLD")
    memory_store.add(4, "FEATURE", parent_id=1, status="DONE")

    check = CompletionGate(memory_store).can_complete(1)

    assert check.allowed is False
    assert sorted(c.id for c in check.blocking_children) == [2, 3]
    assert check.blocking_counts() == {"FEATURE": 2}


def test_gate_missing_item_raises_not_found(memory_store):
    with pytest.raises(NotFoundError):
        CompletionGate(memory_store).can_complete(42)


def test_gate_is_read_only(memory_store):
    _story_with_tasks(memory_store, "TODO")
    CompletionGate(memory_store).can_complete(1)
    assert memory_store.writes == []


# ═════════════════════════════════════════════════════════════════════════════
# CompletionCheck presentation
# ═════════════════════════════════════════════════════════════════════════════

def test_summary_names_count_and_types(memory_store):
    memory_store.add(1, "STORY")
    memory_store.add(2, "TASK", parent_id=1, status="IN_PROGRESS")
    memory_store.add(3, "BUG", parent_id=1, status="TODO")

    check = CompletionGate(memory_store).can_complete(1)

    message = check.summary()
    assert message.startswith("This story has 2 incomplete child item(s):")
    assert "task" in message and "bug" in message
    assert message.endswith("Complete all child items first.")


def test_summary_is_none_when_allowed():
    assert CompletionCheck(allowed=True, item_type="EPIC").summary() is None


def test_to_dict_describes_blocking_children(memory_store):
    _story_with_tasks(memory_store, "TODO", "DONE")

    payload = CompletionGate(memory_store).can_complete(1).to_dict()

    assert payload["allowed"] is False
    assert payload["blocking_count"] == 1
    assert payload["blocking_by_type"] == {"TASK": 1}
    assert payload["blocking_children"][0]["id"] == 2
    assert payload["blocking_children"][0]["status"] == "TODO"


def test_blocked_error_carries_check(memory_store):
    _story_with_tasks(memory_store, "TODO")
    check = CompletionGate(memory_store).can_complete(1)

    error = CompletionBlockedError(check)

    assert error.check is check
    assert error.details["blocking_count"] == 1
    assert "incomplete child item" in str(error)
