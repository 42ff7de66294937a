"""
Shared pytest fixtures for the Worktrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project via the API
    - memory_store: In-memory WorkItemStore double for engine / gate tests
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest

from worktrack import create_app
from worktrack.core.exceptions import NotFoundError
from worktrack.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(client):
    """Create and return a test Project via the API."""
    res = client.post("/api/v1/projects", json={"key": "PROJ", "name": "Test Project"})
    assert res.status_code == 201
    return res.get_json()


# ── In-memory store double ───────────────────────────────────────────────


def _dec(value):
    return None if value is None else Decimal(str(value))


@dataclass
class FakeItem:
    id: int
    type: str
    parent_id: int | None = None
    status: str = "TODO"
    estimate: Decimal | None = None
    actual_hours: Decimal | None = None


class InMemoryWorkItemStore:
    """Implements the three-method store contract over a dict."""

    def __init__(self):
        self.items: dict[int, FakeItem] = {}
        self.writes: list[int] = []

    def add(self, item_id, item_type, parent_id=None, status="TODO",
            estimate=None, actual_hours=None):
        item = FakeItem(
            id=item_id,
            type=item_type,
            parent_id=parent_id,
            status=status,
            estimate=_dec(estimate),
            actual_hours=_dec(actual_hours),
        )
        self.items[item_id] = item
        return item

    def get_work_item(self, item_id):
        return self.items.get(item_id)

    def get_children(self, parent_id):
        return [i for i in self.items.values() if i.parent_id == parent_id]

    def update_aggregates(self, item_id, estimate, actual_hours):
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(resource="WorkItem", resource_id=item_id)
        item.estimate = estimate
        item.actual_hours = actual_hours
        self.writes.append(item_id)


@pytest.fixture()
def memory_store():
    return InMemoryWorkItemStore()
