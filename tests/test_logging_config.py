"""
Worktrack
Tests — Log record scope stamping and formatters.
"""

import json
import logging

from flask import g

from worktrack.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
)


def _record(msg="Rolled up", **extra):
    record = logging.LogRecord("worktrack.services", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_filter_stamps_request_id_and_route_scope(app):
    with app.test_request_context("/api/v1/work-items/7"):
        g.request_id = "abc123"
        record = _record()
        assert RequestContextFilter().filter(record) is True

    assert record.request_id == "abc123"
    assert record.item_id == 7
    assert getattr(record, "project_id", None) is None

    entry = json.loads(JSONFormatter().format(record))
    assert entry["item_id"] == 7
    assert entry["request_id"] == "abc123"
    assert "project_id" not in entry


def test_filter_keeps_explicit_values(app):
    with app.test_request_context("/api/v1/teams/3/members"):
        record = _record(team_id=9, request_id="given")
        RequestContextFilter().filter(record)
        other = _record()
        RequestContextFilter().filter(other)

    assert record.team_id == 9
    assert record.request_id == "given"
    assert other.team_id == 3


def test_filter_is_noop_outside_request():
    record = _record()
    assert RequestContextFilter().filter(record) is True
    assert not hasattr(record, "request_id")


def test_readable_formatter_shows_scope():
    line = ReadableFormatter().format(_record(project_id=2, item_id=7))
    assert "Rolled up" in line
    assert "(project=2 item=7)" in line


def test_access_log_carries_item_scope(client, project, caplog):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items",
                      json={"title": "Logged", "type": "TASK"})
    item_id = res.get_json()["id"]

    scope_filter = RequestContextFilter()
    caplog.set_level(logging.DEBUG, logger="worktrack")
    caplog.handler.addFilter(scope_filter)
    try:
        client.get(f"/api/v1/work-items/{item_id}", headers={"X-Request-ID": "req-42"})
    finally:
        caplog.handler.removeFilter(scope_filter)

    access = [r for r in caplog.records if r.name == "worktrack.middleware.timing"]
    assert access
    assert access[-1].item_id == item_id
    assert access[-1].request_id == "req-42"
