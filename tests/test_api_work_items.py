"""
Worktrack
Tests — Work item API.

Covers:
    - WorkItem CRUD + filtering
    - Rollup visible through the API after create / update / delete
    - PATCH status with completion gate (409 + blocking children)
    - Completion preview and manual recalculation endpoints
    - Input type checks, duplicate external ids
    - History, comments, bug details and tags
"""


def _create_item(client, pid, **kw):
    payload = {"title": "Work item", "type": "TASK"}
    payload.update(kw)
    res = client.post(f"/api/v1/projects/{pid}/work-items", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _hierarchy(client, pid):
    epic = _create_item(client, pid, title="Checkout revamp", type="EPIC")
    feature = _create_item(client, pid, title="Saved cards", type="FEATURE", parent_id=epic["id"])
    story = _create_item(client, pid, title="Store card token", type="STORY", parent_id=feature["id"])
    return epic, feature, story


def _get(client, item_id):
    res = client.get(f"/api/v1/work-items/{item_id}")
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def test_create_work_item(client, project):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json={
        "title": "Add tokenization call",
        "type": "task",
        "priority": "high",
        "estimate": "4.5",
        "assignee": "Sam",
    })
    assert res.status_code == 201
    data = res.get_json()
    assert data["external_id"] == "PROJ-001"
    assert data["type"] == "TASK"
    assert data["status"] == "TODO"
    assert data["priority"] == "HIGH"
    assert data["estimate"] == 4.5
    assert data["actual_hours"] is None


def test_create_requires_title(client, project):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json={"type": "TASK"})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


def test_create_unknown_project_404(client):
    res = client.post("/api/v1/projects/999/work-items", json={"title": "X", "type": "TASK"})
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_create_invalid_parent_pair_422(client, project):
    epic = _create_item(client, project["id"], type="EPIC")
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json={
        "title": "Stray task", "type": "TASK", "parent_id": epic["id"],
    })
    assert res.status_code == 422
    assert res.get_json()["details"] == {"parent_type": "EPIC", "child_type": "TASK"}


def test_create_rejects_non_json_body(client, project):
    res = client.post(
        f"/api/v1/projects/{project['id']}/work-items",
        data="title=x", content_type="text/plain",
    )
    assert res.status_code == 415


def test_list_and_filter(client, project):
    pid = project["id"]
    _, _, story = _hierarchy(client, pid)
    _create_item(client, pid, title="T1", parent_id=story["id"])
    _create_item(client, pid, title="B1", type="BUG", parent_id=story["id"])

    res = client.get(f"/api/v1/projects/{pid}/work-items")
    assert res.get_json()["total"] == 5

    res = client.get(f"/api/v1/projects/{pid}/work-items?type=bug")
    assert [i["title"] for i in res.get_json()["items"]] == ["B1"]

    res = client.get(f"/api/v1/projects/{pid}/work-items?parent_id={story['id']}")
    assert res.get_json()["total"] == 2

    res = client.get(f"/api/v1/projects/{pid}/work-items?parent_id=0")
    assert [i["type"] for i in res.get_json()["items"]] == ["EPIC"]


def test_get_with_children(client, project):
    _, feature, story = _hierarchy(client, project["id"])
    res = client.get(f"/api/v1/work-items/{feature['id']}?include_children=1")
    assert [c["id"] for c in res.get_json()["children"]] == [story["id"]]

    res = client.get(f"/api/v1/work-items/{feature['id']}/children")
    assert res.get_json()["total"] == 1


def test_get_missing_item_404(client):
    assert client.get("/api/v1/work-items/12345").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# ROLLUP THROUGH THE API
# ═════════════════════════════════════════════════════════════════════════════

def test_task_estimate_rolls_up_to_epic(client, project):
    epic, feature, story = _hierarchy(client, project["id"])
    task = _create_item(client, project["id"], parent_id=story["id"], estimate=4)

    for item in (story, feature, epic):
        assert _get(client, item["id"])["estimate"] == 4.0

    res = client.put(f"/api/v1/work-items/{task['id']}", json={"estimate": 10})
    assert res.status_code == 200
    assert "rollup_warning" not in res.get_json()

    for item in (story, feature, epic):
        assert _get(client, item["id"])["estimate"] == 10.0


def test_story_estimate_is_read_only(client, project):
    _, _, story = _hierarchy(client, project["id"])
    res = client.put(f"/api/v1/work-items/{story['id']}", json={"estimate": 13})
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_RULE"


def test_delete_updates_parent(client, project):
    _, _, story = _hierarchy(client, project["id"])
    _create_item(client, project["id"], parent_id=story["id"], estimate=2)
    doomed = _create_item(client, project["id"], parent_id=story["id"], estimate=5)
    assert _get(client, story["id"])["estimate"] == 7.0

    res = client.delete(f"/api/v1/work-items/{doomed['id']}")
    assert res.status_code == 200
    assert _get(client, story["id"])["estimate"] == 2.0


def test_delete_parent_with_children_rejected(client, project):
    _, _, story = _hierarchy(client, project["id"])
    _create_item(client, project["id"], parent_id=story["id"])
    res = client.delete(f"/api/v1/work-items/{story['id']}")
    assert res.status_code == 422
    assert res.get_json()["details"] == {"child_count": 1}


def test_move_task_between_stories(client, project):
    _, feature, story_a = _hierarchy(client, project["id"])
    story_b = _create_item(client, project["id"], type="STORY", parent_id=feature["id"])
    task = _create_item(client, project["id"], parent_id=story_a["id"], estimate=3)

    res = client.put(f"/api/v1/work-items/{task['id']}", json={"parent_id": story_b["id"]})
    assert res.status_code == 200

    assert _get(client, story_a["id"])["estimate"] == 0.0
    assert _get(client, story_b["id"])["estimate"] == 3.0
    assert _get(client, feature["id"])["estimate"] == 3.0


# ═════════════════════════════════════════════════════════════════════════════
# STATUS & COMPLETION GATE
# ═════════════════════════════════════════════════════════════════════════════

def test_patch_status_blocked_returns_409(client, project):
    _, _, story = _hierarchy(client, project["id"])
    done = _create_item(client, project["id"], parent_id=story["id"])
    open_task = _create_item(client, project["id"], parent_id=story["id"])
    client.patch(f"/api/v1/work-items/{done['id']}/status", json={"status": "DONE"})
    client.patch(f"/api/v1/work-items/{open_task['id']}/status", json={"status": "IN_PROGRESS"})

    res = client.patch(f"/api/v1/work-items/{story['id']}/status", json={"status": "DONE"})

    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONFLICT_STATE"
    assert "1 incomplete child item(s): task" in body["error"]
    assert body["details"]["blocking_count"] == 1
    assert body["details"]["blocking_children"][0]["id"] == open_task["id"]
    assert _get(client, story["id"])["status"] == "TODO"


def test_patch_status_allowed_when_children_done(client, project):
    _, _, story = _hierarchy(client, project["id"])
    task = _create_item(client, project["id"], parent_id=story["id"], estimate=6)

    res = client.patch(f"/api/v1/work-items/{task['id']}/status", json={"status": "DONE"})
    assert res.status_code == 200
    assert res.get_json()["actual_hours"] == 6.0
    assert res.get_json()["completed_at"] is not None
    assert _get(client, story["id"])["actual_hours"] == 6.0

    res = client.patch(f"/api/v1/work-items/{story['id']}/status", json={"status": "DONE"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "DONE"


def test_patch_status_requires_status(client, project):
    task = _create_item(client, project["id"])
    res = client.patch(f"/api/v1/work-items/{task['id']}/status", json={})
    assert res.status_code == 400


def test_completion_preview(client, project):
    _, feature, story = _hierarchy(client, project["id"])

    res = client.get(f"/api/v1/work-items/{feature['id']}/completion")
    assert res.status_code == 200
    body = res.get_json()
    assert body["allowed"] is False
    assert body["blocking_by_type"] == {"STORY": 1}
    assert body["message"].startswith("This feature has 1 incomplete")

    task = _create_item(client, project["id"], parent_id=story["id"])
    res = client.get(f"/api/v1/work-items/{task['id']}/completion")
    assert res.get_json() == {
        "allowed": True,
        "blocking_count": 0,
        "blocking_by_type": {},
        "blocking_children": [],
        "message": None,
    }


def test_completion_preview_missing_item_404(client):
    assert client.get("/api/v1/work-items/999/completion").status_code == 404


def test_manual_recalculate(client, project):
    from worktrack.models import db
    from worktrack.models.work_item import WorkItem

    _, _, story = _hierarchy(client, project["id"])
    _create_item(client, project["id"], parent_id=story["id"], estimate=2)
    db.session.get(WorkItem, story["id"]).estimate = 50
    db.session.commit()

    res = client.post(f"/api/v1/work-items/{story['id']}/recalculate")
    assert res.status_code == 200
    assert res.get_json()["estimate"] == 2.0


def test_corrupted_hierarchy_reports_integrity_error(client, project):
    from worktrack.models import db
    from worktrack.models.work_item import WorkItem

    story = _create_item(client, project["id"], type="STORY")
    feature = _create_item(client, project["id"], type="FEATURE")
    task = _create_item(client, project["id"], parent_id=story["id"], estimate=1)
    db.session.get(WorkItem, story["id"]).parent_id = feature["id"]
    db.session.get(WorkItem, feature["id"]).parent_id = story["id"]
    db.session.commit()

    res = client.post(f"/api/v1/work-items/{story['id']}/recalculate")
    assert res.status_code == 500
    assert res.get_json()["code"] == "ERR_DATA_INTEGRITY"

    res = client.put(f"/api/v1/work-items/{task['id']}", json={"estimate": 3})
    assert res.status_code == 200
    assert res.get_json()["estimate"] == 3.0
    assert "rollup_warning" in res.get_json()


def test_move_out_of_corrupted_chain_still_updates_new_parent(client, project):
    from worktrack.models import db
    from worktrack.models.work_item import WorkItem

    feature = _create_item(client, project["id"], type="FEATURE")
    old_story = _create_item(client, project["id"], type="STORY", parent_id=feature["id"])
    new_story = _create_item(client, project["id"], type="STORY")
    task = _create_item(client, project["id"], parent_id=old_story["id"], estimate=5)
    db.session.get(WorkItem, feature["id"]).parent_id = old_story["id"]
    db.session.commit()

    res = client.put(f"/api/v1/work-items/{task['id']}", json={"parent_id": new_story["id"]})

    assert res.status_code == 200
    assert "rollup_warning" in res.get_json()
    assert _get(client, new_story["id"])["estimate"] == 5.0


# ═════════════════════════════════════════════════════════════════════════════
# INPUT TYPES
# ═════════════════════════════════════════════════════════════════════════════

def test_patch_status_number_400(client, project):
    task = _create_item(client, project["id"])
    res = client.patch(f"/api/v1/work-items/{task['id']}/status", json={"status": 5})
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
    assert _get(client, task["id"])["status"] == "TODO"


def test_create_numeric_title_400(client, project):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items",
                      json={"title": 123, "type": "TASK"})
    assert res.status_code == 400
    assert res.get_json()["error"] == "title must be a string"


def test_update_numeric_fields_422(client, project):
    task = _create_item(client, project["id"])
    for payload in ({"status": 5}, {"title": 123}, {"assignee": ["x"]}, {"parent_id": "abc"}):
        res = client.put(f"/api/v1/work-items/{task['id']}", json=payload)
        assert res.status_code == 422, payload
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"


def test_json_array_body_422(client, project):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json=["TASK"])
    assert res.status_code == 422
    assert res.get_json()["error"] == "Request body must be a JSON object"


def test_duplicate_external_id_409(client, project):
    _create_item(client, project["id"], external_id="OPS-1")
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json={
        "title": "Again", "type": "TASK", "external_id": "OPS-1",
    })
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY & COMMENTS
# ═════════════════════════════════════════════════════════════════════════════

def test_history_records_actor_header(client, project):
    task = _create_item(client, project["id"], estimate=2)
    client.put(f"/api/v1/work-items/{task['id']}", json={"estimate": 3},
               headers={"X-Actor": "Robin"})

    res = client.get(f"/api/v1/work-items/{task['id']}/history")
    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 2
    latest, created = body["items"]
    assert (latest["field_name"], latest["old_value"], latest["new_value"]) == ("estimate", "2", "3")
    assert latest["actor"] == "Robin"
    assert created["change_type"] == "CREATED"
    assert created["actor"] == "system"


def test_history_missing_item_404(client):
    assert client.get("/api/v1/work-items/999/history").status_code == 404


def test_comment_lifecycle(client, project):
    task = _create_item(client, project["id"])
    url = f"/api/v1/work-items/{task['id']}/comments"

    res = client.post(url, json={"content": "Needs a migration"}, headers={"X-Actor": "Robin"})
    assert res.status_code == 201
    comment = res.get_json()
    assert comment["author"] == "Robin"

    res = client.get(url)
    assert [c["content"] for c in res.get_json()["items"]] == ["Needs a migration"]

    assert client.delete(f"/api/v1/comments/{comment['id']}").status_code == 200
    assert client.get(url).get_json()["total"] == 0
    assert client.delete(f"/api/v1/comments/{comment['id']}").status_code == 404


def test_comment_requires_content_422(client, project):
    task = _create_item(client, project["id"])
    res = client.post(f"/api/v1/work-items/{task['id']}/comments", json={"content": ""})
    assert res.status_code == 422
    assert res.get_json()["details"] == {"content": "required"}


# ═════════════════════════════════════════════════════════════════════════════
# BUG DETAILS & TAGS
# ═════════════════════════════════════════════════════════════════════════════

def test_bug_details_round_trip(client, project):
    bug = _create_item(client, project["id"], type="BUG", bug_type="prod_incident",
                       severity="high", current_behavior="500 on save",
                       expected_behavior="Saved", tags=["checkout"])
    assert bug["bug_type"] == "PROD_INCIDENT"
    assert bug["severity"] == "HIGH"
    assert bug["tags"] == ["checkout"]

    res = client.put(f"/api/v1/work-items/{bug['id']}", json={"severity": "low"})
    assert res.status_code == 200
    assert res.get_json()["severity"] == "LOW"
    assert res.get_json()["bug_type"] == "PROD_INCIDENT"


def test_bug_details_on_story_422(client, project):
    res = client.post(f"/api/v1/projects/{project['id']}/work-items", json={
        "title": "Story", "type": "STORY", "bug_type": "DEFECT",
    })
    assert res.status_code == 422
    assert res.get_json()["details"] == {"fields": ["bug_type"]}
