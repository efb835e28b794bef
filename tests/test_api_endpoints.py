"""Integration tests for API endpoints.

These tests verify API endpoints work correctly end-to-end over an
in-memory document store.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tasklanes.auth.jwt import create_access_token
from tasklanes.models.constants import PREDEFINED_TAGS


def _create(client: TestClient, title: str, **fields) -> str:
    response = client.post("/tasks", json={"title": title, **fields})
    assert response.status_code == 201
    return response.json()["id"]


def _lane(client: TestClient, status: str):
    tasks = client.get("/tasks").json()["tasks"]
    return [(t["title"], t["order"]) for t in tasks if t["status"] == status]


class TestTaskEndpoints:
    """Test task CRUD API endpoints."""

    def test_health(self, test_client):
        assert test_client.get("/health").json() == {"status": "ok"}

    def test_create_and_list(self, test_client, test_user_id):
        task_id = _create(test_client, "Write report", priority="high")

        body = test_client.get("/tasks").json()
        assert body["owner_id"] == test_user_id
        assert body["loading"] is False
        [task] = body["tasks"]
        assert task["id"] == task_id
        assert task["priority"] == "high"
        assert task["order"] == 0
        assert task["history"][0]["action"] == "created"

    def test_get_single_task(self, test_client):
        task_id = _create(test_client, "A")
        assert test_client.get(f"/tasks/{task_id}").json()["title"] == "A"
        assert test_client.get("/tasks/missing").status_code == 404

    def test_search(self, test_client):
        _create(test_client, "Quarterly report")
        _create(test_client, "Groceries")
        titles = [t["title"] for t in test_client.get("/tasks", params={"q": "REPORT"}).json()["tasks"]]
        assert titles == ["Quarterly report"]

    def test_update(self, test_client):
        task_id = _create(test_client, "A")
        response = test_client.patch(f"/tasks/{task_id}", json={"title": "A2"})
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "A2"
        assert body["history"][-1]["details"] == "title"

    def test_complete(self, test_client):
        task_id = _create(test_client, "A")
        body = test_client.post(f"/tasks/{task_id}/complete").json()
        assert body["status"] == "completed"

    def test_move(self, test_client):
        task_id = _create(test_client, "A")
        _create(test_client, "P", status="in-progress")
        body = test_client.post(f"/tasks/{task_id}/move", json={"status": "in-progress"}).json()
        assert body["status"] == "in-progress"
        assert body["order"] == 1

    def test_reorder(self, test_client):
        _create(test_client, "A")
        _create(test_client, "B")
        c_id = _create(test_client, "C")

        response = test_client.post(
            f"/tasks/{c_id}/reorder",
            json={"source_status": "todo", "destination_status": "todo", "new_order": 1},
        )
        assert response.status_code == 200
        assert _lane(test_client, "todo") == [("A", 0), ("C", 1), ("B", 2)]

    def test_delete_and_delete_batch(self, test_client):
        ids = [_create(test_client, f"T{i}") for i in range(3)]
        assert test_client.delete(f"/tasks/{ids[0]}").status_code == 204

        response = test_client.post("/tasks/delete-batch", json={"task_ids": ids[1:]})
        assert response.json() == {"deleted_count": 2}
        assert test_client.get("/tasks").json()["tasks"] == []


class TestViews:
    """Test tag and dashboard endpoints."""

    def test_tags_include_predefined_and_custom(self, test_client):
        _create(test_client, "A", tags=[{"id": "tag-x", "name": "Garden", "color": "#34A853"}])
        names = [t["name"] for t in test_client.get("/tags").json()]
        assert names == [t.name for t in PREDEFINED_TAGS] + ["Garden"]

    def test_create_tag(self, test_client):
        response = test_client.post("/tags", json={"name": "Errands"})
        assert response.status_code == 201
        assert response.json()["name"] == "Errands"
        assert test_client.post("/tags", json={"name": "  "}).status_code == 422

    def test_dashboard(self, test_client):
        task_id = _create(test_client, "A")
        _create(test_client, "B")
        test_client.post(f"/tasks/{task_id}/complete")

        body = test_client.get("/dashboard").json()
        assert body["stats"]["total"] == 2
        assert body["stats"]["completed"] == 1
        assert [t["title"] for t in body["recently_completed"]] == ["A"]


class TestErrors:
    """Test the error body and status mapping."""

    def test_empty_title_is_422(self, test_client):
        response = test_client.post("/tasks", json={"title": ""})
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["operation"] == "create"
        assert "title" in body["fields"]

    def test_protected_field_is_422(self, test_client):
        task_id = _create(test_client, "A")
        response = test_client.patch(f"/tasks/{task_id}", json={"history": []})
        assert response.status_code == 422

    def test_unknown_task_is_404(self, test_client):
        response = test_client.post("/tasks/missing/complete")
        assert response.status_code == 404
        assert response.json() == {
            "error": "not_found",
            "operation": "complete",
            "detail": "Task missing not found",
        }

    def test_malformed_body_is_422(self, test_client):
        task_id = _create(test_client, "A")
        response = test_client.post(f"/tasks/{task_id}/reorder", json={"source_status": "todo"})
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_missing_token_is_401(self, test_client):
        from tasklanes.auth.dependencies import get_current_user

        test_client.app.dependency_overrides.pop(get_current_user)
        response = test_client.get("/tasks")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_bearer_token_authenticates(self, test_client, other_user):
        from tasklanes.auth.dependencies import get_current_user

        test_client.app.dependency_overrides.pop(get_current_user)
        headers = {"Authorization": f"Bearer {create_access_token(other_user)}"}
        assert test_client.post("/tasks", json={"title": "Theirs"}, headers=headers).status_code == 201
        body = test_client.get("/tasks", headers=headers).json()
        assert body["owner_id"] == other_user.id
        assert [t["title"] for t in body["tasks"]] == ["Theirs"]


class TestWebSocket:
    """Test the live snapshot stream."""

    def test_stream_sends_snapshots(self, test_client, test_user):
        token = create_access_token(test_user)
        with test_client.websocket_connect(f"/ws/tasks?token={token}") as websocket:
            first = websocket.receive_json()
            assert first["owner_id"] == test_user.id
            assert first["tasks"] == []

            _create(test_client, "Live")
            message = websocket.receive_json()
            while not message["tasks"]:
                message = websocket.receive_json()
            assert message["tasks"][0]["title"] == "Live"

    def test_stream_requires_token(self, test_client):
        with pytest.raises(WebSocketDisconnect):
            with test_client.websocket_connect("/ws/tasks?token=bad") as websocket:
                websocket.receive_json()
