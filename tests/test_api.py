import pytest
from sqlalchemy.exc import OperationalError

from velo import moves


@pytest.fixture
def board(client):
    project = client.post("/api/projects", json={"name": "Sprint Q1"}).json()
    response = client.post("/api/boards", json={"name": "Sprint 1", "projectId": project["id"]})
    assert response.status_code == 201
    return response.json()


def add_column(client, board, name, task_limit=None):
    payload = {"name": name, "boardId": board["id"]}
    if task_limit is not None:
        payload["taskLimit"] = task_limit
    response = client.post("/api/columns", json=payload)
    assert response.status_code == 201
    return response.json()


def add_task(client, column, title, **extra):
    response = client.post("/api/tasks", json={"title": title, "columnId": column["id"], **extra})
    assert response.status_code == 201, response.text
    return response.json()


def titles(client, column):
    return [t["title"] for t in client.get("/api/tasks", params={"columnId": column["id"]}).json()]


def test_project_lifecycle(client):
    created = client.post("/api/projects", json={"name": "Roadmap", "color": "#112233"})
    assert created.status_code == 201
    project = created.json()
    assert project["status"] == "active"
    assert project["color"] == "#112233"

    patched = client.patch(f"/api/projects/{project['id']}", json={"status": "archived", "icon": "rocket"})
    assert patched.json()["status"] == "archived"
    assert patched.json()["icon"] == "rocket"

    assert [p["id"] for p in client.get("/api/projects").json()] == [project["id"]]
    assert client.delete(f"/api/projects/{project['id']}").status_code == 204
    assert client.get(f"/api/projects/{project['id']}").status_code == 404


def test_project_validation(client):
    assert client.post("/api/projects", json={"name": "x"}).status_code == 422
    assert client.post("/api/projects", json={"name": "Ok", "color": "red"}).status_code == 422


def test_board_comes_with_default_columns(client, board):
    assert [c["name"] for c in board["columns"]] == ["Backlog", "To Do", "In Progress", "In Review", "Done"]
    assert [c["position"] for c in board["columns"]] == [0, 1, 2, 3, 4]

    project = client.get(f"/api/projects/{board['projectId']}").json()
    assert [b["id"] for b in project["boards"]] == [board["id"]]
    listed = client.get("/api/boards", params={"projectId": board["projectId"]}).json()
    assert [b["id"] for b in listed] == [board["id"]]


def test_board_for_unknown_project(client):
    response = client.post("/api/boards", json={"name": "Orphan", "projectId": "missing"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_create_task_appends_to_column(client, board):
    column = add_column(client, board, "Todo")
    first = add_task(client, column, "Write release notes", priority="high", tags=["docs"], storyPoints=3)
    second = add_task(client, column, "Review release notes", dueDate="2026-03-15")

    assert (first["position"], second["position"]) == (0, 1)
    assert first["priority"] == "high"
    assert first["tags"] == ["docs"]
    assert first["boardId"] == board["id"]
    assert second["dueDate"] == "2026-03-15"
    assert second["type"] == "task"

    detail = client.get(f"/api/columns/{column['id']}").json()
    assert detail["taskCount"] == 2


def test_move_within_column(client, board):
    column = add_column(client, board, "A")
    tasks = [add_task(client, column, f"T{i}") for i in range(4)]

    response = client.post(f"/api/tasks/{tasks[0]['id']}/move", json={"targetColumnId": column["id"], "newPosition": 3})

    assert response.status_code == 200
    assert response.json()["position"] == 3
    assert titles(client, column) == ["T1", "T2", "T3", "T0"]


def test_move_across_columns(client, board):
    a = add_column(client, board, "A")
    b = add_column(client, board, "B")
    t0 = add_task(client, a, "T0")
    add_task(client, a, "T1")

    moved = client.post(f"/api/tasks/{t0['id']}/move", json={"targetColumnId": b["id"], "newPosition": 0}).json()

    assert moved["columnId"] == b["id"]
    assert titles(client, a) == ["T1"]
    assert titles(client, b) == ["T0"]


def test_move_into_full_column(client, board):
    a = add_column(client, board, "A")
    b = add_column(client, board, "B", task_limit=1)
    t0 = add_task(client, a, "T0")
    add_task(client, b, "T2")

    response = client.post(f"/api/tasks/{t0['id']}/move", json={"targetColumnId": b["id"], "newPosition": 0})

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "wip_limit_reached"
    assert error["details"]["taskLimit"] == 1
    assert error["requestId"]
    assert titles(client, a) == ["T0"]
    assert titles(client, b) == ["T2"]


def test_create_task_in_full_column(client, board):
    column = add_column(client, board, "Doing", task_limit=1)
    add_task(client, column, "T0")

    response = client.post("/api/tasks", json={"title": "T1", "columnId": column["id"]})

    assert response.status_code == 409
    assert titles(client, column) == ["T0"]


def test_move_validation(client, board):
    column = add_column(client, board, "A")
    task = add_task(client, column, "T0")

    negative = client.post(f"/api/tasks/{task['id']}/move", json={"targetColumnId": column["id"], "newPosition": -1})
    assert negative.status_code == 422

    missing = client.post("/api/tasks/missing/move", json={"targetColumnId": column["id"], "newPosition": 0})
    assert missing.status_code == 404


def test_reorder_tasks(client, board):
    column = add_column(client, board, "C")
    x, y, z = (add_task(client, column, name) for name in ("Xa", "Ya", "Za"))

    response = client.post(f"/api/tasks/reorder/{column['id']}", json={"taskIds": [z["id"], x["id"], y["id"]]})

    assert response.status_code == 200
    assert [(t["title"], t["position"]) for t in response.json()] == [("Za", 0), ("Xa", 1), ("Ya", 2)]


def test_reorder_tasks_with_wrong_ids(client, board):
    column = add_column(client, board, "C")
    x, y, _ = (add_task(client, column, name) for name in ("Xa", "Ya", "Za"))

    response = client.post(f"/api/tasks/reorder/{column['id']}", json={"taskIds": [x["id"], y["id"]]})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_argument"
    assert titles(client, column) == ["Xa", "Ya", "Za"]


def test_reorder_columns(client, board):
    ids = [c["id"] for c in board["columns"]]

    response = client.post(f"/api/columns/reorder/{board['id']}", json={"columnIds": ids[::-1]})

    assert response.status_code == 200
    reloaded = client.get(f"/api/boards/{board['id']}").json()
    assert [c["name"] for c in reloaded["columns"]] == ["Done", "In Review", "In Progress", "To Do", "Backlog"]


def test_patch_task_to_another_column(client, board):
    a = add_column(client, board, "A")
    b = add_column(client, board, "B")
    t0 = add_task(client, a, "T0")
    add_task(client, b, "B0")

    response = client.patch(f"/api/tasks/{t0['id']}", json={"columnId": b["id"], "assignee": "Ana"})

    assert response.status_code == 200
    body = response.json()
    assert (body["columnId"], body["position"], body["assignee"]) == (b["id"], 1, "Ana")


def test_patch_column_clears_limit(client, board):
    column = add_column(client, board, "Doing", task_limit=1)

    response = client.patch(f"/api/columns/{column['id']}", json={"taskLimit": None, "color": "#000000"})

    assert response.json()["taskLimit"] is None
    assert response.json()["color"] == "#000000"


def test_delete_task_closes_gap(client, board):
    column = add_column(client, board, "A")
    _, t1, _ = (add_task(client, column, f"T{i}") for i in range(3))

    assert client.delete(f"/api/tasks/{t1['id']}").status_code == 204

    listed = client.get("/api/tasks", params={"columnId": column["id"]}).json()
    assert [(t["title"], t["position"]) for t in listed] == [("T0", 0), ("T2", 1)]


def test_search_tasks(client, board):
    column = add_column(client, board, "A")
    add_task(client, column, "Fix login", assignee="Ana")
    add_task(client, column, "Write docs", description="login flow")
    add_task(client, column, "Deploy")

    found = client.get("/api/tasks", params={"search": "login"}).json()

    assert sorted(t["title"] for t in found) == ["Fix login", "Write docs"]


def test_storage_failure_is_reported(client, board, monkeypatch):
    a = add_column(client, board, "A")
    b = add_column(client, board, "B")
    t0 = add_task(client, a, "T0")

    def broken_open_gap(*args, **kwargs):
        raise OperationalError("UPDATE tasks", {}, Exception("database is locked"))

    monkeypatch.setattr(moves, "open_gap", broken_open_gap)

    response = client.post(f"/api/tasks/{t0['id']}/move", json={"targetColumnId": b["id"], "newPosition": 0})

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "storage_error"
    assert titles(client, a) == ["T0"]
