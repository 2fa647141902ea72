from fastapi.testclient import TestClient
from fastapi import WebSocketDisconnect
from sqlmodel import Session
from sqlalchemy.engine import Engine
import pytest

from taskboard.models import Task, User


# Fixture to provide a TestClient for a fresh FastAPI app instance for each test
@pytest.fixture(name="client")
def client_fixture(test_engine: Engine, tmp_path):
    from taskboard.main import create_app

    app = create_app(engine=test_engine, upload_dir=str(tmp_path / "uploads"))
    with TestClient(app) as client:
        yield client


def register(client: TestClient, name: str, email: str, password: str = "strong-password") -> dict:
    """
    Registers a user and returns Authorization headers plus the raw token data.
    """
    response = client.post("/signup", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201
    data = response.json()
    return {"headers": {"Authorization": f"Bearer {data['access_token']}"}, **data}


def create_task_for_user(client: TestClient, headers: dict, title: str, deadline: str = "2030-01-01T10:00", **extra) -> int:
    """
    Helper function to create a task and return its id.
    """
    response = client.post("/tasks", json={"title": title, "deadline": deadline, **extra}, headers=headers)
    assert response.status_code == 201
    return response.json()["taskId"]


# --- Accounts ---

def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to Taskboard!"}


def test_register_and_login(client: TestClient):
    """
    A new account gets a token right away and can log in afterwards.
    """
    amy = register(client, "Amy", "amy@example.com")
    assert amy["token_type"] == "bearer"

    login_response = client.post(
        "/login",
        data={"username": "amy@example.com", "password": "strong-password"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert login_response.status_code == 200
    assert login_response.json()["user_id"] == amy["user_id"]


def test_register_existing_user(client: TestClient):
    register(client, "Amy", "existing@example.com")
    response = client.post(
        "/signup", json={"name": "Other", "email": "existing@example.com", "password": "strong-password-2"}
    )
    assert response.status_code == 409
    assert response.json() == {"detail": "Email already registered"}


def test_login_invalid_credentials(client: TestClient):
    response = client.post("/login", data={"username": "nobody@example.com", "password": "bad-password"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Incorrect username or password"}

    register(client, "Amy", "amy@example.com")
    response = client.post("/login", data={"username": "amy@example.com", "password": "bad-password"})
    assert response.status_code == 401


def test_unauthenticated_requests_are_rejected(client: TestClient):
    for path in ("/tasks", "/friends", "/leaderboard", "/profile"):
        response = client.get(path)
        assert response.status_code == 401
        assert response.json() == {"detail": "Not authenticated"}


def test_forged_token_is_rejected(client: TestClient):
    response = client.get("/tasks", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Could not validate credentials"}


def test_profile_update_and_avatar_upload(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")

    response = client.put("/profile", json={"name": "Amelia"}, headers=amy["headers"])
    assert response.json() == {"message": "Profile updated successfully"}
    response = client.put("/profile", json={}, headers=amy["headers"])
    assert response.json() == {"message": "Nothing to update"}

    response = client.post(
        "/profile/upload", files={"profilePic": ("me.png", b"\x89PNG", "image/png")}, headers=amy["headers"]
    )
    assert response.status_code == 200
    pic = response.json()["pic"]

    profile = client.get("/profile", headers=amy["headers"]).json()
    assert profile["name"] == "Amelia"
    assert profile["profilePic"] == pic
    assert client.get(pic).content == b"\x89PNG"


def test_profile_email_conflict(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    register(client, "Bob", "bob@example.com")

    response = client.put("/profile", json={"email": "bob@example.com"}, headers=amy["headers"])
    assert response.status_code == 409


# --- Task Tests ---

def test_create_task_requires_title_and_deadline(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")

    response = client.post("/tasks", json={"title": "No deadline"}, headers=amy["headers"])
    assert response.status_code == 400
    assert response.json() == {"detail": "Title and deadline are required"}


def test_task_crud_flow(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    first = create_task_for_user(client, amy["headers"], "Buy Milk", priority="HIGH")
    second = create_task_for_user(client, amy["headers"], "Write report", description="Q3")

    tasks = client.get("/tasks", headers=amy["headers"]).json()
    assert [t["id"] for t in tasks] == [second, first]
    assert tasks[1]["priority"] == "high"
    assert tasks[1]["status"] == "Pending"

    found = client.get("/tasks/search", params={"q": "milk"}, headers=amy["headers"]).json()
    assert [t["id"] for t in found] == [first]

    response = client.put(f"/tasks/{second}", json={"description": "Q4"}, headers=amy["headers"])
    assert response.json() == {"message": "Task updated successfully", "matched": True, "completed": False}
    assert client.get(f"/tasks/{second}", headers=amy["headers"]).json()["description"] == "Q4"

    response = client.delete(f"/tasks/{first}", headers=amy["headers"])
    assert response.json() == {"message": "Task deleted successfully", "deleted": True}
    assert [t["id"] for t in client.get("/tasks", headers=amy["headers"]).json()] == [second]


def test_filter_defaults_to_pending(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    open_task = create_task_for_user(client, amy["headers"], "Open")
    done_task = create_task_for_user(client, amy["headers"], "Done")
    client.put(f"/tasks/{done_task}", json={"status": "Completed"}, headers=amy["headers"])

    pending = client.get("/tasks/filter", headers=amy["headers"]).json()
    completed = client.get("/tasks/filter", params={"status": "Completed"}, headers=amy["headers"]).json()
    assert [t["id"] for t in pending] == [open_task]
    assert [t["id"] for t in completed] == [done_task]


def test_empty_update_reports_nothing_to_update(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    task_id = create_task_for_user(client, amy["headers"], "Untouched")

    response = client.put(f"/tasks/{task_id}", json={}, headers=amy["headers"])
    assert response.status_code == 200
    assert response.json()["message"] == "Nothing to update"


def test_completion_awards_points(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    task_id = create_task_for_user(client, amy["headers"], "Finish")

    response = client.put(f"/tasks/{task_id}", json={"status": "Completed"}, headers=amy["headers"])
    assert response.json()["completed"] is True

    profile = client.get("/profile", headers=amy["headers"]).json()
    assert profile["points"] == 10
    assert profile["completed"] == 1
    assert profile["pending"] == 0


def test_other_users_tasks_are_untouchable(client: TestClient, test_engine: Engine):
    """
    Updating or deleting someone else's task is a quiet no-op, not an error.
    """
    amy = register(client, "Amy", "amy@example.com")
    mallory = register(client, "Mallory", "mallory@example.com")
    task_id = create_task_for_user(client, amy["headers"], "Amy's task")

    response = client.put(f"/tasks/{task_id}", json={"status": "Completed"}, headers=mallory["headers"])
    assert response.status_code == 200
    assert response.json()["matched"] is False

    response = client.delete(f"/tasks/{task_id}", headers=mallory["headers"])
    assert response.status_code == 200
    assert response.json()["deleted"] is False

    assert client.get(f"/tasks/{task_id}", headers=mallory["headers"]).status_code == 404
    task = client.get(f"/tasks/{task_id}", headers=amy["headers"]).json()
    assert task["status"] == "Pending"
    with Session(test_engine) as session:
        assert session.get(User, mallory["user_id"]).points == 0


# --- Friends & leaderboard ---

def test_friend_request_flow(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    bob = register(client, "Bob", "bob@example.com")

    response = client.post("/friends/request", json={"toEmail": "bob@example.com"}, headers=amy["headers"])
    assert response.json() == {"message": "Friend request sent"}
    requests = client.get("/friends/requests", headers=bob["headers"]).json()
    assert [r["email"] for r in requests] == ["amy@example.com"]

    response = client.post("/friends/accept", json={"requesterId": amy["user_id"]}, headers=bob["headers"])
    assert response.json() == {"message": "Friend request accepted"}

    assert [f["email"] for f in client.get("/friends", headers=amy["headers"]).json()] == ["bob@example.com"]
    assert [f["email"] for f in client.get("/friends", headers=bob["headers"]).json()] == ["amy@example.com"]
    assert client.get("/friends/requests", headers=bob["headers"]).json() == []


def test_friend_request_errors(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    bob = register(client, "Bob", "bob@example.com")

    response = client.post("/friends/request", json={"toEmail": "ghost@example.com"}, headers=amy["headers"])
    assert response.status_code == 404
    assert response.json() == {"detail": "User not found"}

    response = client.post("/friends/request", json={"toEmail": "amy@example.com"}, headers=amy["headers"])
    assert response.status_code == 400
    assert response.json() == {"detail": "Cannot add yourself"}

    response = client.post("/friends/accept", json={"requesterId": amy["user_id"]}, headers=bob["headers"])
    assert response.status_code == 404
    assert response.json() == {"detail": "No pending request"}

    response = client.post("/friends/accept", json={}, headers=bob["headers"])
    assert response.status_code == 400


def test_leaderboard_scopes(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    bob = register(client, "Bob", "bob@example.com")
    register(client, "Cid", "cid@example.com")
    for title in ("one", "two"):
        task_id = create_task_for_user(client, bob["headers"], title)
        client.put(f"/tasks/{task_id}", json={"status": "Completed"}, headers=bob["headers"])

    board = client.get("/leaderboard", headers=amy["headers"]).json()
    assert board == [
        {"name": "Bob", "email": "bob@example.com", "completed": 2, "incomplete": 0},
        {"name": "Amy", "email": "amy@example.com", "completed": 0, "incomplete": 0},
        {"name": "Cid", "email": "cid@example.com", "completed": 0, "incomplete": 0},
    ]

    assert client.get("/leaderboard", params={"scope": "friends"}, headers=amy["headers"]).json() == []
    client.post("/friends/request", json={"toEmail": "bob@example.com"}, headers=amy["headers"])
    client.post("/friends/accept", json={"requesterId": amy["user_id"]}, headers=bob["headers"])
    friends_board = client.get("/leaderboard", params={"scope": "friends"}, headers=amy["headers"]).json()
    assert [row["name"] for row in friends_board] == ["Bob"]

    response = client.get("/leaderboard", params={"scope": "galaxy"}, headers=amy["headers"])
    assert response.status_code == 400


# --- Live notifications ---

def test_completion_is_pushed_over_websocket(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")
    task_id = create_task_for_user(client, amy["headers"], "Live")

    with client.websocket_connect(f"/ws?token={amy['access_token']}") as websocket:
        assert websocket.receive_json() == {"event": "subscribed", "data": {"userId": amy["user_id"]}}
        client.put(f"/tasks/{task_id}", json={"status": "Completed"}, headers=amy["headers"])
        event = websocket.receive_json()

    assert event == {"event": "taskCompleted", "data": {"taskId": task_id}}


def test_websocket_requires_a_valid_token(client: TestClient):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=garbage") as websocket:
            websocket.receive_json()


# --- Errors ---

def test_storage_failure_returns_a_generic_500(client: TestClient, test_engine: Engine):
    amy = register(client, "Amy", "amy@example.com")
    Task.__table__.drop(test_engine)

    response = client.get("/tasks", headers=amy["headers"])

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal storage error"}


def test_profile_name_cannot_be_blank(client: TestClient):
    amy = register(client, "Amy", "amy@example.com")

    response = client.put("/profile", json={"name": "   "}, headers=amy["headers"])

    assert response.status_code == 400
    assert response.json() == {"detail": "Name cannot be blank"}
    assert client.get("/profile", headers=amy["headers"]).json()["name"] == "Amy"
