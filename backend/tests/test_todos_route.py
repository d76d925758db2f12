from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studyplanner.db.base import Base
from studyplanner.db.session import get_db
from studyplanner.main import app


@pytest.fixture()
def client():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)
        engine.dispose()


ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


def test_todos_require_identity(client):
    res = client.get("/api/todos")
    assert res.status_code == 401
    assert res.json()["code"] == "HTTP_ERROR"
    assert client.post("/api/todos", json={"text": "Revise optics"}).status_code == 401


def test_create_list_newest_first(client):
    first = client.post("/api/todos", json={"text": "Revise optics"}, headers=ALICE)
    second = client.post("/api/todos", json={"text": "  Past papers  "}, headers=ALICE)
    assert first.status_code == 201
    assert second.json()["text"] == "Past papers"
    assert second.json()["completed"] is False

    listed = client.get("/api/todos", headers=ALICE).json()
    assert [t["text"] for t in listed] == ["Past papers", "Revise optics"]


def test_update_and_delete_own_todo(client):
    todo = client.post("/api/todos", json={"text": "Revise optics"}, headers=ALICE).json()

    res = client.patch(f"/api/todos/{todo['id']}", json={"completed": True}, headers=ALICE)
    assert res.status_code == 200
    assert res.json()["completed"] is True
    assert res.json()["text"] == "Revise optics"

    assert client.delete(f"/api/todos/{todo['id']}", headers=ALICE).status_code == 204
    assert client.get("/api/todos", headers=ALICE).json() == []


def test_users_cannot_see_or_change_each_others_todos(client):
    todo = client.post("/api/todos", json={"text": "Alice only"}, headers=ALICE).json()

    assert client.get("/api/todos", headers=BOB).json() == []
    assert client.patch(f"/api/todos/{todo['id']}", json={"completed": True}, headers=BOB).status_code == 404
    assert client.delete(f"/api/todos/{todo['id']}", headers=BOB).status_code == 404
    assert client.get("/api/todos", headers=ALICE).json()[0]["completed"] is False


def test_blank_todo_text_is_rejected(client):
    res = client.post("/api/todos", json={"text": "   "}, headers=ALICE)
    assert res.status_code == 400
    assert res.json()["code"] == "VALIDATION_ERROR"
