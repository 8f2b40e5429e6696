"""
pytest configuration for the SMILE backend tests.

Every API test gets a fresh application bound to its own temporary SQLite
database, configured through environment variables the same way a
deployment would be.
"""
from __future__ import annotations

from typing import Callable, Dict

import pytest
from fastapi.testclient import TestClient

from smile.backend.app import create_app
from smile.config import get_settings


@pytest.fixture
def client(tmp_path, monkeypatch) -> TestClient:
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'smile_test.db'}")
    get_settings.cache_clear()

    with TestClient(create_app()) as test_client:
        yield test_client

    get_settings.cache_clear()


@pytest.fixture
def register(client: TestClient) -> Callable[..., Dict]:
    """Create a user and return its id plus bearer headers"""

    def _register(email: str, name: str = "Test User", role: str = "student") -> Dict:
        response = client.post("/users", json={"email": email, "name": name, "role": role})
        assert response.status_code == 201, response.text
        body = response.json()
        return {
            "id": body["user"]["id"],
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }

    return _register


@pytest.fixture
def classroom(client: TestClient, register) -> Dict:
    """A teacher-owned group with one joined student"""
    teacher = register("teacher@example.com", "Tina Teacher", role="teacher")
    student = register("student@example.com", "Sam Student")

    response = client.post("/groups", json={"name": "Biology 101"}, headers=teacher["headers"])
    assert response.status_code == 201, response.text
    group = response.json()["group"]

    joined = client.post("/groups/join", json={"invite_code": group["invite_code"]},
                         headers=student["headers"])
    assert joined.status_code == 200, joined.text

    return {"teacher": teacher, "student": student, "group_id": group["id"]}


@pytest.fixture
def make_activity(client: TestClient) -> Callable[..., str]:
    """Create an activity and return its id"""

    def _make_activity(headers: Dict, group_id: str, mode: int, **fields) -> str:
        payload = {"group_id": group_id, "name": f"Activity mode {mode}", "mode": mode, **fields}
        response = client.post("/activities", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["activity_id"]

    return _make_activity
