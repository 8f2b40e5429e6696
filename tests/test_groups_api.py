from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_reports_database(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["environment"] == "testing"
    assert "x-request-id" in response.headers


def test_requests_without_token_are_rejected(client: TestClient) -> None:
    response = client.get("/groups")

    assert response.status_code == 401
    assert response.json()["error"] == "AUTHENTICATION_FAILED"

    response = client.get("/groups", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_profile_and_duplicate_email(client: TestClient, register) -> None:
    user = register("Ada@Example.com", "Ada")

    me = client.get("/users/me", headers=user["headers"])
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "ada@example.com"
    assert me.json()["level"]["level"] == 1

    duplicate = client.post("/users", json={"email": "ada@example.com", "name": "Other"})
    assert duplicate.status_code == 409
    assert duplicate.json()["details"]["duplicate_field"] == "email"


def test_invalid_body_returns_validation_error(client: TestClient) -> None:
    response = client.post("/users", json={"email": "nope", "name": "X"})

    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_group_details_depend_on_role(client: TestClient, classroom) -> None:
    group_id = classroom["group_id"]

    owner_view = client.get(f"/groups/{group_id}", headers=classroom["teacher"]["headers"]).json()
    assert owner_view["member_count"] == 2
    assert owner_view["my_role_name"] == "owner"
    assert owner_view["initials"] == "B1"
    assert "invite_code" in owner_view
    assert [m["role_name"] for m in owner_view["members"]] == ["owner", "member"]

    student_view = client.get(f"/groups/{group_id}", headers=classroom["student"]["headers"]).json()
    assert student_view["my_role_name"] == "member"
    assert "invite_code" not in student_view

    listed = client.get("/groups", headers=classroom["student"]["headers"]).json()
    assert listed["total"] == 1


def test_join_rules(client: TestClient, register, classroom) -> None:
    group_id = classroom["group_id"]

    again = client.post(f"/groups/{group_id}/join", json={}, headers=classroom["student"]["headers"])
    assert again.status_code == 409

    unknown = client.post("/groups/join", json={"invite_code": "ZZZZZZZZ"},
                          headers=classroom["student"]["headers"])
    assert unknown.status_code == 404

    teacher = classroom["teacher"]
    locked = client.post("/groups", json={"name": "Locked", "require_passcode": True, "passcode": "sesame"},
                         headers=teacher["headers"]).json()["group"]

    outsider = register("outsider@example.com", "Olive")
    wrong = client.post(f"/groups/{locked['id']}/join", json={"passcode": "nope"}, headers=outsider["headers"])
    assert wrong.status_code == 403

    right = client.post(f"/groups/{locked['id']}/join", json={"passcode": "sesame"}, headers=outsider["headers"])
    assert right.status_code == 200
    assert right.json()["group"]["member_count"] == 2


def test_passcode_is_required_when_enabled(client: TestClient, classroom) -> None:
    response = client.post("/groups", json={"name": "Locked", "require_passcode": True},
                           headers=classroom["teacher"]["headers"])
    assert response.status_code == 422


def test_owner_cannot_leave(client: TestClient, classroom) -> None:
    response = client.post(f"/groups/{classroom['group_id']}/leave", headers=classroom["teacher"]["headers"])

    assert response.status_code == 400
    assert response.json()["details"]["rule"] == "owner_cannot_leave"

    left = client.post(f"/groups/{classroom['group_id']}/leave", headers=classroom["student"]["headers"])
    assert left.status_code == 200
    assert client.get("/groups", headers=classroom["student"]["headers"]).json()["total"] == 0


def test_role_changes_and_removal(client: TestClient, classroom) -> None:
    group_id = classroom["group_id"]
    teacher, student = classroom["teacher"], classroom["student"]

    forbidden = client.patch(f"/groups/{group_id}", json={"name": "Renamed"}, headers=student["headers"])
    assert forbidden.status_code == 403
    assert forbidden.json()["details"]["required_role"] == "co_owner"

    promoted = client.patch(f"/groups/{group_id}/members/{student['id']}", json={"role": 1},
                            headers=teacher["headers"])
    assert promoted.status_code == 200
    assert promoted.json()["role_name"] == "admin"

    # admins cannot promote themselves
    self_promote = client.patch(f"/groups/{group_id}/members/{student['id']}", json={"role": 2},
                                headers=student["headers"])
    assert self_promote.status_code == 403

    removed = client.delete(f"/groups/{group_id}/members/{student['id']}", headers=teacher["headers"])
    assert removed.status_code == 200
    assert client.get(f"/groups/{group_id}", headers=teacher["headers"]).json()["member_count"] == 1


def test_regenerate_invite_code(client: TestClient, classroom) -> None:
    group_id = classroom["group_id"]
    before = client.get(f"/groups/{group_id}", headers=classroom["teacher"]["headers"]).json()["invite_code"]

    response = client.post(f"/groups/{group_id}/invite-code", headers=classroom["teacher"]["headers"])
    assert response.status_code == 200
    assert response.json()["invite_code"] != before

    denied = client.post(f"/groups/{group_id}/invite-code", headers=classroom["student"]["headers"])
    assert denied.status_code == 403
