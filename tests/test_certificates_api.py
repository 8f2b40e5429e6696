from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

OPEN, EXAM = 0, 1


@pytest.fixture
def program(client: TestClient, classroom, make_activity) -> Dict:
    """A draft certificate linking an open activity and a one-question exam"""
    teacher = classroom["teacher"]
    open_id = make_activity(teacher["headers"], classroom["group_id"], OPEN, name="Discussion")
    exam_id = make_activity(teacher["headers"], classroom["group_id"], EXAM, name="Final",
                            exam_settings={"shuffle_questions": False})
    client.post(
        "/questions",
        json={"activity_id": exam_id, "content": "2 + 2?", "choices": ["3", "4"], "correct_answers": ["4"]},
        headers=teacher["headers"],
    )

    created = client.post(
        "/certificates",
        json={
            "name": "Cell Biology Foundations",
            "organization_name": "SMILE Academy",
            "activities": [{"activity_id": exam_id, "sequence_order": 2}, {"activity_id": open_id}],
        },
        headers=teacher["headers"],
    )
    assert created.status_code == 201, created.text
    assert created.json()["certificate"]["status"] == "draft"
    return {**classroom, "certificate_id": created.json()["certificate_id"], "open_id": open_id, "exam_id": exam_id}


def test_students_cannot_create_certificates(client: TestClient, classroom) -> None:
    response = client.post("/certificates", json={"name": "Nope"}, headers=classroom["student"]["headers"])
    assert response.status_code == 403


def test_activities_are_linked_once(client: TestClient, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)
    response = client.post(
        "/certificates",
        json={"name": "Twice", "activities": [{"activity_id": activity_id}, {"activity_id": activity_id}]},
        headers=classroom["teacher"]["headers"],
    )
    assert response.status_code == 422


def test_draft_certificates_are_hidden(client: TestClient, program) -> None:
    student, teacher = program["student"], program["teacher"]
    certificate_id = program["certificate_id"]

    assert client.get("/certificates", headers=student["headers"]).json()["total"] == 0
    assert client.get("/certificates", headers=teacher["headers"]).json()["total"] == 1
    assert client.get(f"/certificates/{certificate_id}", headers=student["headers"]).status_code == 404

    enroll = client.post(f"/certificates/{certificate_id}/enroll", headers=student["headers"])
    assert enroll.status_code == 400
    assert enroll.json()["details"]["rule"] == "certificate_active"

    details = client.get(f"/certificates/{certificate_id}", headers=teacher["headers"]).json()
    assert [a["name"] for a in details["activities"]] == ["Discussion", "Final"]


def test_certificate_completion(client: TestClient, program) -> None:
    student, teacher = program["student"], program["teacher"]
    certificate_id = program["certificate_id"]

    denied = client.patch(f"/certificates/{certificate_id}/status", json={"status": "active"},
                          headers=student["headers"])
    assert denied.status_code == 403
    activated = client.patch(f"/certificates/{certificate_id}/status", json={"status": "active"},
                             headers=teacher["headers"])
    assert activated.json()["certificate"]["status"] == "active"

    enrolled = client.post(f"/certificates/{certificate_id}/enroll", headers=student["headers"])
    assert enrolled.status_code == 201
    code = enrolled.json()["verification_code"]
    assert code.startswith("SMILE-")
    assert client.post(f"/certificates/{certificate_id}/enroll", headers=student["headers"]).status_code == 409

    progress = client.get(f"/certificates/{certificate_id}/progress", headers=student["headers"]).json()
    assert progress["progress"]["percentage"] == 0
    assert {a["status"] for a in progress["activities"]} == {"not_started"}

    pending = client.get(f"/certificates/verify/{code}").json()
    assert not pending["valid"]
    assert pending["status"] == "in_progress"

    # open activity: one contributed question completes it
    client.post("/questions", json={"activity_id": program["open_id"], "content": "What is a cell wall?"},
                headers=student["headers"])
    halfway = client.get(f"/certificates/{certificate_id}/progress", headers=student["headers"]).json()
    assert halfway["progress"]["completed"] == 1
    assert halfway["progress"]["percentage"] == 50
    assert halfway["status"] == "in_progress"

    exam = client.post(f"/exam/{program['exam_id']}/start", headers=student["headers"]).json()
    attempt_id = exam["attempt"]["attempt_id"]
    client.put(f"/exam/attempts/{attempt_id}/answers",
               json={"question_id": exam["questions"][0]["id"], "choices": ["4"]},
               headers=student["headers"])
    client.post(f"/exam/attempts/{attempt_id}/submit", headers=student["headers"])

    finished = client.get(f"/certificates/{certificate_id}/progress", headers=student["headers"]).json()
    assert finished["status"] == "completed"
    assert finished["completed_at"] is not None
    assert finished["progress"]["percentage"] == 100
    scores = {a["activity_id"]: a["score"] for a in finished["activities"]}
    assert scores[program["exam_id"]] == 100.0

    verified = client.get(f"/certificates/verify/{code.lower()}").json()
    assert verified["valid"]
    assert verified["recipient"] == "Sam Student"
    assert verified["certificate"]["organization_name"] == "SMILE Academy"

    notifications = client.get("/gamification/notifications", headers=student["headers"]).json()["notifications"]
    assert "certificate_completed" in {n["type"] for n in notifications}


def test_progress_requires_enrollment(client: TestClient, program) -> None:
    response = client.get(f"/certificates/{program['certificate_id']}/progress", headers=program["student"]["headers"])
    assert response.status_code == 400


def test_unknown_verification_code(client: TestClient) -> None:
    response = client.get("/certificates/verify/SMILE-AAAA-BBBB-CCCC")

    assert response.status_code == 200
    assert response.json() == {"valid": False, "verification_code": "SMILE-AAAA-BBBB-CCCC"}
