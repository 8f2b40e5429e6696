from __future__ import annotations

from fastapi.testclient import TestClient

OPEN, EXAM, INQUIRY, CASE = 0, 1, 2, 3


def test_members_cannot_create_activities(client: TestClient, classroom) -> None:
    response = client.post(
        "/activities",
        json={"group_id": classroom["group_id"], "name": "Quiz", "mode": EXAM},
        headers=classroom["student"]["headers"],
    )

    assert response.status_code == 403
    assert response.json()["details"]["required_role"] == "admin"


def test_settings_defaults_and_merge(client: TestClient, classroom, make_activity) -> None:
    teacher = classroom["teacher"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], EXAM,
                                exam_settings={"pass_threshold": 70})

    settings = client.get(f"/activities/{activity_id}", headers=teacher["headers"]).json()["settings"]
    assert settings == {"pass_threshold": 70, "max_attempts": 1, "shuffle_questions": True}

    updated = client.patch(f"/activities/{activity_id}", json={"exam_settings": {"max_attempts": 3}},
                           headers=teacher["headers"])
    assert updated.status_code == 200
    merged = updated.json()["activity"]["settings"]
    assert merged["pass_threshold"] == 70
    assert merged["max_attempts"] == 3


def test_inquiry_defaults(client: TestClient, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], INQUIRY)

    activity = client.get(f"/activities/{activity_id}", headers=classroom["student"]["headers"]).json()
    assert activity["mode_name"] == "inquiry"
    assert activity["settings"]["questions_required"] == 5
    assert activity["settings"]["pass_threshold"] == 6.0
    assert activity["settings"]["keyword_pool_1"] == []


def test_unpublished_activities_are_hidden_from_members(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    make_activity(teacher["headers"], classroom["group_id"], OPEN, name="Visible")
    make_activity(teacher["headers"], classroom["group_id"], EXAM, name="Draft", is_published=False)

    as_student = client.get("/activities", params={"group_id": classroom["group_id"]}, headers=student["headers"])
    assert [a["name"] for a in as_student.json()["activities"]] == ["Visible"]

    as_teacher = client.get("/activities", params={"group_id": classroom["group_id"]}, headers=teacher["headers"])
    assert as_teacher.json()["total"] == 2

    exams = client.get("/activities", params={"group_id": classroom["group_id"], "mode": EXAM},
                       headers=teacher["headers"])
    assert [a["name"] for a in exams.json()["activities"]] == ["Draft"]


def test_non_members_cannot_read_activities(client: TestClient, register, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)
    outsider = register("outsider@example.com", "Olive")

    response = client.get(f"/activities/{activity_id}", headers=outsider["headers"])
    assert response.status_code == 403


def test_case_scenarios_hidden_until_attempt(client: TestClient, classroom, make_activity) -> None:
    scenarios = [{"id": "s1", "title": "Leaky pipe", "content": "A pipe leaks in the lab."}]
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], CASE,
                                case_settings={"scenarios": scenarios})

    student_view = client.get(f"/activities/{activity_id}", headers=classroom["student"]["headers"]).json()
    assert student_view["settings"]["scenarios"] == [{"id": "s1", "title": "Leaky pipe"}]

    teacher_view = client.get(f"/activities/{activity_id}", headers=classroom["teacher"]["headers"]).json()
    assert teacher_view["settings"]["scenarios"][0]["content"] == "A pipe leaks in the lab."


def test_case_scenario_ids_must_be_unique(client: TestClient, classroom) -> None:
    scenario = {"id": "s1", "title": "A", "content": "B"}
    response = client.post(
        "/activities",
        json={"group_id": classroom["group_id"], "name": "Cases", "mode": CASE,
              "case_settings": {"scenarios": [scenario, scenario]}},
        headers=classroom["teacher"]["headers"],
    )
    assert response.status_code == 422


def test_delete_activity(client: TestClient, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)

    denied = client.delete(f"/activities/{activity_id}", headers=classroom["student"]["headers"])
    assert denied.status_code == 403

    deleted = client.delete(f"/activities/{activity_id}", headers=classroom["teacher"]["headers"])
    assert deleted.status_code == 200
    assert client.get(f"/activities/{activity_id}", headers=classroom["teacher"]["headers"]).status_code == 404


def test_open_mode_progress_without_pass_fail(client: TestClient, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)

    response = client.get(f"/activities/{activity_id}/open-mode/progress", headers=classroom["student"]["headers"])
    assert response.json() == {"pass_fail_enabled": False}


def test_open_mode_progress_passes_after_evaluation(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(
        teacher["headers"], classroom["group_id"], OPEN,
        open_mode_settings={"is_pass_fail_enabled": True, "required_question_count": 1,
                            "required_avg_level": 2, "required_avg_score": 5},
    )
    progress_url = f"/activities/{activity_id}/open-mode/progress"

    before = client.get(progress_url, headers=student["headers"]).json()
    assert before["pass_fail_enabled"]
    assert before["status"] == "not_started"

    question = client.post("/questions", json={"activity_id": activity_id, "content": "Why do cells divide?"},
                           headers=student["headers"])
    question_id = question.json()["question_id"]

    pending = client.get(progress_url, headers=student["headers"]).json()
    assert pending["status"] == "in_progress"
    assert pending["current"]["question_count"] == 1

    client.put(f"/questions/{question_id}/evaluation", json={"overall_score": 8, "blooms_level": "apply"},
               headers=teacher["headers"])

    after = client.get(progress_url, headers=student["headers"]).json()
    assert after["status"] == "passed"
    assert after["progress"]["no_peers_available"]
    assert after["current"]["avg_level"] == 3.0

    overview = client.get(f"/activities/{activity_id}/open-mode/students", headers=teacher["headers"]).json()
    assert overview["summary"] == {"total": 1, "passed": 1}
    assert overview["students"][0]["user_id"] == student["id"]

    denied = client.get(f"/activities/{activity_id}/open-mode/students", headers=student["headers"])
    assert denied.status_code == 403


def test_progress_only_for_open_mode(client: TestClient, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], EXAM)

    response = client.get(f"/activities/{activity_id}/open-mode/progress", headers=classroom["student"]["headers"])
    assert response.status_code == 422

    results = client.get(f"/activities/{activity_id}/results", headers=classroom["teacher"]["headers"])
    assert results.status_code == 200
    assert results.json()["summary"]["total_attempts"] == 0
