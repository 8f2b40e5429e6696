from __future__ import annotations

from fastapi.testclient import TestClient

OPEN, EXAM, INQUIRY, CASE = 0, 1, 2, 3


def ask(client: TestClient, headers, activity_id: str, content: str = "How do enzymes work?", **fields):
    return client.post("/questions", json={"activity_id": activity_id, "content": content, **fields},
                       headers=headers)


def test_open_question_awards_points(client: TestClient, classroom, make_activity) -> None:
    student = classroom["student"]
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)

    response = ask(client, student["headers"], activity_id)
    assert response.status_code == 201
    assert response.json()["points"]["points_awarded"] == 5
    assert response.json()["points"]["badges"] == ["first_question"]

    listed = client.get("/questions", params={"activity_id": activity_id}, headers=student["headers"]).json()
    assert listed["total"] == 1
    assert listed["questions"][0]["creator_id"] == student["id"]

    activity = client.get(f"/activities/{activity_id}", headers=student["headers"]).json()
    assert activity["number_of_questions"] == 1

    # CREATE_QUESTION plus the first question bonus
    level = client.get("/gamification/me", headers=student["headers"]).json()
    assert level["total_points"] == 15
    assert level["stats"]["questions_created"] == 1


def test_anonymity_requires_activity_opt_in(client: TestClient, register, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    closed = make_activity(teacher["headers"], classroom["group_id"], OPEN)

    rejected = ask(client, student["headers"], closed, is_anonymous=True)
    assert rejected.status_code == 422

    anonymous = make_activity(teacher["headers"], classroom["group_id"], OPEN, allow_anonymity=True)
    assert ask(client, student["headers"], anonymous, is_anonymous=True).status_code == 201

    classmate = register("classmate@example.com", "Cleo")
    invite = client.get(f"/groups/{classroom['group_id']}", headers=teacher["headers"]).json()["invite_code"]
    client.post("/groups/join", json={"invite_code": invite}, headers=classmate["headers"])

    peer_view = client.get("/questions", params={"activity_id": anonymous}, headers=classmate["headers"]).json()
    assert peer_view["questions"][0]["creator_id"] is None

    teacher_view = client.get("/questions", params={"activity_id": anonymous}, headers=teacher["headers"]).json()
    assert teacher_view["questions"][0]["creator_id"] == student["id"]


def test_exam_questions_are_manager_only(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], EXAM)
    question = {"choices": ["A", "B"], "correct_answers": ["A"]}

    assert ask(client, student["headers"], activity_id, **question).status_code == 403
    assert ask(client, teacher["headers"], activity_id, choices=["A"], correct_answers=["A"]).status_code == 422
    assert ask(client, teacher["headers"], activity_id, choices=["A", "B"], correct_answers=["C"]).status_code == 422
    assert ask(client, teacher["headers"], activity_id, **question).status_code == 201

    student_list = client.get("/questions", params={"activity_id": activity_id}, headers=student["headers"]).json()
    assert "correct_answers" not in student_list["questions"][0]

    teacher_list = client.get("/questions", params={"activity_id": activity_id}, headers=teacher["headers"]).json()
    assert teacher_list["questions"][0]["correct_answers"] == ["A"]


def test_inquiry_and_case_reject_direct_questions(client: TestClient, classroom, make_activity) -> None:
    teacher = classroom["teacher"]
    inquiry = make_activity(teacher["headers"], classroom["group_id"], INQUIRY)
    case = make_activity(teacher["headers"], classroom["group_id"], CASE)

    response = ask(client, classroom["student"]["headers"], inquiry)
    assert response.status_code == 400
    assert response.json()["details"]["rule"] == "inquiry_questions"

    assert ask(client, classroom["student"]["headers"], case).status_code == 400


def test_likes_and_responses(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], OPEN)
    question_id = ask(client, student["headers"], activity_id).json()["question_id"]

    own = client.post(f"/questions/{question_id}/like", headers=student["headers"])
    assert own.status_code == 400
    assert own.json()["details"]["rule"] == "self_like"

    liked = client.post(f"/questions/{question_id}/like", headers=teacher["headers"])
    assert liked.status_code == 200
    assert liked.json()["like_count"] == 1
    assert client.post(f"/questions/{question_id}/like", headers=teacher["headers"]).status_code == 409

    created = client.post(f"/questions/{question_id}/responses", json={"content": "They lower activation energy."},
                          headers=teacher["headers"])
    assert created.status_code == 201
    response_id = created.json()["response_id"]

    responses = client.get(f"/questions/{question_id}/responses", headers=student["headers"]).json()
    assert responses["total"] == 1
    assert responses["responses"][0]["content"] == "They lower activation energy."

    response_like = client.post(f"/questions/responses/{response_id}/like", headers=student["headers"])
    assert response_like.status_code == 200
    assert response_like.json()["like_count"] == 1

    stats = client.get("/gamification/me", headers=student["headers"]).json()["stats"]
    assert stats["likes_received"] == 1


def test_exam_questions_take_no_responses(client: TestClient, classroom, make_activity) -> None:
    teacher = classroom["teacher"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], EXAM)
    question_id = ask(client, teacher["headers"], activity_id, choices=["A", "B"],
                      correct_answers=["B"]).json()["question_id"]

    response = client.post(f"/questions/{question_id}/responses", json={"content": "B"},
                           headers=classroom["student"]["headers"])
    assert response.status_code == 400


def test_review_is_replaced_on_second_rating(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], OPEN)
    question_id = ask(client, student["headers"], activity_id).json()["question_id"]

    assert client.put(f"/questions/{question_id}/review", json={"rating": 4},
                      headers=student["headers"]).status_code == 400

    first = client.put(f"/questions/{question_id}/review", json={"rating": 4}, headers=teacher["headers"]).json()
    second = client.put(f"/questions/{question_id}/review", json={"rating": 5, "comment": "Great"},
                        headers=teacher["headers"]).json()
    assert first["review_id"] == second["review_id"]
    assert second["rating"] == 5

    assert client.put(f"/questions/{question_id}/review", json={"rating": 6},
                      headers=teacher["headers"]).status_code == 422


def test_evaluation_awards_quality_points(client: TestClient, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], OPEN)
    question_id = ask(client, student["headers"], activity_id).json()["question_id"]

    denied = client.put(f"/questions/{question_id}/evaluation", json={"overall_score": 9},
                        headers=student["headers"])
    assert denied.status_code == 403

    invalid = client.put(f"/questions/{question_id}/evaluation",
                         json={"overall_score": 9, "blooms_level": "memorize"}, headers=teacher["headers"])
    assert invalid.status_code == 422

    saved = client.put(f"/questions/{question_id}/evaluation",
                       json={"overall_score": 9, "blooms_level": "Analyze", "feedback": "Sharp question"},
                       headers=teacher["headers"])
    assert saved.status_code == 200
    assert saved.json()["evaluation"]["blooms_level"] == "analyze"
    assert saved.json()["evaluation"]["status"] == "completed"

    # question 5, first question 10, evaluation 2, high score 10, analyze 3
    level = client.get("/gamification/me", headers=student["headers"]).json()
    assert level["total_points"] == 30
    assert level["level"] == 2

    # a re-grade does not pay out again
    client.put(f"/questions/{question_id}/evaluation", json={"overall_score": 10}, headers=teacher["headers"])
    assert client.get("/gamification/me", headers=student["headers"]).json()["total_points"] == 30

    notifications = client.get("/gamification/notifications", headers=student["headers"]).json()
    assert {n["type"] for n in notifications["notifications"]} >= {"badge_earned", "level_up"}


def test_delete_question(client: TestClient, register, classroom, make_activity) -> None:
    teacher, student = classroom["teacher"], classroom["student"]
    activity_id = make_activity(teacher["headers"], classroom["group_id"], OPEN)
    question_id = ask(client, student["headers"], activity_id).json()["question_id"]

    stranger = register("stranger@example.com", "Stan")
    assert client.delete(f"/questions/{question_id}", headers=stranger["headers"]).status_code == 403

    assert client.delete(f"/questions/{question_id}", headers=teacher["headers"]).status_code == 200
    listed = client.get("/questions", params={"activity_id": activity_id}, headers=student["headers"]).json()
    assert listed["total"] == 0
    assert client.get(f"/activities/{activity_id}", headers=student["headers"]).json()["number_of_questions"] == 0


def test_teachers_outside_the_group_cannot_evaluate(client: TestClient, register, classroom, make_activity) -> None:
    activity_id = make_activity(classroom["teacher"]["headers"], classroom["group_id"], OPEN)
    question_id = ask(client, classroom["student"]["headers"], activity_id).json()["question_id"]
    outsider = register("other.teacher@example.com", "Otto", role="teacher")

    response = client.put(f"/questions/{question_id}/evaluation", json={"overall_score": 0},
                          headers=outsider["headers"])
    assert response.status_code == 403

    level = client.get("/gamification/me", headers=classroom["student"]["headers"]).json()
    assert level["total_points"] == 15
