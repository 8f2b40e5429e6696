from __future__ import annotations

import pytest

from smile.backend.services.scoring import (
    average,
    bloom_level_to_number,
    evaluate_open_mode_progress,
    inquiry_overall_score,
    is_answer_correct,
    open_mode_requirements,
    score_exam,
)


def test_answer_comparison_ignores_order() -> None:
    assert is_answer_correct(["b", "a"], ["a", "b"])
    assert not is_answer_correct(["a"], ["a", "b"])
    assert not is_answer_correct(None, ["a"])
    assert not is_answer_correct(["a"], [])


def test_choices_containing_commas_stay_whole() -> None:
    assert is_answer_correct(["1,000"], ["1,000"])
    assert not is_answer_correct(["1", "000"], ["1,000"])


def test_score_exam_counts_unanswered_against_total() -> None:
    result = score_exam(
        question_order=["q1", "q2", "q3", "q4"],
        answers={"q1": ["a"], "q2": ["b", "c"], "q3": ["x"]},
        answer_keys={"q1": ["a"], "q2": ["c", "b"], "q3": ["y"], "q4": ["z"]},
        pass_threshold=60,
    )

    assert result.correct_answers == 2
    assert result.total_questions == 4
    assert result.score == 50.0
    assert not result.passed
    assert result.per_question == {"q1": True, "q2": True, "q3": False}


def test_score_exam_passes_at_threshold() -> None:
    order = ["q1", "q2", "q3", "q4", "q5"]
    keys = {qid: ["a"] for qid in order}
    answers = {"q1": ["a"], "q2": ["a"], "q3": ["a"], "q4": ["b"]}

    result = score_exam(order, answers, keys, pass_threshold=60)
    assert result.score == 60.0
    assert result.passed


def test_score_exam_empty_and_rounding() -> None:
    empty = score_exam([], {}, {}, pass_threshold=60)
    assert empty.score == 0.0
    assert not empty.passed

    two_thirds = score_exam(["q1", "q2", "q3"], {"q1": ["a"], "q2": ["a"]},
                            {"q1": ["a"], "q2": ["a"], "q3": ["a"]}, pass_threshold=60)
    assert two_thirds.display_score == 66.7


def test_inquiry_overall_score() -> None:
    assert inquiry_overall_score([7.0, 8.0, None]) == 7.5
    assert inquiry_overall_score([6.66, 7.0]) == 6.8
    assert inquiry_overall_score([]) == 0.0


@pytest.mark.parametrize(
    ("level", "number"),
    [("Analyze", 4), ("remember", 1), ("Level 5 (Evaluate)", 5), ("unknown", 0), (None, 0)],
)
def test_bloom_level_mapping(level, number) -> None:
    assert bloom_level_to_number(level) == number


def test_average_ignores_non_positive_values() -> None:
    assert average([0, -1, 4, 6]) == 5.0
    assert average([]) == 0.0


def test_open_mode_requirements_defaults() -> None:
    required = open_mode_requirements({})
    assert required == {
        "question_count": 1,
        "avg_level": 2.0,
        "avg_score": 5.0,
        "peer_ratings": 0,
        "peer_responses": 0,
    }
    assert open_mode_requirements({"required_question_count": 3})["question_count"] == 3


def test_open_mode_passes_without_peers() -> None:
    progress = evaluate_open_mode_progress(
        settings={"required_question_count": 2, "required_avg_level": 3,
                  "required_avg_score": 6, "peer_ratings_required": 2},
        bloom_levels=["analyze", "apply"],
        evaluation_scores=[8.0, 6.0],
        peer_ratings_given=0,
        peer_responses_given=0,
        peer_question_count=0,
    )

    assert progress.status == "passed"
    assert progress.has_passed
    assert progress.progress["no_peers_available"]
    assert progress.current["avg_level"] == 3.5
    assert progress.current["avg_score"] == 7.0


def test_open_mode_peer_requirement_blocks_pass() -> None:
    progress = evaluate_open_mode_progress(
        settings={"peer_ratings_required": 2},
        bloom_levels=["create"],
        evaluation_scores=[9.0],
        peer_ratings_given=1,
        peer_responses_given=0,
        peer_question_count=3,
    )

    assert progress.status == "in_progress"
    assert not progress.progress["peer_ratings_met"]
    assert progress.progress["peer_responses_met"]


def test_open_mode_not_started() -> None:
    progress = evaluate_open_mode_progress({}, [], [], 0, 0, 0)

    assert progress.status == "not_started"
    assert progress.to_dict()["current"]["question_count"] == 0
