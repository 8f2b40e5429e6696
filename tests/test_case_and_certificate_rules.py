from __future__ import annotations

import pytest

from smile.backend.services.case_evaluation import (
    CaseEvaluator,
    HeuristicCaseEvaluator,
    ScenarioEvaluation,
    evaluate_case_attempt,
)
from smile.backend.services.certificates import (
    AttemptSnapshot,
    activity_progress,
    is_certificate_complete,
    summarize_progress,
)


@pytest.mark.parametrize(
    ("issues", "solution", "score"),
    [("x" * 300, "y" * 150, 6.5), ("x" * 150, "y" * 51, 5.0), ("x" * 60, "", 3.5), ("", "", 1.5)],
)
def test_heuristic_scores_by_length(issues: str, solution: str, score: float) -> None:
    evaluation = HeuristicCaseEvaluator().evaluate({"id": "s1"}, {"issues": issues, "solution": solution})

    assert evaluation.scenario_id == "s1"
    assert evaluation.overall_score == score
    assert evaluation.understanding == evaluation.ingenuity == evaluation.critical_thinking == score


def test_heuristic_feedback_lists() -> None:
    detailed = HeuristicCaseEvaluator().evaluate({"id": "s1"}, {"issues": "x" * 250})
    brief = HeuristicCaseEvaluator().evaluate({"id": "s1"}, {"issues": "x" * 20})

    assert detailed.strengths == ["Provided detailed response"]
    assert detailed.improvements == []
    assert brief.strengths == []
    assert brief.improvements == ["Consider providing more detailed analysis"]


def test_case_attempt_averages_scenarios() -> None:
    summary = evaluate_case_attempt(
        scenarios=[{"id": "s1", "title": "A"}, {"id": "s2", "title": "B"}],
        responses={"s1": {"issues": "x" * 300, "solution": "y" * 150}},
        pass_threshold=6.0,
    )

    assert [r.overall_score for r in summary.scenario_results] == [6.5, 1.5]
    assert summary.overall_score == 4.0
    assert not summary.passed


class FixedEvaluator(CaseEvaluator):
    def evaluate(self, scenario, response) -> ScenarioEvaluation:
        return ScenarioEvaluation(
            scenario_id=str(scenario["id"]),
            understanding=8, ingenuity=6, critical_thinking=7, real_world_application=9,
            overall_score=0, feedback="ok", model="fixed",
        )


def test_case_attempt_with_custom_evaluator() -> None:
    summary = evaluate_case_attempt([{"id": "s1"}], {}, pass_threshold=6.0, evaluator=FixedEvaluator())

    assert summary.overall_score == 7.5
    assert summary.passed
    assert summary.scenario_results[0].to_dict()["model"] == "fixed"


def test_case_attempt_without_scenarios() -> None:
    summary = evaluate_case_attempt([], {}, pass_threshold=6.0)
    assert summary.overall_score == 0.0
    assert not summary.passed


def test_exam_progress_from_latest_attempt() -> None:
    passed = activity_progress(exam=AttemptSnapshot("completed", True, 80.0))
    failed = activity_progress(exam=AttemptSnapshot("completed", False, 40.0))
    running = activity_progress(exam=AttemptSnapshot("in_progress"))

    assert (passed.status, passed.score) == ("completed", 80.0)
    assert (failed.status, failed.score) == ("in_progress", 40.0)
    assert running.status == "in_progress"
    assert activity_progress().status == "not_started"


def test_inquiry_completion_ignores_pass_flag_and_case_overrides() -> None:
    assert activity_progress(inquiry=AttemptSnapshot("completed", False, 4.0)).status == "completed"

    overridden = activity_progress(
        inquiry=AttemptSnapshot("completed", True, 8.0),
        case=AttemptSnapshot("in_progress"),
    )
    assert overridden.status == "in_progress"


def test_open_mode_progress_status() -> None:
    assert activity_progress(open_mode_status="passed").status == "completed"
    assert activity_progress(open_mode_status="in_progress").status == "in_progress"
    assert activity_progress(open_mode_status=None).status == "not_started"


def test_summarize_progress() -> None:
    summary = summarize_progress(["completed", "in_progress", "not_started"])

    assert summary == {"completed": 1, "in_progress": 1, "not_started": 1, "total": 3, "percentage": 33}
    assert not is_certificate_complete(summary)
    assert is_certificate_complete(summarize_progress(["completed", "completed"]))
    assert not is_certificate_complete(summarize_progress([]))
