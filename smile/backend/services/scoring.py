"""
Scoring and pass/fail rules for exam, inquiry and open mode activities
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence

from ..utils.helpers import round_score, sorted_choices

BLOOM_LEVEL_MAP = {
    "remember": 1,
    "understand": 2,
    "apply": 3,
    "analyze": 4,
    "evaluate": 5,
    "create": 6,
}

# Provisional evaluation attached to inquiry questions until graded
PENDING_EVALUATION_SCORE = 7.0
PENDING_EVALUATION_BLOOM = "understand"
PENDING_EVALUATION_FEEDBACK = "Evaluating your question..."

OPEN_MODE_DEFAULTS = {
    "is_pass_fail_enabled": False,
    "required_question_count": 1,
    "required_avg_level": 2.0,
    "required_avg_score": 5.0,
    "peer_ratings_required": 0,
    "peer_responses_required": 0,
}


def is_answer_correct(selected: Optional[Sequence[str]], correct_answers: Optional[Sequence[str]]) -> bool:
    if not correct_answers:
        return False
    return sorted_choices(selected or []) == sorted_choices(correct_answers)


@dataclass
class ExamScore:
    correct_answers: int
    total_questions: int
    score: float
    passed: bool
    per_question: Dict[str, bool] = field(default_factory=dict)

    @property
    def display_score(self) -> float:
        return round_score(self.score)


def score_exam(
    question_order: Sequence[str],
    answers: Mapping[str, Optional[Sequence[str]]],
    answer_keys: Mapping[str, Optional[Sequence[str]]],
    pass_threshold: float,
) -> ExamScore:
    """Grade an exam attempt.

    ``answers`` maps question id to the selected choices,
    ``answer_keys`` maps question id to its correct answers. Unanswered
    questions count against the total.
    """
    per_question = {}
    correct = 0
    for question_id, selected in answers.items():
        if question_id not in answer_keys or not answer_keys[question_id]:
            continue
        ok = is_answer_correct(selected, answer_keys[question_id])
        per_question[question_id] = ok
        if ok:
            correct += 1

    total = len(question_order)
    score = (correct / total) * 100 if total > 0 else 0.0
    return ExamScore(
        correct_answers=correct,
        total_questions=total,
        score=score,
        passed=score >= pass_threshold,
        per_question=per_question,
    )


def inquiry_overall_score(evaluation_scores: Iterable[Optional[float]]) -> float:
    scores = [score for score in evaluation_scores if score is not None]
    if not scores:
        return 0.0
    return round_score(sum(scores) / len(scores))


def bloom_level_to_number(level: Optional[str]) -> int:
    if not level:
        return 0
    normalized = level.lower()
    if normalized in BLOOM_LEVEL_MAP:
        return BLOOM_LEVEL_MAP[normalized]
    # e.g. "Level 4 (Analyze)"
    for key, value in BLOOM_LEVEL_MAP.items():
        if key in normalized:
            return value
    return 0


def average(numbers: Iterable[float]) -> float:
    """Mean of the strictly positive values, 0 when there are none"""
    valid = [number for number in numbers if number and number > 0]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


def open_mode_requirements(settings: Optional[Mapping]) -> Dict:
    settings = settings or {}
    # Falsy values fall back to the defaults, a zero peer requirement stays zero
    return {
        "question_count": settings.get("required_question_count") or OPEN_MODE_DEFAULTS["required_question_count"],
        "avg_level": settings.get("required_avg_level") or OPEN_MODE_DEFAULTS["required_avg_level"],
        "avg_score": settings.get("required_avg_score") or OPEN_MODE_DEFAULTS["required_avg_score"],
        "peer_ratings": settings.get("peer_ratings_required") or 0,
        "peer_responses": settings.get("peer_responses_required") or 0,
    }


@dataclass
class OpenModeProgress:
    status: str
    has_passed: bool
    current: Dict
    required: Dict
    progress: Dict

    def to_dict(self) -> Dict:
        return {
            "status": self.status,
            "has_passed": self.has_passed,
            "current": self.current,
            "required": self.required,
            "progress": self.progress,
        }


def evaluate_open_mode_progress(
    settings: Optional[Mapping],
    bloom_levels: Sequence[Optional[str]],
    evaluation_scores: Sequence[Optional[float]],
    peer_ratings_given: int,
    peer_responses_given: int,
    peer_question_count: int,
) -> OpenModeProgress:
    """Compare a student's open mode activity with the activity requirements.

    ``bloom_levels`` and ``evaluation_scores`` hold one entry per question the
    student created (``None`` when not evaluated yet).
    """
    required = open_mode_requirements(settings)
    question_count = len(bloom_levels)
    avg_level = average(bloom_level_to_number(level) for level in bloom_levels)
    avg_score = average(score or 0 for score in evaluation_scores)
    no_peers = peer_question_count == 0

    progress = {
        "questions_met": question_count >= required["question_count"],
        "level_met": avg_level >= required["avg_level"],
        "score_met": avg_score >= required["avg_score"],
        "peer_ratings_met": required["peer_ratings"] == 0 or no_peers
        or peer_ratings_given >= required["peer_ratings"],
        "peer_responses_met": required["peer_responses"] == 0 or no_peers
        or peer_responses_given >= required["peer_responses"],
        "no_peers_available": no_peers,
    }
    has_passed = all(value for key, value in progress.items() if key != "no_peers_available")

    if has_passed:
        status = "passed"
    elif question_count > 0:
        status = "in_progress"
    else:
        status = "not_started"

    return OpenModeProgress(
        status=status,
        has_passed=has_passed,
        current={
            "question_count": question_count,
            "avg_level": round_score(avg_level),
            "avg_score": round_score(avg_score),
            "peer_ratings_given": peer_ratings_given,
            "peer_responses_given": peer_responses_given,
        },
        required=required,
        progress=progress,
    )
