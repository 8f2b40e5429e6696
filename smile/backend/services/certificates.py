"""
Certificate progress rules
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


@dataclass
class AttemptSnapshot:
    """Latest attempt of one kind for a student on an activity"""
    status: str
    passed: Optional[bool] = None
    score: Optional[float] = None


@dataclass
class ActivityProgress:
    status: str = NOT_STARTED
    score: Optional[float] = None


def _graded_attempt_progress(attempt: AttemptSnapshot) -> ActivityProgress:
    if attempt.status == COMPLETED and attempt.passed:
        return ActivityProgress(COMPLETED, attempt.score)
    if attempt.status == IN_PROGRESS:
        return ActivityProgress(IN_PROGRESS)
    if attempt.status == COMPLETED:
        # Failed; the student has to retry
        return ActivityProgress(IN_PROGRESS, attempt.score)
    return ActivityProgress()


def activity_progress(
    exam: Optional[AttemptSnapshot] = None,
    inquiry: Optional[AttemptSnapshot] = None,
    case: Optional[AttemptSnapshot] = None,
    open_mode_status: Optional[str] = None,
) -> ActivityProgress:
    """Derive an activity's certificate status from the latest attempts.

    Later kinds override earlier ones: exam, then inquiry, then case. Open
    mode activities have no attempts and use their pass status instead.
    """
    progress = ActivityProgress()

    if exam is not None:
        progress = _graded_attempt_progress(exam)

    if inquiry is not None:
        if inquiry.status == COMPLETED:
            progress = ActivityProgress(COMPLETED, inquiry.score)
        elif inquiry.status == IN_PROGRESS:
            progress = ActivityProgress(IN_PROGRESS)

    if case is not None:
        progress = _graded_attempt_progress(case)

    if open_mode_status == "passed":
        progress = ActivityProgress(COMPLETED)
    elif open_mode_status == IN_PROGRESS and progress.status == NOT_STARTED:
        progress = ActivityProgress(IN_PROGRESS)

    return progress


def summarize_progress(statuses: List[str]) -> Dict[str, int]:
    completed = sum(1 for status in statuses if status == COMPLETED)
    in_progress = sum(1 for status in statuses if status == IN_PROGRESS)
    not_started = sum(1 for status in statuses if status == NOT_STARTED)
    total = len(statuses)
    percentage = int(completed / total * 100 + 0.5) if total > 0 else 0

    return {
        "completed": completed,
        "in_progress": in_progress,
        "not_started": not_started,
        "total": total,
        "percentage": percentage,
    }


def is_certificate_complete(summary: Dict[str, int]) -> bool:
    return summary["total"] > 0 and summary["completed"] == summary["total"]
