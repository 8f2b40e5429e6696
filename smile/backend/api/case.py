"""
SMILE Learning Activities Backend
Case study mode API routes
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import ActivityMode, AttemptStatus, CaseAttempt, User
from ..dependencies import require_authentication
from ..exceptions import BusinessLogicException, ValidationException
from ..services.attempts import (
    anti_cheat_summary, apply_cheating_stats, count_completed_attempts,
    ensure_attempts_remaining, find_in_progress_attempt, list_user_attempts,
    load_activity_for_mode, load_owned_attempt, rank_best_attempts
)
from ..services.case_evaluation import evaluate_case_attempt
from ..services.gamification import award_case_points
from ..utils.helpers import round_score
from .activities import effective_settings
from .exam import AntiCheatRequest

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


class CaseResponseRequest(BaseModel):
    scenario_id: str = Field(..., min_length=1)
    issues: str = Field("", max_length=10000)
    solution: str = Field("", max_length=10000)


def scenario_ids(settings: Dict[str, Any]) -> List[str]:
    return [str(scenario.get("id")) for scenario in settings.get("scenarios", [])]


def answered_scenarios(attempt: CaseAttempt) -> int:
    responses = attempt.responses or {}
    return sum(
        1 for response in responses.values()
        if (response.get("issues") or "").strip() or (response.get("solution") or "").strip()
    )


def attempt_to_dict(attempt: CaseAttempt) -> Dict[str, Any]:
    return {
        "attempt_id": str(attempt.id),
        "status": attempt.status,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "score": round_score(attempt.score) if attempt.score is not None else None,
        "passed": attempt.passed,
        "scenarios_completed": answered_scenarios(attempt),
        "time_spent_seconds": attempt.time_spent_seconds,
    }


@router.post("/{activity_id}/start")
async def start_case(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Start a case study attempt, or resume the one in progress"""

    activity = await load_activity_for_mode(db, activity_id, ActivityMode.CASE, current_user)
    settings = effective_settings(activity)

    if not settings["scenarios"]:
        raise BusinessLogicException("This case study has no scenarios yet", rule_name="case_scenarios")

    attempt = await find_in_progress_attempt(db, CaseAttempt, current_user.id, activity.id)
    resumed = attempt is not None

    if not attempt:
        completed = await count_completed_attempts(db, CaseAttempt, current_user.id, activity.id)
        ensure_attempts_remaining(activity_id, completed, settings["max_attempts"])

        attempt = CaseAttempt(user_id=current_user.id, activity_id=activity.id, responses={})
        db.add(attempt)
        await db.commit()
        logger.info(f"📋 Case attempt {attempt.id} started by {current_user.email}")

    return {
        "message": "Case study resumed" if resumed else "Case study started",
        "attempt": attempt_to_dict(attempt),
        "resumed": resumed,
        "scenarios": settings["scenarios"],
        "responses": attempt.responses or {},
        "time_per_case": settings.get("time_per_case"),
        "total_time_limit": settings.get("total_time_limit"),
    }


@router.put("/attempts/{attempt_id}/responses")
async def save_case_response(
    request: CaseResponseRequest,
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Save the issues and solution written for one scenario"""

    attempt = await load_owned_attempt(db, CaseAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.CASE, current_user)

    if request.scenario_id not in scenario_ids(effective_settings(activity)):
        raise ValidationException("Unknown scenario", field="scenario_id", value=request.scenario_id)

    responses = dict(attempt.responses or {})
    responses[request.scenario_id] = {"issues": request.issues, "solution": request.solution}
    attempt.responses = responses

    await db.commit()
    return {
        "message": "Response saved",
        "scenario_id": request.scenario_id,
        "scenarios_completed": answered_scenarios(attempt),
    }


@router.post("/attempts/{attempt_id}/submit")
async def submit_case(
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Evaluate every scenario and complete the attempt"""

    attempt = await load_owned_attempt(db, CaseAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.CASE, current_user)
    settings = effective_settings(activity)

    summary = evaluate_case_attempt(
        scenarios=settings["scenarios"],
        responses=attempt.responses or {},
        pass_threshold=settings["pass_threshold"],
    )

    attempt.scenario_scores = [result.to_dict() for result in summary.scenario_results]
    attempt.mark_completed(summary.overall_score, summary.passed)

    points = await award_case_points(db, current_user.id, attempt.id)
    await db.commit()

    logger.info(
        f"✅ Case attempt {attempt.id} submitted by {current_user.email}: "
        f"{summary.overall_score} ({'passed' if summary.passed else 'failed'})"
    )
    return {
        "message": "Case study submitted",
        "attempt": attempt_to_dict(attempt),
        "score": summary.overall_score,
        "passed": summary.passed,
        "pass_threshold": settings["pass_threshold"],
        "scenario_results": attempt.scenario_scores,
        "points": points,
    }


@router.get("/{activity_id}/status")
async def get_case_status(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    activity = await load_activity_for_mode(db, activity_id, ActivityMode.CASE, current_user)
    settings = effective_settings(activity)
    attempts = await list_user_attempts(db, CaseAttempt, current_user.id, activity.id)

    completed = [a for a in attempts if a.status == AttemptStatus.COMPLETED.value]
    in_progress = next((a for a in attempts if a.is_in_progress), None)
    scores = [a.score for a in completed if a.score is not None]

    if in_progress:
        status = "in_progress"
    elif completed:
        status = "completed"
    else:
        status = "not_started"

    latest = in_progress or (attempts[0] if attempts else None)
    return {
        "activity_id": str(activity.id),
        "status": status,
        "best_score": round_score(max(scores)) if scores else None,
        "passed": any(a.passed for a in completed),
        "attempts_used": len(completed),
        "max_attempts": settings["max_attempts"],
        "remaining_attempts": max(0, settings["max_attempts"] - len(completed)),
        "can_start": in_progress is not None or len(completed) < settings["max_attempts"],
        "in_progress_attempt_id": str(in_progress.id) if in_progress else None,
        "scenarios_completed": answered_scenarios(latest) if latest else 0,
        "total_scenarios": len(settings["scenarios"]),
    }


@router.put("/attempts/{attempt_id}/anti-cheat")
async def update_anti_cheat(
    request: AntiCheatRequest,
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    attempt = await load_owned_attempt(db, CaseAttempt, attempt_id, current_user)
    apply_cheating_stats(
        attempt,
        tab_switch_count=request.tab_switch_count,
        copy_attempts=request.copy_attempts,
        paste_attempts=request.paste_attempts,
        cheating_flags=request.cheating_flags,
    )
    await db.commit()
    return {"message": "Anti-cheat data recorded", **anti_cheat_summary(attempt)}


@router.get("/{activity_id}/leaderboard")
async def get_case_leaderboard(
    activity_id: str = Path(..., description="Activity ID"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    activity = await load_activity_for_mode(db, activity_id, ActivityMode.CASE, current_user)
    return await rank_best_attempts(db, CaseAttempt, activity.id, limit)
