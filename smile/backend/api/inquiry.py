"""
SMILE Learning Activities Backend
Inquiry mode API routes
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    ActivityMode, AttemptStatus, EvaluationStatus, InquiryAttempt, Question,
    QuestionEvaluation, QuestionType, User
)
from ..dependencies import require_authentication
from ..exceptions import BusinessLogicException
from ..services.attempts import (
    anti_cheat_summary, apply_cheating_stats, count_completed_attempts,
    ensure_attempts_remaining, find_in_progress_attempt, list_user_attempts,
    load_activity_for_mode, load_owned_attempt, rank_best_attempts
)
from ..services.gamification import award_inquiry_points, award_question_created
from ..services.keywords import match_keywords
from ..services.scoring import (
    PENDING_EVALUATION_BLOOM, PENDING_EVALUATION_FEEDBACK, PENDING_EVALUATION_SCORE,
    inquiry_overall_score
)
from ..utils.helpers import round_score
from ...config import get_settings
from .activities import effective_settings
from .exam import AntiCheatRequest

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


class InquiryQuestionRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError('Question content is required')
        return v.strip()


def attempt_to_dict(attempt: InquiryAttempt) -> Dict[str, Any]:
    return {
        "attempt_id": str(attempt.id),
        "status": attempt.status,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "questions_generated": attempt.questions_generated,
        "questions_required": attempt.questions_required,
        "score": round_score(attempt.score) if attempt.score is not None else None,
        "passed": attempt.passed,
        "time_spent_seconds": attempt.time_spent_seconds,
    }


def keyword_report(settings: Dict[str, Any], content: str) -> Dict[str, Any]:
    """Keyword pool matches for a submitted question"""
    config = get_settings()
    options = {
        "min_similarity": config.KEYWORD_MIN_SIMILARITY,
        "min_word_length": config.KEYWORD_MIN_WORD_LENGTH,
    }

    report = {}
    for pool in ("keyword_pool_1", "keyword_pool_2"):
        keywords: List[str] = settings.get(pool) or []
        summary = match_keywords(keywords, content, **options)
        report[pool] = {
            "matched": summary.matched_keywords,
            "matched_count": summary.matched_count,
            "total": summary.total_count,
            "match_rate": summary.match_rate,
        }
    return report


async def attempt_questions(db: AsyncSession, attempt: InquiryAttempt):
    result = await db.execute(
        select(Question, QuestionEvaluation)
        .outerjoin(QuestionEvaluation, QuestionEvaluation.question_id == Question.id)
        .where(Question.inquiry_attempt_id == attempt.id, Question.is_deleted == False)
        .order_by(Question.created_at)
    )
    return result.all()


@router.post("/{activity_id}/start")
async def start_inquiry(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Start an inquiry attempt, or resume the one in progress"""

    activity = await load_activity_for_mode(db, activity_id, ActivityMode.INQUIRY, current_user)
    settings = effective_settings(activity)

    attempt = await find_in_progress_attempt(db, InquiryAttempt, current_user.id, activity.id)
    resumed = attempt is not None

    if not attempt:
        completed = await count_completed_attempts(db, InquiryAttempt, current_user.id, activity.id)
        ensure_attempts_remaining(activity_id, completed, settings["max_attempts"])

        attempt = InquiryAttempt(
            user_id=current_user.id,
            activity_id=activity.id,
            questions_required=settings["questions_required"],
        )
        db.add(attempt)
        await db.commit()
        logger.info(f"🔍 Inquiry attempt {attempt.id} started by {current_user.email}")

    questions = await attempt_questions(db, attempt)
    return {
        "message": "Inquiry resumed" if resumed else "Inquiry started",
        "attempt": attempt_to_dict(attempt),
        "resumed": resumed,
        "keyword_pool_1": settings["keyword_pool_1"],
        "keyword_pool_2": settings["keyword_pool_2"],
        "time_limit": settings.get("time_limit"),
        "questions": [
            {"id": str(question.id), "content": question.content} for question, _ in questions
        ],
    }


@router.post("/attempts/{attempt_id}/questions", status_code=201)
async def submit_inquiry_question(
    request: InquiryQuestionRequest,
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Submit one question; it carries an estimated evaluation until graded"""

    attempt = await load_owned_attempt(db, InquiryAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.INQUIRY, current_user)

    if attempt.questions_generated >= attempt.questions_required:
        raise BusinessLogicException(
            f"All {attempt.questions_required} questions have already been submitted",
            rule_name="inquiry_question_limit",
            details={"questions_required": attempt.questions_required}
        )

    question = Question(
        activity_id=activity.id,
        creator_id=current_user.id,
        content=request.content,
        question_type=QuestionType.INQUIRY.value,
        inquiry_attempt_id=attempt.id,
    )
    db.add(question)
    await db.flush()

    db.add(QuestionEvaluation(
        question_id=question.id,
        overall_score=PENDING_EVALUATION_SCORE,
        blooms_level=PENDING_EVALUATION_BLOOM,
        feedback=PENDING_EVALUATION_FEEDBACK,
        status=EvaluationStatus.PENDING.value,
    ))
    attempt.questions_generated += 1
    activity.number_of_questions = (activity.number_of_questions or 0) + 1

    points = await award_question_created(db, current_user.id, question.id)
    await db.commit()

    logger.info(
        f"Inquiry question {attempt.questions_generated}/{attempt.questions_required} "
        f"submitted on attempt {attempt.id}"
    )
    return {
        "message": "Question submitted",
        "question_id": str(question.id),
        "questions_generated": attempt.questions_generated,
        "questions_required": attempt.questions_required,
        "evaluation": {
            "overall_score": PENDING_EVALUATION_SCORE,
            "blooms_level": PENDING_EVALUATION_BLOOM,
            "feedback": PENDING_EVALUATION_FEEDBACK,
            "status": EvaluationStatus.PENDING.value,
        },
        "keywords": keyword_report(effective_settings(activity), request.content),
        "points": points,
    }


@router.post("/attempts/{attempt_id}/complete")
async def complete_inquiry(
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Complete an inquiry attempt and compute its score"""

    attempt = await load_owned_attempt(db, InquiryAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.INQUIRY, current_user)
    settings = effective_settings(activity)

    questions = await attempt_questions(db, attempt)
    score = inquiry_overall_score(
        evaluation.overall_score if evaluation else None for _, evaluation in questions
    )
    passed = score >= settings["pass_threshold"]
    attempt.mark_completed(score, passed)

    points = await award_inquiry_points(db, current_user.id, score, attempt.id)
    await db.commit()

    logger.info(
        f"✅ Inquiry attempt {attempt.id} completed by {current_user.email}: "
        f"{score} ({'passed' if passed else 'failed'})"
    )
    return {
        "message": "Inquiry completed",
        "attempt": attempt_to_dict(attempt),
        "score": score,
        "passed": passed,
        "pass_threshold": settings["pass_threshold"],
        "questions": [
            {
                "id": str(question.id),
                "content": question.content,
                "overall_score": round_score(evaluation.overall_score) if evaluation else None,
                "blooms_level": evaluation.blooms_level if evaluation else None,
                "evaluation_status": evaluation.status if evaluation else None,
            }
            for question, evaluation in questions
        ],
        "points": points,
    }


@router.get("/{activity_id}/status")
async def get_inquiry_status(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    activity = await load_activity_for_mode(db, activity_id, ActivityMode.INQUIRY, current_user)
    settings = effective_settings(activity)
    attempts = await list_user_attempts(db, InquiryAttempt, current_user.id, activity.id)

    completed = [a for a in attempts if a.status == AttemptStatus.COMPLETED.value]
    in_progress = next((a for a in attempts if a.is_in_progress), None)
    scores = [a.score for a in completed if a.score is not None]

    return {
        "activity_id": str(activity.id),
        "attempts": [attempt_to_dict(a) for a in attempts],
        "attempts_used": len(completed),
        "max_attempts": settings["max_attempts"],
        "remaining_attempts": max(0, settings["max_attempts"] - len(completed)),
        "can_start": in_progress is not None or len(completed) < settings["max_attempts"],
        "in_progress_attempt_id": str(in_progress.id) if in_progress else None,
        "best_score": round_score(max(scores)) if scores else None,
        "passed": any(a.passed for a in completed),
    }


@router.put("/attempts/{attempt_id}/anti-cheat")
async def update_anti_cheat(
    request: AntiCheatRequest,
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    attempt = await load_owned_attempt(db, InquiryAttempt, attempt_id, current_user)
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
async def get_inquiry_leaderboard(
    activity_id: str = Path(..., description="Activity ID"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    activity = await load_activity_for_mode(db, activity_id, ActivityMode.INQUIRY, current_user)
    return await rank_best_attempts(db, InquiryAttempt, activity.id, limit)
