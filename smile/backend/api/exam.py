"""
SMILE Learning Activities Backend
Exam mode API routes: attempts, answers, submission and leaderboard
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    ActivityMode, AttemptStatus, ExamAttempt, Question, Response, User
)
from ..dependencies import require_authentication
from ..exceptions import BusinessLogicException, ValidationException
from ..services.attempts import (
    anti_cheat_summary, apply_cheating_stats, count_completed_attempts,
    ensure_attempts_remaining, find_in_progress_attempt, list_user_attempts,
    load_activity_for_mode, load_owned_attempt, rank_best_attempts
)
from ..services.gamification import award_exam_points
from ..services.scoring import score_exam
from ..utils.helpers import parse_uuid, round_score
from .activities import effective_settings

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class AnswerRequest(BaseModel):
    question_id: str
    choices: List[str] = Field(..., min_length=1)


class AntiCheatRequest(BaseModel):
    tab_switch_count: Optional[int] = Field(None, ge=0)
    copy_attempts: Optional[int] = Field(None, ge=0)
    paste_attempts: Optional[int] = Field(None, ge=0)
    cheating_flags: List[Dict[str, Any]] = []


# Helper functions
async def load_exam_questions(db: AsyncSession, question_ids: List[str]) -> Dict[str, Question]:
    if not question_ids:
        return {}
    result = await db.execute(
        select(Question).where(
            Question.id.in_([parse_uuid(qid, "question_id") for qid in question_ids]),
            Question.is_deleted == False
        )
    )
    return {str(question.id): question for question in result.scalars()}


def public_question(question: Question) -> Dict[str, Any]:
    """Exam question as shown to the student, without answers"""
    return {
        "id": str(question.id),
        "content": question.content,
        "choices": question.choices or [],
        "multiple_answers": len(question.correct_answers or []) > 1,
    }


async def saved_answers(db: AsyncSession, attempt: ExamAttempt) -> Dict[str, Response]:
    result = await db.execute(
        select(Response).where(
            Response.exam_attempt_id == attempt.id,
            Response.is_deleted == False
        )
    )
    return {str(response.question_id): response for response in result.scalars()}


def attempt_to_dict(attempt: ExamAttempt) -> Dict[str, Any]:
    return {
        "attempt_id": str(attempt.id),
        "status": attempt.status,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "score": round_score(attempt.score) if attempt.score is not None else None,
        "passed": attempt.passed,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "time_spent_seconds": attempt.time_spent_seconds,
    }


def time_limit_expired(attempt: ExamAttempt, settings: Dict[str, Any]) -> bool:
    time_limit = settings.get("time_limit")
    if not time_limit:
        return False
    return datetime.utcnow() > attempt.started_at + timedelta(minutes=time_limit)


# API Routes
@router.post("/{activity_id}/start")
async def start_exam(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Start an exam attempt, or resume the one in progress"""

    activity = await load_activity_for_mode(db, activity_id, ActivityMode.EXAM, current_user)
    settings = effective_settings(activity)

    attempt = await find_in_progress_attempt(db, ExamAttempt, current_user.id, activity.id)
    resumed = attempt is not None

    if not attempt:
        completed = await count_completed_attempts(db, ExamAttempt, current_user.id, activity.id)
        ensure_attempts_remaining(activity_id, completed, settings["max_attempts"])

        result = await db.execute(
            select(Question.id).where(
                Question.activity_id == activity.id,
                Question.is_deleted == False
            ).order_by(Question.created_at)
        )
        question_ids = [str(row[0]) for row in result.all()]
        if not question_ids:
            raise BusinessLogicException("This exam has no questions yet", rule_name="exam_questions")

        if settings.get("shuffle_questions", True):
            random.shuffle(question_ids)
        questions_to_show = settings.get("questions_to_show")
        if questions_to_show:
            question_ids = question_ids[:questions_to_show]

        attempt = ExamAttempt(
            user_id=current_user.id,
            activity_id=activity.id,
            question_order=question_ids,
            total_questions=len(question_ids),
        )
        db.add(attempt)
        await db.commit()
        logger.info(f"📝 Exam attempt {attempt.id} started by {current_user.email}")

    questions = await load_exam_questions(db, attempt.question_order or [])
    answers = await saved_answers(db, attempt)

    return {
        "message": "Exam resumed" if resumed else "Exam started",
        "attempt": attempt_to_dict(attempt),
        "resumed": resumed,
        "time_limit": settings.get("time_limit"),
        "questions": [
            public_question(questions[qid]) for qid in attempt.question_order or [] if qid in questions
        ],
        "answers": {qid: response.selected_choices or [] for qid, response in answers.items()},
    }


@router.put("/attempts/{attempt_id}/answers")
async def save_answer(
    request: AnswerRequest,
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Save or replace the answer to one exam question"""

    attempt = await load_owned_attempt(db, ExamAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.EXAM, current_user)

    if time_limit_expired(attempt, effective_settings(activity)):
        raise BusinessLogicException("The exam time limit has passed", rule_name="time_limit")

    if request.question_id not in (attempt.question_order or []):
        raise ValidationException("Question is not part of this attempt", field="question_id",
                                  value=request.question_id)

    questions = await load_exam_questions(db, [request.question_id])
    question = questions.get(request.question_id)
    if not question:
        raise ValidationException("Question is no longer available", field="question_id",
                                  value=request.question_id)

    invalid = [choice for choice in request.choices if choice not in (question.choices or [])]
    if invalid:
        raise ValidationException("Unknown choice", field="choices", value=invalid)

    answers = await saved_answers(db, attempt)
    response = answers.get(request.question_id)
    if response:
        response.selected_choices = list(request.choices)
    else:
        response = Response(
            question_id=question.id,
            creator_id=current_user.id,
            selected_choices=list(request.choices),
            exam_attempt_id=attempt.id,
        )
        db.add(response)

    await db.commit()
    return {
        "message": "Answer saved",
        "question_id": request.question_id,
        "answered": len(answers) + (0 if request.question_id in answers else 1),
        "total_questions": attempt.total_questions,
    }


@router.post("/attempts/{attempt_id}/submit")
async def submit_exam(
    attempt_id: str = Path(..., description="Attempt ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Grade and complete an exam attempt"""

    attempt = await load_owned_attempt(db, ExamAttempt, attempt_id, current_user)
    activity = await load_activity_for_mode(db, str(attempt.activity_id), ActivityMode.EXAM, current_user)
    settings = effective_settings(activity)

    question_order = attempt.question_order or []
    questions = await load_exam_questions(db, question_order)
    answers = await saved_answers(db, attempt)

    result = score_exam(
        question_order=question_order,
        answers={qid: response.selected_choices for qid, response in answers.items()},
        answer_keys={qid: question.correct_answers for qid, question in questions.items()},
        pass_threshold=settings["pass_threshold"],
    )

    for qid, response in answers.items():
        response.is_correct = result.per_question.get(qid, False)

    attempt.correct_answers = result.correct_answers
    attempt.total_questions = result.total_questions
    attempt.mark_completed(result.score, result.passed)

    points = await award_exam_points(db, current_user.id, result.passed, result.score, attempt.id)
    await db.commit()

    logger.info(
        f"✅ Exam attempt {attempt.id} submitted by {current_user.email}: "
        f"{result.display_score}% ({'passed' if result.passed else 'failed'})"
    )

    response = {
        "message": "Exam submitted",
        "attempt": attempt_to_dict(attempt),
        "score": result.display_score,
        "passed": result.passed,
        "pass_threshold": settings["pass_threshold"],
        "points": points,
    }
    if settings.get("show_results", True):
        response["results"] = [
            {
                "question_id": qid,
                "your_answer": (answers[qid].selected_choices or []) if qid in answers else [],
                "correct_answers": questions[qid].correct_answers if qid in questions else [],
                "is_correct": result.per_question.get(qid, False),
            }
            for qid in question_order
        ]
    return response


@router.get("/{activity_id}/status")
async def get_exam_status(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Attempt history and remaining attempts for the current user"""

    activity = await load_activity_for_mode(db, activity_id, ActivityMode.EXAM, current_user)
    settings = effective_settings(activity)
    attempts = await list_user_attempts(db, ExamAttempt, current_user.id, activity.id)

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
    attempt = await load_owned_attempt(db, ExamAttempt, attempt_id, current_user)
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
async def get_exam_leaderboard(
    activity_id: str = Path(..., description="Activity ID"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Best completed attempt per student, fastest first on ties"""

    activity = await load_activity_for_mode(db, activity_id, ActivityMode.EXAM, current_user)
    return await rank_best_attempts(db, ExamAttempt, activity.id, limit)
