"""
Database-backed progress calculations: open mode pass status and
certificate progress
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import (
    Activity, ActivityMode, CaseAttempt, Certificate, CertificateActivity, ExamAttempt,
    InquiryAttempt, NotificationType, Question, QuestionEvaluation, Response, Review,
    StudentCertificate
)
from .certificates import (
    COMPLETED, AttemptSnapshot, activity_progress, is_certificate_complete, summarize_progress
)
from .gamification import create_notification
from .scoring import OpenModeProgress, evaluate_open_mode_progress

logger = logging.getLogger(__name__)


async def calculate_open_mode_progress(
    db: AsyncSession,
    activity: Activity,
    student_id: uuid.UUID
) -> Optional[OpenModeProgress]:
    """Open mode pass status, or None when pass/fail is not enabled"""
    if activity.mode != int(ActivityMode.OPEN):
        return None

    settings = activity.open_mode_settings or {}
    if not settings.get("is_pass_fail_enabled"):
        return None

    result = await db.execute(
        select(QuestionEvaluation.blooms_level, QuestionEvaluation.overall_score)
        .select_from(Question)
        .outerjoin(QuestionEvaluation, QuestionEvaluation.question_id == Question.id)
        .where(
            Question.activity_id == activity.id,
            Question.creator_id == student_id,
            Question.is_deleted == False
        )
    )
    rows = result.all()

    peer_ids_result = await db.execute(
        select(Question.id).where(
            Question.activity_id == activity.id,
            Question.creator_id != student_id,
            Question.is_deleted == False
        )
    )
    peer_question_ids = [row[0] for row in peer_ids_result.all()]

    peer_ratings = 0
    peer_responses = 0
    if peer_question_ids:
        ratings_result = await db.execute(
            select(func.count(Review.id)).where(
                Review.reviewer_id == student_id,
                Review.question_id.in_(peer_question_ids),
                Review.is_deleted == False
            )
        )
        peer_ratings = ratings_result.scalar() or 0

        responses_result = await db.execute(
            select(func.count(Response.id)).where(
                Response.creator_id == student_id,
                Response.question_id.in_(peer_question_ids),
                Response.is_deleted == False
            )
        )
        peer_responses = responses_result.scalar() or 0

    return evaluate_open_mode_progress(
        settings=settings,
        bloom_levels=[row.blooms_level for row in rows],
        evaluation_scores=[row.overall_score for row in rows],
        peer_ratings_given=peer_ratings,
        peer_responses_given=peer_responses,
        peer_question_count=len(peer_question_ids),
    )


async def _latest_attempt(db: AsyncSession, model, user_id: uuid.UUID, activity_id: uuid.UUID) -> Optional[AttemptSnapshot]:
    result = await db.execute(
        select(model).where(
            model.user_id == user_id,
            model.activity_id == activity_id,
            model.is_deleted == False
        ).order_by(model.created_at.desc())
    )
    attempt = result.scalars().first()
    if attempt is None:
        return None
    return AttemptSnapshot(status=attempt.status, passed=attempt.passed, score=attempt.score)


async def _open_mode_status(db: AsyncSession, activity: Activity, user_id: uuid.UUID) -> Optional[str]:
    progress = await calculate_open_mode_progress(db, activity, user_id)
    if progress is not None:
        return progress.status

    # Without pass/fail, contributing a question completes an open activity
    result = await db.execute(
        select(func.count(Question.id)).where(
            Question.activity_id == activity.id,
            Question.creator_id == user_id,
            Question.is_deleted == False
        )
    )
    return "passed" if (result.scalar() or 0) > 0 else None


async def calculate_certificate_progress(
    db: AsyncSession,
    student_certificate: StudentCertificate,
    certificate: Certificate
) -> Dict[str, Any]:
    """Per-activity status for an enrollment; marks it completed when done"""
    result = await db.execute(
        select(CertificateActivity, Activity)
        .join(Activity, Activity.id == CertificateActivity.activity_id)
        .where(
            CertificateActivity.certificate_id == certificate.id,
            CertificateActivity.is_deleted == False
        )
        .order_by(CertificateActivity.sequence_order)
    )

    user_id = student_certificate.user_id
    activities: List[Dict[str, Any]] = []
    for link, activity in result.all():
        open_status = None
        if activity.mode == int(ActivityMode.OPEN):
            open_status = await _open_mode_status(db, activity, user_id)

        progress = activity_progress(
            exam=await _latest_attempt(db, ExamAttempt, user_id, activity.id),
            inquiry=await _latest_attempt(db, InquiryAttempt, user_id, activity.id),
            case=await _latest_attempt(db, CaseAttempt, user_id, activity.id),
            open_mode_status=open_status,
        )
        activities.append({
            "activity_id": str(activity.id),
            "name": activity.name,
            "mode": activity.mode,
            "sequence_order": link.sequence_order,
            "required": link.required,
            "status": progress.status,
            "score": progress.score,
        })

    summary = summarize_progress([item["status"] for item in activities])

    if is_certificate_complete(summary) and student_certificate.status != COMPLETED:
        student_certificate.status = COMPLETED
        student_certificate.completed_at = datetime.utcnow()
        await create_notification(
            db, user_id, NotificationType.CERTIFICATE_COMPLETED,
            title="Certificate completed!",
            message=f"You completed every activity of {certificate.name}.",
            data={"certificate_id": str(certificate.id),
                  "verification_code": student_certificate.verification_code},
        )
        logger.info(f"🎓 Certificate {certificate.id} completed by user {user_id}")

    return {"activities": activities, "progress": summary}
