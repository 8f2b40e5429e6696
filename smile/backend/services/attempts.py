"""
Shared attempt lifecycle helpers for exam, inquiry and case activities
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Activity, ActivityMode, AttemptStatus, User
from ..dependencies import PermissionChecker, load_activity
from ..exceptions import (
    ActivityModeMismatchException,
    AttemptNotInProgressException,
    MaxAttemptsExceededException,
    ResourceNotFoundByIdException,
)
from ..utils.helpers import parse_uuid, round_score

logger = logging.getLogger(__name__)


async def load_activity_for_mode(
    db: AsyncSession,
    activity_id: str,
    mode: ActivityMode,
    user: User
) -> Activity:
    """Activity of the given mode whose group the user belongs to"""
    activity = await load_activity(db, activity_id)

    if activity.mode != int(mode):
        raise ActivityModeMismatchException(activity_id, mode.name.lower())

    await PermissionChecker.require_member(db, activity.group_id, user)
    return activity


async def find_in_progress_attempt(db: AsyncSession, model: Type, user_id: uuid.UUID, activity_id: uuid.UUID):
    result = await db.execute(
        select(model).where(
            model.user_id == user_id,
            model.activity_id == activity_id,
            model.status == AttemptStatus.IN_PROGRESS.value,
            model.is_deleted == False
        ).order_by(model.created_at.desc())
    )
    return result.scalars().first()


async def count_completed_attempts(db: AsyncSession, model: Type, user_id: uuid.UUID, activity_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(model.id)).where(
            model.user_id == user_id,
            model.activity_id == activity_id,
            model.status == AttemptStatus.COMPLETED.value,
            model.is_deleted == False
        )
    )
    return result.scalar() or 0


def ensure_attempts_remaining(activity_id: str, completed: int, max_attempts: int) -> None:
    if completed >= max_attempts:
        raise MaxAttemptsExceededException(activity_id, max_attempts, completed)


async def list_user_attempts(db: AsyncSession, model: Type, user_id: uuid.UUID, activity_id: uuid.UUID) -> List:
    result = await db.execute(
        select(model).where(
            model.user_id == user_id,
            model.activity_id == activity_id,
            model.is_deleted == False
        ).order_by(model.created_at.desc())
    )
    return list(result.scalars().all())


async def load_owned_attempt(db: AsyncSession, model: Type, attempt_id: str, user: User, require_in_progress: bool = True):
    """Attempt owned by ``user``; another user's attempt reads as not found"""
    attempt_uuid = parse_uuid(attempt_id, "attempt_id")
    result = await db.execute(
        select(model).where(model.id == attempt_uuid, model.is_deleted == False)
    )
    attempt = result.scalar_one_or_none()

    if not attempt or attempt.user_id != user.id:
        raise ResourceNotFoundByIdException("attempt", attempt_id)

    if require_in_progress and not attempt.is_in_progress:
        raise AttemptNotInProgressException(attempt_id)

    return attempt


def apply_cheating_stats(
    attempt,
    tab_switch_count: Optional[int] = None,
    copy_attempts: Optional[int] = None,
    paste_attempts: Optional[int] = None,
    cheating_flags: Optional[List[Dict[str, Any]]] = None
) -> None:
    """Replace provided counters and append new flag events"""
    if not attempt.is_in_progress:
        raise AttemptNotInProgressException(str(attempt.id))

    if tab_switch_count is not None:
        attempt.tab_switch_count = tab_switch_count
    if copy_attempts is not None:
        attempt.copy_attempts = copy_attempts
    if paste_attempts is not None:
        attempt.paste_attempts = paste_attempts

    # JSON columns are reassigned so the change is tracked
    attempt.cheating_flags = list(attempt.cheating_flags or []) + list(cheating_flags or [])

    if cheating_flags:
        logger.warning(f"Attempt {attempt.id} logged {len(cheating_flags)} anti-cheat events")


def anti_cheat_summary(attempt) -> Dict[str, Any]:
    return {
        "tab_switch_count": attempt.tab_switch_count,
        "copy_attempts": attempt.copy_attempts,
        "paste_attempts": attempt.paste_attempts,
        "flag_count": len(attempt.cheating_flags or []),
    }


async def rank_best_attempts(db: AsyncSession, model: Type, activity_id: uuid.UUID, limit: int) -> Dict[str, Any]:
    """Leaderboard of each user's best completed attempt, ties to the faster attempt"""
    result = await db.execute(
        select(model, User)
        .join(User, User.id == model.user_id)
        .where(
            model.activity_id == activity_id,
            model.status == AttemptStatus.COMPLETED.value,
            model.is_deleted == False
        )
    )

    best: Dict[Any, Dict[str, Any]] = {}
    for attempt, user in result.all():
        score = attempt.score or 0.0
        time_spent = attempt.time_spent_seconds or 0
        current = best.get(user.id)
        if current is None or (score, -time_spent) > (current["score"], -current["time_spent_seconds"]):
            best[user.id] = {
                "user_id": str(user.id),
                "name": user.name,
                "score": score,
                "time_spent_seconds": time_spent,
                "passed": bool(attempt.passed),
            }

    ranked = sorted(best.values(), key=lambda e: (-e["score"], e["time_spent_seconds"]))
    leaderboard = [
        {**entry, "rank": rank, "score": round_score(entry["score"])}
        for rank, entry in enumerate(ranked[:limit], start=1)
    ]
    return {"activity_id": str(activity_id), "leaderboard": leaderboard, "total_participants": len(ranked)}
