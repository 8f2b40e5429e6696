"""
SMILE Learning Activities Backend
Points, levels, streaks, badges and notifications.

Every function works inside the caller's session and never commits; the
route that triggered the award owns the transaction.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import (
    Notification, NotificationType, PointTransaction, UserBadge, UserLevel, UserStreak
)
from ...config import get_settings
from .levels import calculate_level, get_tier_from_points
from .streaks import BADGES, advance_streak, streak_badges_for, streak_bonus_action

logger = logging.getLogger(__name__)

POINT_VALUES = {
    # Questions
    "CREATE_QUESTION": 5,
    "QUESTION_LIKED": 2,
    "QUESTION_HIGH_SCORE": 10,
    "QUESTION_PERFECT_SCORE": 25,

    # Responses
    "CREATE_RESPONSE": 3,
    "RESPONSE_LIKED": 1,
    "RESPONSE_CORRECT": 5,
    "RESPONSE_HIGH_SCORE": 8,

    # Evaluations received
    "EVALUATION_RECEIVED": 2,

    # Streak bonuses
    "STREAK_3_DAYS": 10,
    "STREAK_7_DAYS": 25,
    "STREAK_14_DAYS": 50,
    "STREAK_30_DAYS": 100,

    # Special achievements
    "FIRST_QUESTION": 10,
    "FIRST_RESPONSE": 5,
    "COMPLETE_EXAM": 15,
    "PASS_EXAM": 25,
    "COMPLETE_INQUIRY": 20,
    "COMPLETE_CASE": 20,

    # Bloom's level bonuses
    "BLOOMS_ANALYZE": 3,
    "BLOOMS_EVALUATE": 5,
    "BLOOMS_CREATE": 8,
}

BLOOMS_BONUS_ACTIONS = {
    "analyze": "BLOOMS_ANALYZE",
    "evaluate": "BLOOMS_EVALUATE",
    "create": "BLOOMS_CREATE",
}


def point_category(action: str) -> str:
    """Bucket a point action into its UserLevel category"""
    if "QUESTION" in action:
        return "question"
    if "RESPONSE" in action:
        return "response"
    if "EVALUATION" in action:
        return "evaluation"
    if "STREAK" in action:
        return "streak"
    return "bonus"


async def get_or_create_user_level(db: AsyncSession, user_id: uuid.UUID) -> UserLevel:
    result = await db.execute(select(UserLevel).where(UserLevel.user_id == user_id))
    user_level = result.scalar_one_or_none()

    if not user_level:
        user_level = UserLevel(
            user_id=user_id,
            total_points=0,
            current_level=1,
            current_tier="SMILE_STARTER",
            question_points=0,
            response_points=0,
            evaluation_points=0,
            streak_points=0,
            bonus_points=0,
            perfect_scores=0,
            questions_created=0,
            responses_given=0,
            evaluations_received=0,
            likes_received=0,
        )
        db.add(user_level)
        await db.flush()

    return user_level


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None
) -> Notification:
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type.value,
        title=title,
        message=message,
        data=data or {},
    )
    db.add(notification)
    return notification


async def award_badge(
    db: AsyncSession,
    user_id: uuid.UUID,
    badge_id: str,
    context: Optional[Dict[str, Any]] = None
) -> bool:
    """Grant a badge once; returns False when the user already holds it"""
    if not get_settings().ENABLE_GAMIFICATION:
        return False

    badge = BADGES.get(badge_id)
    if badge is None:
        raise ValueError(f"Unknown badge: {badge_id}")

    result = await db.execute(
        select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
    )
    if result.scalar_one_or_none():
        return False

    db.add(UserBadge(user_id=user_id, badge_id=badge_id))
    await create_notification(
        db, user_id, NotificationType.BADGE_EARNED,
        title=f"Badge earned: {badge.name}",
        message=f"{badge.icon} {badge.description}",
        data={"badge_id": badge_id, **(context or {})},
    )
    await db.flush()

    logger.info(f"🏅 Badge {badge_id} awarded to user {user_id}")
    return True


async def check_milestone_badges(db: AsyncSession, user_level: UserLevel, action: str) -> List[str]:
    earned = []
    candidates = []

    if user_level.questions_created >= 1:
        candidates.append("first_question")
    if user_level.questions_created >= BADGES["question_master"].threshold:
        candidates.append("question_master")
    if user_level.responses_given >= 1:
        candidates.append("first_response")
    if user_level.responses_given >= BADGES["response_pro"].threshold:
        candidates.append("response_pro")
    if user_level.likes_received >= BADGES["helpful_responder"].threshold:
        candidates.append("helpful_responder")

    for badge_id in candidates:
        if await award_badge(db, user_level.user_id, badge_id, {"trigger": action}):
            earned.append(badge_id)
    return earned


async def award_points(
    db: AsyncSession,
    user_id: uuid.UUID,
    action: str,
    source_id: Optional[str] = None,
    multiplier: float = 1.0,
    reason: Optional[str] = None
) -> Dict[str, Any]:
    """Add points for ``action`` and recompute level and tier"""
    settings = get_settings()
    if not settings.ENABLE_GAMIFICATION:
        return {"points_awarded": 0, "leveled_up": False, "tier_changed": False, "badges": []}

    if action not in POINT_VALUES:
        raise ValueError(f"Unknown point action: {action}")

    points = int(POINT_VALUES[action] * multiplier)
    user_level = await get_or_create_user_level(db, user_id)

    previous_level = user_level.current_level
    previous_tier = user_level.current_tier
    new_total = user_level.total_points + points
    new_level = calculate_level(new_total)
    new_tier = get_tier_from_points(new_total).id

    category = point_category(action)
    if category == "question":
        user_level.question_points += points
        if action == "CREATE_QUESTION":
            user_level.questions_created += 1
    elif category == "response":
        user_level.response_points += points
        if action == "CREATE_RESPONSE":
            user_level.responses_given += 1
    elif category == "evaluation":
        user_level.evaluation_points += points
        user_level.evaluations_received += 1
    elif category == "streak":
        user_level.streak_points += points
    else:
        user_level.bonus_points += points

    if "PERFECT_SCORE" in action:
        user_level.perfect_scores += 1
    if action in ("QUESTION_LIKED", "RESPONSE_LIKED"):
        user_level.likes_received += 1

    user_level.total_points = new_total
    user_level.current_level = new_level
    user_level.current_tier = new_tier
    user_level.last_points_at = datetime.utcnow()

    db.add(PointTransaction(
        user_id=user_id,
        points=points,
        action=action,
        category=category,
        source_id=str(source_id) if source_id else None,
        description=reason or action.replace("_", " ").title(),
        details={"multiplier": multiplier},
    ))

    leveled_up = new_level > previous_level
    tier_changed = new_tier != previous_tier

    if leveled_up:
        await create_notification(
            db, user_id, NotificationType.LEVEL_UP,
            title=f"Level Up! You're now Level {new_level}",
            message=f"Congratulations! You've reached Level {new_level}. Keep up the great work!",
            data={"new_level": new_level, "points_awarded": points},
        )

    if tier_changed:
        await create_notification(
            db, user_id, NotificationType.TIER_CHANGE,
            title="New Tier Unlocked!",
            message=f"You've advanced to {new_tier.replace('_', ' ')}! Your dedication is paying off.",
            data={"new_tier": new_tier, "previous_tier": previous_tier},
        )

    await db.flush()
    badges = await check_milestone_badges(db, user_level, action)

    logger.info(f"⭐ {points} points ({action}) awarded to user {user_id}, total {new_total}")
    return {
        "points_awarded": points,
        "new_total": new_total,
        "leveled_up": leveled_up,
        "new_level": new_level if leveled_up else None,
        "tier_changed": tier_changed,
        "new_tier": new_tier if tier_changed else None,
        "badges": badges,
    }


async def record_activity(
    db: AsyncSession,
    user_id: uuid.UUID,
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Register a day of activity for the streak; pays milestone bonuses"""
    if not get_settings().ENABLE_GAMIFICATION:
        return {"streak": 0, "longest_streak": 0, "is_new_day": False, "earned_badges": []}

    today = today or datetime.utcnow().date()

    result = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    streak = result.scalar_one_or_none()
    if not streak:
        streak = UserStreak(user_id=user_id, current_streak=0, longest_streak=0,
                            weekly_count=0, monthly_count=0)
        db.add(streak)

    update = advance_streak(
        today=today,
        last_activity=streak.last_activity_date,
        current_streak=streak.current_streak or 0,
        longest_streak=streak.longest_streak or 0,
        weekly_count=streak.weekly_count or 0,
        monthly_count=streak.monthly_count or 0,
        week_start=streak.week_start,
        month_start=streak.month_start,
    )

    streak.current_streak = update.current_streak
    streak.longest_streak = update.longest_streak
    streak.weekly_count = update.weekly_count
    streak.monthly_count = update.monthly_count
    streak.week_start = update.week_start
    streak.month_start = update.month_start
    streak.last_activity_date = today
    await db.flush()

    earned = []
    if update.is_new_day:
        for badge_id in streak_badges_for(update.current_streak):
            if await award_badge(db, user_id, badge_id, {"streak": update.current_streak}):
                earned.append(badge_id)

        bonus_action = streak_bonus_action(update.current_streak)
        if bonus_action:
            await award_points(db, user_id, bonus_action,
                               reason=f"{update.current_streak}-day streak bonus")

    return {
        "streak": update.current_streak,
        "longest_streak": update.longest_streak,
        "is_new_day": update.is_new_day,
        "earned_badges": earned,
    }


async def award_question_created(db: AsyncSession, user_id: uuid.UUID, question_id) -> Dict[str, Any]:
    user_level = await get_or_create_user_level(db, user_id)
    first = user_level.questions_created == 0

    result = await award_points(db, user_id, "CREATE_QUESTION", source_id=question_id)
    if first:
        await award_points(db, user_id, "FIRST_QUESTION", source_id=question_id)
    await record_activity(db, user_id)
    return result


async def award_response_created(db: AsyncSession, user_id: uuid.UUID, response_id) -> Dict[str, Any]:
    user_level = await get_or_create_user_level(db, user_id)
    first = user_level.responses_given == 0

    result = await award_points(db, user_id, "CREATE_RESPONSE", source_id=response_id)
    if first:
        await award_points(db, user_id, "FIRST_RESPONSE", source_id=response_id)
    await record_activity(db, user_id)
    return result


async def award_like_received(db: AsyncSession, owner_id: uuid.UUID, target: str, target_id) -> Dict[str, Any]:
    action = "QUESTION_LIKED" if target == "question" else "RESPONSE_LIKED"
    return await award_points(db, owner_id, action, source_id=target_id)


async def award_blooms_bonus(db: AsyncSession, user_id: uuid.UUID, blooms_level: Optional[str], question_id):
    action = BLOOMS_BONUS_ACTIONS.get((blooms_level or "").lower())
    if not action:
        return None
    return await award_points(db, user_id, action, source_id=question_id,
                              reason=f"Bloom's {blooms_level} level bonus")


async def award_evaluation_received(
    db: AsyncSession,
    user_id: uuid.UUID,
    score: float,
    blooms_level: Optional[str],
    question_id
) -> Dict[str, Any]:
    result = await award_points(db, user_id, "EVALUATION_RECEIVED", source_id=question_id)
    if score >= 10:
        await award_points(db, user_id, "QUESTION_PERFECT_SCORE", source_id=question_id)
    elif score >= 8:
        await award_points(db, user_id, "QUESTION_HIGH_SCORE", source_id=question_id)
    await award_blooms_bonus(db, user_id, blooms_level, question_id)
    return result


async def award_exam_points(
    db: AsyncSession,
    user_id: uuid.UUID,
    passed: bool,
    score: float,
    attempt_id
) -> Dict[str, Any]:
    result = await award_points(db, user_id, "COMPLETE_EXAM", source_id=attempt_id)

    if passed:
        await award_points(db, user_id, "PASS_EXAM", source_id=attempt_id)
        if score >= 90:
            await award_points(db, user_id, "QUESTION_PERFECT_SCORE", source_id=attempt_id,
                               reason="Exam score 90%+")

    await award_badge(db, user_id, "exam_complete", {"attempt_id": str(attempt_id)})
    if score >= 100:
        await award_badge(db, user_id, "exam_ace", {"attempt_id": str(attempt_id)})

    await record_activity(db, user_id)
    return result


async def award_inquiry_points(
    db: AsyncSession,
    user_id: uuid.UUID,
    average_score: float,
    attempt_id
) -> Dict[str, Any]:
    result = await award_points(db, user_id, "COMPLETE_INQUIRY", source_id=attempt_id)

    if average_score >= 8:
        await award_points(db, user_id, "QUESTION_HIGH_SCORE", source_id=attempt_id,
                           reason=f"High inquiry score ({average_score:.1f})")

    await award_badge(db, user_id, "inquiry_explorer", {"attempt_id": str(attempt_id)})
    await record_activity(db, user_id)
    return result


async def award_case_points(db: AsyncSession, user_id: uuid.UUID, attempt_id) -> Dict[str, Any]:
    result = await award_points(db, user_id, "COMPLETE_CASE", source_id=attempt_id)
    await award_badge(db, user_id, "case_solver", {"attempt_id": str(attempt_id)})
    await record_activity(db, user_id)
    return result
