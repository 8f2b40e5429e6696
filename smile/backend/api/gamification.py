"""
SMILE Learning Activities Backend
Gamification API routes: levels, badges, streaks, notifications and leaderboards
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    ActivityMode, AttemptStatus, ExamAttempt, Activity, GroupMember, Notification,
    PointTransaction, Question, User, UserBadge, UserLevel, UserStreak
)
from ..dependencies import PermissionChecker, load_group, require_authentication
from ..exceptions import ResourceNotFoundByIdException
from ..services.gamification import get_or_create_user_level
from ..services.levels import (
    TIERS, TIERS_BY_ID, calculate_tier_progress, get_next_tier, level_progress,
    points_for_next_level, points_to_next_tier
)
from ..services.streaks import BADGES
from ..utils.helpers import parse_uuid, round_score

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


def level_summary(user_level: UserLevel) -> Dict[str, Any]:
    tier = TIERS_BY_ID.get(user_level.current_tier) or TIERS[0]
    next_tier = get_next_tier(tier.id)
    return {
        **level_progress(user_level.total_points),
        "total_points": user_level.total_points,
        "points_for_next_level": points_for_next_level(user_level.current_level),
        "tier": tier.to_dict(),
        "tier_progress": round(calculate_tier_progress(user_level.total_points), 4),
        "next_tier": next_tier.to_dict() if next_tier else None,
        "points_to_next_tier": points_to_next_tier(user_level.total_points),
        "breakdown": {
            "question": user_level.question_points,
            "response": user_level.response_points,
            "evaluation": user_level.evaluation_points,
            "streak": user_level.streak_points,
            "bonus": user_level.bonus_points,
        },
        "stats": {
            "questions_created": user_level.questions_created,
            "responses_given": user_level.responses_given,
            "evaluations_received": user_level.evaluations_received,
            "likes_received": user_level.likes_received,
            "perfect_scores": user_level.perfect_scores,
        },
    }


@router.get("/me")
async def get_my_level(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Level, tier and point breakdown of the current user"""

    user_level = await get_or_create_user_level(db, current_user.id)
    await db.commit()
    return level_summary(user_level)


@router.get("/tiers")
async def list_tiers():
    return {"tiers": [tier.to_dict() for tier in TIERS]}


@router.get("/badges")
async def get_my_badges(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Earned badges and the full catalog with earned flags"""

    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == current_user.id, UserBadge.is_deleted == False)
        .order_by(desc(UserBadge.earned_at))
    )
    earned = {badge.badge_id: badge.earned_at for badge in result.scalars()}

    earned_badges = [
        {**BADGES[badge_id].to_dict(), "earned_at": earned_at}
        for badge_id, earned_at in earned.items() if badge_id in BADGES
    ]
    catalog = [
        {**badge.to_dict(), "earned": badge.id in earned}
        for badge in BADGES.values()
    ]
    return {
        "earned": earned_badges,
        "catalog": catalog,
        "total_earned": len(earned_badges),
        "total_available": len(BADGES),
    }


@router.get("/streak")
async def get_my_streak(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(UserStreak).where(UserStreak.user_id == current_user.id))
    streak = result.scalar_one_or_none()

    if not streak:
        return {"current_streak": 0, "longest_streak": 0, "last_activity_date": None,
                "weekly_count": 0, "monthly_count": 0}

    return {
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "last_activity_date": streak.last_activity_date,
        "weekly_count": streak.weekly_count,
        "monthly_count": streak.monthly_count,
    }


@router.get("/points")
async def get_points_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Most recent point transactions"""

    result = await db.execute(
        select(PointTransaction)
        .where(PointTransaction.user_id == current_user.id)
        .order_by(desc(PointTransaction.created_at))
        .limit(limit)
    )
    transactions = [
        {
            "id": str(tx.id),
            "points": tx.points,
            "action": tx.action,
            "category": tx.category,
            "source_id": tx.source_id,
            "description": tx.description,
            "created_at": tx.created_at,
        }
        for tx in result.scalars()
    ]
    return {"transactions": transactions, "total": len(transactions)}


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    query = select(Notification).where(
        Notification.user_id == current_user.id,
        Notification.is_deleted == False
    )
    if unread_only:
        query = query.where(Notification.is_read == False)

    result = await db.execute(query.order_by(desc(Notification.created_at)).limit(limit))
    notifications = [
        {
            "id": str(n.id),
            "type": n.notification_type,
            "title": n.title,
            "message": n.message,
            "data": n.data or {},
            "is_read": n.is_read,
            "created_at": n.created_at,
        }
        for n in result.scalars()
    ]

    unread = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == current_user.id,
            Notification.is_read == False,
            Notification.is_deleted == False
        )
    )
    return {"notifications": notifications, "unread_count": unread or 0}


@router.put("/notifications/read-all")
async def mark_all_notifications_read(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Notification).where(
            Notification.user_id == current_user.id,
            Notification.is_read == False
        )
    )
    now = datetime.utcnow()
    count = 0
    for notification in result.scalars():
        notification.mark_read(now)
        count += 1

    await db.commit()
    return {"message": "Notifications marked as read", "updated": count}


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str = Path(..., description="Notification ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    notification = await db.get(Notification, parse_uuid(notification_id, "notification_id"))
    if not notification or notification.user_id != current_user.id:
        raise ResourceNotFoundByIdException("notification", notification_id)

    if not notification.is_read:
        notification.mark_read()
        await db.commit()

    return {"message": "Notification marked as read", "notification_id": notification_id}


@router.get("/leaderboard")
async def get_tier_leaderboard(
    tier: Optional[str] = Query(None, description="Restrict to one tier"),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Users ranked by total points, optionally within a tier"""

    query = (
        select(UserLevel, User)
        .join(User, User.id == UserLevel.user_id)
        .where(User.is_deleted == False, User.is_active == True)
    )
    if tier:
        query = query.where(UserLevel.current_tier == tier.upper())

    result = await db.execute(query.order_by(desc(UserLevel.total_points), User.name))
    rows = result.all()

    entries: List[Dict[str, Any]] = []
    user_position = None
    for rank, (user_level, user) in enumerate(rows, start=1):
        if user.id == current_user.id:
            user_position = rank
        if rank <= limit:
            entries.append({
                "rank": rank,
                "user_id": str(user.id),
                "name": user.name,
                "total_points": user_level.total_points,
                "level": user_level.current_level,
                "tier": user_level.current_tier,
            })

    return {
        "tier": tier.upper() if tier else None,
        "entries": entries,
        "user_position": user_position,
        "total_participants": len(rows),
        "last_updated": datetime.utcnow(),
    }


@router.get("/groups/{group_id}/leaderboard")
async def get_group_leaderboard(
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Group members ranked by questions created, then average exam score"""

    group = await load_group(db, group_id)
    await PermissionChecker.require_member(db, group.id, current_user)

    members_result = await db.execute(
        select(User)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group.id, GroupMember.is_deleted == False)
    )
    members = list(members_result.scalars())

    question_counts = dict((await db.execute(
        select(Question.creator_id, func.count(Question.id))
        .join(Activity, Activity.id == Question.activity_id)
        .where(
            Activity.group_id == group.id,
            Activity.is_deleted == False,
            Question.is_deleted == False,
            Activity.mode != int(ActivityMode.EXAM)
        )
        .group_by(Question.creator_id)
    )).all())

    exam_scores = dict((await db.execute(
        select(ExamAttempt.user_id, func.avg(ExamAttempt.score))
        .join(Activity, Activity.id == ExamAttempt.activity_id)
        .where(
            Activity.group_id == group.id,
            Activity.is_deleted == False,
            ExamAttempt.status == AttemptStatus.COMPLETED.value,
            ExamAttempt.is_deleted == False
        )
        .group_by(ExamAttempt.user_id)
    )).all())

    entries = [
        {
            "user_id": str(member.id),
            "name": member.name,
            "questions_created": question_counts.get(member.id, 0),
            "average_exam_score": round_score(exam_scores[member.id]) if exam_scores.get(member.id) is not None else None,
        }
        for member in members
    ]
    entries.sort(key=lambda e: (-e["questions_created"], -(e["average_exam_score"] or 0), e["name"]))
    for rank, entry in enumerate(entries, start=1):
        entry["rank"] = rank

    return {"group_id": str(group.id), "entries": entries, "total_members": len(entries)}
