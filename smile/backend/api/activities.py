"""
SMILE Learning Activities Backend
Activity management, open mode progress and results API routes
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    Activity, ActivityMode, AttemptStatus, CaseAttempt, ExamAttempt, Group, GroupMember, GroupRole,
    InquiryAttempt, User
)
from ..dependencies import (
    PermissionChecker, load_activity, load_group, require_authentication
)
from ..exceptions import AuthorizationException, ValidationException
from ..services.progress import calculate_open_mode_progress
from ..utils.helpers import mean, round_score
from ...config import get_settings

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()

ATTEMPT_MODELS = {
    ActivityMode.EXAM: ExamAttempt,
    ActivityMode.INQUIRY: InquiryAttempt,
    ActivityMode.CASE: CaseAttempt,
}


# Pydantic models
class ExamSettings(BaseModel):
    time_limit: Optional[int] = Field(None, ge=1, description="Minutes")
    pass_threshold: Optional[float] = Field(None, ge=0, le=100)
    max_attempts: Optional[int] = Field(None, ge=1)
    shuffle_questions: Optional[bool] = None
    questions_to_show: Optional[int] = Field(None, ge=1)
    show_results: Optional[bool] = None


class InquirySettings(BaseModel):
    questions_required: Optional[int] = Field(None, ge=1, le=50)
    pass_threshold: Optional[float] = Field(None, ge=0, le=10)
    max_attempts: Optional[int] = Field(None, ge=1)
    time_limit: Optional[int] = Field(None, ge=1)
    keyword_pool_1: List[str] = []
    keyword_pool_2: List[str] = []


class CaseScenario(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class CaseSettings(BaseModel):
    scenarios: List[CaseScenario] = []
    time_per_case: Optional[int] = Field(None, ge=1)
    total_time_limit: Optional[int] = Field(None, ge=1)
    pass_threshold: Optional[float] = Field(None, ge=0, le=10)
    max_attempts: Optional[int] = Field(None, ge=1)

    @field_validator('scenarios')
    @classmethod
    def validate_unique_ids(cls, v):
        ids = [scenario.id for scenario in v]
        if len(ids) != len(set(ids)):
            raise ValueError('Scenario ids must be unique')
        return v


class OpenModeSettings(BaseModel):
    is_pass_fail_enabled: bool = False
    required_question_count: Optional[int] = Field(None, ge=0)
    required_avg_level: Optional[float] = Field(None, ge=0, le=6)
    required_avg_score: Optional[float] = Field(None, ge=0, le=10)
    peer_ratings_required: Optional[int] = Field(None, ge=0)
    peer_responses_required: Optional[int] = Field(None, ge=0)
    instructions: Optional[str] = None


class ActivityCreateRequest(BaseModel):
    group_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    mode: ActivityMode = ActivityMode.OPEN
    allow_anonymity: bool = False
    is_published: bool = True
    open_mode_settings: Optional[OpenModeSettings] = None
    exam_settings: Optional[ExamSettings] = None
    inquiry_settings: Optional[InquirySettings] = None
    case_settings: Optional[CaseSettings] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Activity name is required')
        return v.strip()


class ActivityUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    allow_anonymity: Optional[bool] = None
    is_published: Optional[bool] = None
    open_mode_settings: Optional[OpenModeSettings] = None
    exam_settings: Optional[ExamSettings] = None
    inquiry_settings: Optional[InquirySettings] = None
    case_settings: Optional[CaseSettings] = None


SETTINGS_FIELDS = ("open_mode_settings", "exam_settings", "inquiry_settings", "case_settings")


# Helper functions
def effective_settings(activity: Activity) -> Dict[str, Any]:
    """Mode settings with configured defaults filled in"""
    config = get_settings()
    stored = dict(activity.settings)
    mode = ActivityMode(activity.mode)

    if mode == ActivityMode.EXAM:
        stored.setdefault("pass_threshold", config.DEFAULT_EXAM_PASS_THRESHOLD)
        stored.setdefault("max_attempts", config.DEFAULT_MAX_ATTEMPTS)
        stored.setdefault("shuffle_questions", True)
    elif mode == ActivityMode.INQUIRY:
        stored.setdefault("pass_threshold", config.DEFAULT_INQUIRY_PASS_THRESHOLD)
        stored.setdefault("max_attempts", config.DEFAULT_MAX_ATTEMPTS)
        stored.setdefault("questions_required", config.DEFAULT_INQUIRY_QUESTIONS_REQUIRED)
        stored.setdefault("keyword_pool_1", [])
        stored.setdefault("keyword_pool_2", [])
    elif mode == ActivityMode.CASE:
        stored.setdefault("pass_threshold", config.DEFAULT_CASE_PASS_THRESHOLD)
        stored.setdefault("max_attempts", config.DEFAULT_MAX_ATTEMPTS)
        stored.setdefault("scenarios", [])
    return stored


def activity_to_dict(activity: Activity, include_settings: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(activity.id),
        "group_id": str(activity.group_id),
        "creator_id": str(activity.creator_id),
        "name": activity.name,
        "description": activity.description,
        "mode": activity.mode,
        "mode_name": ActivityMode(activity.mode).name.lower(),
        "allow_anonymity": activity.allow_anonymity,
        "is_published": activity.is_published,
        "number_of_questions": activity.number_of_questions,
        "created_at": activity.created_at,
    }
    if include_settings:
        data["settings"] = effective_settings(activity)
    return data


def dump_settings(settings: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    if settings is None:
        return None
    return settings.model_dump(exclude_none=True)


async def require_activity_manager(db: AsyncSession, activity: Activity, user: User) -> None:
    if not await PermissionChecker.can_manage_activity(db, activity, user):
        raise AuthorizationException("Only activity managers can do this")


# API Routes
@router.post("", status_code=201)
async def create_activity(
    request: ActivityCreateRequest,
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Create an activity in a group (group admin or above)"""

    group = await load_group(db, request.group_id)
    await PermissionChecker.require_group_action(db, group.id, current_user, "create_activity")

    activity = Activity(
        group_id=group.id,
        creator_id=current_user.id,
        name=request.name,
        description=request.description,
        mode=int(request.mode),
        allow_anonymity=request.allow_anonymity,
        is_published=request.is_published,
        number_of_questions=0,
    )
    for field in SETTINGS_FIELDS:
        setattr(activity, field, dump_settings(getattr(request, field)))

    # The activity's own mode always carries a settings object
    mode_field = SETTINGS_FIELDS[int(request.mode)]
    if getattr(activity, mode_field) is None:
        setattr(activity, mode_field, {})

    db.add(activity)
    await db.commit()

    logger.info(
        f"Activity '{activity.name}' ({request.mode.name.lower()}) created in group {group.id} "
        f"by {current_user.email}"
    )
    return {
        "message": "Activity created successfully",
        "activity_id": str(activity.id),
        "activity": activity_to_dict(activity),
    }


@router.get("")
async def list_activities(
    group_id: str = Query(..., description="Group ID"),
    mode: Optional[ActivityMode] = Query(None, description="Filter by mode"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Activities of a group"""

    group = await load_group(db, group_id)
    membership = await PermissionChecker.require_member(db, group.id, current_user)

    query = select(Activity).where(Activity.group_id == group.id, Activity.is_deleted == False)
    if mode is not None:
        query = query.where(Activity.mode == int(mode))
    # Members only see published activities
    if membership.role < GroupRole.ADMIN:
        query = query.where(Activity.is_published == True)

    result = await db.execute(query.order_by(Activity.created_at.desc()))
    activities = [activity_to_dict(activity, include_settings=False) for activity in result.scalars()]
    return {"activities": activities, "total": len(activities)}


@router.get("/{activity_id}")
async def get_activity(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Activity details"""

    activity = await load_activity(db, activity_id)
    await PermissionChecker.require_member(db, activity.group_id, current_user)

    data = activity_to_dict(activity)
    if activity.mode == int(ActivityMode.CASE) and not await PermissionChecker.can_manage_activity(db, activity, current_user):
        # Scenario texts are revealed through the case attempt
        data["settings"]["scenarios"] = [
            {"id": scenario["id"], "title": scenario["title"]}
            for scenario in data["settings"].get("scenarios", [])
        ]
    return data


@router.patch("/{activity_id}")
async def update_activity(
    request: ActivityUpdateRequest,
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Update an activity (creator, group admins)"""

    activity = await load_activity(db, activity_id)
    await require_activity_manager(db, activity, current_user)

    updates = request.model_dump(exclude_unset=True)
    for field in ("name", "description", "allow_anonymity", "is_published"):
        if field in updates:
            setattr(activity, field, updates[field])

    for field in SETTINGS_FIELDS:
        if field in updates:
            new_settings = dump_settings(getattr(request, field)) or {}
            # Merge so partial updates keep other keys
            setattr(activity, field, {**(getattr(activity, field) or {}), **new_settings})

    await db.commit()

    logger.info(f"Activity {activity.id} updated by {current_user.email}")
    return {"message": "Activity updated successfully", "activity": activity_to_dict(activity)}


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete an activity (activity creator or group creator)"""

    activity = await load_activity(db, activity_id)
    group = await db.get(Group, activity.group_id)

    if current_user.id not in (activity.creator_id, group.creator_id if group else None):
        raise AuthorizationException("Only the activity creator or group creator can delete this activity")

    activity.soft_delete()
    await db.commit()

    logger.info(f"Activity {activity.id} deleted by {current_user.email}")
    return {"message": "Activity deleted successfully", "activity_id": str(activity.id)}


@router.get("/{activity_id}/open-mode/progress")
async def get_my_open_mode_progress(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Current user's pass status on an open mode activity"""

    activity = await load_activity(db, activity_id)
    await PermissionChecker.require_member(db, activity.group_id, current_user)

    if activity.mode != int(ActivityMode.OPEN):
        raise ValidationException("Progress is only tracked for open mode activities", field="mode")

    progress = await calculate_open_mode_progress(db, activity, current_user.id)
    if progress is None:
        return {"pass_fail_enabled": False}
    return {"pass_fail_enabled": True, **progress.to_dict()}


@router.get("/{activity_id}/open-mode/students")
async def get_all_students_progress(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Open mode pass status of every group member (managers only)"""

    activity = await load_activity(db, activity_id)
    await require_activity_manager(db, activity, current_user)

    if activity.mode != int(ActivityMode.OPEN):
        raise ValidationException("Progress is only tracked for open mode activities", field="mode")

    result = await db.execute(
        select(User)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(
            GroupMember.group_id == activity.group_id,
            GroupMember.is_deleted == False,
            GroupMember.role == int(GroupRole.MEMBER)
        )
        .order_by(User.name)
    )

    students = []
    for student in result.scalars():
        progress = await calculate_open_mode_progress(db, activity, student.id)
        if progress is None:
            return {"pass_fail_enabled": False, "students": []}
        students.append({"user_id": str(student.id), "name": student.name, **progress.to_dict()})

    passed = sum(1 for student in students if student["status"] == "passed")
    return {
        "pass_fail_enabled": True,
        "students": students,
        "summary": {"total": len(students), "passed": passed},
    }


@router.get("/{activity_id}/results")
async def get_activity_results(
    activity_id: str = Path(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Attempt statistics and per-student best results (managers only)"""

    activity = await load_activity(db, activity_id)
    await require_activity_manager(db, activity, current_user)

    model = ATTEMPT_MODELS.get(ActivityMode(activity.mode))
    if model is None:
        raise ValidationException("Open mode activities have no attempts", field="mode")

    result = await db.execute(
        select(model, User)
        .join(User, User.id == model.user_id)
        .where(model.activity_id == activity.id, model.is_deleted == False)
    )
    rows = result.all()

    completed = [attempt for attempt, _ in rows if attempt.status == AttemptStatus.COMPLETED.value]
    passed = [attempt for attempt in completed if attempt.passed]

    best: Dict[uuid.UUID, Dict[str, Any]] = {}
    for attempt, user in rows:
        entry = best.setdefault(user.id, {
            "user_id": str(user.id),
            "name": user.name,
            "attempts": 0,
            "best_score": None,
            "passed": False,
            "in_progress": False,
            "tab_switch_count": 0,
        })
        entry["attempts"] += 1
        entry["tab_switch_count"] += attempt.tab_switch_count or 0
        if attempt.is_in_progress:
            entry["in_progress"] = True
        elif attempt.score is not None and (entry["best_score"] is None or attempt.score > entry["best_score"]):
            entry["best_score"] = round_score(attempt.score)
        if attempt.passed:
            entry["passed"] = True

    return {
        "activity": activity_to_dict(activity, include_settings=False),
        "summary": {
            "total_attempts": len(rows),
            "completed_attempts": len(completed),
            "students": len(best),
            "pass_rate": round_score(len(passed) / len(completed) * 100) if completed else 0.0,
            "average_score": round_score(mean(a.score or 0 for a in completed)),
        },
        "students": sorted(best.values(), key=lambda e: (e["best_score"] is None, -(e["best_score"] or 0))),
        "generated_at": datetime.utcnow(),
    }
