"""
SMILE Learning Activities Backend
Questions, responses, likes, peer reviews and evaluations API routes
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    Activity, ActivityMode, EvaluationStatus, Group, Like, Question, QuestionEvaluation,
    QuestionType, Response, Review, User, UserRole
)
from ..dependencies import PermissionChecker, load_activity, require_authentication
from ..exceptions import (
    AuthorizationException, BusinessLogicException, ConflictException,
    ResourceNotFoundByIdException, ValidationException
)
from ..services.gamification import (
    award_evaluation_received, award_like_received, award_question_created,
    award_response_created
)
from ..services.scoring import BLOOM_LEVEL_MAP
from ..utils.helpers import parse_uuid, round_score

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class QuestionCreateRequest(BaseModel):
    activity_id: str
    content: str = Field(..., min_length=1, max_length=5000)
    is_anonymous: bool = False
    choices: Optional[List[str]] = None
    correct_answers: Optional[List[str]] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError('Question content is required')
        return v.strip()

    @model_validator(mode='after')
    def validate_answers(self):
        if self.correct_answers:
            if not self.choices:
                raise ValueError('Correct answers require choices')
            unknown = [answer for answer in self.correct_answers if answer not in self.choices]
            if unknown:
                raise ValueError(f'Correct answers not among choices: {unknown}')
        return self


class ResponseCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_anonymous: bool = False


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class EvaluationRequest(BaseModel):
    overall_score: float = Field(..., ge=0, le=10)
    blooms_level: Optional[str] = None
    feedback: Optional[str] = Field(None, max_length=5000)

    @field_validator('blooms_level')
    @classmethod
    def validate_blooms_level(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if v not in BLOOM_LEVEL_MAP:
            raise ValueError(f"Bloom's level must be one of {list(BLOOM_LEVEL_MAP)}")
        return v


# Helper functions
async def load_question(db: AsyncSession, question_id: str) -> Question:
    question_uuid = parse_uuid(question_id, "question_id")
    result = await db.execute(
        select(Question).where(Question.id == question_uuid, Question.is_deleted == False)
    )
    question = result.scalar_one_or_none()
    if not question:
        raise ResourceNotFoundByIdException("question", question_id)
    return question


async def load_response(db: AsyncSession, response_id: str) -> Response:
    response_uuid = parse_uuid(response_id, "response_id")
    result = await db.execute(
        select(Response).where(Response.id == response_uuid, Response.is_deleted == False)
    )
    response = result.scalar_one_or_none()
    if not response:
        raise ResourceNotFoundByIdException("response", response_id)
    return response


async def load_question_context(db: AsyncSession, question_id: str, user: User):
    """Question plus its activity, checking group membership"""
    question = await load_question(db, question_id)
    activity = await load_activity(db, str(question.activity_id))
    await PermissionChecker.require_member(db, activity.group_id, user)
    return question, activity


def question_to_dict(
    question: Question,
    evaluation: Optional[QuestionEvaluation],
    viewer: User,
    is_manager: bool
) -> Dict[str, Any]:
    hide_creator = question.is_anonymous and not is_manager and question.creator_id != viewer.id
    data = {
        "id": str(question.id),
        "activity_id": str(question.activity_id),
        "creator_id": None if hide_creator else str(question.creator_id),
        "content": question.content,
        "question_type": question.question_type,
        "is_anonymous": question.is_anonymous,
        "choices": question.choices,
        "like_count": question.like_count,
        "created_at": question.created_at,
        "evaluation": None,
    }
    if is_manager:
        data["correct_answers"] = question.correct_answers
    if evaluation:
        data["evaluation"] = {
            "overall_score": round_score(evaluation.overall_score),
            "blooms_level": evaluation.blooms_level,
            "feedback": evaluation.feedback,
            "status": evaluation.status,
        }
    return data


async def add_like(db: AsyncSession, user: User, question_id=None, response_id=None) -> None:
    result = await db.execute(
        select(Like).where(
            Like.user_id == user.id,
            Like.question_id == question_id,
            Like.response_id == response_id,
            Like.is_deleted == False
        )
    )
    if result.scalar_one_or_none():
        raise ConflictException("You already liked this", conflict_type="duplicate_like")
    db.add(Like(user_id=user.id, question_id=question_id, response_id=response_id))


# Question routes
@router.post("", status_code=201)
async def create_question(
    request: QuestionCreateRequest,
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Create a question in an open or exam mode activity"""

    activity = await load_activity(db, request.activity_id)
    await PermissionChecker.require_member(db, activity.group_id, current_user)
    mode = ActivityMode(activity.mode)

    if mode == ActivityMode.INQUIRY:
        raise BusinessLogicException(
            "Inquiry questions are submitted through an inquiry attempt",
            rule_name="inquiry_questions"
        )
    if mode == ActivityMode.CASE:
        raise BusinessLogicException("Case activities have no questions", rule_name="case_questions")

    if mode == ActivityMode.EXAM:
        if not await PermissionChecker.can_manage_activity(db, activity, current_user):
            raise AuthorizationException("Only activity managers can add exam questions")
        if not request.choices or len(request.choices) < 2 or not request.correct_answers:
            raise ValidationException(
                "Exam questions need at least two choices and a correct answer",
                field="choices"
            )

    if request.is_anonymous and not activity.allow_anonymity:
        raise ValidationException("This activity does not allow anonymous questions", field="is_anonymous")

    question = Question(
        activity_id=activity.id,
        creator_id=current_user.id,
        content=request.content,
        question_type=(QuestionType.EXAM if mode == ActivityMode.EXAM else QuestionType.OPEN).value,
        is_anonymous=request.is_anonymous,
        choices=request.choices,
        correct_answers=request.correct_answers,
    )
    db.add(question)
    activity.number_of_questions = (activity.number_of_questions or 0) + 1
    await db.flush()

    points = None
    if mode == ActivityMode.OPEN:
        points = await award_question_created(db, current_user.id, question.id)

    await db.commit()

    logger.info(f"Question {question.id} created in activity {activity.id} by {current_user.email}")
    return {
        "message": "Question created successfully",
        "question_id": str(question.id),
        "points": points,
    }


@router.get("")
async def list_questions(
    activity_id: str = Query(..., description="Activity ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Questions of an activity, newest first"""

    activity = await load_activity(db, activity_id)
    await PermissionChecker.require_member(db, activity.group_id, current_user)
    is_manager = await PermissionChecker.can_manage_activity(db, activity, current_user)

    result = await db.execute(
        select(Question, QuestionEvaluation)
        .outerjoin(QuestionEvaluation, QuestionEvaluation.question_id == Question.id)
        .where(Question.activity_id == activity.id, Question.is_deleted == False)
        .order_by(Question.created_at.desc())
    )
    questions = [
        question_to_dict(question, evaluation, current_user, is_manager)
        for question, evaluation in result.all()
    ]
    return {"questions": questions, "total": len(questions)}


@router.delete("/{question_id}")
async def delete_question(
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Delete a question (question creator, activity creator or group creator)"""

    question = await load_question(db, question_id)
    activity = await db.get(Activity, question.activity_id)
    group = await db.get(Group, activity.group_id) if activity else None

    allowed = {question.creator_id}
    if activity:
        allowed.add(activity.creator_id)
    if group:
        allowed.add(group.creator_id)
    if current_user.id not in allowed and current_user.role != UserRole.ADMIN:
        raise AuthorizationException("You cannot delete this question")

    question.soft_delete()
    if activity and activity.number_of_questions:
        activity.number_of_questions -= 1
    await db.commit()

    logger.info(f"Question {question.id} deleted by {current_user.email}")
    return {"message": "Question deleted successfully", "question_id": str(question.id)}


# Responses
@router.post("/{question_id}/responses", status_code=201)
async def create_response(
    request: ResponseCreateRequest,
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Answer an open mode question"""

    question, activity = await load_question_context(db, question_id, current_user)

    if question.question_type != QuestionType.OPEN.value:
        raise BusinessLogicException("Only open questions accept responses", rule_name="open_responses")
    if request.is_anonymous and not activity.allow_anonymity:
        raise ValidationException("This activity does not allow anonymous responses", field="is_anonymous")

    response = Response(
        question_id=question.id,
        creator_id=current_user.id,
        content=request.content.strip(),
        is_anonymous=request.is_anonymous,
    )
    db.add(response)
    await db.flush()

    points = await award_response_created(db, current_user.id, response.id)
    await db.commit()

    return {
        "message": "Response created successfully",
        "response_id": str(response.id),
        "points": points,
    }


@router.get("/{question_id}/responses")
async def list_responses(
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    question, activity = await load_question_context(db, question_id, current_user)
    is_manager = await PermissionChecker.can_manage_activity(db, activity, current_user)

    result = await db.execute(
        select(Response).where(
            Response.question_id == question.id,
            Response.exam_attempt_id.is_(None),
            Response.is_deleted == False
        ).order_by(Response.created_at)
    )

    responses = []
    for response in result.scalars():
        hidden = response.is_anonymous and not is_manager and response.creator_id != current_user.id
        responses.append({
            "id": str(response.id),
            "creator_id": None if hidden else str(response.creator_id),
            "content": response.content,
            "is_anonymous": response.is_anonymous,
            "like_count": response.like_count,
            "created_at": response.created_at,
        })
    return {"responses": responses, "total": len(responses)}


# Likes
@router.post("/{question_id}/like")
async def like_question(
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    question, _ = await load_question_context(db, question_id, current_user)

    if question.creator_id == current_user.id:
        raise BusinessLogicException("You cannot like your own question", rule_name="self_like")

    await add_like(db, current_user, question_id=question.id)
    question.like_count = (question.like_count or 0) + 1
    await award_like_received(db, question.creator_id, "question", question.id)
    await db.commit()

    return {"message": "Question liked", "like_count": question.like_count}


@router.post("/responses/{response_id}/like")
async def like_response(
    response_id: str = Path(..., description="Response ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    response = await load_response(db, response_id)
    await load_question_context(db, str(response.question_id), current_user)

    if response.creator_id == current_user.id:
        raise BusinessLogicException("You cannot like your own response", rule_name="self_like")

    await add_like(db, current_user, response_id=response.id)
    response.like_count = (response.like_count or 0) + 1
    await award_like_received(db, response.creator_id, "response", response.id)
    await db.commit()

    return {"message": "Response liked", "like_count": response.like_count}


# Peer reviews
@router.put("/{question_id}/review")
async def review_question(
    request: ReviewRequest,
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Rate a peer's question; rating again replaces the previous review"""

    question, _ = await load_question_context(db, question_id, current_user)

    if question.creator_id == current_user.id:
        raise BusinessLogicException("You cannot review your own question", rule_name="self_review")

    result = await db.execute(
        select(Review).where(
            Review.question_id == question.id,
            Review.reviewer_id == current_user.id
        )
    )
    review = result.scalar_one_or_none()
    if review:
        review.rating = request.rating
        review.comment = request.comment
        review.is_deleted = False
        review.deleted_at = None
    else:
        review = Review(
            question_id=question.id,
            reviewer_id=current_user.id,
            rating=request.rating,
            comment=request.comment,
        )
        db.add(review)

    await db.commit()
    return {"message": "Review saved", "review_id": str(review.id), "rating": review.rating}


# Evaluations
@router.put("/{question_id}/evaluation")
async def evaluate_question(
    request: EvaluationRequest,
    question_id: str = Path(..., description="Question ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Record the quality score and Bloom's level of a question"""

    question = await load_question(db, question_id)
    activity = await load_activity(db, str(question.activity_id))

    if not await PermissionChecker.can_manage_activity(db, activity, current_user):
        raise AuthorizationException("Only activity managers can evaluate questions")

    result = await db.execute(
        select(QuestionEvaluation).where(QuestionEvaluation.question_id == question.id)
    )
    evaluation = result.scalar_one_or_none()
    first_completion = evaluation is None or evaluation.status != EvaluationStatus.COMPLETED.value

    if evaluation is None:
        evaluation = QuestionEvaluation(question_id=question.id)
        db.add(evaluation)

    evaluation.overall_score = request.overall_score
    evaluation.blooms_level = request.blooms_level
    evaluation.feedback = request.feedback
    evaluation.status = EvaluationStatus.COMPLETED.value
    evaluation.evaluated_by_id = current_user.id
    await db.flush()

    if first_completion:
        await award_evaluation_received(
            db, question.creator_id, request.overall_score, request.blooms_level, question.id
        )

    await db.commit()

    logger.info(
        f"Question {question.id} evaluated by {current_user.email}: "
        f"{request.overall_score} ({request.blooms_level})"
    )
    return {
        "message": "Evaluation saved",
        "evaluation": {
            "question_id": str(question.id),
            "overall_score": round_score(evaluation.overall_score),
            "blooms_level": evaluation.blooms_level,
            "feedback": evaluation.feedback,
            "status": evaluation.status,
        },
    }
