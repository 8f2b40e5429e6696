"""
SMILE Learning Activities Backend
SQLAlchemy Database Models
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Date, Integer, String, Text, Float,
    ForeignKey, JSON, Enum, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.types import TypeDecorator, CHAR

# Base class for all models
Base = declarative_base()


class GUID(TypeDecorator):
    """Platform-independent GUID type"""
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(UUID())
        else:
            return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if not isinstance(value, uuid.UUID):
                return "%.32x" % uuid.UUID(value).int
            else:
                return "%.32x" % value.int

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        else:
            if not isinstance(value, uuid.UUID):
                return uuid.UUID(value)
            return value


# Enums
class UserRole(enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class GroupRole(enum.IntEnum):
    """Group membership roles, ordered by privilege"""
    MEMBER = 0
    ADMIN = 1
    CO_OWNER = 2
    OWNER = 3


class GroupType(enum.Enum):
    STUDENT_PACED = "StudentPaced"
    INSTRUCTOR_PACED = "InstructorPaced"


class ActivityMode(enum.IntEnum):
    OPEN = 0
    EXAM = 1
    INQUIRY = 2
    CASE = 3


class AttemptStatus(enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionType(enum.Enum):
    OPEN = "open"
    EXAM = "exam"
    INQUIRY = "inquiry"


class EvaluationStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class CertificateStatus(enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class NotificationType(enum.Enum):
    LEVEL_UP = "level_up"
    TIER_CHANGE = "tier_change"
    BADGE_EARNED = "badge_earned"
    CERTIFICATE_COMPLETED = "certificate_completed"
    INFO = "info"


# Base model with common fields
class BaseModel(Base):
    __abstract__ = True

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    def soft_delete(self) -> None:
        self.is_deleted = True
        self.deleted_at = datetime.utcnow()


# User Management Models
class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=True, index=True)
    name = Column(String(200), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.STUDENT, nullable=False, index=True)
    avatar_url = Column(String(500))
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    memberships = relationship("GroupMember", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email

    @validates('email')
    def validate_email(self, key, email):
        assert '@' in email, "Invalid email format"
        return email.lower()


# Groups
class Group(BaseModel):
    __tablename__ = "groups"

    name = Column(String(100), nullable=False)
    description = Column(String(500))
    group_type = Column(String(20), default=GroupType.STUDENT_PACED.value, nullable=False)
    require_passcode = Column(Boolean, default=False, nullable=False)
    passcode = Column(String(20))
    invite_code = Column(String(8), unique=True, nullable=False, index=True)
    gradient = Column(Integer, default=0, nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    creator_id = Column(GUID(), ForeignKey('users.id'), nullable=False)

    # Relationships
    members = relationship("GroupMember", back_populates="group")
    activities = relationship("Activity", back_populates="group")


class GroupMember(BaseModel):
    __tablename__ = "group_members"

    group_id = Column(GUID(), ForeignKey('groups.id'), nullable=False)
    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    role = Column(Integer, default=int(GroupRole.MEMBER), nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='_group_member_uc'),
        CheckConstraint('role >= 0 AND role <= 3', name='valid_group_role'),
    )


# Activities
class Activity(BaseModel):
    __tablename__ = "activities"

    group_id = Column(GUID(), ForeignKey('groups.id'), nullable=False, index=True)
    creator_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(String(1000))
    mode = Column(Integer, default=int(ActivityMode.OPEN), nullable=False)
    allow_anonymity = Column(Boolean, default=False, nullable=False)
    is_published = Column(Boolean, default=True, nullable=False)
    number_of_questions = Column(Integer, default=0, nullable=False)
    open_mode_settings = Column(JSON)
    exam_settings = Column(JSON)
    inquiry_settings = Column(JSON)
    case_settings = Column(JSON)

    # Relationships
    group = relationship("Group", back_populates="activities")

    __table_args__ = (
        CheckConstraint('mode >= 0 AND mode <= 3', name='valid_activity_mode'),
    )

    @property
    def settings(self) -> Dict[str, Any]:
        """Settings of the activity's own mode"""
        by_mode = {
            ActivityMode.OPEN: self.open_mode_settings,
            ActivityMode.EXAM: self.exam_settings,
            ActivityMode.INQUIRY: self.inquiry_settings,
            ActivityMode.CASE: self.case_settings,
        }
        return by_mode.get(ActivityMode(self.mode)) or {}


class Question(BaseModel):
    __tablename__ = "questions"

    activity_id = Column(GUID(), ForeignKey('activities.id'), nullable=False, index=True)
    creator_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=False)
    question_type = Column(String(20), default=QuestionType.OPEN.value, nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    choices = Column(JSON)
    correct_answers = Column(JSON)
    inquiry_attempt_id = Column(GUID(), ForeignKey('inquiry_attempts.id'), nullable=True, index=True)
    like_count = Column(Integer, default=0, nullable=False)

    # Relationships
    evaluation = relationship("QuestionEvaluation", back_populates="question", uselist=False)


class QuestionEvaluation(BaseModel):
    __tablename__ = "question_evaluations"

    question_id = Column(GUID(), ForeignKey('questions.id'), unique=True, nullable=False)
    overall_score = Column(Float, nullable=False)
    blooms_level = Column(String(20))
    feedback = Column(Text)
    status = Column(String(20), default=EvaluationStatus.PENDING.value, nullable=False)
    evaluated_by_id = Column(GUID(), ForeignKey('users.id'), nullable=True)

    # Relationships
    question = relationship("Question", back_populates="evaluation")


class Response(BaseModel):
    __tablename__ = "responses"

    question_id = Column(GUID(), ForeignKey('questions.id'), nullable=False, index=True)
    creator_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    content = Column(Text)
    selected_choices = Column(JSON)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    exam_attempt_id = Column(GUID(), ForeignKey('exam_attempts.id'), nullable=True, index=True)
    is_correct = Column(Boolean)
    like_count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint('exam_attempt_id', 'question_id', name='_exam_attempt_question_uc'),
    )


class Review(BaseModel):
    """Peer rating of a question"""
    __tablename__ = "reviews"

    question_id = Column(GUID(), ForeignKey('questions.id'), nullable=False, index=True)
    reviewer_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)

    __table_args__ = (
        UniqueConstraint('question_id', 'reviewer_id', name='_question_reviewer_uc'),
        CheckConstraint('rating >= 1 AND rating <= 5', name='valid_rating'),
    )


class Like(BaseModel):
    __tablename__ = "likes"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    question_id = Column(GUID(), ForeignKey('questions.id'), nullable=True)
    response_id = Column(GUID(), ForeignKey('responses.id'), nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'question_id', 'response_id', name='_like_target_uc'),
    )


# Attempts
class AttemptMixin:
    """Lifecycle, scoring and anti-cheat columns shared by every attempt kind"""

    status = Column(String(20), default=AttemptStatus.IN_PROGRESS.value, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)
    time_spent_seconds = Column(Integer)
    score = Column(Float)
    passed = Column(Boolean)
    tab_switch_count = Column(Integer, default=0, nullable=False)
    copy_attempts = Column(Integer, default=0, nullable=False)
    paste_attempts = Column(Integer, default=0, nullable=False)
    cheating_flags = Column(JSON, default=list)

    @property
    def is_in_progress(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS.value

    def mark_completed(self, score: float, passed: bool) -> None:
        now = datetime.utcnow()
        self.status = AttemptStatus.COMPLETED.value
        self.completed_at = now
        self.score = score
        self.passed = passed
        self.time_spent_seconds = int((now - self.started_at).total_seconds())


class ExamAttempt(AttemptMixin, BaseModel):
    __tablename__ = "exam_attempts"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    activity_id = Column(GUID(), ForeignKey('activities.id'), nullable=False)
    question_order = Column(JSON, default=list)
    correct_answers = Column(Integer, default=0, nullable=False)
    total_questions = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index('idx_exam_attempt_user_activity', 'user_id', 'activity_id'),
    )


class InquiryAttempt(AttemptMixin, BaseModel):
    __tablename__ = "inquiry_attempts"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    activity_id = Column(GUID(), ForeignKey('activities.id'), nullable=False)
    questions_generated = Column(Integer, default=0, nullable=False)
    questions_required = Column(Integer, nullable=False)

    __table_args__ = (
        Index('idx_inquiry_attempt_user_activity', 'user_id', 'activity_id'),
    )


class CaseAttempt(AttemptMixin, BaseModel):
    __tablename__ = "case_attempts"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    activity_id = Column(GUID(), ForeignKey('activities.id'), nullable=False)
    responses = Column(JSON, default=dict)
    scenario_scores = Column(JSON, default=list)

    __table_args__ = (
        Index('idx_case_attempt_user_activity', 'user_id', 'activity_id'),
    )


# Certificates
class Certificate(BaseModel):
    __tablename__ = "certificates"

    name = Column(String(255), nullable=False)
    description = Column(Text)
    organization_name = Column(String(255))
    program_name = Column(String(255))
    certificate_statement = Column(Text)
    status = Column(String(30), default=CertificateStatus.DRAFT.value, nullable=False)
    creator_id = Column(GUID(), ForeignKey('users.id'), nullable=False)

    # Relationships
    activities = relationship(
        "CertificateActivity",
        back_populates="certificate",
        order_by="CertificateActivity.sequence_order"
    )


class CertificateActivity(BaseModel):
    __tablename__ = "certificate_activities"

    certificate_id = Column(GUID(), ForeignKey('certificates.id'), nullable=False)
    activity_id = Column(GUID(), ForeignKey('activities.id'), nullable=False)
    sequence_order = Column(Integer, default=0, nullable=False)
    required = Column(Boolean, default=True, nullable=False)

    # Relationships
    certificate = relationship("Certificate", back_populates="activities")

    __table_args__ = (
        UniqueConstraint('certificate_id', 'activity_id', name='_certificate_activity_uc'),
    )


class StudentCertificate(BaseModel):
    __tablename__ = "student_certificates"

    certificate_id = Column(GUID(), ForeignKey('certificates.id'), nullable=False)
    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    status = Column(String(20), default="in_progress", nullable=False)
    verification_code = Column(String(32), unique=True, nullable=False, index=True)
    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint('certificate_id', 'user_id', name='_student_certificate_uc'),
    )


# Gamification Models
class UserLevel(BaseModel):
    __tablename__ = "user_levels"

    user_id = Column(GUID(), ForeignKey('users.id'), unique=True, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    current_level = Column(Integer, default=1, nullable=False)
    current_tier = Column(String(30), default="SMILE_STARTER", nullable=False)
    question_points = Column(Integer, default=0, nullable=False)
    response_points = Column(Integer, default=0, nullable=False)
    evaluation_points = Column(Integer, default=0, nullable=False)
    streak_points = Column(Integer, default=0, nullable=False)
    bonus_points = Column(Integer, default=0, nullable=False)
    perfect_scores = Column(Integer, default=0, nullable=False)
    questions_created = Column(Integer, default=0, nullable=False)
    responses_given = Column(Integer, default=0, nullable=False)
    evaluations_received = Column(Integer, default=0, nullable=False)
    likes_received = Column(Integer, default=0, nullable=False)
    last_points_at = Column(DateTime)


class PointTransaction(BaseModel):
    __tablename__ = "point_transactions"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    points = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False)
    category = Column(String(20), nullable=False)
    source_id = Column(String(64))
    description = Column(String(255))
    details = Column(JSON, default=dict)

    __table_args__ = (
        Index('idx_points_user_date', 'user_id', 'created_at'),
    )


class UserStreak(BaseModel):
    __tablename__ = "user_streaks"

    user_id = Column(GUID(), ForeignKey('users.id'), unique=True, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_activity_date = Column(Date)
    weekly_count = Column(Integer, default=0, nullable=False)
    monthly_count = Column(Integer, default=0, nullable=False)
    week_start = Column(Date)
    month_start = Column(Date)


class UserBadge(BaseModel):
    __tablename__ = "user_badges"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False)
    badge_id = Column(String(50), nullable=False)
    earned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'badge_id', name='_user_badge_uc'),
    )


class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(GUID(), ForeignKey('users.id'), nullable=False, index=True)
    notification_type = Column(String(30), default=NotificationType.INFO.value, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)

    def mark_read(self, when: Optional[datetime] = None) -> None:
        self.is_read = True
        self.read_at = when or datetime.utcnow()


__all__ = [
    "Base", "GUID", "BaseModel",
    "UserRole", "GroupRole", "GroupType", "ActivityMode", "AttemptStatus",
    "QuestionType", "EvaluationStatus", "CertificateStatus", "NotificationType",
    "User", "Group", "GroupMember",
    "Activity", "Question", "QuestionEvaluation", "Response", "Review", "Like",
    "AttemptMixin", "ExamAttempt", "InquiryAttempt", "CaseAttempt",
    "Certificate", "CertificateActivity", "StudentCertificate",
    "UserLevel", "PointTransaction", "UserStreak", "UserBadge", "Notification",
]
