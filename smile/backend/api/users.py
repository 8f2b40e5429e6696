"""
SMILE Learning Activities Backend
User profile API routes
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import User, UserRole
from ..dependencies import create_access_token, require_authentication
from ..exceptions import DuplicateResourceException
from ..services.gamification import get_or_create_user_level
from ..services.levels import TIERS_BY_ID, level_progress

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class UserCreateRequest(BaseModel):
    email: EmailStr
    name: str
    username: Optional[str] = None
    role: UserRole = UserRole.STUDENT
    avatar_url: Optional[str] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError('Name is required')
        return v.strip()


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    username: Optional[str]
    role: UserRole
    avatar_url: Optional[str]
    created_at: datetime


@router.post("", status_code=201)
async def create_user(
    request: UserCreateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register a local profile for an identity and issue an access token"""

    conditions = [User.email == request.email]
    if request.username:
        conditions.append(User.username == request.username)

    result = await db.execute(select(User).where(or_(*conditions)))
    existing = result.scalars().first()
    if existing:
        if existing.email == request.email:
            raise DuplicateResourceException("user", "email", request.email)
        raise DuplicateResourceException("user", "username", request.username)

    user = User(
        email=request.email,
        name=request.name,
        username=request.username,
        role=request.role,
        avatar_url=request.avatar_url,
    )
    db.add(user)
    await db.flush()
    await get_or_create_user_level(db, user.id)
    await db.commit()

    logger.info(f"User profile created: {user.email} ({user.role.value})")

    return {
        "user": UserResponse.model_validate(user),
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
    }


@router.get("/me")
async def get_me(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Current profile with level summary"""

    user_level = await get_or_create_user_level(db, current_user.id)
    await db.commit()

    tier = TIERS_BY_ID.get(user_level.current_tier)
    return {
        "user": UserResponse.model_validate(current_user),
        "level": {
            **level_progress(user_level.total_points),
            "total_points": user_level.total_points,
            "tier": tier.to_dict() if tier else None,
        },
    }
