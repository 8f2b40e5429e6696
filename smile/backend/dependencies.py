"""
SMILE Learning Activities Backend
Dependency injection: authentication, roles and group permissions
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database.connection import get_db
from .database.models import Activity, Group, GroupMember, GroupRole, User, UserRole
from .exceptions import (
    AuthenticationException,
    AuthorizationException,
    InsufficientPermissionException,
    MembershipRequiredException,
    ResourceNotFoundByIdException,
    TokenExpiredException,
    TokenInvalidException,
)
from .services.groups import GROUP_ACTION_MIN_ROLE, can_manage_group
from .utils.helpers import parse_uuid
from ..config import get_settings

# Configure logging
logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def create_access_token(user_id, expires_delta: Optional[timedelta] = None, **claims) -> str:
    """Issue a signed access token for ``user_id``"""
    settings = get_settings()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(user_id), "exp": expire, "type": "access", **claims}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> Dict[str, Any]:
    """Verify and decode JWT token"""
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError:
        raise TokenInvalidException()

    if payload.get("type") != "access":
        raise TokenInvalidException("Token is not an access token")

    return payload


async def get_current_user_from_token(token: str, db: AsyncSession) -> User:
    """Get current user from JWT token"""

    payload = verify_jwt_token(token)
    user_id = payload.get("sub")

    if not user_id:
        raise TokenInvalidException("Invalid token payload")

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        raise TokenInvalidException("Invalid token subject")

    result = await db.execute(
        select(User).where(
            User.id == user_uuid,
            User.is_deleted == False
        )
    )
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationException("User not found")

    if not user.is_active:
        raise AuthorizationException("User account is not active")

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Get current authenticated user (optional)"""

    if not credentials:
        return None

    return await get_current_user_from_token(credentials.credentials, db)


async def require_authentication(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Require user authentication"""

    if not current_user:
        raise AuthenticationException("Authentication required")

    return current_user


def require_role(*allowed_roles: UserRole):
    """Factory function to create role-based dependencies"""

    async def check_role(current_user: User = Depends(require_authentication)) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationException(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}",
                required_role=allowed_roles[0].value
            )
        return current_user

    return check_role


# Pre-built role dependencies
require_teacher_or_admin = require_role(UserRole.TEACHER, UserRole.ADMIN)
require_admin = require_role(UserRole.ADMIN)


class PermissionChecker:
    """Group and activity permission checks"""

    @staticmethod
    async def get_membership(
        db: AsyncSession,
        group_id: uuid.UUID,
        user_id: uuid.UUID
    ) -> Optional[GroupMember]:
        result = await db.execute(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
                GroupMember.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def require_member(
        db: AsyncSession,
        group_id: uuid.UUID,
        user: User
    ) -> GroupMember:
        membership = await PermissionChecker.get_membership(db, group_id, user.id)
        if not membership:
            raise MembershipRequiredException(str(group_id))
        return membership

    @staticmethod
    async def require_group_action(
        db: AsyncSession,
        group_id: uuid.UUID,
        user: User,
        action: str
    ) -> GroupMember:
        """Membership whose role permits ``action``; site admins always pass"""
        membership = await PermissionChecker.get_membership(db, group_id, user.id)

        if user.role == UserRole.ADMIN and not membership:
            return GroupMember(group_id=group_id, user_id=user.id, role=int(GroupRole.OWNER))

        if not membership:
            raise MembershipRequiredException(str(group_id))

        if not can_manage_group(membership.role, action):
            required = GROUP_ACTION_MIN_ROLE.get(action, GroupRole.OWNER)
            raise InsufficientPermissionException(
                resource="group",
                action=action.replace("_", " "),
                required_role=required.name.lower()
            )
        return membership

    @staticmethod
    async def can_manage_activity(db: AsyncSession, activity: Activity, user: User) -> bool:
        """Activity creator, group managers and site admins may edit an activity"""
        if user.role == UserRole.ADMIN or activity.creator_id == user.id:
            return True
        membership = await PermissionChecker.get_membership(db, activity.group_id, user.id)
        return bool(membership and membership.role >= GroupRole.ADMIN)


async def load_group(db: AsyncSession, group_id: str) -> Group:
    group_uuid = parse_uuid(group_id, "group_id")
    result = await db.execute(
        select(Group).where(Group.id == group_uuid, Group.is_deleted == False)
    )
    group = result.scalar_one_or_none()
    if not group:
        raise ResourceNotFoundByIdException("group", group_id)
    return group


async def load_activity(db: AsyncSession, activity_id: str) -> Activity:
    activity_uuid = parse_uuid(activity_id, "activity_id")
    result = await db.execute(
        select(Activity).where(Activity.id == activity_uuid, Activity.is_deleted == False)
    )
    activity = result.scalar_one_or_none()
    if not activity:
        raise ResourceNotFoundByIdException("activity", activity_id)
    return activity


__all__ = [
    # Authentication
    "security",
    "create_access_token",
    "verify_jwt_token",
    "get_current_user",
    "require_authentication",
    "require_role",
    "require_teacher_or_admin",
    "require_admin",

    # Authorization
    "PermissionChecker",

    # Loaders
    "load_group",
    "load_activity",
]
