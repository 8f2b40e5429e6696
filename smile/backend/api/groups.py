"""
SMILE Learning Activities Backend
Group management API routes
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import Group, GroupMember, GroupRole, GroupType, User
from ..dependencies import PermissionChecker, load_group, require_authentication
from ..exceptions import (
    AuthorizationException,
    BusinessLogicException,
    ConflictException,
    NotFoundException,
    ResourceNotFoundByIdException,
    ValidationException,
)
from ..services.groups import (
    can_change_user_role,
    can_remove_member,
    generate_invite_code,
    get_group_initials,
    random_gradient,
    role_name,
)
from ..utils.helpers import parse_uuid

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    group_type: GroupType = GroupType.STUDENT_PACED
    require_passcode: bool = False
    passcode: Optional[str] = None
    is_private: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Group name is required')
        return v.strip()

    @model_validator(mode='after')
    def validate_passcode(self):
        if self.require_passcode:
            if not self.passcode or not 4 <= len(self.passcode) <= 20:
                raise ValueError('Passcode must be 4-20 characters when required')
        return self


class GroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    group_type: Optional[GroupType] = None
    require_passcode: Optional[bool] = None
    passcode: Optional[str] = Field(None, min_length=4, max_length=20)
    is_private: Optional[bool] = None


class JoinGroupRequest(BaseModel):
    passcode: Optional[str] = None


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(..., min_length=1)


class MemberRoleRequest(BaseModel):
    role: GroupRole


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str]
    group_type: str
    require_passcode: bool
    is_private: bool
    gradient: int
    creator_id: uuid.UUID
    created_at: datetime


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    role: int
    role_name: str
    joined_at: datetime


# Helper functions
async def count_members(db: AsyncSession, group_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(GroupMember.id)).where(
            GroupMember.group_id == group_id,
            GroupMember.is_deleted == False
        )
    )
    return result.scalar() or 0


async def unique_invite_code(db: AsyncSession) -> str:
    for _ in range(10):
        code = generate_invite_code()
        result = await db.execute(select(Group.id).where(Group.invite_code == code))
        if result.scalar_one_or_none() is None:
            return code
    raise ConflictException("Could not allocate a unique invite code", conflict_type="invite_code")


async def add_member(db: AsyncSession, group: Group, user: User, role: GroupRole = GroupRole.MEMBER) -> GroupMember:
    existing = await PermissionChecker.get_membership(db, group.id, user.id)
    if existing:
        raise ConflictException("You are already a member of this group", conflict_type="membership")

    # Re-joining revives a previously removed membership row
    result = await db.execute(
        select(GroupMember).where(
            GroupMember.group_id == group.id,
            GroupMember.user_id == user.id
        )
    )
    membership = result.scalar_one_or_none()
    if membership:
        membership.is_deleted = False
        membership.deleted_at = None
        membership.role = int(role)
        membership.joined_at = datetime.utcnow()
    else:
        membership = GroupMember(group_id=group.id, user_id=user.id, role=int(role))
        db.add(membership)

    await db.flush()
    return membership


def group_summary(group: Group, role: Optional[int], member_count: int) -> dict:
    data = GroupResponse.model_validate(group).model_dump()
    data.update({
        "initials": get_group_initials(group.name),
        "member_count": member_count,
        "my_role": role,
        "my_role_name": role_name(role) if role is not None else None,
    })
    # Only group managers see the invite code
    if role is not None and role >= GroupRole.CO_OWNER:
        data["invite_code"] = group.invite_code
    return data


async def load_target_membership(db: AsyncSession, group_id: uuid.UUID, user_id: str) -> GroupMember:
    target = await PermissionChecker.get_membership(db, group_id, parse_uuid(user_id, "user_id"))
    if not target:
        raise NotFoundException("Member not found", resource_type="group_member", resource_id=user_id)
    return target


# API Routes
@router.post("", status_code=201)
async def create_group(
    request: GroupCreateRequest,
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Create a group; the creator becomes its owner"""

    group = Group(
        name=request.name,
        description=request.description,
        group_type=request.group_type.value,
        require_passcode=request.require_passcode,
        passcode=request.passcode if request.require_passcode else None,
        invite_code=await unique_invite_code(db),
        gradient=random_gradient(),
        is_private=request.is_private,
        creator_id=current_user.id,
    )
    db.add(group)
    await db.flush()

    db.add(GroupMember(group_id=group.id, user_id=current_user.id, role=int(GroupRole.OWNER)))
    await db.commit()

    logger.info(f"Group '{group.name}' created by {current_user.email}")

    return {
        "message": "Group created successfully",
        "group": group_summary(group, int(GroupRole.OWNER), 1),
    }


@router.get("")
async def list_my_groups(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Groups the current user belongs to"""

    result = await db.execute(
        select(Group, GroupMember.role)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(
            GroupMember.user_id == current_user.id,
            GroupMember.is_deleted == False,
            Group.is_deleted == False
        )
        .order_by(Group.created_at.desc())
    )

    groups = []
    for group, role in result.all():
        groups.append(group_summary(group, role, await count_members(db, group.id)))
    return {"groups": groups, "total": len(groups)}


@router.post("/join")
async def join_group_by_code(
    request: JoinByCodeRequest,
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Join a group with its invite code"""

    code = request.invite_code.strip().upper()
    result = await db.execute(
        select(Group).where(Group.invite_code == code, Group.is_deleted == False)
    )
    group = result.scalar_one_or_none()
    if not group:
        raise NotFoundException("Invalid invite code", resource_type="group")

    membership = await add_member(db, group, current_user)
    await db.commit()

    logger.info(f"{current_user.email} joined group {group.id} by invite code")
    return {
        "message": "Joined group successfully",
        "group": group_summary(group, membership.role, await count_members(db, group.id)),
    }


@router.get("/{group_id}")
async def get_group(
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Group details; the member list is visible to members only"""

    group = await load_group(db, group_id)
    membership = await PermissionChecker.get_membership(db, group.id, current_user.id)

    if group.is_private and not membership:
        raise ResourceNotFoundByIdException("group", group_id)

    role = membership.role if membership else None
    data = group_summary(group, role, await count_members(db, group.id))

    if membership:
        result = await db.execute(
            select(GroupMember, User)
            .join(User, User.id == GroupMember.user_id)
            .where(GroupMember.group_id == group.id, GroupMember.is_deleted == False)
            .order_by(GroupMember.role.desc(), GroupMember.joined_at)
        )
        data["members"] = [
            MemberResponse(
                user_id=user.id,
                name=user.name,
                email=user.email,
                role=member.role,
                role_name=role_name(member.role),
                joined_at=member.joined_at,
            ).model_dump()
            for member, user in result.all()
        ]

    return data


@router.patch("/{group_id}")
async def update_group(
    request: GroupUpdateRequest,
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Update group settings (co-owner or above)"""

    group = await load_group(db, group_id)
    membership = await PermissionChecker.require_group_action(db, group.id, current_user, "edit")

    updates = request.model_dump(exclude_unset=True)
    if "group_type" in updates and updates["group_type"] is not None:
        updates["group_type"] = updates["group_type"].value

    for field, value in updates.items():
        setattr(group, field, value)

    if group.require_passcode and not group.passcode:
        raise ValidationException("Passcode must be 4-20 characters when required", field="passcode")
    if not group.require_passcode:
        group.passcode = None

    await db.commit()

    logger.info(f"Group {group.id} updated by {current_user.email}")
    return {
        "message": "Group updated successfully",
        "group": group_summary(group, membership.role, await count_members(db, group.id)),
    }


@router.delete("/{group_id}")
async def delete_group(
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete a group (owner only)"""

    group = await load_group(db, group_id)
    await PermissionChecker.require_group_action(db, group.id, current_user, "delete")

    group.soft_delete()
    await db.commit()

    logger.info(f"Group {group.id} deleted by {current_user.email}")
    return {"message": "Group deleted successfully", "group_id": str(group.id)}


@router.post("/{group_id}/join")
async def join_group(
    request: JoinGroupRequest,
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Join a group by id, checking its passcode when one is required"""

    group = await load_group(db, group_id)

    if group.require_passcode and request.passcode != group.passcode:
        raise AuthorizationException("Incorrect passcode", details={"group_id": group_id})

    membership = await add_member(db, group, current_user)
    await db.commit()

    logger.info(f"{current_user.email} joined group {group.id}")
    return {
        "message": "Joined group successfully",
        "group": group_summary(group, membership.role, await count_members(db, group.id)),
    }


@router.post("/{group_id}/leave")
async def leave_group(
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Leave a group; the owner cannot leave"""

    group = await load_group(db, group_id)
    membership = await PermissionChecker.require_member(db, group.id, current_user)

    if membership.role == GroupRole.OWNER:
        raise BusinessLogicException(
            "The group owner cannot leave the group",
            rule_name="owner_cannot_leave"
        )

    membership.soft_delete()
    await db.commit()

    logger.info(f"{current_user.email} left group {group.id}")
    return {"message": "Left group successfully", "group_id": str(group.id)}


@router.patch("/{group_id}/members/{user_id}")
async def update_member_role(
    request: MemberRoleRequest,
    group_id: str = Path(..., description="Group ID"),
    user_id: str = Path(..., description="Member user ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Change a member's role"""

    group = await load_group(db, group_id)
    actor = await PermissionChecker.require_group_action(db, group.id, current_user, "change_role")
    target = await load_target_membership(db, group.id, user_id)

    if not can_change_user_role(actor.role, target.role, int(request.role)):
        raise AuthorizationException(
            "You cannot change this member's role",
            details={"target_role": role_name(target.role), "new_role": request.role.name.lower()}
        )

    previous = target.role
    target.role = int(request.role)
    await db.commit()

    logger.info(
        f"Group {group.id}: {user_id} role {role_name(previous)} -> {role_name(target.role)} "
        f"by {current_user.email}"
    )
    return {
        "message": "Member role updated",
        "user_id": user_id,
        "role": target.role,
        "role_name": role_name(target.role),
    }


@router.delete("/{group_id}/members/{user_id}")
async def remove_member(
    group_id: str = Path(..., description="Group ID"),
    user_id: str = Path(..., description="Member user ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Remove a member with a lower role than the caller"""

    group = await load_group(db, group_id)
    actor = await PermissionChecker.require_group_action(db, group.id, current_user, "remove_member")
    target = await load_target_membership(db, group.id, user_id)

    if not can_remove_member(actor.role, target.role):
        raise AuthorizationException(
            "You cannot remove this member",
            details={"target_role": role_name(target.role)}
        )

    target.soft_delete()
    await db.commit()

    logger.info(f"Group {group.id}: member {user_id} removed by {current_user.email}")
    return {"message": "Member removed", "user_id": user_id}


@router.post("/{group_id}/invite-code")
async def regenerate_invite_code(
    group_id: str = Path(..., description="Group ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Replace the group's invite code"""

    group = await load_group(db, group_id)
    await PermissionChecker.require_group_action(db, group.id, current_user, "invite")

    group.invite_code = await unique_invite_code(db)
    await db.commit()

    logger.info(f"Group {group.id} invite code regenerated by {current_user.email}")
    return {"message": "Invite code regenerated", "invite_code": group.invite_code}
