"""
Group membership rules: role permissions, invite codes and display helpers
"""

import random
from typing import Optional

from ..database.models import GroupRole
from ..utils.helpers import generate_code

GRADIENT_COUNT = 8

# Minimum role required for each group action
GROUP_ACTION_MIN_ROLE = {
    "view": GroupRole.MEMBER,
    "edit": GroupRole.CO_OWNER,
    "invite": GroupRole.CO_OWNER,
    "manage_member": GroupRole.ADMIN,
    "remove_member": GroupRole.ADMIN,
    "change_role": GroupRole.CO_OWNER,
    "create_activity": GroupRole.ADMIN,
    "delete": GroupRole.OWNER,
}


def generate_invite_code() -> str:
    return generate_code()


def random_gradient() -> int:
    return random.randint(0, GRADIENT_COUNT - 1)


def can_manage_group(role: Optional[int], action: str) -> bool:
    """Whether a member holding ``role`` may perform ``action`` on the group.

    Non-members (``role is None``) may do nothing; deleting a group is
    reserved to the owner.
    """
    if role is None:
        return False
    required = GROUP_ACTION_MIN_ROLE.get(action)
    if required is None:
        return False
    if action == "delete":
        return GroupRole(role) == GroupRole.OWNER
    return GroupRole(role) >= required


def can_change_user_role(actor_role: int, target_role: int, new_role: int) -> bool:
    actor = GroupRole(actor_role)
    target = GroupRole(target_role)
    new = GroupRole(new_role)

    if not can_manage_group(actor, "change_role"):
        return False
    if target == GroupRole.OWNER:
        return False
    # Only roles strictly below the actor may be touched or granted
    return actor > target and new < actor


def can_remove_member(actor_role: int, target_role: int) -> bool:
    actor = GroupRole(actor_role)
    target = GroupRole(target_role)

    if not can_manage_group(actor, "remove_member"):
        return False
    if target == GroupRole.OWNER:
        return False
    return actor > target


def get_group_initials(name: str) -> str:
    words = [word for word in (name or "").split() if word]
    if not words:
        return ""
    if len(words) == 1:
        return words[0][:2].upper()
    return (words[0][0] + words[1][0]).upper()


def role_name(role: int) -> str:
    return GroupRole(role).name.lower()
