from __future__ import annotations

import pytest

from smile.backend.database.models import GroupRole
from smile.backend.services.groups import (
    can_change_user_role,
    can_manage_group,
    can_remove_member,
    generate_invite_code,
    get_group_initials,
    random_gradient,
)
from smile.backend.utils.helpers import INVITE_CODE_ALPHABET


@pytest.mark.parametrize(
    ("role", "action", "allowed"),
    [
        (None, "view", False),
        (GroupRole.MEMBER, "view", True),
        (GroupRole.MEMBER, "edit", False),
        (GroupRole.ADMIN, "remove_member", True),
        (GroupRole.ADMIN, "change_role", False),
        (GroupRole.CO_OWNER, "edit", True),
        (GroupRole.CO_OWNER, "invite", True),
        (GroupRole.CO_OWNER, "delete", False),
        (GroupRole.OWNER, "delete", True),
        (GroupRole.OWNER, "launch_rockets", False),
    ],
)
def test_can_manage_group_follows_role_table(role, action, allowed) -> None:
    assert can_manage_group(role, action) is allowed


def test_role_change_requires_strictly_higher_actor() -> None:
    assert can_change_user_role(GroupRole.CO_OWNER, GroupRole.MEMBER, GroupRole.ADMIN)
    assert can_change_user_role(GroupRole.OWNER, GroupRole.CO_OWNER, GroupRole.ADMIN)

    # cannot grant your own role
    assert not can_change_user_role(GroupRole.CO_OWNER, GroupRole.ADMIN, GroupRole.CO_OWNER)
    # admins lack the change_role permission
    assert not can_change_user_role(GroupRole.ADMIN, GroupRole.MEMBER, GroupRole.MEMBER)
    # the owner is untouchable
    assert not can_change_user_role(GroupRole.OWNER, GroupRole.OWNER, GroupRole.MEMBER)


def test_member_removal_rules() -> None:
    assert can_remove_member(GroupRole.ADMIN, GroupRole.MEMBER)
    assert not can_remove_member(GroupRole.ADMIN, GroupRole.ADMIN)
    assert not can_remove_member(GroupRole.MEMBER, GroupRole.MEMBER)
    assert not can_remove_member(GroupRole.OWNER, GroupRole.OWNER)


def test_group_initials() -> None:
    assert get_group_initials("biology class") == "BC"
    assert get_group_initials("Chemistry") == "CH"
    assert get_group_initials("  ") == ""


def test_invite_code_uses_unambiguous_alphabet() -> None:
    for _ in range(20):
        code = generate_invite_code()
        assert len(code) == 8
        assert set(code) <= set(INVITE_CODE_ALPHABET)


def test_random_gradient_in_range() -> None:
    assert all(0 <= random_gradient() <= 7 for _ in range(50))
