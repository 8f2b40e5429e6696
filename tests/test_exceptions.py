from __future__ import annotations

from smile.backend.exceptions import (
    ActivityModeMismatchException,
    DuplicateResourceException,
    InsufficientPermissionException,
    MaxAttemptsExceededException,
)


def test_max_attempts_details() -> None:
    exc = MaxAttemptsExceededException("a1", max_attempts=2, current_attempts=2)

    assert exc.to_dict() == {
        "error": "BUSINESS_RULE_VIOLATION",
        "message": "Maximum attempts (2) reached for this activity",
        "details": {"activity_id": "a1", "max_attempts": 2, "current_attempts": 2, "rule": "max_attempts"},
        "status_code": 400,
    }


def test_permission_and_conflict_codes() -> None:
    permission = InsufficientPermissionException("group", "edit", required_role="co_owner")
    assert permission.status_code == 403
    assert permission.details["required_role"] == "co_owner"

    duplicate = DuplicateResourceException("user", "email", "a@b.c")
    assert duplicate.status_code == 409
    assert duplicate.details["duplicate_value"] == "a@b.c"


def test_mode_mismatch_is_a_business_rule() -> None:
    exc = ActivityModeMismatchException("a1", "case")

    assert exc.status_code == 400
    assert exc.details["rule"] == "activity_mode"
    assert exc.message == "This activity is not in case mode"
