"""
SMILE Learning Activities Backend
Custom exception classes for structured error handling
"""

from typing import Optional, Dict, Any
from fastapi import status


class AppException(Exception):
    """Base application exception with structured error information"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }


# Authentication Exceptions
class AuthenticationException(AppException):
    """Raised when authentication fails"""

    def __init__(
        self,
        message: str = "Authentication required",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTHENTICATION_FAILED",
            details=details
        )


class TokenExpiredException(AuthenticationException):
    """Raised when JWT token has expired"""

    def __init__(self, message: str = "Access token has expired"):
        super().__init__(
            message=message,
            details={"action": "refresh_token"}
        )


class TokenInvalidException(AuthenticationException):
    """Raised when JWT token is invalid"""

    def __init__(self, message: str = "Invalid access token"):
        super().__init__(
            message=message,
            details={"action": "login_required"}
        )


# Authorization Exceptions
class AuthorizationException(AppException):
    """Raised when user lacks permission for an action"""

    def __init__(
        self,
        message: str = "Access denied",
        required_role: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if required_role:
            details["required_role"] = required_role

        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="ACCESS_DENIED",
            details=details
        )


class InsufficientPermissionException(AuthorizationException):
    """Raised when a group member's role is too low for an action"""

    def __init__(
        self,
        resource: str,
        action: str,
        required_role: Optional[str] = None
    ):
        message = f"Insufficient permissions to {action} {resource}"
        super().__init__(
            message=message,
            required_role=required_role,
            details={
                "resource": resource,
                "action": action
            }
        )


class MembershipRequiredException(AuthorizationException):
    """Raised when a non-member tries to use a group's resources"""

    def __init__(self, group_id: str):
        super().__init__(
            message="You must be a member of this group",
            details={"group_id": group_id}
        )


# Validation Exceptions
class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if field:
            details["field"] = field
        if value is not None:
            details["provided_value"] = str(value)

        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details=details
        )


class InvalidInputException(ValidationException):
    """Raised when input data is invalid"""

    def __init__(
        self,
        field: str,
        message: str,
        value: Optional[Any] = None
    ):
        super().__init__(
            message=f"Invalid {field}: {message}",
            field=field,
            value=value
        )


# Resource Exceptions
class NotFoundException(AppException):
    """Raised when requested resource is not found"""

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None
    ):
        details = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details=details
        )


class ResourceNotFoundByIdException(NotFoundException):
    """Raised when resource with specific ID is not found"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"{resource_type.title()} with ID '{resource_id}' not found",
            resource_type=resource_type,
            resource_id=resource_id
        )


# Conflict Exceptions
class ConflictException(AppException):
    """Raised when operation conflicts with current state"""

    def __init__(
        self,
        message: str = "Conflict with current state",
        conflict_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if conflict_type:
            details["conflict_type"] = conflict_type

        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            details=details
        )


class DuplicateResourceException(ConflictException):
    """Raised when trying to create duplicate resource"""

    def __init__(
        self,
        resource_type: str,
        field: str,
        value: str
    ):
        super().__init__(
            message=f"{resource_type.title()} with {field} '{value}' already exists",
            conflict_type="duplicate",
            details={
                "resource_type": resource_type,
                "duplicate_field": field,
                "duplicate_value": value
            }
        )


# Business Logic Exceptions
class BusinessLogicException(AppException):
    """Raised when business rules are violated"""

    def __init__(
        self,
        message: str,
        rule_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if rule_name:
            details["rule"] = rule_name

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BUSINESS_RULE_VIOLATION",
            details=details
        )


class ActivityModeMismatchException(BusinessLogicException):
    """Raised when an attempt is started on an activity of another mode"""

    def __init__(self, activity_id: str, expected_mode: str):
        super().__init__(
            message=f"This activity is not in {expected_mode} mode",
            rule_name="activity_mode",
            details={"activity_id": activity_id, "expected_mode": expected_mode}
        )


class MaxAttemptsExceededException(BusinessLogicException):
    """Raised when user exceeds maximum attempts"""

    def __init__(self, activity_id: str, max_attempts: int, current_attempts: int):
        super().__init__(
            message=f"Maximum attempts ({max_attempts}) reached for this activity",
            rule_name="max_attempts",
            details={
                "activity_id": activity_id,
                "max_attempts": max_attempts,
                "current_attempts": current_attempts
            }
        )


class AttemptNotInProgressException(BusinessLogicException):
    """Raised when a completed attempt is modified"""

    def __init__(self, attempt_id: str):
        super().__init__(
            message="This attempt has already been completed",
            rule_name="attempt_in_progress",
            details={"attempt_id": attempt_id}
        )


__all__ = [
    # Base
    "AppException",

    # Authentication
    "AuthenticationException",
    "TokenExpiredException",
    "TokenInvalidException",

    # Authorization
    "AuthorizationException",
    "InsufficientPermissionException",
    "MembershipRequiredException",

    # Validation
    "ValidationException",
    "InvalidInputException",

    # Resources
    "NotFoundException",
    "ResourceNotFoundByIdException",

    # Conflicts
    "ConflictException",
    "DuplicateResourceException",

    # Business Logic
    "BusinessLogicException",
    "ActivityModeMismatchException",
    "MaxAttemptsExceededException",
    "AttemptNotInProgressException",
]
