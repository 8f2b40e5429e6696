"""
SMILE Learning Activities Backend
Shared helper functions
"""

import logging
import secrets
import uuid
from typing import Iterable, Optional, Sequence

from ..exceptions import InvalidInputException
from ...config import get_settings

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging from settings"""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=settings.LOG_FORMAT,
    )


def parse_uuid(value: str, field: str = "id") -> uuid.UUID:
    """Parse a path/body identifier, raising a validation error when malformed"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError):
        raise InvalidInputException(field, "must be a valid UUID", value)


def generate_code(length: int = INVITE_CODE_LENGTH, alphabet: str = INVITE_CODE_ALPHABET) -> str:
    """Random code without ambiguous characters (no I, O, 0, 1)"""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_verification_code() -> str:
    return f"SMILE-{generate_code(4)}-{generate_code(4)}-{generate_code(4)}"


def round_score(value: float, digits: int = 1) -> float:
    """Round half away from zero, the way scores are displayed"""
    factor = 10 ** digits
    scaled = abs(value) * factor
    rounded = int(scaled + 0.5) / factor
    return rounded if value >= 0 else -rounded


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def sorted_choices(choices: Sequence[str]) -> list:
    return sorted(str(choice).strip() for choice in choices if str(choice).strip())
