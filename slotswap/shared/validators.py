"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional

from ..domain.errors import InvalidInputError, InvalidIntervalError

TITLE_MAX_LENGTH = 255


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def normalize_instant(value: datetime) -> datetime:
    """Convert to naive UTC; naive input is taken to already be UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def validate_title(title: Optional[str]) -> str:
    """
    Validate a slot title.

    Returns:
        The stripped title

    Raises:
        InvalidInputError: If the title is missing, blank or too long
    """
    if title is None or not title.strip():
        raise InvalidInputError("Title is required")
    title = title.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise InvalidInputError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
    return title


def validate_interval(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    """
    Validate that a slot interval is non-empty.

    Returns:
        (start_time, end_time) normalized to naive UTC

    Raises:
        InvalidIntervalError: If end_time is not strictly after start_time
    """
    start_time = normalize_instant(start_time)
    end_time = normalize_instant(end_time)
    if end_time <= start_time:
        raise InvalidIntervalError("end_time must be after start_time")
    return start_time, end_time
