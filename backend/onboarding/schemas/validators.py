"""Reusable validators for wizard input.

Provides validators for the credential step and the few input-type
constraints field-groups carry:
- Email validation
- Password length
- ISO calendar dates (birthdate)
"""

import re
from datetime import date


# Regex patterns
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
ISO_DATE_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIN_PASSWORD_LENGTH = 6


def validate_email(value: str) -> str:
    """Validate email address.

    Args:
        value: Email address

    Returns:
        Email address with surrounding whitespace removed, case kept as typed

    Raises:
        ValueError: If email is invalid
    """
    if not value:
        raise ValueError("Email is required")

    value = value.strip()

    if len(value) > 254:  # RFC 5321
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(value):
        raise ValueError("Invalid email address format")

    return value


def validate_password(value: str) -> str:
    """Validate password length (no other strength rules)."""
    if value is None or len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return value


def validate_iso_date(value: str | None) -> str | None:
    """Validate a `YYYY-MM-DD` calendar date.

    Empty values are allowed (every field-group is optional) and
    normalised to None.

    Raises:
        ValueError: If the value is not a real ISO date
    """
    if value is None or value == "":
        return None

    value = value.strip()
    if not ISO_DATE_REGEX.match(value):
        raise ValueError("Date must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid calendar date: {value}")

    return value
