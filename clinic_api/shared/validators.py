"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a patient phone number.

    Keeps a leading "+" and digits only; local clinic numbers are 8 digits,
    international numbers up to 15.

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    phone = phone.strip()
    prefix = "+" if phone.startswith("+") else ""
    digits = re.sub(r"\D", "", phone)

    if not 8 <= len(digits) <= 15:
        raise ValueError("Phone number must contain 8 to 15 digits")

    return f"{prefix}{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

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


def validate_time_of_day(value: str) -> str:
    """Validate an "HH:MM" time of day (00:00 - 23:59)"""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")

    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        raise ValueError("Time must be in HH:MM format")
    return value


def parse_iso_date(value: str) -> date:
    """Parse a "YYYY-MM-DD" calendar date"""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValueError("Date must be in YYYY-MM-DD format") from None
