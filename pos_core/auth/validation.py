"""
Input validation for login and registration.

Runs before any network or database call.
"""

import re
from typing import Optional

from pos_core.errors import ValidationError


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    """Loose shape check: something@something.tld, no whitespace."""
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def validate_login(email: Optional[str], secret: Optional[str]) -> None:
    """
    Raises:
        ValidationError: a field is empty or the email is malformed
    """
    missing = [name for name, value in (("email", email), ("password", secret)) if not value]
    if missing:
        raise ValidationError("Email and password are required", missing=missing)

    if not is_valid_email(email):
        raise ValidationError("Please enter a valid email address", field="email")


def validate_registration(name: Optional[str], email: Optional[str], password: Optional[str]) -> None:
    """
    Raises:
        ValidationError: a required field is empty or the email is malformed
    """
    missing = [
        field_name
        for field_name, value in (("name", name), ("email", email), ("password", password))
        if not (value or "").strip()
    ]
    if missing:
        raise ValidationError("Name, email, and password are required", missing=missing)

    if not is_valid_email(email):
        raise ValidationError("Please enter a valid email address", field="email")
