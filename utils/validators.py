"""
Validation utilities for user input.
Validates profile fields and chat messages.
"""
from typing import Any, Dict

from core.models import GENDERS


def validate_age(age: Any) -> tuple[bool, str]:
    """
    Validate user age.

    Args:
        age: Age to validate (None means not provided)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if age is None:
        return True, ""

    if not isinstance(age, int) or isinstance(age, bool):
        return False, "Age must be a number"

    if age < 18:
        return False, "You must be at least 18 years old"

    if age > 120:
        return False, "Invalid age. Please enter a valid age."

    return True, ""


def validate_gender(gender: Any) -> tuple[bool, str]:
    """
    Validate gender selection.

    Args:
        gender: Gender string to validate (None means not provided)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if gender is None:
        return True, ""

    if not isinstance(gender, str) or gender.lower().strip() not in GENDERS:
        return False, f"Invalid gender. Please choose from: {', '.join(GENDERS)}"

    return True, ""


def validate_name(name: Any, max_length: int = 50) -> tuple[bool, str]:
    if name is None:
        return True, ""
    if not isinstance(name, str) or not name.strip():
        return False, "Name cannot be empty"
    if len(name.strip()) > max_length:
        return False, f"Name is too long (max {max_length} characters)"
    return True, ""


def validate_message(message: Any, max_length: int = 1000) -> tuple[bool, str]:
    """
    Validate a chat message.

    Args:
        message: Message text
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(message, str) or not message.strip():
        return False, "Message cannot be empty"

    if len(message) > max_length:
        return False, f"Message is too long (max {max_length} characters)"

    return True, ""


def validate_profile(data: Dict[str, Any], max_name_length: int = 50) -> tuple[bool, str]:
    """Validate every profile field present in data."""
    for ok, error in (
        validate_name(data.get("name"), max_name_length),
        validate_age(data.get("age")),
        validate_gender(data.get("gender")),
    ):
        if not ok:
            return False, error
    return True, ""


def normalize_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip text fields and lowercase gender."""
    normalized = dict(data)
    for key in ("name", "city", "bio", "photo"):
        if isinstance(normalized.get(key), str):
            normalized[key] = normalized[key].strip()
    if isinstance(normalized.get("gender"), str):
        normalized["gender"] = normalized["gender"].lower().strip()
    return normalized
