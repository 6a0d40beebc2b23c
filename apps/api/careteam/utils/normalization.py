"""Input normalization helpers."""

import re
from typing import Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    email = email.strip().lower()
    return email or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Normalized name or None if empty
    """
    if not name:
        return None
    name = re.sub(r"\s+", " ", name.strip())
    return name or None
