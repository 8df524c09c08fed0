"""Centralized input sanitization utilities.

All free-text inputs must be sanitized before persisting to the DB.
This module provides the foundational function used across services.
"""
import re
from typing import Any

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitizar_input(value: Any) -> Any:
    """Return a sanitized version of user-provided free-text input.

    - If value is a str: drops control characters and trims leading/trailing
      whitespace.
    - If value is None or not a str: returns as-is (no modification).
    """
    if isinstance(value, str):
        return _CONTROL_CHARS.sub("", value).strip()
    return value


def texto_ou_none(value: Any) -> str | None:
    """Sanitiza e normaliza strings vazias para None."""
    v = sanitizar_input(value)
    if v is None:
        return None
    v = str(v)
    return v or None
