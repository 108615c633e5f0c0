"""Validation of user-submitted thoughts before any engine work."""

import re
from typing import Any, Optional

from src.core.config import InputConfig, reflection_config
from src.core.exceptions import InvalidInputError

# C0/C1 control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def validate_thought(text: Any, config: Optional[InputConfig] = None) -> str:
    """
    Clean and bound-check a submitted thought.

    Args:
        text: Raw message from the caller
        config: Input bounds (defaults to reflection_config.input)

    Returns:
        The stripped message

    Raises:
        InvalidInputError: Non-string, empty after cleaning, or too long
    """
    config = config or reflection_config.input
    if not isinstance(text, str):
        raise InvalidInputError("Thought must be a string")

    cleaned = _CONTROL_CHARS.sub("", text).strip()
    if len(cleaned) < config.min_length:
        raise InvalidInputError("Thought must not be empty")
    if len(cleaned) > config.max_length:
        raise InvalidInputError(
            f"Thought exceeds {config.max_length} characters ({len(cleaned)})"
        )
    return cleaned
