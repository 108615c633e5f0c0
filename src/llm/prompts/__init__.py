# noqa
from src.llm.prompts.reflection import (
    get_reflection_system_prompt,
    get_reflection_history,
    parse_reflection_response,
)

__all__ = [
    "get_reflection_system_prompt",
    "get_reflection_history",
    "parse_reflection_response",
]
