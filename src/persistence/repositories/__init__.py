"""Repository implementations."""

from src.persistence.repositories.message_repo import MessageRepository
from src.persistence.repositories.session_repo import SessionRepository

__all__ = [
    "MessageRepository",
    "SessionRepository",
]
