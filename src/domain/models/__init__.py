"""Domain models package."""

from .session import IcebergLayer, Session, SessionUpdate, UserIntent
from .message import Message, Role
from .session_context import ConversationTurn, SessionContext
from .provider import (
    FailureKind,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
    ReflectionPayload,
)
from .reflection import LayerProgress, ReflectionMeta, ReflectionResult, StructuredResponse

__all__ = [
    "IcebergLayer",
    "Session",
    "SessionUpdate",
    "UserIntent",
    "Message",
    "Role",
    "ConversationTurn",
    "SessionContext",
    "FailureKind",
    "ProviderFailure",
    "ProviderResult",
    "ProviderSuccess",
    "ReflectionPayload",
    "LayerProgress",
    "ReflectionMeta",
    "ReflectionResult",
    "StructuredResponse",
]
