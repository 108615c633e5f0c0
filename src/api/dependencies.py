"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header

from src.core.config import settings
from src.llm.client import build_provider_chain
from src.llm.failover import ProviderFailoverClient
from src.persistence.repositories.message_repo import MessageRepository
from src.persistence.repositories.session_repo import SessionRepository
from src.services.reflection_service import ReflectionService
from src.services.session_service import SessionService


def get_session_repository() -> SessionRepository:
    """FastAPI dependency injection for SessionRepository.

    Each request gets a new repository pointed at the configured database.
    """
    return SessionRepository(str(settings.database_path))


def get_message_repository() -> MessageRepository:
    """FastAPI dependency injection for MessageRepository."""
    return MessageRepository(str(settings.database_path))


@lru_cache(maxsize=1)
def get_failover_client() -> ProviderFailoverClient:
    """Cached provider chain.

    Credentials and chain order are read once per process and reused.

    Raises:
        ConfigurationError: No provider in the chain has credentials
    """
    return ProviderFailoverClient(
        build_provider_chain(settings.provider_chain),
        timeout=settings.llm_provider_timeout,
    )


@lru_cache(maxsize=1)
def get_reflection_service() -> ReflectionService:
    """Cached stateless engine."""
    return ReflectionService(get_failover_client())


@lru_cache(maxsize=1)
def get_session_service() -> SessionService:
    """Cached session service; it owns the per-session locks."""
    return SessionService(
        session_repo=get_session_repository(),
        message_repo=get_message_repository(),
        reflection_service=get_reflection_service(),
    )


def get_user_id(x_user_id: Annotated[str, Header(min_length=1)]) -> str:
    """Caller identity from the X-User-ID header (trusted, not authenticated)."""
    return x_user_id.strip()


# Type aliases for dependency injection
SessionRepoDep = Annotated[SessionRepository, Depends(get_session_repository)]
MessageRepoDep = Annotated[MessageRepository, Depends(get_message_repository)]
ReflectionServiceDep = Annotated[ReflectionService, Depends(get_reflection_service)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
UserIdDep = Annotated[str, Depends(get_user_id)]
