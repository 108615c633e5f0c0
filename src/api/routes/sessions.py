"""
Session API routes.

Endpoints for session management. Sessions are scoped to the caller's
X-User-ID; another user's session id answers 404.
"""

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import Response
import structlog

from src.api.dependencies import (
    SessionRepoDep,
    SessionServiceDep,
    UserIdDep,
)
from src.api.schemas import (
    SessionCreate,
    SessionDetailResponse,
    SessionListResponse,
    SessionRename,
    SessionResponse,
)
from src.core.exceptions import SessionNotFoundError
from src.domain.models.session import Session

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ============ SESSION CRUD ============


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    request: SessionCreate,
    user_id: UserIdDep,
    session_repo: SessionRepoDep,
):
    """Create an empty reflection session at the surface layer.

    The first submitted thought becomes its original trigger.
    """
    now = datetime.now(timezone.utc)
    session = Session(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=request.title,
        created_at=now,
        updated_at=now,
    )
    created = await session_repo.create(session)

    log.info("session_created", session_id=created.id, user_id=user_id)
    return SessionResponse.from_session(created)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    user_id: UserIdDep,
    session_repo: SessionRepoDep,
):
    """List the caller's sessions, most recently updated first."""
    sessions = await session_repo.list_for_user(user_id)
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s) for s in sessions],
        total=len(sessions),
    )


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    user_id: UserIdDep,
    session_service: SessionServiceDep,
):
    """Get a session with its turns and the computed SessionContext.

    Returns 404 if the session does not exist or belongs to another user.
    """
    session, context = await session_service.get_context(session_id, user_id)
    messages = await session_service.message_repo.list_for_session(session_id)
    return SessionDetailResponse(
        session=SessionResponse.from_session(session),
        messages=messages,
        context=context,
    )


@router.put("/{session_id}", response_model=SessionResponse)
async def rename_session(
    session_id: str,
    request: SessionRename,
    user_id: UserIdDep,
    session_service: SessionServiceDep,
    session_repo: SessionRepoDep,
):
    """Update a session's title."""
    await session_service.get_session(session_id, user_id)
    updated = await session_repo.update_title(session_id, request.title)
    if updated is None:
        raise SessionNotFoundError(f"Session {session_id} not found")

    log.info("session_renamed", session_id=session_id)
    return SessionResponse.from_session(updated)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    user_id: UserIdDep,
    session_service: SessionServiceDep,
    session_repo: SessionRepoDep,
):
    """Delete a session and all of its turns.

    Returns 404 if the session does not exist.
    """
    await session_service.get_session(session_id, user_id)
    deleted = await session_repo.delete(session_id)
    if not deleted:
        raise SessionNotFoundError(f"Session {session_id} not found")

    log.info("session_deleted", session_id=session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
