"""
Reflection API routes.

POST /reflect  - submit a thought to a persisted session (or start one)
POST /engine   - stateless reflect(); the caller owns all session state
"""

from fastapi import APIRouter
import structlog

from src.api.dependencies import ReflectionServiceDep, SessionServiceDep, UserIdDep
from src.api.schemas import (
    EngineRequest,
    EngineResponse,
    ReflectRequest,
    ReflectResponse,
    SessionResponse,
)
from src.services.context_normalizer import build_session_context

log = structlog.get_logger(__name__)

router = APIRouter(tags=["reflection"])


@router.post("/reflect", response_model=ReflectResponse)
async def reflect(
    request: ReflectRequest,
    user_id: UserIdDep,
    session_service: SessionServiceDep,
):
    """Submit a thought and get the structured reflection.

    Without ``session_id`` a new session is created from this message.
    On failure nothing is persisted.
    """
    session, result = await session_service.submit_thought(
        user_id=user_id,
        session_id=request.session_id,
        text=request.text,
        intent=request.intent,
    )
    return ReflectResponse(
        session=SessionResponse.from_session(session),
        response=result.response,
        meta=result.meta,
    )


@router.post("/engine", response_model=EngineResponse)
async def engine(
    request: EngineRequest,
    reflection_service: ReflectionServiceDep,
):
    """Run one turn against caller-supplied session state.

    Nothing is read from or written to the record store.
    """
    context = build_session_context(
        request.messages,
        session=request.session,
        user_intent=request.intent,
        user_text=request.text,
    )
    result = await reflection_service.reflect(request.text, request.session, context)

    log.info(
        "engine_request_completed",
        turn_number=result.meta.turn,
        provider=result.meta.provider,
    )
    return EngineResponse(
        response=result.response,
        session_update=result.session_update,
        meta=result.meta,
    )
