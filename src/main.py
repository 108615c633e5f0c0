"""
FastAPI application entry point.

Run with: uvicorn src.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from src.core.config import settings
from src.core.logging import configure_logging, get_logger, bind_context, clear_context
from src.persistence.database import init_database
from src.api.routes import health, reflect, sessions
from src.api.exception_handlers import setup_exception_handlers
from src.llm.client import SUPPORTED_PROVIDERS

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add correlation ID."""
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# Provider chain validation
# =============================================================================


def validate_provider_chain() -> list[str]:
    """
    Check the configured provider chain at startup.

    Unknown provider names are fatal. Providers without an API key are
    skipped at runtime, so they only produce warnings; a chain with no
    usable provider is fatal.

    Returns:
        Provider names that will actually be attempted, in order

    Raises:
        RuntimeError: If the chain is unusable
    """
    errors = []
    usable = []

    for provider in settings.provider_chain:
        if provider not in SUPPORTED_PROVIDERS:
            errors.append(
                f"Unknown LLM provider '{provider}' in LLM_PROVIDER_CHAIN. "
                f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
            )
            continue
        if getattr(settings, f"{provider}_api_key", None):
            usable.append(provider)
        else:
            log.warning(
                "provider_api_key_missing",
                provider=provider,
                env_var=f"{provider.upper()}_API_KEY",
            )

    if not usable:
        errors.append("No provider in LLM_PROVIDER_CHAIN has an API key. Set it in .env file.")

    if errors:
        error_msg = "Provider Chain Validation Failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise RuntimeError(error_msg)

    log.info("provider_chain_validated", chain=usable)
    return usable


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
    )

    # Fail fast if LLM providers are misconfigured
    validate_provider_chain()

    await init_database()

    log.info("application_started")

    yield

    log.info("application_shutting_down")


# Create FastAPI application
app = FastAPI(
    title="CBT Reflection Engine",
    description="Guided CBT reflection sessions over a failover chain of LLM providers",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(sessions.router)
app.include_router(reflect.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "CBT Reflection Engine", "version": "0.1.0", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
