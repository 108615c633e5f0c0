"""
Custom exception hierarchy for the reflection engine.

All application exceptions inherit from ReflectionEngineError.
"""

from typing import List, Optional


class ReflectionEngineError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ReflectionEngineError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Input Errors
# =============================================================================


class InvalidInputError(ReflectionEngineError):
    """Submitted thought is empty, oversized or not text.

    Raised before any provider call; the caller may resubmit.
    """

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(ReflectionEngineError):
    """Base for LLM-related errors."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    pass


class LLMAuthError(LLMError):
    """Provider rejected the configured credentials."""

    pass


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response into the structured schema."""

    pass


class LLMProviderError(LLMError):
    """Transport or server error not covered by a more specific type."""

    pass


class AllProvidersExhaustedError(LLMError):
    """Every provider in the chain failed for this request.

    ``failures`` carries one entry per attempted provider for logging.
    It is never rendered to end users.
    """

    def __init__(self, message: str, failures: Optional[List[dict]] = None):
        super().__init__(message)
        self.failures = failures or []


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(ReflectionEngineError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist or belongs to another user."""

    pass


class InconsistentSessionStateError(SessionError):
    """Backend-reported layer contradicts the persisted session state."""

    pass
