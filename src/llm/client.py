"""
LLM client abstraction for multiple LLM providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Timeout handling
- Usage tracking (tokens)
- Typed errors the failover client can classify (timeout, rate limit,
  auth, transport)

Clients make exactly one HTTP attempt per call. Retrying is the failover
client's job, and it never retries the same provider within one request.

Supported providers:
- anthropic: Claude models
- openai: OpenAI chat models
- deepseek: DeepSeek models
- kimi: Moonshot AI models
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import time

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import (
    ConfigurationError,
    LLMAuthError,
    LLMProviderError,
    LLMRateLimitError,
    LLMResponseParseError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)


# =============================================================================
# Default configurations for each provider
# =============================================================================

# Override the model via LLM_<PROVIDER>_MODEL; timeout via LLM_PROVIDER_TIMEOUT.

PROVIDER_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "anthropic": dict(
        model="claude-sonnet-4-6",
        temperature=0.7,
        max_tokens=1024,
    ),
    "openai": dict(
        model="gpt-4o-mini",
        temperature=0.7,
        max_tokens=1024,
    ),
    "deepseek": dict(
        model="deepseek-chat",
        temperature=0.7,
        max_tokens=1024,
    ),
    "kimi": dict(
        model="kimi-k2-0905-preview",
        temperature=0.7,
        max_tokens=1024,
    ),
}

SUPPORTED_PROVIDERS = tuple(PROVIDER_DEFAULTS)


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider_name: str = ""
    model: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Ordered conversation turns as {role, content} dicts;
                the last entry is the turn to answer
            system: Optional system prompt
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response
            timeout: Optional timeout override in seconds (uses default if None)

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMTimeoutError: Request timed out
            LLMRateLimitError: Provider answered 429
            LLMAuthError: Provider answered 401/403
            LLMProviderError: Any other transport or HTTP error
            LLMResponseParseError: Body was not the vendor's JSON envelope
        """
        pass


def _classify_http_error(provider: str, e: httpx.HTTPStatusError) -> Exception:
    """Map an HTTP status failure onto the engine's LLM error types."""
    status_code = e.response.status_code
    if status_code == 429:
        log.warning("llm_rate_limit", provider=provider)
        return LLMRateLimitError(f"{provider} rate limit exceeded")
    if status_code in (401, 403):
        log.warning("llm_auth_error", provider=provider, status_code=status_code)
        return LLMAuthError(f"{provider} rejected credentials ({status_code})")
    log.error("llm_http_error", provider=provider, status_code=status_code)
    return LLMProviderError(f"{provider} returned HTTP {status_code}")


async def _post_json(
    provider: str,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout: float,
) -> Dict[str, Any]:
    """Single POST attempt with error classification."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            return response.json()
    except httpx.TimeoutException as e:
        log.warning("llm_timeout", provider=provider, timeout_seconds=timeout)
        raise LLMTimeoutError(
            f"{provider} call timed out (timeout={timeout}s)"
        ) from e
    except httpx.HTTPStatusError as e:
        raise _classify_http_error(provider, e) from e
    except httpx.HTTPError as e:
        log.error("llm_transport_error", provider=provider, error=type(e).__name__)
        raise LLMProviderError(f"{provider} transport error: {type(e).__name__}") from e
    except ValueError as e:
        # response.json() on a non-JSON body
        raise LLMResponseParseError(f"{provider} returned a non-JSON body") from e


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(LLMClient):
    """Anthropic Claude API client.

    Uses httpx for async HTTP calls to the Messages API.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
    ):
        """
        Initialize Anthropic client.

        Args:
            model: Model ID (e.g., claude-sonnet-4-6)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            timeout: Request timeout in seconds
            api_key: API key (defaults to settings.anthropic_api_key)

        Raises:
            ConfigurationError: If API key is not configured
        """
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = "https://api.anthropic.com/v1"

        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        log.info(
            "anthropic_client_initialized",
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Call the Anthropic Messages API once."""
        if max_tokens is None:
            max_tokens = self.max_tokens
        if temperature is None:
            temperature = self.temperature
        if timeout is None:
            timeout = self.timeout

        headers = {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            # Messages API only accepts user/assistant roles
            "messages": [
                m for m in messages if m.get("role") in ("user", "assistant")
            ],
            "temperature": temperature,
        }

        if system:
            payload["system"] = system

        start = time.perf_counter()

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            model=self.model,
            message_count=len(payload["messages"]),
            system_length=len(system) if system else 0,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        data = await _post_json(
            self.provider_name,
            f"{self.base_url}/messages",
            headers,
            payload,
            timeout,
        )

        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("content"):
            content = data["content"][0].get("text", "")

        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI-Compatible Client Base
# =============================================================================


class OpenAICompatibleClient(LLMClient):
    """
    Base class for OpenAI-compatible API clients.

    Used by providers that follow the OpenAI chat completions format:
    - OpenAI: https://api.openai.com/v1
    - Kimi (Moonshot AI): https://api.moonshot.ai/v1
    - DeepSeek: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        base_url: str,
        provider_name: str,
        api_key: str,
    ):
        """
        Initialize OpenAI-compatible client.

        Args:
            model: Model ID
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            timeout: Request timeout in seconds
            base_url: Base URL for the API
            provider_name: Name of the provider for logging
            api_key: API key for the provider
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url
        self.provider_name = provider_name
        self.api_key = api_key

        log.info(
            "openai_compatible_client_initialized",
            provider=self.provider_name,
            model=self.model,
            timeout=self.timeout,
        )

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Call the chat completions endpoint once."""
        if max_tokens is None:
            max_tokens = self.max_tokens
        if temperature is None:
            temperature = self.temperature
        if timeout is None:
            timeout = self.timeout

        chat: List[Dict[str, str]] = []
        if system:
            chat.append({"role": "system", "content": system})
        chat.extend(messages)

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": chat,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()

        log.debug(
            "llm_call_start",
            provider=self.provider_name,
            model=self.model,
            message_count=len(chat),
            system_length=len(system) if system else 0,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        data = await _post_json(
            self.provider_name,
            f"{self.base_url}/chat/completions",
            headers,
            payload,
            timeout,
        )

        latency_ms = (time.perf_counter() - start) * 1000

        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content", "") or ""

        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }

        log.info(
            "llm_call_complete",
            provider=self.provider_name,
            model=self.model,
            latency_ms=round(latency_ms, 2),
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )


# =============================================================================
# OpenAI Client
# =============================================================================


class OpenAIClient(OpenAICompatibleClient):
    """OpenAI chat completions client."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            base_url="https://api.openai.com/v1",
            provider_name="openai",
            api_key=api_key,
        )


# =============================================================================
# Kimi Client
# =============================================================================


class KimiClient(OpenAICompatibleClient):
    """
    Kimi (Moonshot AI) API client.

    API Docs: https://platform.moonshot.ai/docs
    Base URL: https://api.moonshot.ai/v1
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
    ):
        """Initialize Kimi client."""
        api_key = api_key or settings.kimi_api_key
        if not api_key:
            raise ConfigurationError("KIMI_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            base_url="https://api.moonshot.ai/v1",
            provider_name="kimi",
            api_key=api_key,
        )


# =============================================================================
# DeepSeek Client
# =============================================================================


class DeepSeekClient(OpenAICompatibleClient):
    """
    DeepSeek API client.

    API Docs: https://platform.deepseek.com/api-docs/
    Base URL: https://api.deepseek.com
    """

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
    ):
        """Initialize DeepSeek client."""
        api_key = api_key or settings.deepseek_api_key
        if not api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY not configured. Set it in .env.")

        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            base_url="https://api.deepseek.com",
            provider_name="deepseek",
            api_key=api_key,
        )


# =============================================================================
# Client Factory Functions
# =============================================================================

_CLIENT_CLASSES = {
    "anthropic": AnthropicClient,
    "openai": OpenAIClient,
    "deepseek": DeepSeekClient,
    "kimi": KimiClient,
}


def get_llm_client(provider: str) -> LLMClient:
    """
    Factory for one provider's LLM client.

    Uses PROVIDER_DEFAULTS with the optional LLM_<PROVIDER>_MODEL override
    and the shared per-provider timeout.

    Args:
        provider: "anthropic", "openai", "deepseek" or "kimi"

    Returns:
        LLMClient instance for the provider

    Raises:
        ConfigurationError: If unknown provider or API key missing
    """
    provider = provider.strip().lower()
    if provider not in _CLIENT_CLASSES:
        raise ConfigurationError(
            f"Unknown LLM provider '{provider}'. "
            f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    defaults = PROVIDER_DEFAULTS[provider]
    model = getattr(settings, f"llm_{provider}_model", None) or defaults["model"]

    return _CLIENT_CLASSES[provider](
        model=model,
        temperature=defaults["temperature"],
        max_tokens=defaults["max_tokens"],
        timeout=settings.llm_provider_timeout,
    )


def build_provider_chain(chain: Optional[List[str]] = None) -> List[LLMClient]:
    """
    Instantiate the configured providers in priority order.

    Providers without credentials are skipped with a warning so a partial
    chain still serves requests.

    Args:
        chain: Provider identities; defaults to settings.provider_chain

    Returns:
        Ordered list of clients (possibly empty)

    Raises:
        ConfigurationError: If a provider identity is unknown
    """
    names = chain if chain is not None else settings.provider_chain
    clients: List[LLMClient] = []
    for name in names:
        if name.strip().lower() not in _CLIENT_CLASSES:
            raise ConfigurationError(
                f"Unknown LLM provider '{name}' in LLM_PROVIDER_CHAIN. "
                f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        try:
            clients.append(get_llm_client(name))
        except ConfigurationError as e:
            log.warning("provider_not_configured", provider=name, reason=e.message)
    return clients
