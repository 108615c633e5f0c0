"""
Provider failover client.

Wraps an ordered chain of LLM clients behind one call:

    generate(system, history) -> ProviderSuccess

Providers are attempted strictly in chain order, at most once each per
call, each bounded by the per-provider timeout. Timeouts, rate limits,
auth failures, transport errors and malformed output all advance to the
next provider. Exhausting the chain raises AllProvidersExhaustedError.

Worst-case latency is len(chain) * per-provider timeout. Cancelling the
awaiting task cancels the in-flight attempt; nothing partial is returned.
"""

import asyncio
import time
from typing import Dict, List, Optional, Sequence, Union

import structlog

from src.core.exceptions import (
    AllProvidersExhaustedError,
    ConfigurationError,
    LLMAuthError,
    LLMError,
    LLMRateLimitError,
    LLMResponseParseError,
    LLMTimeoutError,
)
from src.domain.models.provider import FailureKind, ProviderFailure, ProviderSuccess
from src.llm.client import LLMClient
from src.llm.prompts.reflection import parse_reflection_response

log = structlog.get_logger(__name__)


class ProviderFailoverClient:
    """Ordered, at-most-once-per-provider generation client."""

    def __init__(self, providers: Sequence[LLMClient], timeout: float):
        """
        Args:
            providers: LLM clients in priority order
            timeout: Per-provider attempt timeout in seconds

        Raises:
            ConfigurationError: If the chain is empty
        """
        if not providers:
            raise ConfigurationError(
                "No LLM providers configured. Set LLM_PROVIDER_CHAIN and API keys."
            )
        self.providers = list(providers)
        self.timeout = timeout

    @property
    def provider_names(self) -> List[str]:
        return [p.provider_name for p in self.providers]

    async def generate(
        self,
        system: str,
        history: List[Dict[str, str]],
        turn_number: Optional[int] = None,
    ) -> ProviderSuccess:
        """
        Run the chain until one provider returns a valid payload.

        Args:
            system: Composed system instructions
            history: Chronological [{role, content}] ending with the user turn
            turn_number: Optional turn number, for log correlation only

        Returns:
            ProviderSuccess tagged with the serving provider and model

        Raises:
            AllProvidersExhaustedError: Every provider failed once
        """
        failures: List[ProviderFailure] = []

        for position, client in enumerate(self.providers):
            result = await self._attempt(client, system, history)
            if isinstance(result, ProviderSuccess):
                log.info(
                    "provider_served",
                    provider=result.provider,
                    model=result.model,
                    position=position,
                    failed_before=len(failures),
                    latency_ms=round(result.latency_ms, 2),
                    turn_number=turn_number,
                )
                return result
            failures.append(result)

        log.error(
            "all_providers_exhausted",
            attempts=len(failures),
            failures=[(f.provider, f.error_kind.value) for f in failures],
            turn_number=turn_number,
        )
        raise AllProvidersExhaustedError(
            f"All {len(failures)} providers failed",
            failures=[f.model_dump(mode="json") for f in failures],
        )

    async def _attempt(
        self,
        client: LLMClient,
        system: str,
        history: List[Dict[str, str]],
    ) -> Union[ProviderSuccess, ProviderFailure]:
        """One bounded attempt against one provider, never raising LLM errors."""
        provider = client.provider_name
        start = time.perf_counter()

        def failure(kind: FailureKind, detail: str) -> ProviderFailure:
            return ProviderFailure(
                provider=provider,
                model=client.model or None,
                error_kind=kind,
                detail=detail,
                latency_ms=(time.perf_counter() - start) * 1000,
            )

        try:
            response = await asyncio.wait_for(
                client.complete(history, system=system, timeout=self.timeout),
                timeout=self.timeout,
            )
            payload = parse_reflection_response(response.content)
        except (asyncio.TimeoutError, LLMTimeoutError):
            log.warning(
                "provider_attempt_failed",
                provider=provider,
                error_kind=FailureKind.TIMEOUT.value,
                timeout_seconds=self.timeout,
            )
            return failure(FailureKind.TIMEOUT, f"no answer within {self.timeout}s")
        except LLMRateLimitError as e:
            log.warning(
                "provider_attempt_failed",
                provider=provider,
                error_kind=FailureKind.RATE_LIMITED.value,
            )
            return failure(FailureKind.RATE_LIMITED, e.message)
        except LLMAuthError as e:
            log.warning(
                "provider_attempt_failed",
                provider=provider,
                error_kind=FailureKind.AUTH_ERROR.value,
            )
            return failure(FailureKind.AUTH_ERROR, e.message)
        except LLMResponseParseError as e:
            # Contract mismatch, not unavailability
            log.error(
                "provider_malformed_output",
                provider=provider,
                model=client.model,
                detail=e.message,
            )
            return failure(FailureKind.MALFORMED_OUTPUT, e.message)
        except LLMError as e:
            log.warning(
                "provider_attempt_failed",
                provider=provider,
                error_kind=FailureKind.PROVIDER_ERROR.value,
                error=type(e).__name__,
            )
            return failure(FailureKind.PROVIDER_ERROR, e.message)

        return ProviderSuccess(
            provider=provider,
            model=response.model or client.model,
            payload=payload,
            latency_ms=(time.perf_counter() - start) * 1000,
            usage=response.usage,
        )
