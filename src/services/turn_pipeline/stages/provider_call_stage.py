"""
Stage 3: Generation backend call.

The single outbound call of a turn. AllProvidersExhaustedError propagates
to the caller unchanged; nothing downstream runs and nothing is persisted.
"""

from typing import TYPE_CHECKING

from ..base import TurnStage
from src.services.protocols import IReflectionBackend

if TYPE_CHECKING:
    from ..context import PipelineContext


class ProviderCallStage(TurnStage):
    """Produce ProviderSuccess via the failover client."""

    def __init__(self, backend: IReflectionBackend):
        """
        Args:
            backend: Failover client (or any object with the same generate())
        """
        self.backend = backend

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        prompt = context.prompt
        context.provider_success = await self.backend.generate(
            prompt.system_instructions,
            prompt.conversation_history,
            turn_number=context.turn_number,
        )
        return context
