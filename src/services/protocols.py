"""
Service protocol definitions (interfaces).

Defines formal interfaces for services using Python's typing.Protocol.
Enables test doubles at the pipeline's only I/O boundary.
"""

from typing import Dict, List, Optional, Protocol

from src.domain.models.provider import ProviderSuccess


class IReflectionBackend(Protocol):
    """
    Protocol for the generation backend used by the reflection pipeline.

    ProviderFailoverClient is the production implementation.
    """

    async def generate(
        self,
        system: str,
        history: List[Dict[str, str]],
        turn_number: Optional[int] = None,
    ) -> ProviderSuccess:
        """
        Generate one structured reflection.

        Args:
            system: Composed system instructions
            history: Chronological [{role, content}] ending with the user turn
            turn_number: Turn number for log correlation

        Returns:
            ProviderSuccess with a validated payload

        Raises:
            AllProvidersExhaustedError: No provider produced a valid payload
        """
        ...
