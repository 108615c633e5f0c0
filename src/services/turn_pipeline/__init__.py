"""
Reflection pipeline.

Composable stages that turn one user message plus session context into a
StructuredResponse and the next session state.
"""

from .base import TurnStage
from .context import PipelineContext
from .pipeline import TurnPipeline

__all__ = [
    "TurnStage",
    "PipelineContext",
    "TurnPipeline",
]
