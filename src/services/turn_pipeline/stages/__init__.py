"""
Pipeline stages for reflection turns.

Each stage encapsulates one logical step of a turn, from crisis detection
through response assembly. Stages execute sequentially in the TurnPipeline
orchestrator.
"""

from .crisis_detection_stage import CrisisDetectionStage
from .prompt_composition_stage import PromptCompositionStage
from .provider_call_stage import ProviderCallStage
from .layer_advance_stage import LayerAdvanceStage
from .response_assembly_stage import ResponseAssemblyStage

__all__ = [
    "CrisisDetectionStage",
    "PromptCompositionStage",
    "ProviderCallStage",
    "LayerAdvanceStage",
    "ResponseAssemblyStage",
]
