"""
Pipeline orchestrator for reflection turns.

TurnPipeline executes stages sequentially with timing and error handling.
A crisis override ends the run early; the remaining stages are skipped.
"""

import time
from typing import List

import structlog

from .base import TurnStage
from .context import PipelineContext

log = structlog.get_logger(__name__)


class TurnPipeline:
    """
    Orchestrates execution of pipeline stages.

    Executes stages sequentially, tracking timing and handling errors.
    """

    def __init__(self, stages: List[TurnStage]):
        """
        Initialize pipeline with a list of stages.

        Args:
            stages: Ordered list of TurnStage instances
        """
        self.stages = stages
        self.logger = log

    async def execute(self, context: PipelineContext) -> PipelineContext:
        """
        Execute stages sequentially until done or short-circuited.

        Args:
            context: Initial context with user text and session context

        Returns:
            Context carrying every produced contract

        Raises:
            Exception: If any stage fails
        """
        start_time = time.perf_counter()

        self.logger.info(
            "pipeline_started",
            session_id=context.session_id,
            turn_number=context.turn_number,
            num_stages=len(self.stages),
        )

        for stage in self.stages:
            if context.short_circuited:
                self.logger.debug(
                    "stage_skipped",
                    stage_name=stage.stage_name,
                    reason="crisis_override",
                )
                continue

            stage_start = time.perf_counter()

            try:
                self.logger.debug(
                    "stage_started",
                    stage_name=stage.stage_name,
                    session_id=context.session_id,
                )

                context = await stage.process(context)

                stage_elapsed = (time.perf_counter() - stage_start) * 1000
                context.stage_timings[stage.stage_name] = stage_elapsed

                self.logger.debug(
                    "stage_completed",
                    stage_name=stage.stage_name,
                    duration_ms=stage_elapsed,
                )

            except Exception as e:
                self.logger.error(
                    "stage_failed",
                    stage_name=stage.stage_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        self.logger.info(
            "pipeline_completed",
            session_id=context.session_id,
            turn_number=context.turn_number,
            short_circuited=context.short_circuited,
            latency_ms=latency_ms,
            stage_timings=context.stage_timings,
        )

        return context
