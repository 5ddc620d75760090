"""
Pipeline orchestrator for turn processing.

TurnPipeline executes stages sequentially with timing and error logging.
"""

import time
from typing import List

import structlog

from .base import TurnStage
from .context import PipelineContext
from .result import TurnResult

log = structlog.get_logger(__name__)


class TurnPipeline:
    """
    Orchestrates execution of pipeline stages.

    Executes stages sequentially, tracking timing and handling errors.
    Stages degrade their own recoverable failures, so anything raised
    here (an unreadable store, a closed session) aborts the turn.
    """

    def __init__(self, stages: List[TurnStage]):
        """
        Initialize pipeline with a list of stages.

        Args:
            stages: Ordered list of TurnStage instances
        """
        self.stages = stages
        self.logger = log

    async def execute(self, context: PipelineContext) -> TurnResult:
        """
        Execute all stages sequentially.

        Args:
            context: Initial pipeline context with session_id and user_input

        Returns:
            TurnResult with response, topic and context snapshot

        Raises:
            Exception: If any stage fails
        """
        start_time = time.perf_counter()

        self.logger.info(
            "pipeline_started",
            session_id=context.session_id,
            num_stages=len(self.stages),
        )

        for stage in self.stages:
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
                    exc_info=True,
                )
                raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        result = self._build_result(context, latency_ms)

        self.logger.info(
            "pipeline_completed",
            session_id=context.session_id,
            turn_number=result.turn_number,
            latency_ms=latency_ms,
            stage_timings=context.stage_timings,
        )

        return result

    def _build_result(self, context: PipelineContext, latency_ms: int) -> TurnResult:
        """
        Build TurnResult from context.

        Args:
            context: Final pipeline context
            latency_ms: Total pipeline latency

        Returns:
            TurnResult
        """
        # Access contracts directly to allow partial pipelines in tests
        persistence = context.context_persistence_output
        update = context.context_update_output
        tools = context.tool_execution_output

        snapshot = None
        if update:
            snapshot = update.context
            if persistence and persistence.persisted:
                snapshot = snapshot.model_copy(update={"version": persistence.version})
            snapshot = snapshot.snapshot()

        return TurnResult(
            session_id=context.session_id,
            turn_number=(
                context.context_loading_output.turn_number
                if context.context_loading_output
                else 1
            ),
            response=tools.execution.response if tools else "",
            resolved_message=context.resolved_message,
            tools_used=tools.execution.tools_used if tools else [],
            resolution=(
                context.reference_resolution_output.resolution
                if context.reference_resolution_output
                else None
            ),
            topic_info=(
                context.topic_classification_output.classification
                if context.topic_classification_output
                else None
            ),
            context_snapshot=snapshot,
            persisted=persistence.persisted if persistence else False,
            persistence_error=persistence.error if persistence else None,
            version=persistence.version if persistence else 0,
            used_fallback_message=tools.used_fallback_message if tools else False,
            degraded_stages=context.degraded_stages,
            latency_ms=latency_ms,
            stage_timings=dict(context.stage_timings),
        )
