"""
Stage 3: Run the agent's tools through the tool callback.

The callback receives the resolved message and a read-only snapshot.
When resolution was applied but no tool found anything, the callback is
run once more with the original message. A failing callback produces
the fallback response with no tools and no deltas.
"""

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from ..base import TurnStage
from context_engine.core.exceptions import ToolExecutionError
from context_engine.domain.models.entities import ToolExecution
from context_engine.domain.models.pipeline_contracts import ToolExecutionOutput
from context_engine.domain.models.session_context import ContextSnapshot

if TYPE_CHECKING:
    from ..context import PipelineContext

log = structlog.get_logger(__name__)


class ToolExecutionStage(TurnStage):
    """Invoke the external tool callback for this turn."""

    def __init__(self, fallback_response: str):
        """
        Args:
            fallback_response: Apologetic text returned when the callback fails
        """
        self.fallback_response = fallback_response

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        if context.tool_callback is None:
            raise RuntimeError(
                "Pipeline contract violation: ToolExecutionStage requires a "
                f"tool_callback. Session: {context.session_id}"
            )

        resolution = context.resolution
        message = resolution.resolved
        snapshot = context.loaded_context.snapshot()

        try:
            execution = await self._run(context, message, snapshot)
            used_fallback = False

            if (
                resolution.applied
                and execution.tool_results
                and not execution.has_match
            ):
                log.info(
                    "resolution_fallback",
                    session_id=context.session_id,
                    resolved=message,
                    original=resolution.original,
                )
                message = resolution.original
                execution = await self._run(context, message, snapshot)
                used_fallback = True

        except ToolExecutionError as e:
            log.error(
                "stage_degraded",
                stage_name=self.stage_name,
                session_id=context.session_id,
                error=str(e),
            )
            context.tool_execution_output = ToolExecutionOutput(
                execution=ToolExecution(response=self.fallback_response),
                message_used=message,
                failed=True,
                error=str(e),
            )
            return context

        context.tool_execution_output = ToolExecutionOutput(
            execution=execution,
            message_used=message,
            used_fallback_message=used_fallback,
        )

        log.info(
            "tools_executed",
            session_id=context.session_id,
            tools_used=execution.tools_used,
            result_count=len(execution.tool_results),
        )
        return context

    async def _run(
        self, context: "PipelineContext", message: str, snapshot: ContextSnapshot
    ) -> ToolExecution:
        """Call the callback and validate what it returned."""
        try:
            raw: Any = await context.tool_callback(message, snapshot)
        except Exception as e:
            raise ToolExecutionError(f"Tool callback failed: {e}") from e

        if isinstance(raw, ToolExecution):
            return raw
        try:
            return ToolExecution.model_validate(raw)
        except ValidationError as e:
            raise ToolExecutionError(f"Tool callback returned an invalid result: {e}") from e
