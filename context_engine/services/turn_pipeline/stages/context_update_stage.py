"""
Stage 6: Merge the turn into a new context value.

Nothing is persisted here. A merge failure degrades to a minimal
history record so the turn is never lost.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from context_engine.domain.models.entities import EntityUpdate
from context_engine.domain.models.pipeline_contracts import ContextUpdateOutput

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.context_updater import ContextUpdater

log = structlog.get_logger(__name__)


class ContextUpdateStage(TurnStage):
    """Produce the merged context and the turn record."""

    def __init__(self, updater: "ContextUpdater"):
        self.updater = updater

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        previous = context.loaded_context
        tools_output = context.tool_execution_output
        tool_failed = bool(tools_output and tools_output.failed)
        degraded = [s for s in context.degraded_stages if s != "context_update"]
        classification = context.classification
        response = context.response
        # A failed callback contributes no tools and no deltas
        entity_update = EntityUpdate() if tool_failed else context.entity_update
        tools_used = [] if tool_failed else context.tools_used

        try:
            merged, record = self.updater.apply(
                previous,
                message=context.user_input,
                resolved_message=context.resolved_message,
                classification=classification,
                entity_update=entity_update,
                response=response,
                tools_used=tools_used,
                processing_time_ms=context.elapsed_ms,
                degraded=degraded,
            )
        except Exception as e:
            log.error(
                "stage_degraded",
                stage_name=self.stage_name,
                session_id=context.session_id,
                error=str(e),
                exc_info=True,
            )
            merged, record = self.updater.minimal(
                previous,
                message=context.user_input,
                response=response,
                processing_time_ms=context.elapsed_ms,
                degraded=[*degraded, "context_update"],
            )
            context.context_update_output = ContextUpdateOutput(
                context=merged, record=record, degraded=True, error=str(e)
            )
            return context

        context.context_update_output = ContextUpdateOutput(context=merged, record=record)

        log.debug(
            "context_merged",
            session_id=context.session_id,
            history_length=merged.history_length,
            switch_count=merged.context_switch_count,
            cart_item_count=merged.cart_item_count,
        )
        return context
