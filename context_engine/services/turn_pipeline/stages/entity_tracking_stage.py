"""
Stage 4: Track entities surfaced by the turn's tools.

A tracker failure degrades to an empty update.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from context_engine.domain.models.pipeline_contracts import EntityTrackingOutput

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.entity_tracker import EntityTracker

log = structlog.get_logger(__name__)


class EntityTrackingStage(TurnStage):
    """Extract product/order mentions and cart deltas."""

    def __init__(self, tracker: "EntityTracker"):
        self.tracker = tracker

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        execution = context.tool_execution

        try:
            update = self.tracker.track(execution.tool_results)
        except Exception as e:
            log.error(
                "stage_degraded",
                stage_name=self.stage_name,
                session_id=context.session_id,
                error=str(e),
                exc_info=True,
            )
            context.entity_tracking_output = EntityTrackingOutput(
                degraded=True, error=str(e)
            )
            return context

        context.entity_tracking_output = EntityTrackingOutput(update=update)
        return context
