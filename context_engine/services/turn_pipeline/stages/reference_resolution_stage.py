"""
Stage 2: Resolve references in the user message.

A resolver failure degrades to the raw message.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from context_engine.domain.models.pipeline_contracts import ReferenceResolutionOutput
from context_engine.domain.models.resolution import ResolutionResult

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.reference_resolver import ReferenceResolver

log = structlog.get_logger(__name__)


class ReferenceResolutionStage(TurnStage):
    """Rewrite pronouns and demonstratives using the loaded context."""

    def __init__(self, resolver: "ReferenceResolver"):
        self.resolver = resolver

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        session = context.loaded_context

        try:
            resolution = self.resolver.resolve(context.user_input, session)
        except Exception as e:
            log.error(
                "stage_degraded",
                stage_name=self.stage_name,
                session_id=context.session_id,
                error=str(e),
                exc_info=True,
            )
            context.reference_resolution_output = ReferenceResolutionOutput(
                resolution=ResolutionResult.unchanged(context.user_input),
                degraded=True,
                error=str(e),
            )
            return context

        context.reference_resolution_output = ReferenceResolutionOutput(
            resolution=resolution
        )

        if resolution.applied:
            log.info(
                "message_resolved",
                session_id=context.session_id,
                original=resolution.original,
                resolved=resolution.resolved,
            )

        return context
