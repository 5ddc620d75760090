"""
Stage 1: Load session context.

Reads the session's context from the store. Unknown sessions start
empty. The loaded version becomes the expected version of the commit.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from context_engine.core.exceptions import SessionClosedError
from context_engine.domain.models.pipeline_contracts import ContextLoadingOutput

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.protocols import ISessionStore

log = structlog.get_logger(__name__)


class ContextLoadingStage(TurnStage):
    """
    Load session context at the start of turn processing.

    StoreUnavailableError from the store propagates: without a context
    there is nothing safe to merge into.
    """

    def __init__(self, store: "ISessionStore"):
        """
        Initialize stage.

        Args:
            store: Session store
        """
        self.store = store

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        """
        Load the session context into the pipeline context.

        Args:
            context: Pipeline context with session_id

        Returns:
            Modified context with context_loading_output set

        Raises:
            SessionClosedError: The session was closed
            StoreUnavailableError: The store could not be read
        """
        session = await self.store.load(context.session_id)
        if not session.is_active:
            raise SessionClosedError(f"Session {context.session_id} is closed")

        context.context_loading_output = ContextLoadingOutput(
            context=session,
            turn_number=session.history_length + 1,
            is_new_session=session.version == 0,
        )

        log.info(
            "context_loaded",
            session_id=context.session_id,
            turn_number=context.turn_number,
            version=session.version,
            current_topic=session.current_topic,
        )

        return context
