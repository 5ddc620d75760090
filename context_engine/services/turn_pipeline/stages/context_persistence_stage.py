"""
Stage 7: Commit the merged context.

The store save is the only commit point of a turn. It is shielded from
cancellation once started, so a cancelled request either persisted the
whole turn or nothing.

On a version conflict the stage reloads the context and replays the
given stages (classification and merge) with the same tool results
before trying again. Tools are never re-run.
"""

import asyncio
from typing import TYPE_CHECKING, Sequence

import structlog

from ..base import TurnStage
from context_engine.core.exceptions import (
    PersistenceConflictError,
    StoreUnavailableError,
)
from context_engine.domain.models.pipeline_contracts import (
    ContextLoadingOutput,
    ContextPersistenceOutput,
)

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.protocols import ISessionStore

log = structlog.get_logger(__name__)


class ContextPersistenceStage(TurnStage):
    """Save the merged context with bounded retry on conflict."""

    def __init__(
        self,
        store: "ISessionStore",
        replay_stages: Sequence[TurnStage] = (),
        max_retries: int = 3,
    ):
        """
        Initialize stage.

        Args:
            store: Session store
            replay_stages: Stages re-run against a reloaded context after a conflict
            max_retries: Conflicts tolerated before giving up
        """
        self.store = store
        self.replay_stages = list(replay_stages)
        self.max_retries = max_retries

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        attempts = 0

        while True:
            attempts += 1
            merged = context.merged_context
            expected_version = context.loaded_context.version

            try:
                version = await asyncio.shield(self.store.save(merged, expected_version))
            except PersistenceConflictError as e:
                if attempts > self.max_retries:
                    log.error(
                        "persistence_retries_exhausted",
                        session_id=context.session_id,
                        attempts=attempts,
                    )
                    return self._failed(context, expected_version, attempts, str(e))

                log.warning(
                    "persistence_retry",
                    session_id=context.session_id,
                    attempt=attempts,
                    expected_version=e.expected_version,
                    actual_version=e.actual_version,
                )
                try:
                    context = await self._replay(context)
                except StoreUnavailableError as reload_error:
                    return self._failed(
                        context, expected_version, attempts, str(reload_error)
                    )
                if not context.loaded_context.is_active:
                    return self._failed(
                        context,
                        expected_version,
                        attempts,
                        f"Session {context.session_id} was closed during the turn",
                    )
                continue
            except StoreUnavailableError as e:
                return self._failed(context, expected_version, attempts, str(e))

            context.context_persistence_output = ContextPersistenceOutput(
                persisted=True, version=version, attempts=attempts
            )
            log.info(
                "context_committed",
                session_id=context.session_id,
                version=version,
                attempts=attempts,
            )
            return context

    async def _replay(self, context: "PipelineContext") -> "PipelineContext":
        """Reload the session and re-run the merge against it."""
        fresh = await self.store.load(context.session_id)
        context.context_loading_output = ContextLoadingOutput(
            context=fresh,
            turn_number=fresh.history_length + 1,
            is_new_session=fresh.version == 0,
        )
        if not fresh.is_active:
            return context
        for stage in self.replay_stages:
            context = await stage.process(context)
        return context

    def _failed(
        self, context: "PipelineContext", version: int, attempts: int, error: str
    ) -> "PipelineContext":
        log.error(
            "context_not_persisted",
            session_id=context.session_id,
            attempts=attempts,
            error=error,
        )
        context.context_persistence_output = ContextPersistenceOutput(
            persisted=False, version=version, attempts=attempts, error=error
        )
        return context
