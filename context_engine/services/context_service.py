"""
Session context orchestration service.

Main entry point for turn processing, delegating to a pipeline of
composable stages: load, resolve references, run tools, track entities,
classify the topic, merge and commit.

Turns of the same session are serialized by a per-session lock. Every
context change (turn, start, close) is produced by ContextUpdater and
committed through the session store.
"""

from typing import Callable, List, Optional
from uuid import uuid4

import structlog

from context_engine.core.config import EngineConfig, Settings, engine_config, settings
from context_engine.core.exceptions import (
    PersistenceConflictError,
    SessionNotFoundError,
    StoreUnavailableError,
)
from context_engine.core.logging import bound_context
from context_engine.domain.models.session_context import (
    ContextSnapshot,
    SessionContext,
    SessionSummary,
    summarize,
)
from context_engine.persistence.store_factory import create_session_store
from context_engine.services.context_updater import ContextUpdater
from context_engine.services.entity_tracker import EntityTracker
from context_engine.services.protocols import ISessionStore, ToolCallback
from context_engine.services.reference_resolver import ReferenceResolver
from context_engine.services.session_lock import SessionLockManager
from context_engine.services.topic_classifier import TopicClassifier
from context_engine.services.turn_pipeline import (
    PipelineContext,
    TurnPipeline,
    TurnResult,
)
from context_engine.services.turn_pipeline.stages import (
    ContextLoadingStage,
    ContextPersistenceStage,
    ContextUpdateStage,
    EntityTrackingStage,
    ReferenceResolutionStage,
    TopicClassificationStage,
    ToolExecutionStage,
)

log = structlog.get_logger(__name__)


class ContextService:
    """Orchestrates per-session context across turns.

    Main entry point for processing user messages. Uses TurnPipeline with
    composable stages and exposes read-only views for monitoring.
    """

    def __init__(
        self,
        store: ISessionStore,
        config: Optional[EngineConfig] = None,
        resolver: Optional[ReferenceResolver] = None,
        classifier: Optional[TopicClassifier] = None,
        tracker: Optional[EntityTracker] = None,
        updater: Optional[ContextUpdater] = None,
        max_retries: Optional[int] = None,
    ):
        """
        Initialize context service with pipeline.

        Args:
            store: Session store
            config: Engine configuration (defaults to context_engine.yaml)
            resolver: Reference resolver (creates default if None)
            classifier: Topic classifier (creates default if None)
            tracker: Entity tracker (creates default if None)
            updater: Context updater (creates default if None)
            max_retries: Commit retries on version conflict (defaults to settings)
        """
        self.store = store
        self.config = config or engine_config

        self.resolver = resolver or ReferenceResolver(self.config.resolver)
        self.classifier = classifier or TopicClassifier(self.config.topics)
        self.tracker = tracker or EntityTracker(self.config.tracker)
        self.updater = updater or ContextUpdater(self.config.session)

        self.max_retries = (
            max_retries if max_retries is not None else settings.persistence_max_retries
        )
        self.locks = SessionLockManager()

        self.pipeline = self._build_pipeline()

        log.info(
            "context_service_initialized",
            store=type(store).__name__,
            pipeline_stages=len(self.pipeline.stages),
            max_retries=self.max_retries,
        )

    def _build_pipeline(self) -> TurnPipeline:
        """
        Build the turn processing pipeline.

        Returns:
            TurnPipeline configured with 7 stages
        """
        classification = TopicClassificationStage(classifier=self.classifier)
        update = ContextUpdateStage(updater=self.updater)

        stages = [
            ContextLoadingStage(store=self.store),
            ReferenceResolutionStage(resolver=self.resolver),
            ToolExecutionStage(fallback_response=self.config.session.fallback_response),
            EntityTrackingStage(tracker=self.tracker),
            classification,
            update,
            ContextPersistenceStage(
                store=self.store,
                replay_stages=[classification, update],
                max_retries=self.max_retries,
            ),
        ]
        return TurnPipeline(stages=stages)

    # =========================================================================
    # Turn processing
    # =========================================================================

    async def process_turn(
        self,
        session_id: str,
        raw_message: str,
        tool_callback: ToolCallback,
    ) -> TurnResult:
        """Process a single turn using the pipeline.

        Stages:
        1. ContextLoadingStage - Load the session context
        2. ReferenceResolutionStage - Rewrite "those headphones", "it", ...
        3. ToolExecutionStage - Run the agent's tools via tool_callback
        4. EntityTrackingStage - Extract mentions and cart deltas
        5. TopicClassificationStage - Classify topic, detect switch
        6. ContextUpdateStage - Merge everything into a new context
        7. ContextPersistenceStage - Commit, retrying on version conflict

        Args:
            session_id: Session ID (unknown ids start a new session)
            raw_message: User's message
            tool_callback: Agent callback that runs tools for the message

        Returns:
            TurnResult with response, resolved message, topic info and snapshot

        Raises:
            ValueError: If session_id is empty
            SessionClosedError: If the session was closed
        """
        if not session_id:
            raise ValueError("session_id must be a non-empty string")

        raw_message = raw_message or ""

        async with self.locks.hold(session_id):
            with bound_context(session_id=session_id):
                log.info("turn_started", input_length=len(raw_message))

                context = PipelineContext(
                    session_id=session_id,
                    user_input=raw_message,
                    tool_callback=tool_callback,
                )

                try:
                    result = await self.pipeline.execute(context)
                except StoreUnavailableError as e:
                    # Nothing was loaded, so nothing is merged or saved
                    log.error("turn_aborted", reason="store_unavailable", error=str(e))
                    return TurnResult(
                        session_id=session_id,
                        turn_number=0,
                        response=self.config.session.fallback_response,
                        resolved_message=raw_message,
                        persisted=False,
                        persistence_error=str(e),
                        degraded_stages=["context_loading"],
                        latency_ms=context.elapsed_ms,
                        stage_timings=dict(context.stage_timings),
                    )

                log.info(
                    "turn_processed",
                    turn_number=result.turn_number,
                    topic=result.topic,
                    tools_used=result.tools_used,
                    persisted=result.persisted,
                    degraded_stages=result.degraded_stages,
                    latency_ms=result.latency_ms,
                )
                return result

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def start_session(
        self,
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ContextSnapshot:
        """
        Start (or re-identify) a session for a customer.

        Args:
            customer_id: Customer identifier
            customer_name: Customer display name
            session_id: Session ID to use (generated if None)

        Returns:
            Snapshot of the stored context
        """
        session_id = session_id or f"session_{uuid4().hex[:12]}"

        context = await self._commit(
            session_id,
            lambda current: self.updater.initialize(current, customer_id, customer_name),
        )

        log.info("session_started", session_id=session_id, customer_id=customer_id)
        return context.snapshot()

    async def close_session(self, session_id: str) -> SessionSummary:
        """
        Close a session and store its summary.

        Closing an already closed session returns its summary unchanged.

        Raises:
            SessionNotFoundError: Session was never persisted
        """
        await self._require_existing(session_id)

        context = await self._commit(
            session_id,
            lambda current: current if not current.is_active else self.updater.close(current),
        )

        summary = summarize(context, limit=self.config.session.summary_topic_limit)
        log.info(
            "session_closed",
            session_id=session_id,
            history_length=summary.history_length,
            duration=summary.duration.formatted,
        )
        return summary

    # =========================================================================
    # Read-only views
    # =========================================================================

    async def get_context(self, session_id: str) -> ContextSnapshot:
        """Read-only view of a session's context. Unknown ids give an empty view."""
        context = await self.store.load(session_id)
        return context.snapshot()

    async def get_summary(self, session_id: str) -> SessionSummary:
        """
        Summarize a session: topics, products, switches, duration.

        Raises:
            SessionNotFoundError: Session was never persisted
        """
        await self._require_existing(session_id)
        context = await self.store.load(session_id)
        return summarize(context, limit=self.config.session.summary_topic_limit)

    async def list_sessions(
        self,
        active_only: bool = False,
        customer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ContextSnapshot]:
        return await self.store.list_sessions(
            active_only=active_only, customer_id=customer_id, limit=limit, offset=offset
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_existing(self, session_id: str) -> None:
        if not await self.store.exists(session_id):
            raise SessionNotFoundError(f"Session {session_id} not found")

    async def _commit(
        self,
        session_id: str,
        mutate: Callable[[SessionContext], SessionContext],
    ) -> SessionContext:
        """Load, mutate and save a session under its lock, retrying on conflict."""
        async with self.locks.hold(session_id):
            attempts = 0
            while True:
                attempts += 1
                current = await self.store.load(session_id)
                updated = mutate(current)
                if updated is current and current.version > 0:
                    return current
                try:
                    version = await self.store.save(updated, current.version)
                except PersistenceConflictError:
                    if attempts > self.max_retries:
                        raise
                    log.warning(
                        "persistence_retry", session_id=session_id, attempt=attempts
                    )
                    continue
                return updated.model_copy(update={"version": version})


async def create_context_service(
    app_settings: Optional[Settings] = None,
    config: Optional[EngineConfig] = None,
) -> ContextService:
    """Create a ContextService backed by the store selected in settings."""
    app_settings = app_settings or settings
    store = await create_session_store(app_settings)
    return ContextService(
        store=store,
        config=config,
        max_retries=app_settings.persistence_max_retries,
    )
