"""
The single mutator of SessionContext values.

Every change to a session (a processed turn, a degraded turn, an explicit
start or a close) is produced here as a new context value. Persisting
that value is the caller's job, and the store save is the only commit.
"""

from datetime import datetime
from typing import Optional, Sequence, Tuple

import structlog

from context_engine.core.config import SessionRulesConfig, engine_config
from context_engine.domain.models.entities import EntityUpdate, utc_now
from context_engine.domain.models.session_context import (
    SessionContext,
    TurnRecord,
    build_summary_text,
)
from context_engine.domain.models.topic import TopicClassification

log = structlog.get_logger(__name__)


class ContextUpdater:
    """Merges one turn's results into a session context."""

    def __init__(self, config: Optional[SessionRulesConfig] = None):
        self.config = config or engine_config.session

    def apply(
        self,
        previous: SessionContext,
        message: str,
        resolved_message: str,
        classification: Optional[TopicClassification],
        entity_update: EntityUpdate,
        response: str,
        tools_used: Sequence[str],
        processing_time_ms: int = 0,
        degraded: Sequence[str] = (),
    ) -> Tuple[SessionContext, TurnRecord]:
        """
        Build the context that results from one turn.

        The switch is evaluated against previous.current_topic rather than
        the classifier's own view, so replaying a turn on a fresher
        context stays consistent.

        Args:
            previous: Context as loaded for this turn
            message: Raw user message
            resolved_message: Message after reference resolution
            classification: Topic verdict, or None if classification failed
            entity_update: Mentions and cart deltas from the tracker
            response: Final response text
            tools_used: Tool names invoked this turn
            processing_time_ms: Turn latency up to the merge
            degraded: Names of stages that failed this turn

        Returns:
            (new context, appended turn record)
        """
        context = self._with_topic(previous, classification)
        context = context.with_product_mentions(entity_update.products)
        context = context.with_order_mentions(entity_update.orders)
        context = context.with_cart_deltas(entity_update.cart_deltas)

        record = TurnRecord(
            input=message,
            output=response,
            tools_used=list(tools_used),
            resolved_input=resolved_message if resolved_message != message else None,
            topic=context.current_topic,
            processing_time_ms=max(int(processing_time_ms), 0),
            degraded=list(degraded),
        )
        return context.with_turn(record), record

    def minimal(
        self,
        previous: SessionContext,
        message: str,
        response: str,
        processing_time_ms: int = 0,
        degraded: Sequence[str] = (),
    ) -> Tuple[SessionContext, TurnRecord]:
        """Append a turn record with no topic change and no entity deltas."""
        record = TurnRecord(
            input=message,
            output=response,
            topic=previous.current_topic,
            processing_time_ms=max(int(processing_time_ms), 0),
            degraded=list(degraded),
        )
        log.warning(
            "minimal_turn_recorded",
            session_id=previous.session_id,
            degraded=list(degraded),
        )
        return previous.with_turn(record), record

    def initialize(
        self,
        previous: SessionContext,
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SessionContext:
        """Attach customer identity to a session being started explicitly."""
        now = now or utc_now()
        return previous.model_copy(
            update={
                "customer_id": customer_id or previous.customer_id,
                "customer_name": customer_name or previous.customer_name,
                "session_start": previous.session_start or now,
                "last_activity": previous.last_activity or now,
                "is_active": True,
            }
        )

    def close(
        self, previous: SessionContext, now: Optional[datetime] = None
    ) -> SessionContext:
        """Mark a session closed and store its summary text."""
        now = now or utc_now()
        return previous.model_copy(
            update={
                "is_active": False,
                "session_end": now,
                "summary": build_summary_text(
                    previous, self.config.summary_topic_limit
                ),
            }
        )

    def _with_topic(
        self, previous: SessionContext, classification: Optional[TopicClassification]
    ) -> SessionContext:
        if classification is None:
            return previous

        topic = classification.topic
        current = previous.current_topic
        if current is None or topic == current:
            return previous.model_copy(update={"current_topic": topic})

        updates: dict = {
            "previous_topic": current,
            "current_topic": topic,
            "context_switch_count": previous.context_switch_count + 1,
        }
        log.debug(
            "context_switch_counted",
            session_id=previous.session_id,
            from_topic=current,
            to_topic=topic,
            switch_count=updates["context_switch_count"],
        )
        return previous.model_copy(update=updates)

