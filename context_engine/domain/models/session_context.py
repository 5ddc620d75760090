"""Session context domain models.

This module defines the per-session conversational state and the
read-only views handed out to monitoring code.

Core Models:
    - TurnRecord: One immutable history entry (input, output, tools, topic)
    - SessionContext: Topic, mentions, cart and history for one session
    - ContextSnapshot: Read-only view for debugging and monitoring tools
    - SessionSummary: Analytics summary of a session

Session Lifecycle:
    1. Created lazily (empty collections, current_topic None, version 0)
    2. Replaced once per turn by ContextUpdater with merged deltas
    3. Persisted by the session store, which bumps version on every save
    4. Closed via ContextService.close_session (is_active False, summary set)

Merge operations return new SessionContext values. Nothing edits a
context in place, so a failed turn leaves the loaded value untouched.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from context_engine.domain.models.entities import (
    CartChange,
    CartClear,
    CartItem,
    OrderRef,
    ProductRef,
    utc_now,
)


class TurnRecord(BaseModel):
    """One processed turn. Never mutated after append."""

    model_config = ConfigDict(frozen=True)

    input: str
    output: str
    tools_used: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)
    resolved_input: Optional[str] = None
    topic: Optional[str] = None
    processing_time_ms: int = Field(default=0, ge=0)
    degraded: List[str] = Field(
        default_factory=list, description="Stages that failed and were degraded"
    )


class SessionContext(BaseModel):
    """Conversational state tracked for one session.

    Invariants:
        - context_switch_count equals the number of history records whose
          topic differs from the previous record's topic (first turn excluded)
        - mentioned_products / mentioned_orders are deduplicated by id and
          ordered oldest -> most recent
        - every cart line has quantity >= 1
        - len(conversation_history) equals turns processed
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    current_topic: Optional[str] = None
    previous_topic: Optional[str] = None
    context_switch_count: int = Field(default=0, ge=0)
    mentioned_products: List[ProductRef] = Field(default_factory=list)
    mentioned_orders: List[OrderRef] = Field(default_factory=list)
    cart_items: Dict[str, CartItem] = Field(default_factory=dict)
    conversation_history: List[TurnRecord] = Field(default_factory=list)
    last_query: Optional[str] = None
    last_response: Optional[str] = None

    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    session_start: Optional[datetime] = None
    session_end: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    is_active: bool = True
    summary: Optional[str] = None

    version: int = Field(default=0, ge=0, description="Store-managed write version")

    # =========================================================================
    # Merge operations
    # =========================================================================

    def with_product_mentions(self, products: Iterable[ProductRef]) -> "SessionContext":
        """Record product mentions, moving re-mentioned products to the end."""
        incoming: Dict[str, ProductRef] = {}
        for product in products:
            # dict re-insertion keeps the last position within the batch
            incoming.pop(product.product_id, None)
            incoming[product.product_id] = product
        if not incoming:
            return self

        merged: List[ProductRef] = []
        for existing in self.mentioned_products:
            if existing.product_id not in incoming:
                merged.append(existing)
                continue
            fresh = incoming[existing.product_id]
            if fresh.category is None and existing.category is not None:
                incoming[existing.product_id] = fresh.model_copy(
                    update={"category": existing.category}
                )
        merged.extend(incoming.values())
        return self.model_copy(update={"mentioned_products": merged})

    def with_order_mentions(self, orders: Iterable[OrderRef]) -> "SessionContext":
        """Record order mentions, moving re-mentioned orders to the end."""
        incoming: Dict[str, OrderRef] = {}
        for order in orders:
            incoming.pop(order.order_id, None)
            incoming[order.order_id] = order
        if not incoming:
            return self

        merged = [o for o in self.mentioned_orders if o.order_id not in incoming]
        merged.extend(incoming.values())
        return self.model_copy(update={"mentioned_orders": merged})

    def with_cart_deltas(self, deltas: Iterable[CartChange]) -> "SessionContext":
        """Apply cart deltas additively. Lines reaching 0 or below are removed.

        A CartClear empties the cart; deltas after it in the same batch
        apply to the emptied cart.
        """
        cart = dict(self.cart_items)
        changed = False
        for delta in deltas:
            changed = True
            if isinstance(delta, CartClear):
                cart.clear()
                continue
            current = cart.get(delta.product_id)
            if delta.remove_all:
                cart.pop(delta.product_id, None)
                continue

            quantity = (current.quantity if current else 0) + delta.quantity_delta
            if quantity <= 0:
                cart.pop(delta.product_id, None)
                continue

            if current is None:
                cart[delta.product_id] = CartItem(
                    product_id=delta.product_id,
                    name=delta.name or delta.product_id,
                    quantity=quantity,
                    unit_price=delta.unit_price or 0.0,
                )
            else:
                cart[delta.product_id] = current.model_copy(
                    update={
                        "quantity": quantity,
                        "name": delta.name or current.name,
                        "unit_price": (
                            delta.unit_price
                            if delta.unit_price is not None
                            else current.unit_price
                        ),
                    }
                )
        if not changed:
            return self
        return self.model_copy(update={"cart_items": cart})

    def with_turn(self, record: TurnRecord) -> "SessionContext":
        """Append a history record and refresh the last query/response cache."""
        return self.model_copy(
            update={
                "conversation_history": [*self.conversation_history, record],
                "last_query": record.input,
                "last_response": record.output,
                "last_activity": record.timestamp,
                "session_start": self.session_start or record.timestamp,
            }
        )

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def cart_total(self) -> float:
        return round(sum(item.subtotal for item in self.cart_items.values()), 2)

    @property
    def cart_item_count(self) -> int:
        return sum(item.quantity for item in self.cart_items.values())

    @property
    def history_length(self) -> int:
        return len(self.conversation_history)

    @property
    def last_product(self) -> Optional[ProductRef]:
        return self.mentioned_products[-1] if self.mentioned_products else None

    @property
    def last_order(self) -> Optional[OrderRef]:
        return self.mentioned_orders[-1] if self.mentioned_orders else None

    def snapshot(self) -> "ContextSnapshot":
        """Read-only view for monitoring and the tool callback."""
        return ContextSnapshot(
            session_id=self.session_id,
            current_topic=self.current_topic,
            previous_topic=self.previous_topic,
            context_switch_count=self.context_switch_count,
            mentioned_products=list(self.mentioned_products),
            mentioned_orders=list(self.mentioned_orders),
            cart_items=list(self.cart_items.values()),
            cart_total=self.cart_total,
            cart_item_count=self.cart_item_count,
            history_length=self.history_length,
            last_query=self.last_query,
            last_response=self.last_response,
            last_activity=self.last_activity,
            is_active=self.is_active,
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            version=self.version,
        )


class ContextSnapshot(BaseModel):
    """Read-only view of a SessionContext."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    current_topic: Optional[str] = None
    previous_topic: Optional[str] = None
    context_switch_count: int = 0
    mentioned_products: List[ProductRef] = Field(default_factory=list)
    mentioned_orders: List[OrderRef] = Field(default_factory=list)
    cart_items: List[CartItem] = Field(default_factory=list)
    cart_total: float = 0.0
    cart_item_count: int = 0
    history_length: int = 0
    last_query: Optional[str] = None
    last_response: Optional[str] = None
    last_activity: Optional[datetime] = None
    is_active: bool = True
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    version: int = 0


class SessionDuration(BaseModel):
    """Elapsed time between session start and end (or now)."""

    model_config = ConfigDict(frozen=True)

    minutes: int = 0
    seconds: int = 0
    formatted: str = "0m 0s"

    @classmethod
    def between(
        cls, start: Optional[datetime], end: Optional[datetime]
    ) -> "SessionDuration":
        if start is None or end is None:
            return cls()
        elapsed = max(int((end - start).total_seconds()), 0)
        minutes, seconds = divmod(elapsed, 60)
        return cls(minutes=minutes, seconds=seconds, formatted=f"{minutes}m {seconds}s")


class SessionSummary(BaseModel):
    """Analytics summary of a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    is_active: bool = True
    duration: SessionDuration = Field(default_factory=SessionDuration)
    topics_discussed: List[str] = Field(default_factory=list)
    products_viewed: List[ProductRef] = Field(default_factory=list)
    orders_viewed: List[OrderRef] = Field(default_factory=list)
    context_switches: int = 0
    history_length: int = 0
    cart_total: float = 0.0
    summary: str = ""


def topics_discussed(context: SessionContext, limit: int = 10) -> List[str]:
    """Current topic first, then the previous one, then the rest in turn order."""
    topics: List[str] = []
    candidates = [context.current_topic, context.previous_topic]
    candidates.extend(record.topic for record in context.conversation_history)
    for topic in candidates:
        if topic and topic not in topics:
            topics.append(topic)
    return topics[:limit]


def build_summary_text(context: SessionContext, limit: int = 10) -> str:
    """One-line human readable summary of a session."""
    topics = topics_discussed(context, limit)
    summary = "Customer session"
    if topics:
        summary += f" discussed: {', '.join(topics)}"
    if context.mentioned_products:
        summary += f". Viewed {len(context.mentioned_products)} product(s)"
    if context.context_switch_count > 0:
        summary += f". Changed topics {context.context_switch_count} time(s)"
    return summary


def summarize(
    context: SessionContext, now: Optional[datetime] = None, limit: int = 10
) -> SessionSummary:
    """Build a SessionSummary from a context."""
    end = context.session_end or now or utc_now()
    return SessionSummary(
        session_id=context.session_id,
        customer_id=context.customer_id,
        customer_name=context.customer_name,
        is_active=context.is_active,
        duration=SessionDuration.between(context.session_start, end),
        topics_discussed=topics_discussed(context, limit),
        products_viewed=list(context.mentioned_products),
        orders_viewed=list(context.mentioned_orders),
        context_switches=context.context_switch_count,
        history_length=context.history_length,
        cart_total=context.cart_total,
        summary=context.summary or build_summary_text(context, limit),
    )
