"""Domain models package."""

from .entities import (
    CartChange,
    CartClear,
    CartDelta,
    CartItem,
    EntityUpdate,
    OrderRef,
    ProductRef,
    ToolExecution,
    ToolResult,
)
from .resolution import ResolutionResult
from .session_context import (
    ContextSnapshot,
    SessionContext,
    SessionDuration,
    SessionSummary,
    TurnRecord,
)
from .topic import Topic, TopicClassification

__all__ = [
    "CartChange",
    "CartClear",
    "CartDelta",
    "CartItem",
    "EntityUpdate",
    "OrderRef",
    "ProductRef",
    "ToolExecution",
    "ToolResult",
    "ResolutionResult",
    "ContextSnapshot",
    "SessionContext",
    "SessionDuration",
    "SessionSummary",
    "TurnRecord",
    "Topic",
    "TopicClassification",
]
