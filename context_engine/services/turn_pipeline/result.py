"""
Result object for the turn processing pipeline.

Returned by ContextService.process_turn. Carries the response for the
user, what the engine did with the message, and whether the merged
context was committed.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from context_engine.domain.models.resolution import ResolutionResult
from context_engine.domain.models.session_context import ContextSnapshot
from context_engine.domain.models.topic import TopicClassification


@dataclass
class TurnResult:
    """Result of processing a single turn.

    context_snapshot reflects the merged context even when persisted is
    False, so the caller still sees this turn's state. It is None only
    when the context could not be loaded at all.
    """

    session_id: str
    turn_number: int
    response: str
    resolved_message: str
    tools_used: List[str] = field(default_factory=list)
    resolution: Optional[ResolutionResult] = None
    topic_info: Optional[TopicClassification] = None
    context_snapshot: Optional[ContextSnapshot] = None
    persisted: bool = False
    persistence_error: Optional[str] = None
    version: int = 0
    used_fallback_message: bool = False
    degraded_stages: List[str] = field(default_factory=list)
    latency_ms: int = 0
    stage_timings: Dict[str, float] = field(default_factory=dict)

    @property
    def topic(self) -> Optional[str]:
        return self.topic_info.topic if self.topic_info else None

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_stages) or not self.persisted
