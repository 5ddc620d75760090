"""
Turn processing pipeline context for contract-based state accumulation.

Carries state through all pipeline stages, accumulating the contract
outputs of each stage. Convenience properties derive from the contracts
and raise RuntimeError when read before the producing stage completed.

Stage outputs (contracts):
- Stage 1: ContextLoadingOutput - context as loaded, turn number
- Stage 2: ReferenceResolutionOutput - resolved message
- Stage 3: ToolExecutionOutput - response and tool results from the callback
- Stage 4: EntityTrackingOutput - mentions and cart deltas
- Stage 5: TopicClassificationOutput - topic and switch flag
- Stage 6: ContextUpdateOutput - merged context and history record
- Stage 7: ContextPersistenceOutput - commit outcome
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from context_engine.domain.models.entities import EntityUpdate, ToolExecution
from context_engine.domain.models.pipeline_contracts import (
    ContextLoadingOutput,
    ContextPersistenceOutput,
    ContextUpdateOutput,
    EntityTrackingOutput,
    ReferenceResolutionOutput,
    TopicClassificationOutput,
    ToolExecutionOutput,
)
from context_engine.domain.models.resolution import ResolutionResult
from context_engine.domain.models.session_context import SessionContext
from context_engine.domain.models.topic import TopicClassification
from context_engine.services.protocols import ToolCallback


@dataclass
class PipelineContext:
    """Pipeline context for one turn.

    Input parameters are set at creation. Each stage fills in its own
    contract output and nothing else.
    """

    # =============================================================================
    # Input parameters (immutable after creation)
    # =============================================================================
    session_id: str
    user_input: str
    tool_callback: Optional[ToolCallback] = None
    started_at: float = field(default_factory=time.perf_counter)

    # =============================================================================
    # Stage Outputs (Contracts)
    # =============================================================================

    # Stage 1: ContextLoadingStage output
    context_loading_output: Optional[ContextLoadingOutput] = None

    # Stage 2: ReferenceResolutionStage output
    reference_resolution_output: Optional[ReferenceResolutionOutput] = None

    # Stage 3: ToolExecutionStage output
    tool_execution_output: Optional[ToolExecutionOutput] = None

    # Stage 4: EntityTrackingStage output
    entity_tracking_output: Optional[EntityTrackingOutput] = None

    # Stage 5: TopicClassificationStage output
    topic_classification_output: Optional[TopicClassificationOutput] = None

    # Stage 6: ContextUpdateStage output
    context_update_output: Optional[ContextUpdateOutput] = None

    # Stage 7: ContextPersistenceStage output
    context_persistence_output: Optional[ContextPersistenceOutput] = None

    # Per-stage durations in milliseconds, filled by TurnPipeline
    stage_timings: Dict[str, float] = field(default_factory=dict)

    # =============================================================================
    # Convenience Properties (derive from contracts, don't duplicate state)
    # =============================================================================

    def _violation(self, name: str, stage: str) -> RuntimeError:
        return RuntimeError(
            f"Pipeline contract violation: {name} accessed before "
            f"{stage} completed. Session: {self.session_id}"
        )

    @property
    def loaded_context(self) -> SessionContext:
        """Context as read from the store (Stage 1)."""
        if self.context_loading_output:
            return self.context_loading_output.context
        raise self._violation("loaded_context", "ContextLoadingStage (Stage 1)")

    @property
    def turn_number(self) -> int:
        """1-indexed number of the turn being processed (Stage 1)."""
        if self.context_loading_output:
            return self.context_loading_output.turn_number
        raise self._violation("turn_number", "ContextLoadingStage (Stage 1)")

    @property
    def resolution(self) -> ResolutionResult:
        if self.reference_resolution_output:
            return self.reference_resolution_output.resolution
        raise self._violation("resolution", "ReferenceResolutionStage (Stage 2)")

    @property
    def resolved_message(self) -> str:
        """Message the turn was answered from.

        After Stage 3 this is the message the callback finally ran with, so a
        resolution dropped by the fallback re-run is not reported. Before
        that it is the resolved text, or the raw input if not yet resolved.
        """
        if self.tool_execution_output:
            return self.tool_execution_output.message_used
        if self.reference_resolution_output:
            return self.reference_resolution_output.resolution.resolved
        return self.user_input

    @property
    def tool_execution(self) -> ToolExecution:
        if self.tool_execution_output:
            return self.tool_execution_output.execution
        raise self._violation("tool_execution", "ToolExecutionStage (Stage 3)")

    @property
    def message_used(self) -> str:
        """Message the tool callback finally ran with (Stage 3)."""
        if self.tool_execution_output:
            return self.tool_execution_output.message_used
        raise self._violation("message_used", "ToolExecutionStage (Stage 3)")

    @property
    def response(self) -> str:
        return self.tool_execution.response

    @property
    def tools_used(self) -> List[str]:
        return self.tool_execution.tools_used

    @property
    def entity_update(self) -> EntityUpdate:
        if self.entity_tracking_output:
            return self.entity_tracking_output.update
        raise self._violation("entity_update", "EntityTrackingStage (Stage 4)")

    @property
    def classification(self) -> Optional[TopicClassification]:
        """Topic verdict (Stage 5). None when classification degraded."""
        if self.topic_classification_output:
            return self.topic_classification_output.classification
        raise self._violation("classification", "TopicClassificationStage (Stage 5)")

    @property
    def merged_context(self) -> SessionContext:
        if self.context_update_output:
            return self.context_update_output.context
        raise self._violation("merged_context", "ContextUpdateStage (Stage 6)")

    @property
    def degraded_stages(self) -> List[str]:
        """Stages that failed and were degraded, in pipeline order."""
        flags = [
            ("reference_resolution", self.reference_resolution_output),
            ("tool_execution", self.tool_execution_output),
            ("entity_tracking", self.entity_tracking_output),
            ("topic_classification", self.topic_classification_output),
            ("context_update", self.context_update_output),
        ]
        names = []
        for name, output in flags:
            if output is None:
                continue
            failed = getattr(output, "degraded", False) or getattr(output, "failed", False)
            if failed:
                names.append(name)
        return names

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds since the turn started."""
        return int((time.perf_counter() - self.started_at) * 1000)
