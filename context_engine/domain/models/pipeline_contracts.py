"""Pipeline stage contracts.

Formalized Pydantic models for stage outputs to provide type safety and
runtime validation for the turn processing pipeline.

Stages that may degrade carry `degraded` and `error` so the updater can
record which steps failed without aborting the turn.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from context_engine.domain.models.entities import EntityUpdate, ToolExecution
from context_engine.domain.models.resolution import ResolutionResult
from context_engine.domain.models.session_context import SessionContext, TurnRecord
from context_engine.domain.models.topic import TopicClassification


class ContextLoadingOutput(BaseModel):
    """Contract: ContextLoadingStage output (Stage 1).

    Holds the context as read from the store. Its version is the
    expected version for the commit.
    """

    context: SessionContext = Field(description="Context as loaded from the store")
    turn_number: int = Field(ge=1, description="1-indexed number of the turn being processed")
    is_new_session: bool = Field(description="No record existed for this session id")
    loaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the context was read (for freshness checks on retry)",
    )


class ReferenceResolutionOutput(BaseModel):
    """Contract: ReferenceResolutionStage output (Stage 2)."""

    resolution: ResolutionResult
    degraded: bool = False
    error: Optional[str] = None


class ToolExecutionOutput(BaseModel):
    """Contract: ToolExecutionStage output (Stage 3).

    message_used is the message the final callback run received. It is
    the original message when resolution was applied but produced no tool
    match.
    """

    execution: ToolExecution
    message_used: str
    used_fallback_message: bool = False
    failed: bool = False
    error: Optional[str] = None


class EntityTrackingOutput(BaseModel):
    """Contract: EntityTrackingStage output (Stage 4)."""

    update: EntityUpdate = Field(default_factory=EntityUpdate)
    degraded: bool = False
    error: Optional[str] = None


class TopicClassificationOutput(BaseModel):
    """Contract: TopicClassificationStage output (Stage 5).

    classification is None only when the classifier failed. The updater
    then keeps the previous topic.
    """

    classification: Optional[TopicClassification] = None
    degraded: bool = False
    error: Optional[str] = None


class ContextUpdateOutput(BaseModel):
    """Contract: ContextUpdateStage output (Stage 6)."""

    context: SessionContext = Field(description="Merged context, not yet persisted")
    record: TurnRecord = Field(description="History record appended this turn")
    degraded: bool = False
    error: Optional[str] = None


class ContextPersistenceOutput(BaseModel):
    """Contract: ContextPersistenceStage output (Stage 7)."""

    persisted: bool
    version: int = Field(ge=0, description="Stored version after the commit")
    attempts: int = Field(default=1, ge=1)
    error: Optional[str] = None
