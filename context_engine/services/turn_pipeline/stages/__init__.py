"""
Pipeline stages for turn processing.

Each stage encapsulates one logical step of turn processing, from context
loading through the commit. Stages execute sequentially in the
TurnPipeline orchestrator.
"""

from .context_loading_stage import ContextLoadingStage
from .reference_resolution_stage import ReferenceResolutionStage
from .tool_execution_stage import ToolExecutionStage
from .entity_tracking_stage import EntityTrackingStage
from .topic_classification_stage import TopicClassificationStage
from .context_update_stage import ContextUpdateStage
from .context_persistence_stage import ContextPersistenceStage

__all__ = [
    "ContextLoadingStage",
    "ReferenceResolutionStage",
    "ToolExecutionStage",
    "EntityTrackingStage",
    "TopicClassificationStage",
    "ContextUpdateStage",
    "ContextPersistenceStage",
]
