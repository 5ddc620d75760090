"""Context engine services."""

from context_engine.services.context_service import ContextService, create_context_service
from context_engine.services.context_updater import ContextUpdater
from context_engine.services.entity_tracker import EntityTracker
from context_engine.services.reference_resolver import ReferenceResolver
from context_engine.services.session_lock import SessionLockManager
from context_engine.services.topic_classifier import TopicClassifier

__all__ = [
    "ContextService",
    "create_context_service",
    "ContextUpdater",
    "EntityTracker",
    "ReferenceResolver",
    "SessionLockManager",
    "TopicClassifier",
]
