"""
Stage 5: Classify the turn's topic.

Runs on the message the tools finally ran with, the tools used and the
loaded context's topic. Also re-run by ContextPersistenceStage when a
commit conflict forces a replay against a fresher context.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from context_engine.domain.models.pipeline_contracts import TopicClassificationOutput

if TYPE_CHECKING:
    from ..context import PipelineContext
    from context_engine.services.topic_classifier import TopicClassifier

log = structlog.get_logger(__name__)


class TopicClassificationStage(TurnStage):
    """Assign a topic and detect a switch. Failure keeps the previous topic."""

    def __init__(self, classifier: "TopicClassifier"):
        self.classifier = classifier

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        previous_topic = context.loaded_context.current_topic

        try:
            classification = self.classifier.classify(
                context.message_used,
                context.tools_used,
                previous_topic,
            )
        except Exception as e:
            log.error(
                "stage_degraded",
                stage_name=self.stage_name,
                session_id=context.session_id,
                error=str(e),
                exc_info=True,
            )
            context.topic_classification_output = TopicClassificationOutput(
                degraded=True, error=str(e)
            )
            return context

        context.topic_classification_output = TopicClassificationOutput(
            classification=classification
        )

        log.info(
            "topic_classified",
            session_id=context.session_id,
            topic=classification.topic,
            is_switch=classification.is_switch,
            confidence=classification.confidence,
            low_confidence=classification.low_confidence,
        )
        return context
