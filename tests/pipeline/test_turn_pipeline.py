"""Tests for TurnPipeline orchestration."""

import pytest

from context_engine.domain.models import ToolExecution
from context_engine.services.turn_pipeline import (
    PipelineContext,
    TurnPipeline,
    TurnResult,
    TurnStage,
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
from context_engine.services.context_updater import ContextUpdater
from context_engine.services.entity_tracker import EntityTracker
from context_engine.services.reference_resolver import ReferenceResolver
from context_engine.services.topic_classifier import TopicClassifier


class RecordingStage(TurnStage):
    def __init__(self, name, calls):
        self.name = name
        self.calls = calls

    @property
    def stage_name(self) -> str:
        return self.name

    async def process(self, context):
        self.calls.append(self.name)
        return context


class FailingStage(TurnStage):
    async def process(self, context):
        raise LookupError("stage blew up")


@pytest.fixture
def full_pipeline(memory_store, engine_config):
    classification = TopicClassificationStage(TopicClassifier(engine_config.topics))
    update = ContextUpdateStage(ContextUpdater(engine_config.session))
    return TurnPipeline(
        [
            ContextLoadingStage(memory_store),
            ReferenceResolutionStage(ReferenceResolver(engine_config.resolver)),
            ToolExecutionStage(engine_config.session.fallback_response),
            EntityTrackingStage(EntityTracker(engine_config.tracker)),
            classification,
            update,
            ContextPersistenceStage(memory_store, replay_stages=[classification, update]),
        ]
    )


class TestTurnPipeline:
    @pytest.mark.asyncio
    async def test_stages_run_in_order_with_timings(self):
        calls = []
        pipeline = TurnPipeline([RecordingStage("first", calls), RecordingStage("second", calls)])

        result = await pipeline.execute(PipelineContext(session_id="s1", user_input="hi"))

        assert calls == ["first", "second"]
        assert set(result.stage_timings) == {"first", "second"}
        # Partial pipeline: nothing loaded, merged or persisted
        assert isinstance(result, TurnResult)
        assert result.context_snapshot is None
        assert result.persisted is False
        assert result.response == ""
        assert result.resolved_message == "hi"

    @pytest.mark.asyncio
    async def test_stage_exception_propagates(self):
        calls = []
        pipeline = TurnPipeline([FailingStage(), RecordingStage("after", calls)])

        with pytest.raises(LookupError):
            await pipeline.execute(PipelineContext(session_id="s1", user_input="hi"))

        assert calls == []

    @pytest.mark.asyncio
    async def test_full_pipeline_result(self, full_pipeline, agent, memory_store):
        context = PipelineContext(
            session_id="s1", user_input="Show me Sony headphones", tool_callback=agent
        )

        result = await full_pipeline.execute(context)

        assert result.turn_number == 1
        assert result.topic == "products"
        assert result.tools_used == ["product_search"]
        assert result.persisted is True
        assert result.version == 1
        assert result.context_snapshot.version == 1
        assert result.context_snapshot.history_length == 1
        assert result.is_degraded is False
        assert len(result.stage_timings) == 7
        assert (await memory_store.load("s1")).version == 1

    @pytest.mark.asyncio
    async def test_greeting_through_pipeline(self, full_pipeline):
        async def callback(message, snapshot):
            return ToolExecution(response=f"echo: {message}")

        result = await full_pipeline.execute(
            PipelineContext(session_id="s2", user_input="hello", tool_callback=callback)
        )

        assert result.response == "echo: hello"
        assert result.topic == "general"
        assert result.topic_info.is_greeting is True
