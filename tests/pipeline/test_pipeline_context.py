"""Tests for PipelineContext contract accessors."""

import pytest

from context_engine.domain.models import SessionContext, ToolExecution
from context_engine.domain.models.pipeline_contracts import (
    EntityTrackingOutput,
    ReferenceResolutionOutput,
    ToolExecutionOutput,
    TopicClassificationOutput,
)
from context_engine.domain.models.resolution import ResolutionResult
from context_engine.services.turn_pipeline.context import PipelineContext


class TestContractAccessors:
    @pytest.mark.parametrize(
        "attribute",
        [
            "loaded_context",
            "turn_number",
            "resolution",
            "tool_execution",
            "message_used",
            "response",
            "tools_used",
            "entity_update",
            "classification",
            "merged_context",
        ],
    )
    def test_read_before_stage_raises(self, attribute):
        context = PipelineContext(session_id="s1", user_input="hi")

        with pytest.raises(RuntimeError, match="Pipeline contract violation"):
            getattr(context, attribute)

    def test_resolved_message_defaults_to_input(self):
        context = PipelineContext(session_id="s1", user_input="show me those")
        assert context.resolved_message == "show me those"

    def test_resolved_message_follows_fallback_rerun(self):
        context = PipelineContext(session_id="s1", user_input="Compare those headphones")
        context.reference_resolution_output = ReferenceResolutionOutput(
            resolution=ResolutionResult(
                original="Compare those headphones",
                resolved="Compare Sony WH-1000XM4",
                applied=True,
            )
        )
        assert context.resolved_message == "Compare Sony WH-1000XM4"

        context.tool_execution_output = ToolExecutionOutput(
            execution=ToolExecution(response="Found it."),
            message_used="Compare those headphones",
            used_fallback_message=True,
        )

        assert context.resolved_message == "Compare those headphones"

    def test_accessors_read_contracts(self, make_context):
        context = make_context(
            "hi", session=SessionContext(session_id="s1", current_topic="cart"),
            execution=ToolExecution(response="hello"),
        )

        assert context.loaded_context.current_topic == "cart"
        assert context.turn_number == 1
        assert context.response == "hello"
        assert context.tools_used == []
        assert context.message_used == "hi"


class TestDegradedStages:
    def test_empty_without_outputs(self):
        assert PipelineContext(session_id="s1", user_input="hi").degraded_stages == []

    def test_listed_in_pipeline_order(self):
        context = PipelineContext(session_id="s1", user_input="hi")
        context.topic_classification_output = TopicClassificationOutput(degraded=True)
        context.entity_tracking_output = EntityTrackingOutput(degraded=True)
        context.reference_resolution_output = ReferenceResolutionOutput(
            resolution=ResolutionResult.unchanged("hi"), degraded=True
        )

        assert context.degraded_stages == [
            "reference_resolution",
            "entity_tracking",
            "topic_classification",
        ]

    def test_elapsed_ms_non_negative(self):
        assert PipelineContext(session_id="s1", user_input="hi").elapsed_ms >= 0
