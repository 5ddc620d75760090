"""Fixtures for stage contract tests.

make_context builds a PipelineContext with the loading and resolution
contracts already filled, which every later stage reads.
"""

import pytest

from context_engine.domain.models import SessionContext
from context_engine.domain.models.pipeline_contracts import (
    ContextLoadingOutput,
    ReferenceResolutionOutput,
    ToolExecutionOutput,
)
from context_engine.domain.models.resolution import ResolutionResult
from context_engine.services.turn_pipeline.context import PipelineContext


@pytest.fixture
def make_context():
    def _make(
        user_input="hello",
        session=None,
        resolution=None,
        execution=None,
        callback=None,
    ) -> PipelineContext:
        session = session or SessionContext(session_id="test-session")
        ctx = PipelineContext(
            session_id=session.session_id,
            user_input=user_input,
            tool_callback=callback,
        )
        ctx.context_loading_output = ContextLoadingOutput(
            context=session,
            turn_number=session.history_length + 1,
            is_new_session=session.version == 0,
        )
        ctx.reference_resolution_output = ReferenceResolutionOutput(
            resolution=resolution or ResolutionResult.unchanged(user_input)
        )
        if execution is not None:
            ctx.tool_execution_output = ToolExecutionOutput(
                execution=execution, message_used=ctx.resolved_message
            )
        return ctx

    return _make
