"""Tests for EntityTrackingStage contract integration."""

import pytest
from unittest.mock import MagicMock

from context_engine.core.config import TrackerConfig
from context_engine.domain.models import ToolExecution, ToolResult
from context_engine.services.entity_tracker import EntityTracker
from context_engine.services.turn_pipeline.stages.entity_tracking_stage import (
    EntityTrackingStage,
)


class TestEntityTrackingStageContract:
    @pytest.mark.asyncio
    async def test_tracks_tool_results(self, make_context):
        execution = ToolExecution(
            response="Here you go",
            tool_results=[
                ToolResult(
                    name="product_search",
                    data={"products": [{"id": "p1", "name": "Sony", "category": "headphones"}]},
                ),
                ToolResult(
                    name="add_to_cart",
                    data={"cart": {"product_id": "p1", "name": "Sony", "price": 349.0}},
                ),
            ],
        )
        stage = EntityTrackingStage(EntityTracker(TrackerConfig()))

        result = await stage.process(make_context("add sony", execution=execution))

        update = result.entity_update
        assert [p.product_id for p in update.products] == ["p1"]
        assert update.cart_deltas[0].quantity_delta == 1
        assert result.entity_tracking_output.degraded is False

    @pytest.mark.asyncio
    async def test_tracker_failure_degrades_to_empty_update(self, make_context):
        tracker = MagicMock()
        tracker.track.side_effect = KeyError("products")
        stage = EntityTrackingStage(tracker)

        result = await stage.process(
            make_context("hi", execution=ToolExecution(response="hello"))
        )

        assert result.entity_update.is_empty
        assert result.entity_tracking_output.degraded is True
        assert result.degraded_stages == ["entity_tracking"]

    @pytest.mark.asyncio
    async def test_requires_tool_execution(self, make_context):
        stage = EntityTrackingStage(EntityTracker(TrackerConfig()))

        with pytest.raises(RuntimeError, match="ToolExecutionStage"):
            await stage.process(make_context("hi"))
