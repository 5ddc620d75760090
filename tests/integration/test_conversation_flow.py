"""End-to-end conversations through ContextService with the scripted agent."""

import pytest

from context_engine.domain.models import ToolExecution, ToolResult


async def run(service, agent, session_id, messages):
    results = []
    for message in messages:
        results.append(await service.process_turn(session_id, message, agent))
    return results


class TestReferenceFollowUp:
    """Turn 2 refers back to the headphones surfaced in turn 1."""

    @pytest.mark.asyncio
    async def test_those_headphones_resolve_to_mentioned_model(self, service, agent):
        first, second = await run(
            service,
            agent,
            "s1",
            ["Show me Sony headphones", "What's the price of those headphones?"],
        )

        assert second.resolution.applied is True
        assert second.resolved_message == (
            "What's the price of Sony WH-1000XM4 Wireless Headphones?"
        )
        assert agent.messages[1] == second.resolved_message
        assert first.topic == "products"
        assert second.topic == "products"

        snapshot = await service.get_context("s1")
        assert snapshot.current_topic == "products"
        assert snapshot.context_switch_count == 0
        assert snapshot.history_length == 2

    @pytest.mark.asyncio
    async def test_first_turn_has_nothing_to_resolve(self, service, agent):
        (result,) = await run(service, agent, "s1", ["show me those"])

        assert result.resolution.applied is False
        assert agent.messages == ["show me those"]


class TestTopicSwitching:
    @pytest.mark.asyncio
    async def test_products_orders_products(self, service, agent):
        results = await run(
            service,
            agent,
            "s1",
            ["Show me Sony headphones", "Track order ORD001", "Show me Apple AirPods"],
        )

        assert [r.topic for r in results] == ["products", "orders", "products"]
        assert [r.topic_info.is_switch for r in results] == [False, True, True]

        snapshot = await service.get_context("s1")
        assert snapshot.context_switch_count == 2
        assert [p.product_id for p in snapshot.mentioned_products] == [
            "sony-wh1000xm4",
            "apple-airpods-pro",
        ]
        assert snapshot.mentioned_orders[0].order_id == "ORD001"
        assert snapshot.mentioned_orders[0].status == "shipped"

    @pytest.mark.asyncio
    async def test_greeting_is_not_a_switch(self, service, agent):
        results = await run(
            service, agent, "s1", ["Track order ORD001", "Thanks!", "Where is order ORD001"]
        )

        assert [r.topic for r in results] == ["orders", "orders", "orders"]
        assert (await service.get_context("s1")).context_switch_count == 0

    @pytest.mark.asyncio
    async def test_order_reference_resolves_to_last_order(self, service, agent):
        results = await run(
            service, agent, "s1", ["Track order ORD001", "Has my order shipped yet?"]
        )

        assert results[1].resolved_message == "Has order ORD001 shipped yet?"
        assert results[1].tools_used == ["track_order"]


class TestCart:
    @pytest.mark.asyncio
    async def test_add_add_remove(self, service, agent):
        results = await run(
            service,
            agent,
            "s1",
            [
                "Add Sony headphones to my cart",
                "Add Apple AirPods to my cart",
                "Remove the Sony headphones from my cart",
            ],
        )

        assert [r.tools_used for r in results] == [
            ["add_to_cart"],
            ["add_to_cart"],
            ["remove_from_cart"],
        ]
        snapshot = results[-1].context_snapshot
        assert [item.product_id for item in snapshot.cart_items] == ["apple-airpods-pro"]
        assert snapshot.cart_items[0].quantity == 1
        assert snapshot.cart_total == 249.0
        assert snapshot.current_topic == "cart"

    @pytest.mark.asyncio
    async def test_clear_cart_empties_every_line(self, service, agent):
        results = await run(
            service,
            agent,
            "s1",
            [
                "Add Sony headphones to my cart",
                "Add Apple AirPods to my cart",
                "Clear my cart",
            ],
        )

        assert results[1].context_snapshot.cart_item_count == 2
        assert results[-1].tools_used == ["clear_cart"]
        snapshot = results[-1].context_snapshot
        assert snapshot.cart_items == []
        assert snapshot.cart_total == 0.0
        assert snapshot.current_topic == "cart"
        # Earlier mentions survive the clear
        assert len(snapshot.mentioned_products) == 2

    @pytest.mark.asyncio
    async def test_add_them_after_search(self, service, agent):
        results = await run(
            service, agent, "s1", ["Show me Apple AirPods", "Add them to my cart"]
        )

        assert results[1].resolved_message == "Add Apple AirPods Pro to my cart"
        assert results[1].context_snapshot.cart_item_count == 1


class TestResolutionFallback:
    @pytest.mark.asyncio
    async def test_unmatched_resolution_retries_original_message(self, service, agent):
        await service.process_turn("s1", "Show me Sony headphones", agent)
        calls = []

        async def picky_agent(message, snapshot):
            calls.append(message)
            matched = "those" in message
            return ToolExecution(
                response="Found it." if matched else "No results.",
                tool_results=[
                    ToolResult(name="product_search", input=message, matched=matched)
                ],
            )

        result = await service.process_turn("s1", "Compare those headphones", picky_agent)

        assert calls == [
            "Compare Sony WH-1000XM4 Wireless Headphones",
            "Compare those headphones",
        ]
        assert result.used_fallback_message is True
        assert result.response == "Found it."
        assert result.resolved_message == "Compare those headphones"
        history = (await service.store.load("s1")).conversation_history
        assert history[-1].input == "Compare those headphones"
        assert history[-1].resolved_input is None


class TestSnapshotHandedToAgent:
    @pytest.mark.asyncio
    async def test_agent_sees_context_before_the_turn(self, service, agent):
        await run(service, agent, "s1", ["Show me Sony headphones", "Track order ORD001"])

        first_snapshot = agent.calls[0][1]
        second_snapshot = agent.calls[1][1]
        assert first_snapshot.history_length == 0
        assert second_snapshot.history_length == 1
        assert second_snapshot.current_topic == "products"


@pytest.mark.asyncio
async def test_conversation_on_sqlite(sqlite_service, agent):
    results = await run(
        sqlite_service,
        agent,
        "sql-1",
        ["Show me Sony headphones", "Track order ORD001", "Show me Apple AirPods"],
    )

    assert all(r.persisted for r in results)
    assert [r.version for r in results] == [1, 2, 3]
    snapshot = await sqlite_service.get_context("sql-1")
    assert snapshot.context_switch_count == 2
    assert snapshot.version == 3
