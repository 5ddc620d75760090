"""
Shared test fixtures.

Provides a temporary SQLite database, both session stores, a small
product catalog and a scripted tool callback standing in for the agent
layer.
"""

import re
import tempfile
from pathlib import Path
from typing import List
from unittest.mock import patch

import pytest

from context_engine.core.config import EngineConfig
from context_engine.domain.models import ContextSnapshot, ToolExecution, ToolResult
from context_engine.persistence.database import init_database
from context_engine.persistence.repositories import (
    ContextRepository,
    InMemoryContextRepository,
)
from context_engine.services.context_service import ContextService

SONY = {
    "id": "sony-wh1000xm4",
    "name": "Sony WH-1000XM4 Wireless Headphones",
    "category": "headphones",
    "price": 349.0,
}
AIRPODS = {
    "id": "apple-airpods-pro",
    "name": "Apple AirPods Pro",
    "category": "earbuds",
    "price": 249.0,
}
CATALOG = [SONY, AIRPODS]


class ScriptedAgent:
    """Keyword-routed stand-in for the agent layer.

    Records every (message, snapshot) it was called with.
    """

    def __init__(self):
        self.calls: List[tuple] = []

    async def __call__(self, message: str, snapshot: ContextSnapshot) -> ToolExecution:
        self.calls.append((message, snapshot))
        text = message.lower()

        order_ids = re.findall(r"\bORD\d+\b", message, re.IGNORECASE)
        if order_ids:
            order_id = order_ids[0].upper()
            return ToolExecution(
                response=f"Order {order_id} has shipped.",
                tool_results=[
                    ToolResult(
                        name="track_order",
                        input=order_id,
                        data={"orders": [{"order_id": order_id, "status": "shipped"}]},
                    )
                ],
            )

        if "cart" in text and "clear" in text:
            return ToolExecution(
                response="Your cart is now empty.",
                tool_results=[ToolResult(name="clear_cart", data={"success": True})],
            )

        products = [
            p for p in CATALOG
            if p["name"].lower().split()[0] in text or p["category"] in text
        ]

        if "cart" in text and products:
            product = products[0]
            if "remove" in text:
                name, data = "remove_from_cart", {
                    "cart": {"action": "remove", "product_id": product["id"], "quantity": 1}
                }
            else:
                name, data = "add_to_cart", {
                    "cart": {
                        "action": "add",
                        "product_id": product["id"],
                        "name": product["name"],
                        "quantity": 1,
                        "price": product["price"],
                    }
                }
            return ToolExecution(
                response=f"Updated your cart: {product['name']}.",
                tool_results=[ToolResult(name=name, input=product["id"], data=data)],
            )

        if products:
            return ToolExecution(
                response="Here's what I found: "
                + ", ".join(f"{p['name']} (${p['price']:.0f})" for p in products),
                tool_results=[
                    ToolResult(name="product_search", input=message, data={"products": products})
                ],
            )

        return ToolExecution(response="How can I help you today?")

    @property
    def messages(self) -> List[str]:
        return [message for message, _ in self.calls]


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from context_engine.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("context_engine.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
def sqlite_store(test_db):
    """SQLite-backed session store on the test database."""
    return ContextRepository(str(test_db))


@pytest.fixture
def memory_store():
    """In-memory session store."""
    return InMemoryContextRepository()


@pytest.fixture
def engine_config():
    """Built-in engine rules, independent of config/context_engine.yaml."""
    return EngineConfig()


@pytest.fixture
def agent():
    return ScriptedAgent()


@pytest.fixture
def service(memory_store, engine_config):
    """ContextService over the in-memory store."""
    return ContextService(store=memory_store, config=engine_config, max_retries=3)


@pytest.fixture
def sqlite_service(sqlite_store, engine_config):
    """ContextService over the SQLite store."""
    return ContextService(store=sqlite_store, config=engine_config, max_retries=3)
