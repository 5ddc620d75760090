#!/usr/bin/env python3
"""
Drive a scripted shopping conversation through the context engine.

Uses a small in-script catalog in place of the real agent layer, so the
resolver, classifier, tracker and cart can be watched turn by turn.

Usage:
    python scripts/run_demo_conversation.py
    python scripts/run_demo_conversation.py --memory
    python scripts/run_demo_conversation.py --session-id demo_1
"""

import argparse
import asyncio
import re
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure logging first (before importing other modules)
from context_engine.core.logging import configure_logging

configure_logging()

from context_engine.core.config import Settings
from context_engine.domain.models import ContextSnapshot, ToolExecution, ToolResult
from context_engine.services.context_service import create_context_service

CATALOG = [
    {
        "id": "sony-wh1000xm4",
        "name": "Sony WH-1000XM4 Wireless Headphones",
        "category": "headphones",
        "price": 349.0,
    },
    {
        "id": "apple-airpods-pro",
        "name": "Apple AirPods Pro",
        "category": "earbuds",
        "price": 249.0,
    },
]

ORDERS = {"ORD001": "shipped", "ORD002": "processing"}

SCRIPT = [
    "Hi there",
    "Show me Sony headphones",
    "What's the price of those headphones?",
    "Add them to my cart",
    "Track order ORD001",
    "Show me Apple AirPods",
    "Add it to my cart",
    "Remove the headphones from my cart",
    "Thanks!",
]


def _find_products(message: str) -> list:
    text = message.lower()
    return [
        p
        for p in CATALOG
        if p["name"].lower() in text
        or p["category"] in text
        or any(word in text for word in p["name"].lower().split()[:1])
    ]


async def demo_agent(message: str, snapshot: ContextSnapshot) -> ToolExecution:
    """Stand-in for the agent layer: keyword routing over the demo catalog."""
    text = message.lower()
    order_ids = re.findall(r"\bORD\d+\b", message, re.IGNORECASE)
    products = _find_products(message)

    if order_ids:
        order_id = order_ids[0].upper()
        status = ORDERS.get(order_id)
        return ToolExecution(
            response=(
                f"Order {order_id} is {status}." if status else f"I couldn't find {order_id}."
            ),
            tool_results=[
                ToolResult(
                    name="track_order",
                    input=order_id,
                    data={"orders": [{"order_id": order_id, "status": status}]}
                    if status
                    else {},
                    matched=status is not None,
                )
            ],
        )

    if "cart" in text and products and ("add" in text or "remove" in text):
        product = products[0]
        action = "add" if "add" in text else "remove"
        tool = "add_to_cart" if action == "add" else "remove_from_cart"
        verb = "Added" if action == "add" else "Removed"
        return ToolExecution(
            response=f"{verb} {product['name']} {'to' if action == 'add' else 'from'} your cart.",
            tool_results=[
                ToolResult(
                    name=tool,
                    input=product["id"],
                    data={
                        "cart": {
                            "action": action,
                            "product_id": product["id"],
                            "name": product["name"],
                            "price": product["price"],
                        }
                    },
                )
            ],
        )

    if products:
        listing = ", ".join(f"{p['name']} (${p['price']:.0f})" for p in products)
        return ToolExecution(
            response=f"Here's what I found: {listing}.",
            tool_results=[
                ToolResult(name="product_search", input=message, data={"products": products})
            ],
        )

    return ToolExecution(response="Happy to help! What are you looking for today?")


async def main(args: argparse.Namespace) -> None:
    app_settings = Settings(store_backend="memory") if args.memory else Settings()
    service = await create_context_service(app_settings)

    snapshot = await service.start_session(
        customer_id="demo-customer", customer_name="Demo", session_id=args.session_id
    )
    session_id = snapshot.session_id
    print(f"Session: {session_id}\n")

    for message in SCRIPT:
        result = await service.process_turn(session_id, message, demo_agent)
        topic = result.topic_info
        print(f"USER:      {message}")
        if result.resolution and result.resolution.applied:
            print(f"RESOLVED:  {result.resolved_message}")
        print(f"AGENT:     {result.response}")
        if topic:
            switch = " (switch)" if topic.is_switch else ""
            print(f"TOPIC:     {topic.topic}{switch} confidence={topic.confidence}")
        if result.context_snapshot:
            print(
                f"CART:      {result.context_snapshot.cart_item_count} item(s), "
                f"${result.context_snapshot.cart_total:.2f}"
            )
        print()

    summary = await service.close_session(session_id)
    print("=" * 60)
    print(summary.summary)
    print(f"Duration: {summary.duration.formatted}")
    print(f"Context switches: {summary.context_switches}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a scripted demo conversation")
    parser.add_argument("--session-id", default=None, help="Session ID (generated if omitted)")
    parser.add_argument(
        "--memory", action="store_true", help="Use the in-memory store instead of SQLite"
    )
    asyncio.run(main(parser.parse_args()))
