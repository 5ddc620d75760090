"""
Entity extraction from tool results.

Turns the structured payloads of a turn's tool results into typed
mentions and cart deltas. Recognised payload keys:

    products: [{"id"|"productId"|"product_id", "name"|"title", "price", "category"}]
    orders:   [{"id"|"orderId"|"order_id"|"order_number", "status"}]
    cart:     {"action": "add"|"remove"|"update", "product_id", "name",
               "quantity", "unit_price"|"price", "quantity_delta"}  (or a list)

Tool names decide the default kind of a payload that is a bare list.
Malformed entries are skipped with a warning, never raised.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from context_engine.core.config import TrackerConfig, engine_config
from context_engine.domain.models.entities import (
    CartChange,
    CartClear,
    CartDelta,
    EntityUpdate,
    OrderRef,
    ProductRef,
    ToolResult,
)

log = structlog.get_logger(__name__)

PRODUCT_ID_KEYS = ("id", "productId", "product_id")
PRODUCT_NAME_KEYS = ("name", "title")
ORDER_ID_KEYS = ("id", "orderId", "order_id", "order_number")


def _first(entry: Dict[str, Any], keys: Sequence[str]) -> Optional[Any]:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class EntityTracker:
    """Extracts mentioned products, orders and cart changes from a turn."""

    def __init__(self, config: Optional[TrackerConfig] = None):
        self.config = config or engine_config.tracker

    def track(self, tool_results: Iterable[ToolResult]) -> EntityUpdate:
        """
        Build the turn's EntityUpdate.

        Args:
            tool_results: Results returned by the tool callback, in call order

        Returns:
            EntityUpdate with products, orders and cart deltas
        """
        products: List[ProductRef] = []
        orders: List[OrderRef] = []
        deltas: List[CartChange] = []

        for result in tool_results:
            if not result.surfaced:
                log.debug("tool_result_not_surfaced", tool=result.name)
                continue

            data = result.data or {}
            if isinstance(data, list):
                data = self._payload_for_list(result.name, data)

            products.extend(self._products(result.name, data.get("products")))
            orders.extend(self._orders(result.name, data.get("orders")))

            for delta in self._cart_deltas(result.name, data.get("cart")):
                deltas.append(delta)
                if isinstance(delta, CartDelta) and delta.quantity_delta > 0 and delta.name:
                    # Adding an item surfaces it to the user as well
                    products.append(
                        ProductRef(
                            product_id=delta.product_id,
                            name=delta.name,
                            price=delta.unit_price,
                        )
                    )

        update = EntityUpdate(products=products, orders=orders, cart_deltas=deltas)
        if not update.is_empty:
            log.debug(
                "entities_tracked",
                product_count=len(products),
                order_count=len(orders),
                cart_delta_count=len(deltas),
            )
        return update

    def _payload_for_list(self, tool: str, data: List[Any]) -> Dict[str, Any]:
        if tool in self.config.product_tools:
            return {"products": data}
        if tool in self.config.order_tools:
            return {"orders": data}
        if tool in self.config.cart_tools:
            return {"cart": data}
        log.warning("tool_payload_unrecognised", tool=tool)
        return {}

    # =========================================================================
    # Products and orders
    # =========================================================================

    def _products(self, tool: str, raw: Any) -> List[ProductRef]:
        products = []
        for entry in _as_list(raw):
            if not isinstance(entry, dict):
                log.warning("malformed_product_entry", tool=tool, entry=repr(entry))
                continue
            product_id = _first(entry, PRODUCT_ID_KEYS)
            name = _first(entry, PRODUCT_NAME_KEYS)
            if product_id is None or name is None:
                log.warning("malformed_product_entry", tool=tool, entry=repr(entry))
                continue
            try:
                price = entry.get("price")
                products.append(
                    ProductRef(
                        product_id=str(product_id),
                        name=str(name),
                        category=entry.get("category"),
                        price=float(price) if price is not None else None,
                    )
                )
            except (TypeError, ValueError) as e:
                log.warning(
                    "malformed_product_entry", tool=tool, entry=repr(entry), error=str(e)
                )
        return products

    def _orders(self, tool: str, raw: Any) -> List[OrderRef]:
        orders = []
        for entry in _as_list(raw):
            if isinstance(entry, str) and entry.strip():
                orders.append(OrderRef(order_id=entry.strip()))
                continue
            if not isinstance(entry, dict):
                log.warning("malformed_order_entry", tool=tool, entry=repr(entry))
                continue
            order_id = _first(entry, ORDER_ID_KEYS)
            if order_id is None:
                log.warning("malformed_order_entry", tool=tool, entry=repr(entry))
                continue
            status = entry.get("status")
            orders.append(
                OrderRef(
                    order_id=str(order_id),
                    status=str(status) if status is not None else None,
                )
            )
        return orders

    # =========================================================================
    # Cart
    # =========================================================================

    def _cart_deltas(self, tool: str, raw: Any) -> List[CartChange]:
        if not raw and self._action_for_tool(tool) == "clear":
            # clear_cart reports success or the now empty cart
            return [CartClear()]

        deltas: List[CartChange] = []
        for entry in _as_list(raw):
            if not isinstance(entry, dict):
                log.warning("malformed_cart_entry", tool=tool, entry=repr(entry))
                continue
            try:
                delta = self._cart_delta(tool, entry)
            except (TypeError, ValueError) as e:
                log.warning(
                    "malformed_cart_entry", tool=tool, entry=repr(entry), error=str(e)
                )
                continue
            if delta is not None:
                deltas.append(delta)
        return deltas

    def _cart_delta(self, tool: str, entry: Dict[str, Any]) -> Optional[CartChange]:
        action = str(entry.get("action") or self._action_for_tool(tool)).lower()
        if action == "clear":
            return CartClear()

        product_id = _first(entry, PRODUCT_ID_KEYS)
        if product_id is None:
            log.warning("malformed_cart_entry", tool=tool, entry=repr(entry))
            return None

        name = str(_first(entry, PRODUCT_NAME_KEYS) or "")
        price = entry.get("unit_price", entry.get("price"))
        unit_price = float(price) if price is not None else None
        quantity = entry.get("quantity")

        if "quantity_delta" in entry:
            return CartDelta(
                product_id=str(product_id),
                name=name,
                quantity_delta=int(entry["quantity_delta"]),
                unit_price=unit_price,
            )

        if action == "add":
            return CartDelta(
                product_id=str(product_id),
                name=name,
                quantity_delta=int(quantity) if quantity is not None else 1,
                unit_price=unit_price,
            )
        if action == "remove":
            if quantity is None:
                return CartDelta(product_id=str(product_id), name=name, remove_all=True)
            return CartDelta(
                product_id=str(product_id), name=name, quantity_delta=-int(quantity)
            )

        # "update" needs an explicit quantity_delta, handled above
        log.warning("unknown_cart_action", tool=tool, action=action)
        return None

    def _action_for_tool(self, tool: str) -> str:
        if tool == "remove_from_cart":
            return "remove"
        if tool == "add_to_cart":
            return "add"
        if tool == "clear_cart":
            return "clear"
        return ""
