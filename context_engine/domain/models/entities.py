"""Entity and tool-result models exchanged between the agent layer and the engine.

Core Models:
    - ProductRef / OrderRef: entities surfaced to the user in a turn
    - CartItem: one cart line keyed by product id
    - CartDelta: tagged quantity change for one cart line
    - CartClear: tagged instruction to empty the whole cart
    - EntityUpdate: everything the EntityTracker extracted from a turn
    - ToolResult / ToolExecution: what the external tool callback returns

Refs and deltas are frozen. Context merges build new collections
instead of editing entries in place.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time used for all engine timestamps."""
    return datetime.now(timezone.utc)


class ProductRef(BaseModel):
    """A product the user has seen in a response."""

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1, description="Display name used for substitution")
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0.0)


class OrderRef(BaseModel):
    """An order the user has looked up."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(min_length=1)
    status: Optional[str] = None
    mentioned_at: datetime = Field(default_factory=utc_now)


class CartItem(BaseModel):
    """One cart line. Quantity is always at least 1."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(default=0.0, ge=0.0)

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


class CartDelta(BaseModel):
    """Tagged cart change.

    quantity_delta is applied additively. remove_all drops the line
    whatever its quantity (a plain "remove X from cart").
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["cart_delta"] = "cart_delta"
    product_id: str = Field(min_length=1)
    name: str = ""
    quantity_delta: int = 0
    unit_price: Optional[float] = Field(default=None, ge=0.0)
    remove_all: bool = False


class CartClear(BaseModel):
    """Tagged cart change that empties every line."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cart_clear"] = "cart_clear"


CartChange = Annotated[Union[CartDelta, CartClear], Field(discriminator="kind")]


class EntityUpdate(BaseModel):
    """Per-turn output of the EntityTracker."""

    model_config = ConfigDict(frozen=True)

    products: List[ProductRef] = Field(default_factory=list)
    orders: List[OrderRef] = Field(default_factory=list)
    cart_deltas: List[CartChange] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.products or self.orders or self.cart_deltas)


class ToolResult(BaseModel):
    """Result of one tool invocation made by the agent layer.

    Attributes:
        name: Tool name (e.g. "product_search", "track_order")
        input: Input the agent passed to the tool
        output: Text output of the tool
        data: Structured payload. Recognised keys are "products",
            "orders" and "cart". A bare list is read according to
            the tool's configured entity kind.
        surfaced: Whether the result was shown to the user. Results
            that were only considered internally produce no mentions.
        matched: Whether the tool found anything for its input
    """

    name: str
    input: str = ""
    output: str = ""
    data: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict)
    surfaced: bool = True
    matched: bool = True


class ToolExecution(BaseModel):
    """Return value of the tool execution callback."""

    response: str
    tool_results: List[ToolResult] = Field(default_factory=list)

    @property
    def tools_used(self) -> List[str]:
        """Tool names in invocation order, without repeats."""
        seen: List[str] = []
        for result in self.tool_results:
            if result.name not in seen:
                seen.append(result.name)
        return seen

    @property
    def has_match(self) -> bool:
        return any(result.matched for result in self.tool_results)
