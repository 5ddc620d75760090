"""Topic classification models."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Topic(str, Enum):
    """Built-in topic labels. The rule table may add more."""

    PRODUCTS = "products"
    ORDERS = "orders"
    CART = "cart"
    RETURNS = "returns"
    BILLING = "billing"
    SUPPORT = "support"
    GENERAL = "general"


class TopicClassification(BaseModel):
    """Classifier verdict for one turn.

    Fields:
        - topic: Label assigned to this turn
        - previous_topic: Topic of the prior turn (None on the first turn)
        - is_switch: topic differs from a non-null previous topic
        - confidence: Agreement of independent signals, in [0, 1]
        - signals: Weighted signal totals per candidate topic
        - matched: Keywords, patterns and tool names that fired
        - is_greeting: Conversational opener, never a switch
        - low_confidence: Fell back to the default topic for lack of signal
    """

    model_config = ConfigDict(frozen=True)

    topic: str
    previous_topic: Optional[str] = None
    is_switch: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    signals: Dict[str, float] = Field(default_factory=dict)
    matched: List[str] = Field(default_factory=list)
    is_greeting: bool = False
    low_confidence: bool = False
