"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Engine rules (topic table, resolver vocabulary, tool mapping) are loaded
from an optional YAML file and validated with Pydantic.
"""

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )
    engine_config_path: Optional[Path] = Field(
        default=None,
        description="Override path to context_engine.yaml (default: config/context_engine.yaml)",
    )

    # ==========================================================================
    # Session Store
    # ==========================================================================

    store_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite", description="Session store backend"
    )
    database_path: Path = Field(
        default=Path("data/context_engine.db"),
        description="Path to SQLite database file",
    )
    persistence_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Commit retries after a version conflict on save",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    debug: bool = Field(default=False, description="Enable debug mode")
    log_sessions_to_keep: int = Field(
        default=5, ge=1, le=100, description="Number of log files to retain"
    )


# ============================================================================
# Engine Configuration (from YAML)
# ============================================================================


class TopicRule(BaseModel):
    """One row of the topic rule table."""

    topic: str
    keywords: List[str] = Field(default_factory=list)
    patterns: List[str] = Field(
        default_factory=list, description="Regular expressions, matched case-insensitively"
    )
    tools: List[str] = Field(
        default_factory=list, description="Tool names that signal this topic"
    )


def _default_topic_rules() -> List[TopicRule]:
    return [
        TopicRule(
            topic="products",
            keywords=[
                "product", "products", "show me", "looking for", "search",
                "find", "price", "cost", "how much", "available", "in stock",
                "recommend", "compare", "headphones", "earbuds", "airpods",
                "speaker", "speakers", "laptop", "phone", "watch", "camera",
                "model", "brand",
            ],
            tools=["product_search", "visual_analysis", "product_details"],
        ),
        TopicRule(
            topic="orders",
            keywords=[
                "order", "orders", "track", "tracking", "shipping", "shipped",
                "shipment", "delivery", "delivered", "package", "where is my",
            ],
            patterns=[r"\bord[-#]?\d+\b", r"#\d{4,}"],
            tools=["track_order", "order_lookup"],
        ),
        TopicRule(
            topic="cart",
            keywords=["cart", "basket", "checkout", "add to", "remove from"],
            tools=[
                "add_to_cart", "remove_from_cart", "update_cart", "view_cart", "clear_cart",
            ],
        ),
        TopicRule(
            topic="returns",
            keywords=[
                "return", "returns", "refund", "exchange", "send back",
                "damaged", "broken", "defective", "money back",
            ],
            tools=["create_return", "return_policy"],
        ),
        TopicRule(
            topic="billing",
            keywords=[
                "bill", "billing", "charged", "charge", "invoice", "payment",
                "credit card", "receipt", "overcharged",
            ],
            tools=["billing_lookup"],
        ),
        TopicRule(
            topic="support",
            keywords=[
                "help", "problem", "issue", "complaint", "ticket", "agent",
                "human", "speak to", "not working", "contact",
            ],
            tools=["create_ticket"],
        ),
    ]


def _default_greetings() -> List[str]:
    return [
        "hi", "hello", "hey", "hiya", "yo", "good morning", "good afternoon",
        "good evening", "thanks", "thank you", "thx", "ok", "okay", "cool",
        "great", "bye", "goodbye", "see you", "there",
    ]


class TopicConfig(BaseModel):
    """Topic classifier configuration."""

    labels: List[str] = Field(
        default_factory=lambda: [
            "products", "orders", "cart", "returns", "billing", "support", "general",
        ]
    )
    default_topic: str = Field(default="general")
    rules: List[TopicRule] = Field(default_factory=_default_topic_rules)
    greetings: List[str] = Field(default_factory=_default_greetings)
    keyword_weight: float = Field(default=1.0, gt=0.0)
    tool_weight: float = Field(default=2.0, gt=0.0)
    min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Below this confidence the classifier falls back to the default topic",
    )

    @field_validator("rules")
    @classmethod
    def rules_use_known_labels(
        cls, v: List[TopicRule], info: ValidationInfo
    ) -> List[TopicRule]:
        """Every rule must point at a declared topic label."""
        labels = info.data.get("labels") or []
        unknown = [rule.topic for rule in v if labels and rule.topic not in labels]
        if unknown:
            raise ValueError(f"Rules reference unknown topics: {unknown}")
        return v


class ResolverConfig(BaseModel):
    """Reference resolver vocabulary."""

    product_nouns: List[str] = Field(
        default_factory=lambda: [
            "headphones", "headphone", "earbuds", "earbud", "airpods",
            "speakers", "speaker", "laptops", "laptop", "phones", "phone",
            "watches", "watch", "cameras", "camera", "shoes", "shoe",
            "products", "product", "items", "item",
        ]
    )
    order_nouns: List[str] = Field(default_factory=lambda: ["order", "orders"])
    demonstratives: List[str] = Field(
        default_factory=lambda: ["those", "these", "that", "this", "the", "my"]
    )
    pronouns: List[str] = Field(
        default_factory=lambda: ["them", "those", "these", "it"]
    )


class TrackerConfig(BaseModel):
    """Mapping from tool names to the entity kinds their results carry."""

    product_tools: List[str] = Field(
        default_factory=lambda: ["product_search", "visual_analysis", "product_details"]
    )
    order_tools: List[str] = Field(
        default_factory=lambda: ["track_order", "order_lookup"]
    )
    cart_tools: List[str] = Field(
        default_factory=lambda: [
            "add_to_cart", "remove_from_cart", "update_cart", "view_cart", "clear_cart",
        ]
    )


class SessionRulesConfig(BaseModel):
    """Turn handling defaults."""

    fallback_response: str = Field(
        default=(
            "I'm sorry, something went wrong while handling your request. "
            "Could you please try again?"
        )
    )
    summary_topic_limit: int = Field(default=10, ge=1, le=50)


class EngineConfig(BaseModel):
    """
    Complete engine configuration loaded from context_engine.yaml.

    Every section has built-in defaults, so the YAML file only needs to
    contain the values it overrides.
    """

    topics: TopicConfig = Field(default_factory=TopicConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    session: SessionRulesConfig = Field(default_factory=SessionRulesConfig)


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Args:
        config_path: Path to context_engine.yaml. If None, uses default path.

    Returns:
        EngineConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/context_engine.yaml relative to project root
        project_root = Path(__file__).resolve().parent.parent.parent
        check_path = project_root / "config" / "context_engine.yaml"
        if check_path.exists():
            config_path = check_path
        else:
            cwd_config = Path.cwd() / "config" / "context_engine.yaml"
            if not cwd_config.exists():
                return EngineConfig()
            config_path = cwd_config

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return EngineConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return EngineConfig()

    return EngineConfig(**config_data)


# Global settings instance
settings = Settings()

# Global engine config instance
engine_config = load_engine_config(settings.engine_config_path)
