"""Tests for TopicClassifier."""

import pytest
from pydantic import ValidationError

from context_engine.core.config import TopicConfig, TopicRule
from context_engine.services.topic_classifier import TopicClassifier


@pytest.fixture
def classifier():
    return TopicClassifier(TopicConfig())


class TestClassification:
    def test_products_with_tool(self, classifier):
        result = classifier.classify("Show me Sony headphones", ["product_search"], None)

        assert result.topic == "products"
        assert result.is_switch is False
        assert result.confidence == 1.0
        assert result.low_confidence is False
        assert "product_search" in result.matched
        assert result.signals["products"] == 4.0

    def test_order_pattern_and_tool(self, classifier):
        result = classifier.classify("Track order ORD001", ["track_order"], "products")

        assert result.topic == "orders"
        assert result.is_switch is True
        assert result.previous_topic == "products"
        assert r"\bord[-#]?\d+\b" in result.matched

    def test_resolved_product_question_stays_on_products(self, classifier):
        result = classifier.classify(
            "What's the price of Sony WH-1000XM4 Wireless Headphones?",
            ["product_search"],
            "products",
        )
        assert result.topic == "products"
        assert result.is_switch is False

    def test_tool_outweighs_incidental_keyword(self, classifier):
        result = classifier.classify(
            "Add Sony WH-1000XM4 Wireless Headphones to my cart", ["add_to_cart"], "products"
        )

        assert result.topic == "cart"
        assert result.is_switch is True
        # cart: keyword + tool = 3, products: "headphones" = 1
        assert result.confidence == pytest.approx(0.6)

    def test_single_keyword(self, classifier):
        result = classifier.classify("I need help", [], None)

        assert result.topic == "support"
        assert result.confidence == pytest.approx(0.6)

    def test_keywords_match_whole_words_only(self, classifier):
        result = classifier.classify("ordinary question", [], None)
        assert "orders" not in result.signals


class TestFallbacks:
    def test_no_signals_is_general_low_confidence(self, classifier):
        result = classifier.classify("What is the meaning of life", [], None)

        assert result.topic == "general"
        assert result.low_confidence is True
        assert result.confidence == 0.0

    def test_tie_falls_back_to_general(self, classifier):
        result = classifier.classify("I want to return my headphones", [], "products")

        assert result.topic == "general"
        assert result.low_confidence is True
        assert result.signals == {"products": 1.0, "returns": 1.0}
        assert result.is_switch is True

    def test_below_min_confidence_falls_back(self):
        classifier = TopicClassifier(TopicConfig(min_confidence=0.6))

        # products: "show me" + "price" = 2, cart: "cart" = 1
        result = classifier.classify("show me the price of the cart", [], None)

        assert result.topic == "general"
        assert result.low_confidence is True
        assert result.confidence == pytest.approx(0.533)

    def test_same_message_passes_default_threshold(self, classifier):
        result = classifier.classify("show me the price of the cart", [], None)

        assert result.topic == "products"
        assert result.low_confidence is False


class TestGreetings:
    @pytest.mark.parametrize("message", ["Hi there", "hello!", "Thanks!", "", "   "])
    def test_greeting_keeps_previous_topic(self, classifier, message):
        result = classifier.classify(message, [], "orders")

        assert result.is_greeting is True
        assert result.topic == "orders"
        assert result.is_switch is False

    def test_greeting_on_first_turn_is_general(self, classifier):
        result = classifier.classify("Hello", [], None)

        assert result.topic == "general"
        assert result.is_switch is False

    def test_greeting_with_content_is_not_greeting(self, classifier):
        result = classifier.classify("Hi, where is my order ORD001?", [], "products")

        assert result.is_greeting is False
        assert result.topic == "orders"

    def test_greeting_with_tool_call_is_classified(self, classifier):
        result = classifier.classify("hello", ["view_cart"], None)
        assert result.is_greeting is False
        assert result.topic == "cart"


class TestSwitchSequence:
    def test_switch_flags_over_sequence(self, classifier):
        turns = [
            ("Show me Sony headphones", ["product_search"]),
            ("Show me Apple AirPods", ["product_search"]),
            ("Track order ORD001", ["track_order"]),
            ("Where is my order ORD002", ["track_order"]),
            ("Show me speakers", ["product_search"]),
        ]
        previous = None
        switches = 0
        for message, tools in turns:
            result = classifier.classify(message, tools, previous)
            switches += int(result.is_switch)
            previous = result.topic

        assert switches == 2


class TestConfigValidation:
    def test_rule_with_unknown_topic_rejected(self):
        with pytest.raises(ValidationError):
            TopicConfig(labels=["general", "products"], rules=[TopicRule(topic="weather")])

    def test_custom_rules(self):
        config = TopicConfig(
            labels=["general", "weather"],
            rules=[TopicRule(topic="weather", keywords=["rain", "forecast"])],
        )
        result = TopicClassifier(config).classify("Will it rain tomorrow?", [], None)

        assert result.topic == "weather"
