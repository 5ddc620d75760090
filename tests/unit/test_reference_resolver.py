"""Tests for ReferenceResolver."""

import pytest

from context_engine.core.config import ResolverConfig
from context_engine.domain.models import OrderRef, ProductRef, SessionContext
from context_engine.services.reference_resolver import ReferenceResolver

SONY = ProductRef(
    product_id="sony-wh1000xm4",
    name="Sony WH-1000XM4 Wireless Headphones",
    category="headphones",
    price=349.0,
)
BOSE = ProductRef(
    product_id="bose-qc45", name="Bose QC45 Headphones", category="headphones", price=279.0
)
AIRPODS = ProductRef(
    product_id="apple-airpods-pro", name="Apple AirPods Pro", category="earbuds", price=249.0
)
IPHONE = ProductRef(
    product_id="iphone-15", name="iPhone 15", category="phones", price=799.0
)


@pytest.fixture
def resolver():
    return ReferenceResolver(ResolverConfig())


def context_with(products=(), orders=()) -> SessionContext:
    return SessionContext(
        session_id="s1",
        mentioned_products=list(products),
        mentioned_orders=list(orders),
    )


class TestNoMentions:
    """Without prior mentions the message is returned untouched."""

    def test_show_me_those_unchanged(self, resolver):
        result = resolver.resolve("show me those", context_with())

        assert result.resolved == "show me those"
        assert result.original == "show me those"
        assert result.applied is False
        assert result.entity_id is None

    def test_empty_message(self, resolver):
        result = resolver.resolve("", context_with([SONY]))
        assert result.applied is False
        assert result.resolved == ""

    def test_no_reference_in_message(self, resolver):
        result = resolver.resolve("Show me Apple AirPods", context_with([SONY]))
        assert result.applied is False
        assert result.resolved == "Show me Apple AirPods"


class TestProductReferences:
    """Demonstratives, noun phrases and pronouns over mentioned products."""

    def test_those_headphones(self, resolver):
        result = resolver.resolve(
            "What's the price of those headphones?", context_with([SONY])
        )

        assert result.applied is True
        assert result.resolved == "What's the price of Sony WH-1000XM4 Wireless Headphones?"
        assert result.entity_type == "product"
        assert result.entity_id == "sony-wh1000xm4"
        assert result.matched_phrases == ["those headphones"]
        assert result.ambiguous is False

    def test_noun_prefers_matching_category_over_recency(self, resolver):
        result = resolver.resolve("Are those headphones in stock?", context_with([SONY, AIRPODS]))

        assert result.entity_id == "sony-wh1000xm4"
        assert result.candidate_count == 1

    def test_noun_matches_whole_words_only(self, resolver):
        result = resolver.resolve("How much is that phone?", context_with([IPHONE, SONY]))

        assert result.resolved == "How much is iPhone 15?"
        assert result.entity_id == "iphone-15"
        assert result.candidate_count == 1
        assert result.ambiguous is False

    def test_plural_noun_matches_singular_category(self, resolver):
        result = resolver.resolve("Compare those phones", context_with([IPHONE, SONY]))
        assert result.entity_id == "iphone-15"

    def test_strong_demonstrative_falls_back_to_most_recent(self, resolver):
        result = resolver.resolve("Do those speakers work?", context_with([SONY, AIRPODS]))

        assert result.applied is True
        assert result.entity_id == "apple-airpods-pro"

    def test_weak_determiner_needs_a_matching_noun(self, resolver):
        result = resolver.resolve("Show me the headphones", context_with([AIRPODS]))

        assert result.applied is False
        assert result.resolved == "Show me the headphones"

    def test_the_headphones_resolves_when_mentioned(self, resolver):
        result = resolver.resolve(
            "Remove the headphones from my cart", context_with([SONY, AIRPODS])
        )
        assert result.resolved == "Remove Sony WH-1000XM4 Wireless Headphones from my cart"

    def test_multiple_matches_flag_ambiguous_and_pick_most_recent(self, resolver):
        result = resolver.resolve("How much are those headphones?", context_with([SONY, BOSE]))

        assert result.entity_id == "bose-qc45"
        assert result.ambiguous is True
        assert result.candidate_count == 2

    def test_that_one(self, resolver):
        result = resolver.resolve("I'll take that one", context_with([SONY]))

        assert result.resolved == "I'll take Sony WH-1000XM4 Wireless Headphones"
        assert result.matched_phrases == ["that one"]

    def test_bare_it(self, resolver):
        result = resolver.resolve("Is it in stock?", context_with([SONY, AIRPODS]))

        assert result.resolved == "Is Apple AirPods Pro in stock?"
        assert result.entity_id == "apple-airpods-pro"

    def test_it_contraction_not_replaced(self, resolver):
        result = resolver.resolve("it's fine", context_with([SONY]))
        assert result.applied is False

    def test_them(self, resolver):
        result = resolver.resolve("Add them to my cart", context_with([SONY]))
        assert result.resolved == "Add Sony WH-1000XM4 Wireless Headphones to my cart"

    def test_trailing_that(self, resolver):
        result = resolver.resolve("How much is that?", context_with([AIRPODS]))
        assert result.resolved == "How much is Apple AirPods Pro?"

    def test_that_mid_sentence_not_a_pronoun(self, resolver):
        result = resolver.resolve("I heard that prices dropped", context_with([AIRPODS]))
        assert result.applied is False

    def test_case_insensitive(self, resolver):
        result = resolver.resolve("THOSE HEADPHONES please", context_with([SONY]))
        assert result.resolved == "Sony WH-1000XM4 Wireless Headphones please"


class TestOrderReferences:
    """The word "order" switches resolution to mentioned orders."""

    def test_my_order(self, resolver):
        context = context_with(orders=[OrderRef(order_id="ORD001")])
        result = resolver.resolve("Where is my order?", context)

        assert result.resolved == "Where is order ORD001?"
        assert result.entity_type == "order"
        assert result.entity_id == "ORD001"

    def test_that_order_uses_most_recent(self, resolver):
        context = context_with(
            orders=[OrderRef(order_id="ORD001"), OrderRef(order_id="ORD002")]
        )
        result = resolver.resolve("Cancel that order", context)

        assert result.resolved == "Cancel order ORD002"
        assert result.ambiguous is True

    def test_order_cue_without_orders_is_unchanged(self, resolver):
        result = resolver.resolve("Where is my order?", context_with([SONY]))
        assert result.applied is False

    def test_explicit_order_id_unchanged(self, resolver):
        context = context_with(orders=[OrderRef(order_id="ORD001")])
        result = resolver.resolve("Track order ORD002", context)
        assert result.applied is False

    def test_explicit_order_id_keeps_trailing_pronoun(self, resolver):
        context = context_with(orders=[OrderRef(order_id="ORD001")])
        message = "Where is order ORD002, has it shipped?"

        result = resolver.resolve(message, context)

        assert result.applied is False
        assert result.resolved == message

    def test_hash_order_number_is_explicit(self, resolver):
        context = context_with(orders=[OrderRef(order_id="ORD001")])
        result = resolver.resolve("Is my order #10482 delayed?", context)
        assert result.resolved == "Is my order #10482 delayed?"


class TestConfiguration:
    def test_custom_product_nouns(self):
        resolver = ReferenceResolver(ResolverConfig(product_nouns=["cans"]))
        cans = ProductRef(product_id="x", name="Studio Cans", category="audio")

        result = resolver.resolve("those cans", context_with([cans]))

        assert result.resolved == "Studio Cans"

    def test_only_weak_determiners_configured(self):
        resolver = ReferenceResolver(ResolverConfig(demonstratives=["the", "my"]))

        result = resolver.resolve("Do you have blue ones?", context_with([SONY]))

        assert result.applied is False
        assert result.resolved == "Do you have blue ones?"

    def test_the_one_still_resolves_with_only_weak_determiners(self):
        resolver = ReferenceResolver(ResolverConfig(demonstratives=["the", "my"]))

        result = resolver.resolve("I'll take the one", context_with([SONY]))

        assert result.resolved == "I'll take Sony WH-1000XM4 Wireless Headphones"
