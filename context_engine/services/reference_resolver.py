"""
Reference resolution for follow-up messages.

Rewrites referring expressions ("those headphones", "that order", "it")
into the concrete entity most recently mentioned in the session, so that
the agent layer can call tools with a self-contained query.

Pattern priority:
    1. demonstrative + one/ones      ("that one", "those ones")
    2. demonstrative + product noun  ("those headphones", "the earbuds")
    3. demonstrative + order noun    ("that order", "my order")
    4. bare pronouns                 ("them", "those", "these", "it", trailing "that")

Resolution is advisory: when nothing was mentioned before, or no pattern
matches, the message is returned unchanged with applied=False. A message
that already names an order id is never rewritten to a different order.
"""

import re
from typing import List, Optional, Sequence, Tuple, Union

import structlog

from context_engine.core.config import ResolverConfig, engine_config
from context_engine.domain.models.entities import OrderRef, ProductRef
from context_engine.domain.models.resolution import ResolutionResult
from context_engine.domain.models.session_context import SessionContext

log = structlog.get_logger(__name__)

Entity = Union[ProductRef, OrderRef]

# Determiners that only refer back when the noun matches a known entity
WEAK_DETERMINERS = frozenset({"the", "my"})

# Nouns that match any product
GENERIC_NOUNS = frozenset({"product", "item"})

# Order identifiers typed by the user ("ORD002", "order #10482")
EXPLICIT_ORDER_ID = re.compile(r"\bord[-#]?\d+\b|#\d{4,}\b", re.IGNORECASE)


def _alternation(words: Sequence[str]) -> str:
    """Regex alternation, longest first so plurals win over singulars."""
    return "|".join(re.escape(w) for w in sorted(set(words), key=len, reverse=True))


def _singular(noun: str) -> str:
    noun = noun.lower()
    if noun.endswith("es") and noun[:-2].endswith(("ch", "sh", "ss", "x")):
        return noun[:-2]
    if noun.endswith("s") and not noun.endswith("ss"):
        return noun[:-1]
    return noun


class ReferenceResolver:
    """Rewrites pronoun and demonstrative references using session context."""

    def __init__(self, config: Optional[ResolverConfig] = None):
        self.config = config or engine_config.resolver
        self.log = log

        demonstratives = _alternation(self.config.demonstratives)
        # "the one(s)" always refers back; weak determiners never do
        ones_determiners = _alternation(
            [d for d in self.config.demonstratives if d not in WEAK_DETERMINERS] + ["the"]
        )
        product_nouns = _alternation(self.config.product_nouns)
        order_nouns = _alternation(self.config.order_nouns)
        pronouns = _alternation(
            [p for p in self.config.pronouns if p.lower() not in {"it", "that"}]
        )

        self._ones_re = re.compile(rf"\b(?:{ones_determiners})\s+ones?\b", re.IGNORECASE)
        self._product_phrase_re = re.compile(
            rf"\b(?P<det>{demonstratives})\s+(?P<noun>{product_nouns})\b",
            re.IGNORECASE,
        )
        self._order_phrase_re = re.compile(
            rf"\b(?P<det>{demonstratives})\s+(?:{order_nouns})\b", re.IGNORECASE
        )
        self._order_cue_re = re.compile(rf"\b(?:{order_nouns})\b", re.IGNORECASE)
        self._pronoun_re = re.compile(rf"\b(?:{pronouns})\b", re.IGNORECASE) if pronouns else None
        self._it_re = (
            re.compile(r"\bit\b(?!')", re.IGNORECASE)
            if "it" in {p.lower() for p in self.config.pronouns}
            else None
        )
        self._trailing_that_re = re.compile(
            r"\bthat\b(?=\s*(?:[?.!,]|$))", re.IGNORECASE
        )

    def resolve(self, message: str, context: SessionContext) -> ResolutionResult:
        """
        Resolve references in a message against the session's mentions.

        Args:
            message: Raw user message
            context: Current session context

        Returns:
            ResolutionResult with original/resolved text and the entity used
        """
        if not message or not message.strip():
            return ResolutionResult.unchanged(message)

        if self._order_cue_re.search(message):
            return self._resolve_orders(message, context.mentioned_orders)
        return self._resolve_products(message, context.mentioned_products)

    # =========================================================================
    # Products
    # =========================================================================

    def _resolve_products(
        self, message: str, products: List[ProductRef]
    ) -> ResolutionResult:
        if not products:
            return ResolutionResult.unchanged(message)

        matched: List[str] = []
        chosen: List[Tuple[ProductRef, int]] = []

        def substitute(entity: ProductRef, candidates: int, phrase: str) -> str:
            matched.append(phrase)
            chosen.append((entity, candidates))
            return entity.name

        def replace_ones(m: re.Match) -> str:
            return substitute(products[-1], len(products), m.group(0))

        def replace_phrase(m: re.Match) -> str:
            noun = m.group("noun")
            candidates = [p for p in products if self._matches_noun(p, noun)]
            if candidates:
                return substitute(candidates[-1], len(candidates), m.group(0))
            if m.group("det").lower() in WEAK_DETERMINERS:
                # "the headphones" with no headphones mentioned is a new request
                return m.group(0)
            return substitute(products[-1], len(products), m.group(0))

        def replace_pronoun(m: re.Match) -> str:
            return substitute(products[-1], len(products), m.group(0))

        resolved = self._ones_re.sub(replace_ones, message)
        resolved = self._product_phrase_re.sub(replace_phrase, resolved)
        resolved = self._replace_pronouns(resolved, replace_pronoun)

        return self._build_result(message, resolved, "product", matched, chosen)

    def _matches_noun(self, product: ProductRef, noun: str) -> bool:
        singular = _singular(noun)
        if singular in GENERIC_NOUNS:
            return True
        haystack = f"{product.name} {product.category or ''}".lower()
        return re.search(rf"\b{re.escape(singular)}(?:e?s)?\b", haystack) is not None

    # =========================================================================
    # Orders
    # =========================================================================

    def _resolve_orders(self, message: str, orders: List[OrderRef]) -> ResolutionResult:
        if not orders:
            return ResolutionResult.unchanged(message)
        # the user already named an order
        if EXPLICIT_ORDER_ID.search(message):
            return ResolutionResult.unchanged(message)

        latest = orders[-1]
        matched: List[str] = []
        chosen: List[Tuple[OrderRef, int]] = []

        def replace_phrase(m: re.Match) -> str:
            matched.append(m.group(0))
            chosen.append((latest, len(orders)))
            return f"order {latest.order_id}"

        def replace_pronoun(m: re.Match) -> str:
            matched.append(m.group(0))
            chosen.append((latest, len(orders)))
            return latest.order_id

        resolved = self._order_phrase_re.sub(replace_phrase, message)
        if not matched:
            resolved = self._replace_pronouns(resolved, replace_pronoun)

        return self._build_result(message, resolved, "order", matched, chosen)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _replace_pronouns(self, text: str, replace) -> str:
        if self._pronoun_re is not None:
            text = self._pronoun_re.sub(replace, text)
        if self._it_re is not None:
            text = self._it_re.sub(replace, text)
        return self._trailing_that_re.sub(replace, text)

    def _build_result(
        self,
        original: str,
        resolved: str,
        entity_type: str,
        matched: List[str],
        chosen: Sequence[Tuple[Entity, int]],
    ) -> ResolutionResult:
        if not chosen or resolved == original:
            return ResolutionResult.unchanged(original)

        entity, candidate_count = chosen[0]
        if isinstance(entity, ProductRef):
            entity_id, entity_name = entity.product_id, entity.name
        else:
            entity_id, entity_name = entity.order_id, entity.order_id

        ambiguous = candidate_count > 1
        result = ResolutionResult(
            original=original,
            resolved=resolved,
            applied=True,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            matched_phrases=matched,
            ambiguous=ambiguous,
            candidate_count=candidate_count,
        )

        self.log.info(
            "reference_resolved",
            entity_type=entity_type,
            entity_id=entity_id,
            matched_phrases=matched,
            ambiguous=ambiguous,
        )
        return result
