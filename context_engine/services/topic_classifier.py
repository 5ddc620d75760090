"""
Rule-table driven topic classification.

Every rule contributes weighted signals for its topic: one per distinct
keyword or pattern found in the message, and one per tool invoked this
turn that the rule lists. Tool signals weigh more because they reflect
what the agent actually did.

Confidence:
    agreement  = best / total            (share of signal mass on the winner)
    strength   = min(1, 0.4 + 0.2 * n)   (n = distinct signals for the winner)
    confidence = round(agreement * strength, 3)

A tie for first place, no signal at all, or confidence below
min_confidence falls back to the default topic with low_confidence set.
"""

import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

import structlog

from context_engine.core.config import TopicConfig, engine_config
from context_engine.domain.models.topic import TopicClassification

log = structlog.get_logger(__name__)


class TopicClassifier:
    """Assigns a topic label to each turn and detects topic switches."""

    def __init__(self, config: Optional[TopicConfig] = None):
        self.config = config or engine_config.topics
        self.log = log

        # topic -> [(label, compiled pattern)], in rule order
        self._matchers: Dict[str, List[Tuple[str, Pattern[str]]]] = {}
        self._tools: Dict[str, set] = {}
        for rule in self.config.rules:
            matchers = self._matchers.setdefault(rule.topic, [])
            for keyword in rule.keywords:
                matchers.append(
                    (keyword, re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE))
                )
            for pattern in rule.patterns:
                matchers.append((pattern, re.compile(pattern, re.IGNORECASE)))
            self._tools.setdefault(rule.topic, set()).update(rule.tools)

        greetings = sorted(set(self.config.greetings), key=len, reverse=True)
        self._greeting_re = re.compile(
            r"\b(?:" + "|".join(re.escape(g) for g in greetings) + r")\b",
            re.IGNORECASE,
        )

    def classify(
        self,
        message: str,
        tool_names: Sequence[str] = (),
        previous_topic: Optional[str] = None,
    ) -> TopicClassification:
        """
        Classify a (resolved) message.

        Args:
            message: Message after reference resolution
            tool_names: Tools invoked this turn
            previous_topic: Topic of the prior turn, None on the first turn

        Returns:
            TopicClassification with topic, switch flag and confidence
        """
        if not tool_names and self.is_greeting(message):
            topic = previous_topic or self.config.default_topic
            return TopicClassification(
                topic=topic,
                previous_topic=previous_topic,
                is_switch=False,
                confidence=0.0,
                is_greeting=True,
            )

        signals, counts, matched = self._collect_signals(message, tool_names)
        topic, confidence, low_confidence = self._decide(signals, counts)

        is_switch = previous_topic is not None and topic != previous_topic

        result = TopicClassification(
            topic=topic,
            previous_topic=previous_topic,
            is_switch=is_switch,
            confidence=confidence,
            signals=signals,
            matched=matched,
            low_confidence=low_confidence,
        )

        if low_confidence:
            self.log.debug(
                "topic_low_confidence",
                confidence=confidence,
                signals=signals,
            )
        if is_switch:
            self.log.info(
                "topic_switched",
                from_topic=previous_topic,
                to_topic=topic,
                confidence=confidence,
            )
        return result

    def is_greeting(self, message: str) -> bool:
        """True for empty messages and messages made only of greetings."""
        remainder = self._greeting_re.sub(" ", message or "")
        return not re.sub(r"[\W_]+", "", remainder)

    def _collect_signals(
        self, message: str, tool_names: Sequence[str]
    ) -> Tuple[Dict[str, float], Dict[str, int], List[str]]:
        signals: Dict[str, float] = {}
        counts: Dict[str, int] = {}
        matched: List[str] = []
        tools = set(tool_names)

        for topic, matchers in self._matchers.items():
            score = 0.0
            hits = 0
            for label, pattern in matchers:
                if pattern.search(message):
                    score += self.config.keyword_weight
                    hits += 1
                    matched.append(label)
            for tool in sorted(tools & self._tools.get(topic, set())):
                score += self.config.tool_weight
                hits += 1
                matched.append(tool)
            if hits:
                signals[topic] = round(score, 3)
                counts[topic] = hits

        return signals, counts, matched

    def _decide(
        self, signals: Dict[str, float], counts: Dict[str, int]
    ) -> Tuple[str, float, bool]:
        """Pick the winning topic. Returns (topic, confidence, low_confidence)."""
        default = self.config.default_topic
        if not signals:
            return default, 0.0, True

        best = max(signals.values())
        leaders = [topic for topic, score in signals.items() if score == best]
        total = sum(signals.values())
        agreement = best / total

        if len(leaders) > 1:
            return default, round(agreement * 0.4, 3), True

        winner = leaders[0]
        strength = min(1.0, 0.4 + 0.2 * counts[winner])
        confidence = round(agreement * strength, 3)

        if confidence < self.config.min_confidence:
            return default, confidence, True
        return winner, confidence, False
