"""
Domain: sale keyword detection (pure).

Scans message text for purchase-intent phrases grouped in three confidence
tiers and decides whether a message is strong enough to flag a conversation
as a potential sale.

Rules implemented here:
- Matching is case-insensitive and phrase-bounded: a phrase matches only when
  it is not part of a longer word ("sold" does not match "unsold").
- Empty text never matches.
- Keywords are returned once each, high tier first, in vocabulary order.
- A single weak (low tier) word never flags a conversation.

The vocabulary and thresholds are passed in; nothing is read from global state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


DEFAULT_HIGH_CONFIDENCE: Tuple[str, ...] = (
    "order confirmed",
    "payment received",
    "payment successful",
    "order placed",
    "purchase complete",
    "order number",
    "confirmation number",
    "shipped",
    "tracking number",
    "payment processed",
    "transaction complete",
    "receipt sent",
    "order is confirmed",
    "payment went through",
    "payment sent",
    "sending payment",
    "i'll take it",
    "just bought",
)

DEFAULT_MEDIUM_CONFIDENCE: Tuple[str, ...] = (
    "sold",
    "bought",
    "purchased",
    "paid",
    "checkout",
    "credit card",
    "debit card",
    "processed payment",
    "invoice",
    "billing",
    "charged",
    "transaction",
    "completed purchase",
    "finalized order",
    "payment method",
)

DEFAULT_LOW_CONFIDENCE: Tuple[str, ...] = (
    "order",
    "buy",
    "payment",
    "price",
    "cost",
    "purchase",
    "total",
    "amount",
    "discount",
    "promo code",
    "coupon",
)


@dataclass(frozen=True, slots=True)
class KeywordVocabulary:
    high: Tuple[str, ...] = DEFAULT_HIGH_CONFIDENCE
    medium: Tuple[str, ...] = DEFAULT_MEDIUM_CONFIDENCE
    low: Tuple[str, ...] = DEFAULT_LOW_CONFIDENCE

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for phrase in (*self.high, *self.medium, *self.low):
            normalized = normalize_text(phrase).strip()
            if not normalized:
                raise ValueError("Keyword phrases must not be blank")
            if normalized in seen:
                raise ValueError(f"Keyword phrase listed more than once: {phrase!r}")
            seen.add(normalized)


@dataclass(frozen=True, slots=True)
class DetectionPolicy:
    """
    Minimum-confidence policy.

    Flagging (conversation marked as potential sale):
    - any high confidence phrase, or
    - at least `medium_flag_threshold` medium phrases, or
    - only low phrases, at least `low_flag_threshold` of them.

    Auto-creating a Sale record is stricter:
    - any high confidence phrase, or
    - at least `medium_create_threshold` medium phrases.
    """

    medium_flag_threshold: int = 2
    low_flag_threshold: int = 3
    medium_create_threshold: int = 3

    def __post_init__(self) -> None:
        for name in ("medium_flag_threshold", "low_flag_threshold", "medium_create_threshold"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")


@dataclass(frozen=True, slots=True)
class KeywordDetectionResult:
    found: bool
    keywords: Tuple[str, ...]
    confidence_level: Optional[ConfidenceLevel]
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0


NO_MATCH = KeywordDetectionResult(found=False, keywords=(), confidence_level=None)


def normalize_text(text: str) -> str:
    """Lowercase and fold typographic apostrophes so "I’ll" matches "i'll"."""

    return text.lower().replace("’", "'").replace("‘", "'")


def _compile(phrase: str) -> Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(normalize_text(phrase).strip()) + r"(?!\w)")


class KeywordDetector:
    """Detects sale keywords in free text against an injected vocabulary."""

    def __init__(
        self,
        vocabulary: KeywordVocabulary | None = None,
        policy: DetectionPolicy | None = None,
    ) -> None:
        self.vocabulary = vocabulary or KeywordVocabulary()
        self.policy = policy or DetectionPolicy()
        self._tiers: List[Tuple[ConfidenceLevel, List[Tuple[str, Pattern[str]]]]] = [
            (level, [(phrase, _compile(phrase)) for phrase in phrases])
            for level, phrases in (
                (ConfidenceLevel.HIGH, self.vocabulary.high),
                (ConfidenceLevel.MEDIUM, self.vocabulary.medium),
                (ConfidenceLevel.LOW, self.vocabulary.low),
            )
        ]

    def detect(self, text: str) -> KeywordDetectionResult:
        if not text or not text.strip():
            return NO_MATCH

        content = normalize_text(text)
        counts = {level: 0 for level in ConfidenceLevel}
        keywords: List[str] = []

        for level, patterns in self._tiers:
            for phrase, pattern in patterns:
                if pattern.search(content):
                    counts[level] += 1
                    if phrase not in keywords:
                        keywords.append(phrase)

        if not keywords:
            return NO_MATCH

        confidence = next(level for level in ConfidenceLevel if counts[level] > 0)
        return KeywordDetectionResult(
            found=True,
            keywords=tuple(keywords),
            confidence_level=confidence,
            high_count=counts[ConfidenceLevel.HIGH],
            medium_count=counts[ConfidenceLevel.MEDIUM],
            low_count=counts[ConfidenceLevel.LOW],
        )

    def should_flag(self, result: KeywordDetectionResult) -> bool:
        if not result.found:
            return False
        if result.high_count >= 1:
            return True
        if result.medium_count >= self.policy.medium_flag_threshold:
            return True
        if result.confidence_level is ConfidenceLevel.LOW:
            return result.low_count >= self.policy.low_flag_threshold
        return False

    def should_create_sale(self, result: KeywordDetectionResult) -> bool:
        if not result.found:
            return False
        if result.high_count >= 1:
            return True
        return result.medium_count >= self.policy.medium_create_threshold

    def matching_keywords(self, texts: Iterable[str]) -> List[str]:
        """All distinct keywords found across several texts, in first-seen order."""

        found: List[str] = []
        for text in texts:
            for keyword in self.detect(text).keywords:
                if keyword not in found:
                    found.append(keyword)
        return found


def extract_keyword_context(content: str, keyword: str, context_length: int = 50) -> str:
    """
    Return the text around the first occurrence of `keyword`.

    Ellipses mark truncation on either side. If the keyword is absent the
    first `2 * context_length` characters are returned.
    """

    index = normalize_text(content).find(normalize_text(keyword))
    if index == -1:
        return content[: context_length * 2]

    start = max(0, index - context_length)
    end = min(len(content), index + len(keyword) + context_length)

    context = content[start:end]
    if start > 0:
        context = "..." + context
    if end < len(content):
        context = context + "..."
    return context


__all__ = [
    "ConfidenceLevel",
    "KeywordVocabulary",
    "DetectionPolicy",
    "KeywordDetectionResult",
    "KeywordDetector",
    "NO_MATCH",
    "normalize_text",
    "extract_keyword_context",
]
