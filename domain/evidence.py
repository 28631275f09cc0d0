"""
Domain: sale evidence (pure).

Evidence is the snapshot supporting a sale flag: the keywords that were
matched (with the message each came from) and an excerpt of the transcript.

Rules implemented here:
- The transcript snapshot keeps the most recent `window` messages, oldest
  first, or the whole history when it is shorter.
- One evidence record per Sale. Later keyword detections are merged into the
  existing record: new (keyword, message_id) pairs are appended and the
  transcript snapshot is refreshed. Merging the same input twice is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from .conversation import Message, MessageSender
from .keywords import KeywordDetectionResult, KeywordDetector, extract_keyword_context
from .time import require_utc_timestamp

DEFAULT_EVIDENCE_WINDOW = 50


@dataclass(frozen=True, slots=True)
class KeywordMatch:
    keyword: str
    message_id: str
    timestamp: datetime
    context: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.keyword, self.message_id)


@dataclass(frozen=True, slots=True)
class TranscriptEntry:
    message_id: str
    sender: MessageSender
    content: str
    timestamp: datetime

    @staticmethod
    def from_message(message: Message) -> "TranscriptEntry":
        return TranscriptEntry(
            message_id=message.message_id,
            sender=message.sender,
            content=message.content,
            timestamp=message.timestamp,
        )


@dataclass(frozen=True, slots=True)
class SaleEvidence:
    evidence_id: UUID
    sale_id: UUID
    conversation_id: str
    keywords_found: Tuple[KeywordMatch, ...]
    transcript_snapshot: Tuple[TranscriptEntry, ...]
    created_at: datetime
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def message_ids(self) -> Tuple[str, ...]:
        return tuple(entry.message_id for entry in self.transcript_snapshot)

    @property
    def keywords(self) -> Tuple[str, ...]:
        """Distinct keywords, in the order they were first recorded."""
        return tuple(dict.fromkeys(match.keyword for match in self.keywords_found))


def matches_for_message(result: KeywordDetectionResult, message: Message) -> List[KeywordMatch]:
    """Turn one detection result into evidence entries for the message it came from."""

    return [
        KeywordMatch(
            keyword=keyword,
            message_id=message.message_id,
            timestamp=message.timestamp,
            context=extract_keyword_context(message.content, keyword),
        )
        for keyword in result.keywords
    ]


def find_keyword_matches(detector: KeywordDetector, messages: Iterable[Message]) -> List[KeywordMatch]:
    """Run the detector over a whole message history."""

    matches: List[KeywordMatch] = []
    for message in messages:
        matches.extend(matches_for_message(detector.detect(message.content), message))
    return matches


def snapshot_window(messages: Sequence[Message], window: int = DEFAULT_EVIDENCE_WINDOW) -> Tuple[TranscriptEntry, ...]:
    if window < 1:
        raise ValueError("window must be >= 1")
    ordered = sorted(messages, key=lambda m: m.timestamp)
    return tuple(TranscriptEntry.from_message(m) for m in ordered[-window:])


def _dedupe(matches: Iterable[KeywordMatch]) -> Tuple[KeywordMatch, ...]:
    seen: dict[Tuple[str, str], KeywordMatch] = {}
    for match in matches:
        seen.setdefault(match.key, match)
    return tuple(seen.values())


def build_evidence(
    *,
    evidence_id: UUID,
    sale_id: UUID,
    conversation_id: str,
    keyword_matches: Iterable[KeywordMatch],
    messages: Sequence[Message],
    now: datetime,
    window: int = DEFAULT_EVIDENCE_WINDOW,
) -> SaleEvidence:
    return SaleEvidence(
        evidence_id=evidence_id,
        sale_id=sale_id,
        conversation_id=conversation_id,
        keywords_found=_dedupe(keyword_matches),
        transcript_snapshot=snapshot_window(messages, window),
        created_at=now,
        updated_at=now,
    )


def merge_evidence(
    existing: SaleEvidence,
    keyword_matches: Iterable[KeywordMatch],
    messages: Sequence[Message],
    *,
    now: datetime,
    window: int = DEFAULT_EVIDENCE_WINDOW,
) -> SaleEvidence:
    """Append unseen keyword matches and refresh the transcript snapshot."""

    return replace(
        existing,
        keywords_found=_dedupe((*existing.keywords_found, *keyword_matches)),
        transcript_snapshot=snapshot_window(messages, window) if messages else existing.transcript_snapshot,
        updated_at=now,
    )


__all__ = [
    "DEFAULT_EVIDENCE_WINDOW",
    "KeywordMatch",
    "TranscriptEntry",
    "SaleEvidence",
    "matches_for_message",
    "find_keyword_matches",
    "snapshot_window",
    "build_evidence",
    "merge_evidence",
]
