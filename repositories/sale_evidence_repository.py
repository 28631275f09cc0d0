"""
Sale evidence repository (persistence).

One evidence row per sale, keyed by sale_id. Saving evidence for a sale that
already has a row replaces that row (upsert), so keyword accumulation never
produces duplicates.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from domain.conversation import MessageSender
from domain.evidence import KeywordMatch, SaleEvidence, TranscriptEntry
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc

_EVIDENCE_TABLE: str = "sale_evidence"


def evidence_to_row(evidence: SaleEvidence) -> dict[str, Any]:
    return {
        "evidence_id": str(evidence.evidence_id),
        "sale_id": str(evidence.sale_id),
        "conversation_id": evidence.conversation_id,
        "message_ids": list(evidence.message_ids),
        "keywords_found": [
            {
                "keyword": match.keyword,
                "message_id": match.message_id,
                "timestamp": to_iso_utc(match.timestamp, name="keyword timestamp"),
                "context": match.context,
            }
            for match in evidence.keywords_found
        ],
        "transcript_snapshot": [
            {
                "message_id": entry.message_id,
                "sender": entry.sender.value,
                "content": entry.content,
                "timestamp": to_iso_utc(entry.timestamp, name="message timestamp"),
            }
            for entry in evidence.transcript_snapshot
        ],
        "created_at_utc": to_iso_utc(evidence.created_at, name="created_at"),
        "updated_at_utc": (
            to_iso_utc(evidence.updated_at, name="updated_at") if evidence.updated_at else None
        ),
    }


def row_to_evidence(row: Mapping[str, Any]) -> SaleEvidence:
    return SaleEvidence(
        evidence_id=UUID(str(row["evidence_id"])),
        sale_id=UUID(str(row["sale_id"])),
        conversation_id=str(row["conversation_id"]),
        keywords_found=tuple(
            KeywordMatch(
                keyword=str(item["keyword"]),
                message_id=str(item["message_id"]),
                timestamp=parse_utc_datetime(item["timestamp"]),
                context=str(item.get("context") or ""),
            )
            for item in row.get("keywords_found") or ()
        ),
        transcript_snapshot=tuple(
            TranscriptEntry(
                message_id=str(item["message_id"]),
                sender=MessageSender(str(item["sender"])),
                content=str(item.get("content") or ""),
                timestamp=parse_utc_datetime(item["timestamp"]),
            )
            for item in row.get("transcript_snapshot") or ()
        ),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


class SaleEvidenceRepository:
    """Supabase-backed persistence for SaleEvidence."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def get_by_sale(self, sale_id: UUID) -> Optional[SaleEvidence]:
        response = (
            self._client.table(_EVIDENCE_TABLE)
            .select("*")
            .eq("sale_id", str(sale_id))
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get sale evidence: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return row_to_evidence(rows[0])

    def save(self, evidence: SaleEvidence) -> None:
        response = (
            self._client.table(_EVIDENCE_TABLE)
            .upsert(evidence_to_row(evidence), on_conflict="sale_id")
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to save sale evidence: {error}")


__all__ = [
    "SaleEvidenceRepository",
    "evidence_to_row",
    "row_to_evidence",
]
