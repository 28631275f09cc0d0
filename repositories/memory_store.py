"""
In-memory SalesStore.

Dictionary-backed implementation used by the test-suite and by local runs with
SALES_STORE=memory. It mirrors the Supabase store's ordering and pagination.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from domain.audit import SaleAuditLogEntry
from domain.conversation import Conversation, Message, sale_info_changes
from domain.evidence import SaleEvidence
from domain.sale import RepInfo, Sale
from repositories.filters import MAX_ROWS, SaleQueryFilters


class InMemorySalesStore:
    def __init__(self) -> None:
        self._sales: Dict[UUID, Sale] = {}
        self._evidence: Dict[UUID, SaleEvidence] = {}
        self._audit: List[SaleAuditLogEntry] = []
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._reps: Dict[str, RepInfo] = {}

    # ---- seeding (messaging subsystem data) ----

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.conversation_id] = conversation
        return conversation

    def add_message(self, conversation_id: str, message: Message) -> Message:
        self._messages.setdefault(conversation_id, []).append(message)
        return message

    def add_rep(self, rep: RepInfo) -> RepInfo:
        self._reps[rep.phone_number] = rep
        return rep

    # ---- sales ----

    def get_sale(self, sale_id: UUID) -> Optional[Sale]:
        return self._sales.get(sale_id)

    def get_sale_by_conversation(self, conversation_id: str) -> Optional[Sale]:
        candidates = [s for s in self._sales.values() if s.conversation_id == conversation_id]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.created_at or s.sale_date)

    def insert_sale(self, sale: Sale) -> Sale:
        if sale.sale_id in self._sales:
            raise RuntimeError(f"Failed to create sale: duplicate sale_id {sale.sale_id}")
        self._sales[sale.sale_id] = sale
        return sale

    def save_sale(self, sale: Sale) -> None:
        if sale.sale_id not in self._sales:
            raise RuntimeError(f"Failed to update sale: unknown sale_id {sale.sale_id}")
        self._sales[sale.sale_id] = sale

    def list_sales(self, filters: SaleQueryFilters) -> Tuple[List[Sale], int]:
        matching = sorted(
            (s for s in self._sales.values() if filters.matches(s)),
            key=lambda s: s.sale_date,
            reverse=True,
        )
        limit = filters.limit if filters.limit is not None else MAX_ROWS
        return matching[filters.offset:filters.offset + limit], len(matching)

    # ---- evidence ----

    def get_evidence(self, sale_id: UUID) -> Optional[SaleEvidence]:
        return self._evidence.get(sale_id)

    def save_evidence(self, evidence: SaleEvidence) -> None:
        self._evidence[evidence.sale_id] = evidence

    # ---- audit trail ----

    def append_audit_entry(self, entry: SaleAuditLogEntry) -> None:
        self._audit.append(entry)

    def list_audit_entries(self, sale_id: UUID) -> List[SaleAuditLogEntry]:
        entries = [e for e in self._audit if e.sale_id == sale_id]
        # Stable sort keeps insertion order reversed for equal timestamps.
        return sorted(reversed(entries), key=lambda e: e.timestamp, reverse=True)

    # ---- conversations ----

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def update_conversation_sale_info(
        self, conversation_id: str, changes: Mapping[str, Any]
    ) -> None:
        current = self._conversations.get(conversation_id)
        if current is None:
            raise RuntimeError(f"Failed to update conversation sale info: unknown {conversation_id}")
        self._conversations[conversation_id] = replace(current, **sale_info_changes(**changes))

    def list_messages(self, conversation_id: str) -> List[Message]:
        return sorted(self._messages.get(conversation_id, []), key=lambda m: m.timestamp)

    def find_rep_by_phone(self, phone_number: str) -> Optional[RepInfo]:
        if not phone_number:
            return None
        return self._reps.get(phone_number)


__all__ = ["InMemorySalesStore"]
