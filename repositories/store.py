"""
Sales store: the persistence boundary used by the sale services.

`SalesStore` is the protocol the services depend on. `SupabaseSalesStore`
composes the per-table repositories; `InMemorySalesStore`
(repositories/memory_store.py) backs local runs and tests.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, List, Mapping, Optional, Protocol, Tuple
from uuid import UUID

from domain.audit import SaleAuditLogEntry
from domain.conversation import Conversation, Message
from domain.evidence import SaleEvidence
from domain.sale import RepInfo, Sale
from repositories.conversation_repository import ConversationRepository
from repositories.filters import MAX_ROWS, SaleQueryFilters
from repositories.sale_audit_repository import SaleAuditRepository
from repositories.sale_evidence_repository import SaleEvidenceRepository
from repositories.sale_repository import SaleRepository


class SalesStore(Protocol):
    # Sales
    def get_sale(self, sale_id: UUID) -> Optional[Sale]: ...

    def get_sale_by_conversation(self, conversation_id: str) -> Optional[Sale]: ...

    def insert_sale(self, sale: Sale) -> Sale: ...

    def save_sale(self, sale: Sale) -> None: ...

    def list_sales(self, filters: SaleQueryFilters) -> Tuple[List[Sale], int]: ...

    # Evidence
    def get_evidence(self, sale_id: UUID) -> Optional[SaleEvidence]: ...

    def save_evidence(self, evidence: SaleEvidence) -> None: ...

    # Audit trail (append-only)
    def append_audit_entry(self, entry: SaleAuditLogEntry) -> None: ...

    def list_audit_entries(self, sale_id: UUID) -> List[SaleAuditLogEntry]: ...

    # Conversations (owned by the messaging subsystem)
    def get_conversation(self, conversation_id: str) -> Optional[Conversation]: ...

    def update_conversation_sale_info(
        self, conversation_id: str, changes: Mapping[str, Any]
    ) -> None: ...

    def list_messages(self, conversation_id: str) -> List[Message]: ...

    def find_rep_by_phone(self, phone_number: str) -> Optional[RepInfo]: ...


class SupabaseSalesStore:
    """SalesStore backed by Supabase tables."""

    def __init__(self, client: Any) -> None:
        self._sales = SaleRepository(client)
        self._evidence = SaleEvidenceRepository(client)
        self._audit = SaleAuditRepository(client)
        self._conversations = ConversationRepository(client)

    def get_sale(self, sale_id: UUID) -> Optional[Sale]:
        return self._sales.get_by_id(sale_id)

    def get_sale_by_conversation(self, conversation_id: str) -> Optional[Sale]:
        return self._sales.get_by_conversation(conversation_id)

    def insert_sale(self, sale: Sale) -> Sale:
        return self._sales.insert(sale)

    def save_sale(self, sale: Sale) -> None:
        self._sales.save(sale)

    def list_sales(self, filters: SaleQueryFilters) -> Tuple[List[Sale], int]:
        return self._sales.list_sales(filters)

    def get_evidence(self, sale_id: UUID) -> Optional[SaleEvidence]:
        return self._evidence.get_by_sale(sale_id)

    def save_evidence(self, evidence: SaleEvidence) -> None:
        self._evidence.save(evidence)

    def append_audit_entry(self, entry: SaleAuditLogEntry) -> None:
        self._audit.append(entry)

    def list_audit_entries(self, sale_id: UUID) -> List[SaleAuditLogEntry]:
        return self._audit.list_by_sale(sale_id)

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get_by_id(conversation_id)

    def update_conversation_sale_info(
        self, conversation_id: str, changes: Mapping[str, Any]
    ) -> None:
        self._conversations.update_sale_info(conversation_id, changes)

    def list_messages(self, conversation_id: str) -> List[Message]:
        return self._conversations.list_messages(conversation_id)

    def find_rep_by_phone(self, phone_number: str) -> Optional[RepInfo]:
        return self._conversations.find_rep_by_phone(phone_number)


def list_all_sales(store: SalesStore, filters: SaleQueryFilters, *, page_size: int = MAX_ROWS) -> List[Sale]:
    """
    Every sale matching `filters`, read page by page.

    `filters.limit` and `filters.offset` are ignored. Raises RuntimeError when
    the store stops returning rows before the reported total is reached.
    """

    sales: List[Sale] = []
    while True:
        page, total = store.list_sales(replace(filters, limit=page_size, offset=len(sales)))
        sales.extend(page)
        if len(sales) >= total:
            return sales
        if not page:
            raise RuntimeError(f"Failed to list sales: read {len(sales)} of {total} rows")


__all__ = [
    "SalesStore",
    "SupabaseSalesStore",
    "list_all_sales",
]
