"""
Domain: the parts of a support conversation that sale tracking reads and writes.

Conversations and their messages are owned by the messaging subsystem. This
core only mutates the sale-tracking fields:
has_potential_sale, sale_status, sale_keywords_count, last_sale_keyword_at, sale_id.

Invariant: sale_id is set only once a Sale exists. Rejecting a sale clears
sale_status and sale_id; the conversation itself persists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from .sale import SaleStatus
from .time import require_utc_timestamp


class ConversationSaleStatus(str, Enum):
    NONE = "none"
    POTENTIAL = "potential"
    PENDING = "pending"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    REJECTED = "rejected"

    @staticmethod
    def for_sale_status(status: SaleStatus) -> "ConversationSaleStatus":
        return ConversationSaleStatus(status.value)


class MessageSender(str, Enum):
    USER = "USER"
    AI = "AI"
    REP = "REP"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True, slots=True)
class Message:
    message_id: str
    sender: MessageSender
    content: str
    timestamp: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class Conversation:
    conversation_id: str
    user_mobile_number: str
    rep_phone_number: str = ""
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    user_instagram_handle: Optional[str] = None

    # Sale tracking
    has_potential_sale: bool = False
    sale_status: Optional[ConversationSaleStatus] = None
    sale_keywords_count: int = 0
    last_sale_keyword_at: Optional[datetime] = None
    sale_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        if self.sale_keywords_count < 0:
            raise ValueError("sale_keywords_count must be >= 0")
        if self.last_sale_keyword_at is not None:
            require_utc_timestamp("last_sale_keyword_at", self.last_sale_keyword_at)

    @property
    def customer_name(self) -> str:
        if self.customer_first_name and self.customer_last_name:
            return f"{self.customer_first_name} {self.customer_last_name}"
        return self.customer_first_name or "Unknown Customer"


# Fields of a conversation this core is allowed to write.
SALE_TRACKING_FIELDS = frozenset(
    {
        "has_potential_sale",
        "sale_status",
        "sale_keywords_count",
        "last_sale_keyword_at",
        "sale_id",
    }
)


def sale_info_changes(**fields: Any) -> Dict[str, Any]:
    """
    Build a partial update of a conversation's sale-tracking fields.

    Only the keys passed are written; passing `sale_status=None` or
    `sale_id=None` clears the linkage.
    """

    unknown = set(fields) - SALE_TRACKING_FIELDS
    if unknown:
        raise TypeError(f"Unknown conversation sale field(s): {sorted(unknown)}")
    return dict(fields)


__all__ = [
    "ConversationSaleStatus",
    "MessageSender",
    "Message",
    "Conversation",
    "SALE_TRACKING_FIELDS",
    "sale_info_changes",
]
