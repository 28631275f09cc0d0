"""
Conversation repository (persistence).

Conversations, messages and reps belong to the messaging subsystem. This module
reads them and writes *only* the sale-tracking columns of a conversation.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.conversation import (
    SALE_TRACKING_FIELDS,
    Conversation,
    ConversationSaleStatus,
    Message,
    MessageSender,
)
from domain.sale import RepInfo
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc

_CONVERSATIONS_TABLE: str = "conversations"
_MESSAGES_TABLE: str = "messages"
_REPS_TABLE: str = "reps"


def _row_to_conversation(row: Mapping[str, Any]) -> Conversation:
    sale_status = row.get("sale_status")
    sale_id = row.get("sale_id")
    return Conversation(
        conversation_id=str(row["conversation_id"]),
        user_mobile_number=str(row.get("user_mobile_number") or ""),
        rep_phone_number=str(row.get("rep_phone_number") or ""),
        customer_first_name=row.get("customer_first_name"),
        customer_last_name=row.get("customer_last_name"),
        user_instagram_handle=row.get("user_instagram_handle"),
        has_potential_sale=bool(row.get("has_potential_sale", False)),
        sale_status=ConversationSaleStatus(str(sale_status)) if sale_status else None,
        sale_keywords_count=int(row.get("sale_keywords_count") or 0),
        last_sale_keyword_at=parse_optional_utc_datetime(row.get("last_sale_keyword_at_utc")),
        sale_id=UUID(str(sale_id)) if sale_id else None,
    )


def _row_to_message(row: Mapping[str, Any]) -> Message:
    return Message(
        message_id=str(row["message_id"]),
        sender=MessageSender(str(row["sender"])),
        content=str(row.get("content") or ""),
        timestamp=parse_utc_datetime(row["timestamp_utc"]),
    )


def sale_info_to_columns(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Map sale-tracking field changes onto conversation columns."""

    unknown = set(changes) - SALE_TRACKING_FIELDS
    if unknown:
        raise ValueError(f"Not a sale-tracking field: {sorted(unknown)}")

    payload: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "sale_status":
            payload["sale_status"] = value.value if value is not None else None
        elif name == "sale_id":
            payload["sale_id"] = str(value) if value is not None else None
        elif name == "last_sale_keyword_at":
            payload["last_sale_keyword_at_utc"] = (
                to_iso_utc(value, name="last_sale_keyword_at") if value is not None else None
            )
        else:
            payload[name] = value
    return payload


class ConversationRepository:
    """Supabase-backed access to conversations, their messages and reps."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        response = (
            self._client.table(_CONVERSATIONS_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get conversation: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return _row_to_conversation(rows[0])

    def update_sale_info(self, conversation_id: str, changes: Mapping[str, Any]) -> None:
        response = (
            self._client.table(_CONVERSATIONS_TABLE)
            .update(sale_info_to_columns(changes))
            .eq("conversation_id", conversation_id)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update conversation sale info: {error}")

    def list_messages(self, conversation_id: str) -> List[Message]:
        """All messages of a conversation, oldest first."""

        response = (
            self._client.table(_MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("timestamp_utc")
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list messages: {error}")

        rows = getattr(response, "data", None) or []
        return [_row_to_message(row) for row in rows]

    def find_rep_by_phone(self, phone_number: str) -> Optional[RepInfo]:
        if not phone_number:
            return None

        response = (
            self._client.table(_REPS_TABLE)
            .select("rep_id, name, phone_number")
            .eq("phone_number", phone_number)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to look up rep: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        row = rows[0]
        return RepInfo(
            name=str(row["name"]),
            phone_number=phone_number,
            rep_id=str(row["rep_id"]) if row.get("rep_id") else None,
        )


__all__ = [
    "ConversationRepository",
    "sale_info_to_columns",
]
