"""
Sale repository (persistence).

This module provides *only* persistence operations for the Sale domain entity.
It does not enforce business rules (status transitions, reason requirements,
commission recomputation); those live in the Sale Lifecycle Manager.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple
from uuid import UUID

from domain.sale import (
    ActorRef,
    DetectionMethod,
    RepInfo,
    Sale,
    SaleChannel,
    SaleStatus,
)
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc
from repositories.filters import MAX_ROWS, SaleQueryFilters

# Supabase table name for sale records.
# Keep this aligned with your database schema.
_SALES_TABLE: str = "sales"


def _actor_ref_to_json(ref: Optional[ActorRef]) -> Optional[dict[str, str]]:
    if ref is None:
        return None
    return {"uid": ref.uid, "name": ref.name}


def _actor_ref_from_json(value: Any) -> Optional[ActorRef]:
    if not value:
        return None
    return ActorRef(uid=str(value["uid"]), name=str(value["name"]))


def _optional_iso(sale: Sale, name: str) -> Optional[str]:
    value = getattr(sale, name)
    return to_iso_utc(value, name=name) if value is not None else None


def sale_to_row(sale: Sale) -> dict[str, Any]:
    """Serialize a Sale into a Supabase row."""

    return {
        "sale_id": str(sale.sale_id),
        "conversation_id": sale.conversation_id,
        "customer_name": sale.customer_name,
        "customer_phone": sale.customer_phone,
        "customer_instagram": sale.customer_instagram,
        "channel": sale.channel.value,
        "sale_amount": str(sale.sale_amount),
        "commission_rate": str(sale.commission_rate),
        "commission_amount": str(sale.commission_amount),
        "status": sale.status.value,
        "detection_method": sale.detection_method.value,
        "rep_name": sale.rep_info.name,
        "rep_phone_number": sale.rep_info.phone_number,
        "rep_id": sale.rep_info.rep_id,
        "notes": sale.notes,
        "product_details": sale.product_details,
        "detected_keywords": list(sale.detected_keywords),
        "marked_by": _actor_ref_to_json(sale.marked_by),
        "dispute_reason": sale.dispute_reason,
        "disputed_at_utc": _optional_iso(sale, "disputed_at"),
        "disputed_by": _actor_ref_to_json(sale.disputed_by),
        "verified_at_utc": _optional_iso(sale, "verified_at"),
        "verified_by": _actor_ref_to_json(sale.verified_by),
        "sale_date_utc": to_iso_utc(sale.sale_date, name="sale_date"),
        "created_at_utc": _optional_iso(sale, "created_at"),
        "updated_at_utc": _optional_iso(sale, "updated_at"),
    }


def row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row into a Sale."""

    return Sale(
        sale_id=UUID(str(row["sale_id"])),
        conversation_id=str(row["conversation_id"]),
        customer_name=str(row.get("customer_name") or ""),
        customer_phone=str(row.get("customer_phone") or ""),
        customer_instagram=row.get("customer_instagram"),
        channel=SaleChannel(str(row["channel"])),
        sale_amount=Decimal(str(row["sale_amount"])),
        commission_rate=Decimal(str(row["commission_rate"])),
        commission_amount=Decimal(str(row["commission_amount"])),
        status=SaleStatus(str(row["status"])),
        detection_method=DetectionMethod(str(row["detection_method"])),
        rep_info=RepInfo(
            name=str(row.get("rep_name") or ""),
            phone_number=str(row.get("rep_phone_number") or ""),
            rep_id=row.get("rep_id"),
        ),
        notes=row.get("notes"),
        product_details=row.get("product_details"),
        detected_keywords=tuple(row.get("detected_keywords") or ()),
        marked_by=_actor_ref_from_json(row.get("marked_by")),
        dispute_reason=row.get("dispute_reason"),
        disputed_at=parse_optional_utc_datetime(row.get("disputed_at_utc")),
        disputed_by=_actor_ref_from_json(row.get("disputed_by")),
        verified_at=parse_optional_utc_datetime(row.get("verified_at_utc")),
        verified_by=_actor_ref_from_json(row.get("verified_by")),
        sale_date=parse_utc_datetime(row["sale_date_utc"]),
        created_at=parse_optional_utc_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_utc_datetime(row.get("updated_at_utc")),
    )


class SaleRepository:
    """Supabase-backed persistence for Sale records."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def insert(self, sale: Sale) -> Sale:
        response = self._client.table(_SALES_TABLE).insert(sale_to_row(sale)).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to create sale: {error}")
        return sale

    def save(self, sale: Sale) -> None:
        """Overwrite the stored state of an existing sale."""

        payload = sale_to_row(sale)
        payload.pop("sale_id")
        payload.pop("created_at_utc")

        response = (
            self._client.table(_SALES_TABLE)
            .update(payload)
            .eq("sale_id", str(sale.sale_id))
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update sale: {error}")

    def get_by_id(self, sale_id: UUID) -> Optional[Sale]:
        response = (
            self._client.table(_SALES_TABLE)
            .select("*")
            .eq("sale_id", str(sale_id))
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get sale: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return row_to_sale(rows[0])

    def get_by_conversation(self, conversation_id: str) -> Optional[Sale]:
        """Most recent sale recorded for a conversation, if any."""

        response = (
            self._client.table(_SALES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at_utc", desc=True)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get sale by conversation: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return row_to_sale(rows[0])

    def list_sales(self, filters: SaleQueryFilters) -> Tuple[List[Sale], int]:
        """
        List sales matching `filters`, newest sale_date first.

        Returns:
            (page of sales, total number of matching sales)
        """

        query = self._client.table(_SALES_TABLE).select("*", count="exact")

        if filters.start is not None:
            query = query.gte("sale_date_utc", to_iso_utc(filters.start, name="start"))
        if filters.end_exclusive is not None:
            query = query.lt("sale_date_utc", to_iso_utc(filters.end_exclusive, name="end_exclusive"))
        if filters.channel is not None:
            query = query.eq("channel", filters.channel.value)
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.rep_phone_number:
            query = query.eq("rep_phone_number", filters.rep_phone_number)

        query = query.order("sale_date_utc", desc=True)
        limit = filters.limit if filters.limit is not None else MAX_ROWS
        query = query.range(filters.offset, filters.offset + limit - 1)

        response = query.execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list sales: {error}")

        rows = getattr(response, "data", None) or []
        total = getattr(response, "count", None)
        sales = [row_to_sale(row) for row in rows]
        return sales, total if total is not None else len(sales)


__all__ = [
    "SaleRepository",
    "sale_to_row",
    "row_to_sale",
]
