"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Monetary fields are serialized as Decimal; business validation (amount >= 0,
reason required for status changes) happens in the domain so that the API
reports the precise rule that failed.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.audit import SaleAuditLogEntry, SaleSnapshot
from domain.evidence import SaleEvidence
from domain.sale import ActorRef, Sale
from domain.summary import CommissionSummary
from services.sale_lifecycle_service import SaleDetails
from services.sale_tracking_service import TrackingOutcome


# ============================================================================
# Sale Models
# ============================================================================

class ActorRefResponse(BaseModel):
    uid: str
    name: str

    @staticmethod
    def from_domain(ref: Optional[ActorRef]) -> Optional["ActorRefResponse"]:
        if ref is None:
            return None
        return ActorRefResponse(uid=ref.uid, name=ref.name)


class RepInfoResponse(BaseModel):
    name: str
    phone_number: str
    rep_id: Optional[str] = None


class SaleResponse(BaseModel):
    """Single sale in API responses."""
    sale_id: UUID
    conversation_id: str
    customer_name: str
    customer_phone: str
    customer_instagram: Optional[str] = None
    channel: str
    sale_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: str
    detection_method: str
    rep_info: RepInfoResponse
    notes: Optional[str] = None
    product_details: Optional[str] = None
    detected_keywords: List[str] = []
    marked_by: Optional[ActorRefResponse] = None
    dispute_reason: Optional[str] = None
    disputed_at: Optional[datetime] = None
    disputed_by: Optional[ActorRefResponse] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[ActorRefResponse] = None
    sale_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "123e4567-e89b-12d3-a456-426614174000",
                "conversation_id": "conv_8f2c1",
                "customer_name": "Jane Doe",
                "customer_phone": "+15551234567",
                "customer_instagram": None,
                "channel": "website",
                "sale_amount": "100.00",
                "commission_rate": "0.10",
                "commission_amount": "10.00",
                "status": "potential",
                "detection_method": "keyword",
                "rep_info": {"name": "Sam Rep", "phone_number": "+15557654321", "rep_id": "rep_1"},
                "detected_keywords": ["sending payment", "sold"],
                "sale_date": "2025-03-14T15:09:26Z",
            }
        }

    @staticmethod
    def from_domain(sale: Sale) -> "SaleResponse":
        return SaleResponse(
            sale_id=sale.sale_id,
            conversation_id=sale.conversation_id,
            customer_name=sale.customer_name,
            customer_phone=sale.customer_phone,
            customer_instagram=sale.customer_instagram,
            channel=sale.channel.value,
            sale_amount=sale.sale_amount,
            commission_rate=sale.commission_rate,
            commission_amount=sale.commission_amount,
            status=sale.status.value,
            detection_method=sale.detection_method.value,
            rep_info=RepInfoResponse(
                name=sale.rep_info.name,
                phone_number=sale.rep_info.phone_number,
                rep_id=sale.rep_info.rep_id,
            ),
            notes=sale.notes,
            product_details=sale.product_details,
            detected_keywords=list(sale.detected_keywords),
            marked_by=ActorRefResponse.from_domain(sale.marked_by),
            dispute_reason=sale.dispute_reason,
            disputed_at=sale.disputed_at,
            disputed_by=ActorRefResponse.from_domain(sale.disputed_by),
            verified_at=sale.verified_at,
            verified_by=ActorRefResponse.from_domain(sale.verified_by),
            sale_date=sale.sale_date,
            created_at=sale.created_at,
            updated_at=sale.updated_at,
        )


class SaleListResponse(BaseModel):
    """Response for sale listing."""
    sales: List[SaleResponse]
    total: int


class CreateSaleRequest(BaseModel):
    """Manually mark a conversation as a sale."""
    conversation_id: str = Field(..., min_length=1)
    sale_amount: Decimal
    product_details: Optional[str] = None
    sale_date: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "conversation_id": "conv_8f2c1",
                "sale_amount": "249.99",
                "product_details": "Annual plan",
                "sale_date": "2025-03-14T15:09:26Z",
                "notes": "Customer paid by card over the phone",
            }
        }


class CreateSaleResponse(BaseModel):
    success: bool
    sale_id: UUID
    channel: str
    commission_rate: Decimal
    commission_amount: Decimal


class UpdateSaleRequest(BaseModel):
    """
    Admin edit of a sale.

    `reason` is required whenever `status` differs from the current status.
    Sending `"notes": null` clears the notes.
    """
    status: Optional[str] = None
    sale_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "verified",
                "reason": "confirmed via screenshot",
            }
        }


class UpdateSaleResponse(BaseModel):
    success: bool
    sale: SaleResponse


# ============================================================================
# Evidence & Audit Models
# ============================================================================

class KeywordMatchResponse(BaseModel):
    keyword: str
    message_id: str
    timestamp: datetime
    context: str


class TranscriptEntryResponse(BaseModel):
    message_id: str
    sender: str
    content: str
    timestamp: datetime


class SaleEvidenceResponse(BaseModel):
    evidence_id: UUID
    sale_id: UUID
    conversation_id: str
    message_ids: List[str]
    keywords_found: List[KeywordMatchResponse]
    transcript_snapshot: List[TranscriptEntryResponse]
    created_at: datetime
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_domain(evidence: SaleEvidence) -> "SaleEvidenceResponse":
        return SaleEvidenceResponse(
            evidence_id=evidence.evidence_id,
            sale_id=evidence.sale_id,
            conversation_id=evidence.conversation_id,
            message_ids=list(evidence.message_ids),
            keywords_found=[
                KeywordMatchResponse(
                    keyword=m.keyword,
                    message_id=m.message_id,
                    timestamp=m.timestamp,
                    context=m.context,
                )
                for m in evidence.keywords_found
            ],
            transcript_snapshot=[
                TranscriptEntryResponse(
                    message_id=e.message_id,
                    sender=e.sender.value,
                    content=e.content,
                    timestamp=e.timestamp,
                )
                for e in evidence.transcript_snapshot
            ],
            created_at=evidence.created_at,
            updated_at=evidence.updated_at,
        )


class PerformedByResponse(BaseModel):
    uid: str
    name: str
    email: str
    role: str


class SaleSnapshotResponse(BaseModel):
    status: str
    sale_amount: Decimal

    @staticmethod
    def from_domain(snapshot: Optional[SaleSnapshot]) -> Optional["SaleSnapshotResponse"]:
        if snapshot is None:
            return None
        return SaleSnapshotResponse(status=snapshot.status.value, sale_amount=snapshot.sale_amount)


class AuditLogEntryResponse(BaseModel):
    entry_id: UUID
    sale_id: UUID
    action: str
    performed_by: PerformedByResponse
    previous_value: Optional[SaleSnapshotResponse] = None
    new_value: Optional[SaleSnapshotResponse] = None
    reason: Optional[str] = None
    timestamp: datetime

    @staticmethod
    def from_domain(entry: SaleAuditLogEntry) -> "AuditLogEntryResponse":
        return AuditLogEntryResponse(
            entry_id=entry.entry_id,
            sale_id=entry.sale_id,
            action=entry.action.value,
            performed_by=PerformedByResponse(
                uid=entry.performed_by.uid,
                name=entry.performed_by.name,
                email=entry.performed_by.email,
                role=entry.performed_by.role.value,
            ),
            previous_value=SaleSnapshotResponse.from_domain(entry.previous_value),
            new_value=SaleSnapshotResponse.from_domain(entry.new_value),
            reason=entry.reason,
            timestamp=entry.timestamp,
        )


class SaleDetailsResponse(BaseModel):
    """Sale with its evidence and audit trail (newest entry first)."""
    sale: SaleResponse
    evidence: Optional[SaleEvidenceResponse] = None
    audit_logs: List[AuditLogEntryResponse]

    @staticmethod
    def from_domain(details: SaleDetails) -> "SaleDetailsResponse":
        return SaleDetailsResponse(
            sale=SaleResponse.from_domain(details.sale),
            evidence=SaleEvidenceResponse.from_domain(details.evidence) if details.evidence else None,
            audit_logs=[AuditLogEntryResponse.from_domain(e) for e in details.audit_logs],
        )


# ============================================================================
# Summary Models
# ============================================================================

class ChannelSummaryResponse(BaseModel):
    channel: str
    count: int
    verified_count: int
    sale_amount: Decimal
    commission: Decimal


class RepSummaryResponse(BaseModel):
    rep_name: str
    rep_phone_number: str
    count: int
    verified_count: int
    sale_amount: Decimal
    commission: Decimal


class CommissionSummaryResponse(BaseModel):
    """
    Commission summary for a reporting period.

    Totals count verified sales only; pipeline totals cover potential,
    pending and disputed sales. Rejected sales appear in counts only.
    """
    period_start: datetime
    period_end: datetime
    total_sales: int
    total_sale_amount: Decimal
    total_commission: Decimal
    counts_by_status: Dict[str, int]
    pipeline_sale_amount: Decimal
    pipeline_commission: Decimal
    by_channel: List[ChannelSummaryResponse]
    by_rep: List[RepSummaryResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "period_start": "2025-03-01T00:00:00Z",
                "period_end": "2025-03-31T23:59:59.999999Z",
                "total_sales": 2,
                "total_sale_amount": "300.00",
                "total_commission": "25.00",
                "counts_by_status": {
                    "potential": 1,
                    "pending": 0,
                    "verified": 2,
                    "disputed": 0,
                    "rejected": 1,
                },
                "pipeline_sale_amount": "0.00",
                "pipeline_commission": "0.00",
                "by_channel": [],
                "by_rep": [],
            }
        }

    @staticmethod
    def from_domain(summary: CommissionSummary) -> "CommissionSummaryResponse":
        return CommissionSummaryResponse(
            period_start=summary.period.start,
            period_end=summary.period.end,
            total_sales=summary.total_sales,
            total_sale_amount=summary.total_sale_amount,
            total_commission=summary.total_commission,
            counts_by_status={status.value: count for status, count in summary.counts_by_status.items()},
            pipeline_sale_amount=summary.pipeline_sale_amount,
            pipeline_commission=summary.pipeline_commission,
            by_channel=[
                ChannelSummaryResponse(
                    channel=row.channel.value,
                    count=row.count,
                    verified_count=row.verified_count,
                    sale_amount=row.sale_amount,
                    commission=row.commission,
                )
                for row in summary.by_channel
            ],
            by_rep=[
                RepSummaryResponse(
                    rep_name=row.rep_name,
                    rep_phone_number=row.rep_phone_number,
                    count=row.count,
                    verified_count=row.verified_count,
                    sale_amount=row.sale_amount,
                    commission=row.commission,
                )
                for row in summary.by_rep
            ],
        )


# ============================================================================
# Message Tracking Models
# ============================================================================

class TrackMessageRequest(BaseModel):
    """A message relayed through the conversation, to be scanned for sale keywords."""
    message_id: str = Field(..., min_length=1)
    sender: str
    content: str
    timestamp: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "message_id": "msg_001",
                "sender": "USER",
                "content": "Sold! Sending payment now",
                "timestamp": "2025-03-14T15:09:26Z",
            }
        }


class TrackMessageResponse(BaseModel):
    flagged: bool
    keywords: List[str]
    confidence_level: Optional[str] = None
    sale_id: Optional[UUID] = None
    sale_created: bool = False
    evidence_updated: bool = False

    @staticmethod
    def from_domain(outcome: TrackingOutcome) -> "TrackMessageResponse":
        return TrackMessageResponse(
            flagged=outcome.flagged,
            keywords=list(outcome.keywords),
            confidence_level=outcome.confidence_level.value if outcome.confidence_level else None,
            sale_id=outcome.sale_id,
            sale_created=outcome.sale_created,
            evidence_updated=outcome.evidence_updated,
        )
