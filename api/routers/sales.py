"""
Sales API Endpoints.

Admin endpoints for listing, marking, reviewing, summarizing and exporting
sales. Every mutation goes through the Sale Lifecycle Manager so that it is
validated and audited.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from api.dependencies import (
    get_lifecycle_manager,
    get_settings,
    get_store,
    get_summary_service,
    require_role,
)
from api.models import (
    CommissionSummaryResponse,
    CreateSaleRequest,
    CreateSaleResponse,
    SaleDetailsResponse,
    SaleListResponse,
    SaleResponse,
    UpdateSaleRequest,
    UpdateSaleResponse,
)
from domain.errors import NotFoundError, ValidationError
from domain.sale import Actor, SaleChannel, UserRole
from domain.sale_updates import parse_status, split_update_request
from domain.time import parse_utc_datetime
from repositories.filters import SaleQueryFilters
from repositories.store import SalesStore, list_all_sales
from services.commission_summary_service import CommissionSummaryService
from services.csv_export_service import iter_sales_csv
from services.sale_lifecycle_service import SaleLifecycleManager
from services.settings import CommissionSettings

router = APIRouter()

SUPER_ADMIN_ONLY = (UserRole.SUPER_ADMIN,)
ANY_STAFF = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.REP)


def _to_http_exception(exc: Exception, action: str) -> HTTPException:
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(exc)}")


def _parse_sale_id(sale_id: str) -> UUID:
    try:
        return UUID(sale_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid UUID format for sale_id")


def _parse_channel(value: Optional[str]) -> Optional[SaleChannel]:
    if value is None:
        return None
    try:
        return SaleChannel(value)
    except ValueError:
        allowed = ", ".join(channel.value for channel in SaleChannel)
        raise ValidationError(f"Invalid channel {value!r}; expected one of: {allowed}")


def _build_filters(
    settings: CommissionSettings,
    *,
    start_date: Optional[date],
    end_date: Optional[date],
    channel: Optional[str],
    status: Optional[str],
    **kwargs,
) -> SaleQueryFilters:
    return SaleQueryFilters.for_dates(
        start_date,
        end_date,
        settings.tzinfo,
        channel=_parse_channel(channel),
        status=parse_status(status) if status is not None else None,
        **kwargs,
    )


@router.get(
    "/sales",
    response_model=SaleListResponse,
    summary="List Sales",
    description="List sales, newest first, with optional date, channel, status and rep filters."
)
def list_sales(
    start_date: Optional[date] = Query(None, alias="startDate", description="First day (inclusive)"),
    end_date: Optional[date] = Query(None, alias="endDate", description="Last day (inclusive)"),
    channel: Optional[str] = Query(None, description="instagram, website, sms or other"),
    status: Optional[str] = Query(None, description="potential, pending, verified, disputed or rejected"),
    rep_phone_number: Optional[str] = Query(None, alias="repPhone"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(require_role(SUPER_ADMIN_ONLY)),
    settings: CommissionSettings = Depends(get_settings),
    manager: SaleLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    List sales.

    Dates are calendar days in the reporting timezone; both bounds are inclusive.

    **Example usage:**
    ```
    GET /api/v1/sales?startDate=2025-03-01&endDate=2025-03-31&status=verified&limit=20
    ```
    """
    try:
        filters = _build_filters(
            settings,
            start_date=start_date,
            end_date=end_date,
            channel=channel,
            status=status,
            rep_phone_number=rep_phone_number,
            limit=limit,
            offset=offset,
        )
        sales, total = manager.list_sales(filters)
        return SaleListResponse(sales=[SaleResponse.from_domain(s) for s in sales], total=total)

    except Exception as e:
        raise _to_http_exception(e, "list sales")


@router.post(
    "/sales",
    response_model=CreateSaleResponse,
    summary="Mark Sale",
    description="Manually mark a conversation as a sale. The sale starts as pending review."
)
def create_sale(
    request: CreateSaleRequest,
    actor: Actor = Depends(require_role(ANY_STAFF)),
    manager: SaleLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Manually mark a sale on a conversation.

    **Process:**
    1. Determines channel and commission rate from the conversation
    2. Resolves the rep attributed to the conversation
    3. Creates the sale (status `pending`, detection method `manual`)
    4. Captures evidence from the full message history
    5. Records a `created` audit entry for the acting user

    **Success response:**
    ```json
    {
      "success": true,
      "sale_id": "123e4567-e89b-12d3-a456-426614174000",
      "channel": "website",
      "commission_rate": "0.10",
      "commission_amount": "25.00"
    }
    ```
    """
    try:
        sale_date = parse_utc_datetime(request.sale_date) if request.sale_date else None
        sale = manager.create_manual(
            request.conversation_id,
            request.sale_amount,
            actor,
            product_details=request.product_details,
            sale_date=sale_date,
            notes=request.notes,
        )
        return CreateSaleResponse(
            success=True,
            sale_id=sale.sale_id,
            channel=sale.channel.value,
            commission_rate=sale.commission_rate,
            commission_amount=sale.commission_amount,
        )

    except Exception as e:
        raise _to_http_exception(e, "create sale")


@router.get(
    "/sales/summary",
    response_model=CommissionSummaryResponse,
    summary="Commission Summary",
    description="Totals, status counts and channel/rep breakdowns for a reporting period."
)
def get_commission_summary(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    actor: Actor = Depends(require_role(SUPER_ADMIN_ONLY)),
    service: CommissionSummaryService = Depends(get_summary_service),
):
    """
    Summarize commissions for a period.

    Without dates the current month is used. Only verified sales count towards
    the totals; rejected sales appear in the counts but never in amounts.
    """
    try:
        return CommissionSummaryResponse.from_domain(service.summarize(start_date, end_date))

    except Exception as e:
        raise _to_http_exception(e, "summarize commissions")


@router.get(
    "/sales/export",
    summary="Export Sales CSV",
    description="Download all matching sales as CSV.",
    response_class=StreamingResponse
)
def export_sales(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    channel: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    include_evidence: bool = Query(False, alias="includeEvidence"),
    actor: Actor = Depends(require_role(SUPER_ADMIN_ONLY)),
    settings: CommissionSettings = Depends(get_settings),
    store: SalesStore = Depends(get_store),
):
    """
    Export sales as CSV.

    **CSV Contents:**
    One row per sale with the columns `Sale ID, Date, Customer Name, Customer Phone,
    Customer Instagram, Channel, Sale Amount, Commission Rate, Commission Amount,
    Status, Detection Method, Rep Name, Rep Phone, Product Details, Notes,
    Verified By, Verified At, Conversation ID`, plus `Keywords Found, Message Count`
    when `includeEvidence=true`.

    **Response:**
    CSV file download with filename: `sales-export-YYYY-MM-DD.csv`
    """
    try:
        filters = _build_filters(
            settings,
            start_date=start_date,
            end_date=end_date,
            channel=channel,
            status=status,
        )
        sales = list_all_sales(store, filters)
        evidence = {}
        if include_evidence:
            evidence = {sale.sale_id: store.get_evidence(sale.sale_id) for sale in sales}

    except Exception as e:
        raise _to_http_exception(e, "export sales")

    filename = f"sales-export-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return StreamingResponse(
        iter_sales_csv(sales, include_evidence=include_evidence, evidence_lookup=evidence.get),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/sales/{sale_id}",
    response_model=SaleDetailsResponse,
    summary="Get Sale Details",
    description="Get a sale with its evidence and audit trail."
)
def get_sale_details(
    sale_id: str,
    actor: Actor = Depends(require_role(SUPER_ADMIN_ONLY)),
    manager: SaleLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return SaleDetailsResponse.from_domain(manager.get_sale_details(_parse_sale_id(sale_id)))

    except Exception as e:
        raise _to_http_exception(e, "fetch sale")


@router.put(
    "/sales/{sale_id}",
    response_model=UpdateSaleResponse,
    summary="Update Sale",
    description="Verify, dispute, reject or amend a sale."
)
def update_sale(
    sale_id: str,
    request: UpdateSaleRequest,
    actor: Actor = Depends(require_role(SUPER_ADMIN_ONLY)),
    manager: SaleLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Update a sale.

    **Rules:**
    - A `reason` is required whenever `status` differs from the current status
    - Changing `sale_amount` recomputes the commission with the sale's original rate
    - Each status change and each amount change is recorded in the audit trail

    **Example request:**
    ```json
    {
      "status": "verified",
      "reason": "confirmed via screenshot"
    }
    ```
    """
    try:
        changes = split_update_request(
            status=request.status,
            sale_amount=request.sale_amount,
            notes=request.notes,
            reason=request.reason,
            notes_provided="notes" in request.model_fields_set,
        )
        sale = manager.apply(_parse_sale_id(sale_id), changes, actor)
        return UpdateSaleResponse(success=True, sale=SaleResponse.from_domain(sale))

    except Exception as e:
        raise _to_http_exception(e, "update sale")
