"""
Message Tracking API Endpoints.

Called by the messaging relay for every message it delivers, so that sale
keywords can be detected. Tracking is best-effort and never fails the relay.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_current_actor, get_tracking_service
from api.models import TrackMessageRequest, TrackMessageResponse
from domain.conversation import Message, MessageSender
from domain.sale import Actor
from domain.time import parse_utc_datetime
from services.sale_tracking_service import SaleTrackingService

router = APIRouter()


@router.post(
    "/conversations/{conversation_id}/messages/track",
    response_model=TrackMessageResponse,
    status_code=202,
    summary="Track Message",
    description="Scan a relayed message for sale keywords and update the conversation's sale tracking."
)
def track_message(
    conversation_id: str,
    request: TrackMessageRequest,
    actor: Actor = Depends(get_current_actor),
    service: SaleTrackingService = Depends(get_tracking_service),
):
    """
    Track a message for sale keywords.

    Always accepted (202) once the body is valid; tracking failures are logged
    server-side and do not surface here.

    **Example response:**
    ```json
    {
      "flagged": true,
      "keywords": ["sending payment", "sold"],
      "confidence_level": "high",
      "sale_id": "123e4567-e89b-12d3-a456-426614174000",
      "sale_created": true,
      "evidence_updated": false
    }
    ```
    """
    try:
        sender = MessageSender(request.sender.strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in MessageSender)
        raise HTTPException(status_code=400, detail=f"Invalid sender {request.sender!r}; expected one of: {allowed}")

    message = Message(
        message_id=request.message_id,
        sender=sender,
        content=request.content,
        timestamp=parse_utc_datetime(request.timestamp) if request.timestamp else datetime.now(timezone.utc),
    )
    return TrackMessageResponse.from_domain(service.track_message(conversation_id, message))
