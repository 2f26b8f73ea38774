"""Webhook endpoint: validates the inbound event and hands it to WebhookService.

Flows run in the background; the response only confirms the event was
stored and queued.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse
from pydantic import ValidationError as PydanticValidationError

from core.container import container
from core.logging import get_logger
from models.flow import WebhookPayload
from services.flow_engine import QueueFullError
from services.webhook_service import WebhookService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["webhook"])


def _first_error_field(error: PydanticValidationError) -> Optional[str]:
    errors = error.errors()
    if not errors:
        return None
    loc = [str(part) for part in errors[0].get("loc", ())]
    return ".".join(loc) or None


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    webhook_service: WebhookService = Depends(lambda: container.webhook_service())
):
    """Receive an event: ``{event, data, version?, occurredAt?}``."""
    try:
        body = await request.json()
    except ValueError:
        return ORJSONResponse(
            content={"error": "Request body must be valid JSON", "field": None},
            status_code=400
        )

    if not isinstance(body, dict):
        return ORJSONResponse(
            content={"error": "Request body must be a JSON object", "field": None},
            status_code=400
        )

    try:
        payload = WebhookPayload.model_validate(body)
    except PydanticValidationError as e:
        field = _first_error_field(e)
        logger.warning("Invalid webhook payload", field=field, errors=e.error_count())
        return ORJSONResponse(
            content={"error": f"Invalid webhook payload: {e.errors()[0]['msg']}", "field": field},
            status_code=400
        )

    try:
        event = await webhook_service.receive_webhook(payload)
    except QueueFullError as e:
        return ORJSONResponse(content={"error": str(e), "field": None}, status_code=503)

    return {
        "success": True,
        "id": event.id,
        "message": "Webhook received and queued for processing"
    }
