from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.routing import APIRouter
from loguru import logger

from ..lib.auth.dependencies import require_ingest_key
from ..lib.reports.formatting import mask_api_key
from ..lib.reports.store import EventStore, get_event_store
from ..models import ApiEvent
from ..types import ApiEventIn, MessageResponse

router = APIRouter(prefix="/api/stats", tags=["events"])


@router.post(
    "/api-info",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageResponse,
    dependencies=[Depends(require_ingest_key)],
    responses={
        status.HTTP_401_UNAUTHORIZED: {
            "description": "Missing or invalid ingestion key"
        },
        status.HTTP_422_UNPROCESSABLE_ENTITY: {
            "description": "Event payload failed validation"
        },
        status.HTTP_500_INTERNAL_SERVER_ERROR: {
            "description": "Database error"
        },
    },
    summary="Record API Usage",
    description="Append one usage event reported by the chat client",
)
async def save_api_info(
    payload: ApiEventIn,
    store: Annotated[EventStore, Depends(get_event_store)],
) -> MessageResponse:
    """
    Store one usage event.

    **Authentication Required**: the chat client presents the ingestion key
    as a Bearer token.

    Events are append-only; nothing in the service updates or deletes them.
    """
    try:
        event = await store.insert(ApiEvent.from_payload(payload))
    except Exception as e:  # noqa: BLE001
        logger.error(f"Error saving API info: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save API info",
        )

    logger.debug(
        f"Saved event {event.id} for handle {payload.handle} "
        f"(key {mask_api_key(payload.api_key)})"
    )
    return MessageResponse(message="API info saved successfully")
