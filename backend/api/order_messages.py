from fastapi import APIRouter, Depends, Query, status

from config import settings
from errors import OrderError
from repositories.order_store import OrderStore
from schemas import MessageCollection, MessageCreate, MessageDocument
from services import negotiation_service
from services.guards import OrderScope
from services.resources import page_meta, render_message
from stores import get_order_store

from .deps import participant_order, to_http_exception

router = APIRouter(prefix="/api/orders", tags=["order-messages"])


@router.get("/{order_id}/messages", response_model=MessageCollection)
async def list_messages(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> MessageCollection:
    limit = limit or settings.messages_page_size
    messages, total = await negotiation_service.list_order_messages(
        scope, store, page=page, limit=limit
    )
    return MessageCollection(
        data=[render_message(message) for message in messages],
        meta=page_meta(total, page, limit),
    )


@router.post(
    "/{order_id}/messages",
    response_model=MessageDocument,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    payload: MessageCreate,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> MessageDocument:
    message = await negotiation_service.send_order_message(
        scope,
        store,
        content=payload.content,
        type=payload.type.value,
        attachments=[str(url) for url in payload.attachments],
        is_urgent=payload.is_urgent,
    )
    return MessageDocument(data=render_message(message))


@router.post("/{order_id}/messages/{message_id}/read", response_model=MessageDocument)
async def mark_read(
    message_id: str,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> MessageDocument:
    try:
        message = await negotiation_service.mark_message_as_read(scope, store, message_id)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return MessageDocument(data=render_message(message))
