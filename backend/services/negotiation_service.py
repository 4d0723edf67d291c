import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from config import settings
from domain import Message, Order, as_utc, utc_now
from errors import NotFoundError
from repositories.order_store import OrderStore
from services.guards import OrderScope
from services.order_lifecycle import apply_counter_offer, commit

logger = logging.getLogger("trade-orders")

NEGOTIATION_MESSAGE = "negotiation"


async def counter_offer(
    scope: OrderScope,
    store: OrderStore,
    *,
    message: str,
    changes: Dict[str, Any],
    expires_at: datetime,
) -> Tuple[Order, Message]:
    """
    Record a counter offer on the order and post it to the order's thread.

    The order write is conditional and goes first; the thread message carries
    the id the CounterOffered event points at. If the message cannot be stored
    the loaded order is written back so no event points at a missing message.
    """
    actor = scope.actor
    logger.info("Counter offer on order %s from org %s", scope.order.id, actor.organization_id)
    now = utc_now()
    message_id = uuid4().hex
    updated = apply_counter_offer(
        scope.order,
        actor,
        now=now,
        message=message,
        changes=changes,
        expires_at=expires_at,
        message_id=message_id,
    )
    order = await commit(store, scope.order, updated)
    thread_message = Message(
        id=message_id,
        order_id=order.id,
        sender_id=actor.user_id,
        sender_org_id=actor.organization_id,
        content=message,
        type=NEGOTIATION_MESSAGE,
        created_at=now,
        counter_offer={
            "message": message,
            "changes": changes,
            "expires_at": as_utc(expires_at).isoformat(),
        },
    )
    try:
        stored = await asyncio.to_thread(store.insert_message, thread_message)
    except Exception:
        logger.exception(
            "Failed to post counter offer %s on order %s, restoring order", message_id, order.id
        )
        await commit(store, order, replace(scope.order, version=order.version))
        raise
    logger.info("Successfully recorded counter offer %s on order %s", stored.id, order.id)
    return order, stored


async def send_order_message(
    scope: OrderScope,
    store: OrderStore,
    *,
    content: str,
    type: str = "general",
    attachments: Sequence[str] = (),
    is_urgent: bool = False,
) -> Message:
    actor = scope.actor
    message = Message(
        id=uuid4().hex,
        order_id=scope.order.id,
        sender_id=actor.user_id,
        sender_org_id=actor.organization_id,
        content=content,
        type=type,
        attachments=tuple(attachments),
        is_urgent=is_urgent,
        created_at=utc_now(),
    )
    stored = await asyncio.to_thread(store.insert_message, message)
    logger.info("User %s posted %s message %s on order %s", actor.user_id, type, stored.id, scope.order.id)
    return stored


async def list_order_messages(
    scope: OrderScope,
    store: OrderStore,
    *,
    page: int = 1,
    limit: Optional[int] = None,
) -> Tuple[List[Message], int]:
    limit = max(1, min(limit or settings.messages_page_size, 100))
    offset = (max(1, page) - 1) * limit
    return await asyncio.to_thread(
        store.list_messages, scope.order.id, offset=offset, limit=limit
    )


async def mark_message_as_read(
    scope: OrderScope, store: OrderStore, message_id: str
) -> Message:
    message = await asyncio.to_thread(store.fetch_message, message_id)
    if message is None or message.order_id != scope.order.id:
        raise NotFoundError("Message not found")
    if message.is_read:
        return message
    marked = replace(message, read_at=utc_now())
    result = await asyncio.to_thread(store.mark_message_read, marked)
    logger.info("Message %s marked read by user %s", result.id, scope.actor.user_id)
    return result
