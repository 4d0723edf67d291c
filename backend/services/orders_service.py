import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from config import settings
from domain import (
    Accepted,
    Actor,
    Completed,
    Confirmed,
    CounterOffered,
    FulfillmentStarted,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Published,
    Rejected,
    as_utc,
    utc_now,
)
from errors import InvalidPayloadError
from repositories.order_store import OrderQuery, OrderStore
from schemas import (
    OrderCreate,
    OrderItemCreate,
    OrderItemUpdate,
    OrderUpdate,
    SortDirection,
    SortField,
    TimelineEvent,
    TrackingAttributes,
)
from services.catalog import CommodityCatalog
from services.guards import OrderScope
from services.order_lifecycle import (
    apply_add_item,
    apply_remove_item,
    apply_update,
    apply_update_item,
    build_item,
    commit,
    require_status,
)

logger = logging.getLogger("trade-orders")

MAX_PAGE_SIZE = 100
SEARCH_LIMIT = 50
SORT_COLUMNS_BY_FIELD = {
    SortField.PRICE: "total_price",
    SortField.DELIVERY_DATE: "delivery_date",
}


def _page_window(page: int, limit: Optional[int]) -> Tuple[int, int]:
    limit = limit or settings.order_page_size
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    return (page - 1) * limit, limit


def _validate_items(catalog: CommodityCatalog, items: Sequence[OrderItemCreate]) -> None:
    for item in items:
        if not catalog.commodity_exists(item.commodity_id):
            raise InvalidPayloadError(f"Commodity {item.commodity_id} not found")
        if item.inventory_id and not catalog.inventory_matches(
            item.inventory_id, item.commodity_id
        ):
            raise InvalidPayloadError(
                f"Inventory {item.inventory_id} does not hold commodity {item.commodity_id}"
            )


def _item_from_payload(payload: OrderItemCreate, now) -> OrderItem:
    quality = (
        payload.quality_requirements.model_dump(exclude_none=True)
        if payload.quality_requirements
        else None
    )
    return build_item(
        commodity_id=payload.commodity_id,
        inventory_id=payload.inventory_id,
        quantity=payload.quantity,
        unit=payload.unit,
        unit_price=payload.unit_price,
        quality_requirements=quality,
        notes=payload.notes,
        now=now,
    )


async def create_order(
    actor: Actor,
    payload: OrderCreate,
    store: OrderStore,
    catalog: CommodityCatalog,
) -> Order:
    logger.info("Creating %s order for user %s", payload.type.value, actor.user_id)
    if not payload.items:
        raise InvalidPayloadError("Order must have at least one item")
    await asyncio.to_thread(_validate_items, catalog, payload.items)

    now = utc_now()
    items = tuple(_item_from_payload(item, now) for item in payload.items)
    address = payload.delivery_address.model_dump(exclude_none=True)
    terms: Dict[str, Any] = {}
    if payload.payment_terms is not None:
        terms["payment_terms"] = payload.payment_terms
    if payload.special_instructions is not None:
        terms["special_instructions"] = payload.special_instructions

    order_number = await asyncio.to_thread(store.next_order_number)
    order = Order(
        id=uuid4().hex,
        order_number=order_number,
        type=payload.type,
        status=OrderStatus.PENDING,
        title=payload.title,
        description=payload.description,
        buyer_org_id=actor.organization_id,
        created_by_id=actor.user_id,
        delivery_date=payload.delivery_date,
        delivery_address=address,
        delivery_location=address.get("street"),
        items=items,
        terms=terms,
        metadata=dict(payload.metadata),
        created_at=now,
        updated_at=now,
    )
    stored = await asyncio.to_thread(store.insert_order, order)
    logger.info(
        "Successfully created order %s (%s) with %s items",
        stored.id,
        stored.order_number,
        len(stored.items),
    )
    return stored


def get_order(scope: OrderScope) -> Order:
    logger.info("Order %s read by user %s", scope.order.id, scope.actor.user_id)
    return scope.order


async def list_orders(
    actor: Actor,
    store: OrderStore,
    *,
    type: Optional[OrderType] = None,
    status: Optional[OrderStatus] = None,
    commodity_id: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Tuple[List[Order], int]:
    offset, limit = _page_window(page, limit)
    query = OrderQuery(
        organization_id=actor.organization_id,
        type=type,
        status=status,
        commodity_id=commodity_id,
        offset=offset,
        limit=limit,
    )
    return await asyncio.to_thread(store.list_orders, query)


async def list_marketplace_orders(
    store: OrderStore,
    *,
    type: Optional[OrderType] = None,
    commodity_id: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Tuple[List[Order], int]:
    offset, limit = _page_window(page, limit)
    query = OrderQuery(
        listed_only=True,
        type=type,
        commodity_id=commodity_id,
        offset=offset,
        limit=limit,
    )
    return await asyncio.to_thread(store.list_orders, query)


async def search_marketplace_orders(
    store: OrderStore,
    *,
    commodity_ids: Sequence[str] = (),
    min_total: Optional[Decimal] = None,
    max_total: Optional[Decimal] = None,
    delivery_from: Optional[datetime] = None,
    delivery_to: Optional[datetime] = None,
    sort_field: Optional[SortField] = None,
    direction: SortDirection = SortDirection.DESC,
) -> Tuple[List[Order], int]:
    """
    Search listed orders by commodity, total price and delivery window.

    Results are capped at SEARCH_LIMIT. Price and delivery date sorts honor
    the requested direction; every other field falls back to newest first.
    """
    if min_total is not None and max_total is not None and min_total > max_total:
        raise InvalidPayloadError("Price range minimum exceeds maximum")
    if delivery_from and delivery_to and as_utc(delivery_from) > as_utc(delivery_to):
        raise InvalidPayloadError("Delivery window starts after it ends")
    column = SORT_COLUMNS_BY_FIELD.get(sort_field)
    query = OrderQuery(
        listed_only=True,
        commodity_ids=tuple(commodity_ids),
        min_total=min_total,
        max_total=max_total,
        delivery_from=delivery_from,
        delivery_to=delivery_to,
        sort_by=column or "created_at",
        descending=column is None or direction == SortDirection.DESC,
        limit=SEARCH_LIMIT,
    )
    orders, total = await asyncio.to_thread(store.list_orders, query)
    logger.info("Found %s listed orders matching search (%s total)", len(orders), total)
    return orders, total


async def update_order(scope: OrderScope, store: OrderStore, payload: OrderUpdate) -> Order:
    logger.info("Updating order %s for user %s", scope.order.id, scope.actor.user_id)
    changes = payload.model_dump(exclude_none=True)
    updated = apply_update(scope.order, changes, now=utc_now())
    order = await commit(store, scope.order, updated)
    logger.info("Successfully updated order %s", order.id)
    return order


async def delete_order(scope: OrderScope, store: OrderStore) -> None:
    logger.info("Deleting order %s for user %s", scope.order.id, scope.actor.user_id)
    require_status(scope.order, (OrderStatus.PENDING,), "be deleted")
    await asyncio.to_thread(
        store.delete_order,
        scope.order.id,
        expected_status=scope.order.status,
        expected_version=scope.order.version,
    )
    logger.info("Successfully deleted order %s", scope.order.id)


def list_order_items(scope: OrderScope) -> Tuple[OrderItem, ...]:
    return scope.order.items


async def add_order_item(
    scope: OrderScope,
    store: OrderStore,
    catalog: CommodityCatalog,
    payload: OrderItemCreate,
) -> Tuple[Order, OrderItem]:
    logger.info("Adding item %s to order %s", payload.commodity_id, scope.order.id)
    require_status(scope.order, (OrderStatus.PENDING,), "have items added")
    await asyncio.to_thread(_validate_items, catalog, [payload])
    now = utc_now()
    item = _item_from_payload(payload, now)
    order = await commit(store, scope.order, apply_add_item(scope.order, item, now=now))
    logger.info("Order %s now has %s items, total %s", order.id, len(order.items), order.total_price)
    return order, order.find_item(item.id)


async def update_order_item(
    scope: OrderScope,
    store: OrderStore,
    item_id: str,
    payload: OrderItemUpdate,
) -> Tuple[Order, OrderItem]:
    logger.info("Updating item %s on order %s", item_id, scope.order.id)
    changes = payload.model_dump(exclude_none=True)
    updated = apply_update_item(scope.order, item_id, changes, now=utc_now())
    order = await commit(store, scope.order, updated)
    return order, order.find_item(item_id)


async def delete_order_item(scope: OrderScope, store: OrderStore, item_id: str) -> Order:
    logger.info("Removing item %s from order %s", item_id, scope.order.id)
    updated = apply_remove_item(scope.order, item_id, now=utc_now())
    return await commit(store, scope.order, updated)


def _describe_event(event) -> Tuple[OrderStatus, str]:
    if isinstance(event, Published):
        return OrderStatus.CONFIRMED, "Order published to the marketplace"
    if isinstance(event, Accepted):
        if event.requires_negotiation:
            return OrderStatus.PENDING, "Order accepted pending negotiation"
        return OrderStatus.CONFIRMED, "Order accepted by supplier"
    if isinstance(event, CounterOffered):
        return OrderStatus.PENDING, f"Counter offer proposed: {event.message}"
    if isinstance(event, Confirmed):
        return OrderStatus.CONFIRMED, "Order confirmed"
    if isinstance(event, FulfillmentStarted):
        return OrderStatus.IN_TRANSIT, "Fulfillment started"
    if isinstance(event, Completed):
        return OrderStatus.DELIVERED, "Order delivered"
    if isinstance(event, Rejected):
        return OrderStatus.CANCELLED, f"Order rejected ({event.reason}): {event.message}"
    raise ValueError(f"Unknown order event {event!r}")


def get_order_timeline(order: Order) -> List[TimelineEvent]:
    entries = [
        TimelineEvent(
            id=f"{order.id}-0",
            order_id=order.id,
            status=OrderStatus.PENDING.value,
            message="Order created",
            actor_id=order.created_by_id,
            created_at=order.created_at,
        )
    ]
    for index, event in enumerate(order.events, start=1):
        status, message = _describe_event(event)
        entries.append(
            TimelineEvent(
                id=f"{order.id}-{index}",
                order_id=order.id,
                status=status.value,
                message=message,
                actor_id=event.actor_id,
                created_at=event.at,
            )
        )
    return entries


def get_order_tracking(order: Order) -> TrackingAttributes:
    fulfillment = order.latest(FulfillmentStarted)
    tracking: Dict[str, Any] = {}
    estimated = order.delivery_date
    if fulfillment is not None:
        tracking = fulfillment.tracking_info or {}
        estimated = fulfillment.estimated_completion_date
    return TrackingAttributes(
        order_id=order.id,
        current_status=order.status,
        location=tracking.get("current_location") or order.delivery_location,
        estimated_delivery=estimated,
        tracking_number=tracking.get("tracking_number"),
        carrier=tracking.get("carrier"),
        last_updated=order.updated_at,
    )
