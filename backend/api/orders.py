from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from auth import get_current_actor
from config import settings
from domain import Actor, OrderStatus, OrderType
from errors import OrderError
from repositories.order_store import OrderStore
from schemas import (
    DeliveryWindow,
    OrderCollection,
    OrderCreate,
    OrderDocument,
    OrderItemCollection,
    OrderItemCreate,
    OrderItemDocument,
    OrderItemUpdate,
    OrderRelationship,
    OrderSearchRequest,
    OrderUpdate,
    PriceRange,
    RelationshipDocument,
    SearchFilters,
    SearchSort,
    TimelineDocument,
    TrackingDocument,
)
from services import orders_service
from services.catalog import CommodityCatalog
from services.guards import OrderScope
from services.resources import (
    page_meta,
    render_item,
    render_order,
    render_orders,
    render_relationship,
)
from stores import get_catalog, get_order_store

from .deps import listed_order, owned_order, participant_order, to_http_exception

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("", response_model=OrderCollection)
async def list_orders(
    order_type: Optional[OrderType] = Query(default=None, alias="type"),
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    commodity_id: Optional[str] = Query(default=None, alias="commodityId"),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
) -> OrderCollection:
    limit = limit or settings.order_page_size
    orders, total = await orders_service.list_orders(
        actor,
        store,
        type=order_type,
        status=status_filter,
        commodity_id=commodity_id,
        page=page,
        limit=limit,
    )
    return OrderCollection(data=render_orders(orders), meta=page_meta(total, page, limit))


@router.post("", response_model=OrderDocument, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
    catalog: CommodityCatalog = Depends(get_catalog),
) -> OrderDocument:
    try:
        order = await orders_service.create_order(actor, payload, store, catalog)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.get("/marketplace", response_model=OrderCollection)
async def list_marketplace_orders(
    order_type: Optional[OrderType] = Query(default=None, alias="type"),
    commodity_id: Optional[str] = Query(default=None, alias="commodityId"),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
) -> OrderCollection:
    limit = limit or settings.order_page_size
    orders, total = await orders_service.list_marketplace_orders(
        store, type=order_type, commodity_id=commodity_id, page=page, limit=limit
    )
    return OrderCollection(data=render_orders(orders), meta=page_meta(total, page, limit))


@router.post("/marketplace/search", response_model=OrderCollection)
async def search_marketplace_orders(
    payload: OrderSearchRequest,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
) -> OrderCollection:
    filters = payload.filters or SearchFilters()
    price_range = filters.price_range or PriceRange()
    window = filters.delivery_window or DeliveryWindow()
    sort = payload.sort or SearchSort()
    try:
        orders, total = await orders_service.search_marketplace_orders(
            store,
            commodity_ids=filters.commodities or (),
            min_total=price_range.min,
            max_total=price_range.max,
            delivery_from=window.start,
            delivery_to=window.end,
            sort_field=sort.field,
            direction=sort.direction,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    limit = orders_service.SEARCH_LIMIT
    return OrderCollection(data=render_orders(orders), meta=page_meta(total, 1, limit))


@router.get("/marketplace/{order_id}", response_model=OrderDocument)
async def read_marketplace_order(scope: OrderScope = Depends(listed_order)) -> OrderDocument:
    return OrderDocument(data=render_order(scope.order))


@router.get("/{order_id}", response_model=OrderDocument)
async def read_order(scope: OrderScope = Depends(participant_order)) -> OrderDocument:
    return OrderDocument(data=render_order(orders_service.get_order(scope)))


@router.get("/{order_id}/relationships/{name}", response_model=RelationshipDocument)
async def read_relationship(
    name: OrderRelationship,
    scope: OrderScope = Depends(participant_order),
) -> RelationshipDocument:
    return render_relationship(scope.order, name)


@router.patch("/{order_id}", response_model=OrderDocument)
async def update_order(
    payload: OrderUpdate,
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order = await orders_service.update_order(scope, store, payload)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> Response:
    try:
        await orders_service.delete_order(scope, store)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{order_id}/timeline", response_model=TimelineDocument)
async def read_timeline(scope: OrderScope = Depends(participant_order)) -> TimelineDocument:
    return TimelineDocument(
        data=orders_service.get_order_timeline(scope.order),
        links={"self": f"/api/orders/{scope.order.id}/timeline"},
    )


@router.get("/{order_id}/tracking", response_model=TrackingDocument)
async def read_tracking(scope: OrderScope = Depends(participant_order)) -> TrackingDocument:
    return TrackingDocument(
        data=orders_service.get_order_tracking(scope.order),
        links={"self": f"/api/orders/{scope.order.id}/tracking"},
    )


@router.get("/{order_id}/items", response_model=OrderItemCollection)
async def list_items(scope: OrderScope = Depends(participant_order)) -> OrderItemCollection:
    items = orders_service.list_order_items(scope)
    return OrderItemCollection(data=[render_item(scope.order.id, item) for item in items])


@router.post(
    "/{order_id}/items",
    response_model=OrderItemDocument,
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    payload: OrderItemCreate,
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
    catalog: CommodityCatalog = Depends(get_catalog),
) -> OrderItemDocument:
    try:
        order, item = await orders_service.add_order_item(scope, store, catalog, payload)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderItemDocument(data=render_item(order.id, item))


@router.patch("/{order_id}/items/{item_id}", response_model=OrderItemDocument)
async def update_item(
    item_id: str,
    payload: OrderItemUpdate,
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderItemDocument:
    try:
        order, item = await orders_service.update_order_item(scope, store, item_id, payload)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderItemDocument(data=render_item(order.id, item))


@router.delete("/{order_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: str,
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> Response:
    try:
        await orders_service.delete_order_item(scope, store, item_id)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
