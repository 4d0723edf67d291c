from fastapi import APIRouter, Depends

from errors import OrderError
from repositories.order_store import OrderStore
from schemas import (
    AcceptOrderRequest,
    CompleteOrderRequest,
    CounterOfferRequest,
    OrderDocument,
    RejectOrderRequest,
    StartFulfillmentRequest,
)
from services import negotiation_service, order_lifecycle
from services.guards import OrderScope
from services.resources import render_order
from stores import get_order_store

from .deps import (
    marketplace_order,
    owned_order,
    participant_order,
    supplier_order,
    to_http_exception,
)

router = APIRouter(prefix="/api/orders", tags=["order-lifecycle"])


@router.post("/{order_id}/publish", response_model=OrderDocument)
async def publish(
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order = await order_lifecycle.publish_order(scope, store)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/accept", response_model=OrderDocument)
async def accept(
    payload: AcceptOrderRequest,
    scope: OrderScope = Depends(marketplace_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    proposed = (
        payload.proposed_changes.model_dump(mode="json", exclude_none=True)
        if payload.proposed_changes
        else None
    )
    try:
        order = await order_lifecycle.accept_order(
            scope,
            store,
            message=payload.message,
            proposed_changes=proposed,
            requires_negotiation=payload.requires_negotiation,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/reject", response_model=OrderDocument)
async def reject(
    payload: RejectOrderRequest,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order = await order_lifecycle.reject_order(
            scope, store, reason=payload.reason.value, message=payload.message
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/counter-offer", response_model=OrderDocument)
async def counter_offer(
    payload: CounterOfferRequest,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order, _ = await negotiation_service.counter_offer(
            scope,
            store,
            message=payload.message,
            changes=payload.changes.model_dump(mode="json", exclude_none=True),
            expires_at=payload.expires_at,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/confirm", response_model=OrderDocument)
async def confirm(
    scope: OrderScope = Depends(owned_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order = await order_lifecycle.confirm_order(scope, store)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/fulfillment/start", response_model=OrderDocument)
async def start_fulfillment(
    payload: StartFulfillmentRequest,
    scope: OrderScope = Depends(supplier_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    tracking = (
        payload.tracking_info.model_dump(mode="json", exclude_none=True)
        if payload.tracking_info
        else None
    )
    try:
        order = await order_lifecycle.start_fulfillment(
            scope,
            store,
            estimated_completion_date=payload.estimated_completion_date,
            notes=payload.notes,
            tracking_info=tracking,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))


@router.post("/{order_id}/complete", response_model=OrderDocument)
async def complete(
    payload: CompleteOrderRequest,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> OrderDocument:
    try:
        order = await order_lifecycle.complete_order(
            scope,
            store,
            delivery_confirmation=payload.delivery_confirmation.model_dump(mode="json"),
            quality_assessment=payload.quality_assessment.model_dump(mode="json"),
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return OrderDocument(data=render_order(order))
