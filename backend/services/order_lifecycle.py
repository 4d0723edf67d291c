"""
Order lifecycle state machine.

Transitions are pure functions: (order, actor, payload, now) -> next order.
They check the current status against the operation and raise before any
write. The async wrappers persist the result with a conditional update keyed
on the status and version the guard loaded, so a transition computed from a
stale snapshot fails with ConflictError instead of overwriting a concurrent
one.

Graph:
  PENDING -> CONFIRMED -> IN_TRANSIT -> DELIVERED
  CONFIRMED -> PENDING          (negotiation)
  PENDING | CONFIRMED | IN_TRANSIT -> CANCELLED
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional
from uuid import uuid4

from domain import (
    Accepted,
    Actor,
    AnyOrderEvent,
    Completed,
    Confirmed,
    CounterOffered,
    FulfillmentStarted,
    Order,
    OrderItem,
    OrderStatus,
    Published,
    Rejected,
    to_decimal,
    utc_now,
)
from errors import ConflictError, ForbiddenError, InvalidPayloadError, InvalidTransitionError, NotFoundError
from repositories.order_store import OrderStore
from services.guards import OrderScope

logger = logging.getLogger("trade-orders")

LEGAL_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
    ),
    OrderStatus.CONFIRMED: frozenset(
        {
            OrderStatus.CONFIRMED,
            OrderStatus.PENDING,
            OrderStatus.IN_TRANSIT,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

EDITABLE_FIELDS = (
    "title",
    "description",
    "delivery_date",
    "delivery_address",
    "delivery_location",
)
TERMS_FIELDS = ("payment_terms", "special_instructions")


def is_legal_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in LEGAL_TRANSITIONS[current]


def _describe(statuses: Iterable[OrderStatus]) -> str:
    return " or ".join(status.value.lower().replace("_", " ") for status in statuses)


def require_status(order: Order, allowed: Iterable[OrderStatus], action: str) -> None:
    allowed = tuple(allowed)
    if order.status not in allowed:
        raise InvalidTransitionError(
            f"Only {_describe(allowed)} orders can {action}",
            current_status=order.status.value,
        )


def _event_fields(actor: Actor, now: datetime) -> Dict[str, Any]:
    return {"at": now, "actor_id": actor.user_id, "actor_org_id": actor.organization_id}


def _advance(
    order: Order,
    target: OrderStatus,
    *,
    now: datetime,
    event: Optional[AnyOrderEvent] = None,
    **changes: Any,
) -> Order:
    if not is_legal_transition(order.status, target):
        raise InvalidTransitionError(
            f"Cannot move order from {order.status.value} to {target.value}",
            current_status=order.status.value,
        )
    events = order.events + (event,) if event is not None else order.events
    return replace(order, status=target, updated_at=now, events=events, **changes)


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------


def apply_update(order: Order, changes: Dict[str, Any], *, now: datetime) -> Order:
    require_status(order, (OrderStatus.PENDING,), "be updated")
    patch = {key: changes[key] for key in EDITABLE_FIELDS if changes.get(key) is not None}
    if "delivery_address" in patch and "delivery_location" not in patch:
        patch["delivery_location"] = patch["delivery_address"].get("street")
    terms = dict(order.terms)
    for key in TERMS_FIELDS:
        if changes.get(key) is not None:
            terms[key] = changes[key]
    return _advance(order, OrderStatus.PENDING, now=now, terms=terms, **patch)


def apply_publish(order: Order, actor: Actor, *, now: datetime) -> Order:
    require_status(order, (OrderStatus.PENDING,), "be published")
    if not order.items:
        raise InvalidPayloadError("Order must have at least one item")
    return _advance(
        order,
        OrderStatus.CONFIRMED,
        now=now,
        event=Published(**_event_fields(actor, now)),
        is_public=True,
    )


def _accepted_since_listing(order: Order) -> bool:
    for event in reversed(order.events):
        if isinstance(event, Published):
            return False
        if isinstance(event, Accepted):
            return True
    return False


def apply_accept(
    order: Order,
    actor: Actor,
    *,
    now: datetime,
    message: Optional[str] = None,
    proposed_changes: Optional[Dict[str, Any]] = None,
    requires_negotiation: bool = False,
) -> Order:
    if order.supplier_org_id and order.supplier_org_id != actor.organization_id:
        raise ConflictError("Order has already been accepted by another organization")
    require_status(order, (OrderStatus.CONFIRMED,), "be accepted")
    if order.supplier_org_id == actor.organization_id and _accepted_since_listing(order):
        return order
    if actor.organization_id == order.buyer_org_id:
        raise ForbiddenError("Order creator cannot accept their own order")
    event = Accepted(
        **_event_fields(actor, now),
        supplier_org_id=actor.organization_id,
        requires_negotiation=requires_negotiation,
        message=message,
        proposed_changes=proposed_changes,
    )
    target = OrderStatus.PENDING if requires_negotiation else OrderStatus.CONFIRMED
    return _advance(order, target, now=now, event=event, supplier_org_id=actor.organization_id)


def apply_reject(order: Order, actor: Actor, *, now: datetime, reason: str, message: str) -> Order:
    require_status(
        order,
        (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT),
        "be rejected",
    )
    event = Rejected(**_event_fields(actor, now), reason=reason, message=message)
    return _advance(order, OrderStatus.CANCELLED, now=now, event=event, is_public=False)


def apply_counter_offer(
    order: Order,
    actor: Actor,
    *,
    now: datetime,
    message: str,
    changes: Dict[str, Any],
    expires_at: datetime,
    message_id: Optional[str] = None,
) -> Order:
    require_status(order, (OrderStatus.PENDING, OrderStatus.CONFIRMED), "receive counter offers")
    event = CounterOffered(
        **_event_fields(actor, now),
        message=message,
        changes=changes,
        expires_at=expires_at,
        message_id=message_id,
    )
    return _advance(order, OrderStatus.PENDING, now=now, event=event)


def apply_confirm(order: Order, actor: Actor, *, now: datetime) -> Order:
    """Finalize marker. Returns the same order object when already confirmed."""
    require_status(order, (OrderStatus.CONFIRMED,), "be finalized")
    if order.confirmed_at is not None:
        return order
    return _advance(
        order,
        OrderStatus.CONFIRMED,
        now=now,
        event=Confirmed(**_event_fields(actor, now)),
        confirmed_at=now,
    )


def apply_start_fulfillment(
    order: Order,
    actor: Actor,
    *,
    now: datetime,
    estimated_completion_date: datetime,
    notes: Optional[str] = None,
    tracking_info: Optional[Dict[str, Any]] = None,
) -> Order:
    require_status(order, (OrderStatus.CONFIRMED,), "start fulfillment")
    if order.supplier_org_id is None:
        raise InvalidTransitionError(
            "Order has no supplier assigned", current_status=order.status.value
        )
    event = FulfillmentStarted(
        **_event_fields(actor, now),
        estimated_completion_date=estimated_completion_date,
        notes=notes,
        tracking_info=tracking_info,
    )
    return _advance(order, OrderStatus.IN_TRANSIT, now=now, event=event, is_public=False)


def apply_complete(
    order: Order,
    actor: Actor,
    *,
    now: datetime,
    delivery_confirmation: Dict[str, Any],
    quality_assessment: Dict[str, Any],
) -> Order:
    require_status(order, (OrderStatus.IN_TRANSIT,), "be completed")
    event = Completed(
        **_event_fields(actor, now),
        delivery_confirmation=delivery_confirmation,
        quality_assessment=quality_assessment,
    )
    return _advance(order, OrderStatus.DELIVERED, now=now, event=event)


def build_item(
    *,
    commodity_id: str,
    quantity: Any,
    unit: str,
    unit_price: Any = None,
    inventory_id: Optional[str] = None,
    quality_requirements: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
    now: datetime,
) -> OrderItem:
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    if quantity <= 0:
        raise InvalidPayloadError("Quantity must be positive")
    if unit_price < 0:
        raise InvalidPayloadError("Unit price must be non-negative")
    return OrderItem(
        id=uuid4().hex,
        commodity_id=commodity_id,
        inventory_id=inventory_id,
        quantity=quantity,
        unit_price=unit_price,
        unit=unit,
        quality_requirements=quality_requirements,
        notes=notes,
        created_at=now,
    )


def apply_add_item(order: Order, item: OrderItem, *, now: datetime) -> Order:
    require_status(order, (OrderStatus.PENDING,), "have items added")
    return _advance(order, OrderStatus.PENDING, now=now, items=order.items + (item,))


def apply_update_item(
    order: Order, item_id: str, changes: Dict[str, Any], *, now: datetime
) -> Order:
    require_status(order, (OrderStatus.PENDING,), "have items updated")
    item = order.find_item(item_id)
    if item is None:
        raise NotFoundError("Order item not found")
    patch: Dict[str, Any] = {}
    if changes.get("quantity") is not None:
        patch["quantity"] = to_decimal(changes["quantity"])
        if patch["quantity"] <= 0:
            raise InvalidPayloadError("Quantity must be positive")
    if changes.get("unit_price") is not None:
        patch["unit_price"] = to_decimal(changes["unit_price"])
        if patch["unit_price"] < 0:
            raise InvalidPayloadError("Unit price must be non-negative")
    if changes.get("quality_requirements") is not None:
        patch["quality_requirements"] = changes["quality_requirements"]
    if changes.get("notes") is not None:
        patch["notes"] = changes["notes"]
    updated = replace(item, **patch)
    items = tuple(updated if existing.id == item_id else existing for existing in order.items)
    return _advance(order, OrderStatus.PENDING, now=now, items=items)


def apply_remove_item(order: Order, item_id: str, *, now: datetime) -> Order:
    require_status(order, (OrderStatus.PENDING,), "have items removed")
    if order.find_item(item_id) is None:
        raise NotFoundError("Order item not found")
    if len(order.items) == 1:
        raise InvalidPayloadError("Order must have at least one item")
    items = tuple(item for item in order.items if item.id != item_id)
    return _advance(order, OrderStatus.PENDING, now=now, items=items)


# ---------------------------------------------------------------------------
# Persisted transitions
# ---------------------------------------------------------------------------


async def commit(store: OrderStore, loaded: Order, updated: Order) -> Order:
    """Write `updated` only if the stored order still matches `loaded`."""
    return await asyncio.to_thread(
        store.update_order,
        updated,
        expected_status=loaded.status,
        expected_version=loaded.version,
    )


async def publish_order(scope: OrderScope, store: OrderStore) -> Order:
    logger.info("Publishing order %s for user %s", scope.order.id, scope.actor.user_id)
    updated = apply_publish(scope.order, scope.actor, now=utc_now())
    order = await commit(store, scope.order, updated)
    logger.info("Successfully published order %s", order.id)
    return order


async def accept_order(
    scope: OrderScope,
    store: OrderStore,
    *,
    message: Optional[str] = None,
    proposed_changes: Optional[Dict[str, Any]] = None,
    requires_negotiation: bool = False,
) -> Order:
    logger.info(
        "Accepting order %s for org %s (negotiation=%s)",
        scope.order.id,
        scope.actor.organization_id,
        requires_negotiation,
    )
    updated = apply_accept(
        scope.order,
        scope.actor,
        now=utc_now(),
        message=message,
        proposed_changes=proposed_changes,
        requires_negotiation=requires_negotiation,
    )
    if updated is scope.order:
        logger.info("Order %s already accepted by org %s", updated.id, updated.supplier_org_id)
        return updated
    order = await commit(store, scope.order, updated)
    logger.info("Successfully accepted order %s, status %s", order.id, order.status.value)
    return order


async def reject_order(
    scope: OrderScope, store: OrderStore, *, reason: str, message: str
) -> Order:
    logger.info("Rejecting order %s for user %s", scope.order.id, scope.actor.user_id)
    updated = apply_reject(scope.order, scope.actor, now=utc_now(), reason=reason, message=message)
    order = await commit(store, scope.order, updated)
    logger.info("Successfully rejected order %s", order.id)
    return order


async def confirm_order(scope: OrderScope, store: OrderStore) -> Order:
    logger.info("Confirming order %s for user %s", scope.order.id, scope.actor.user_id)
    updated = apply_confirm(scope.order, scope.actor, now=utc_now())
    if updated is scope.order:
        logger.info("Order %s already confirmed at %s", updated.id, updated.confirmed_at)
        return updated
    order = await commit(store, scope.order, updated)
    logger.info("Successfully confirmed order %s", order.id)
    return order


async def start_fulfillment(
    scope: OrderScope,
    store: OrderStore,
    *,
    estimated_completion_date: datetime,
    notes: Optional[str] = None,
    tracking_info: Optional[Dict[str, Any]] = None,
) -> Order:
    logger.info("Starting fulfillment for order %s by org %s", scope.order.id, scope.actor.organization_id)
    updated = apply_start_fulfillment(
        scope.order,
        scope.actor,
        now=utc_now(),
        estimated_completion_date=estimated_completion_date,
        notes=notes,
        tracking_info=tracking_info,
    )
    order = await commit(store, scope.order, updated)
    logger.info("Successfully started fulfillment for order %s", order.id)
    return order


async def complete_order(
    scope: OrderScope,
    store: OrderStore,
    *,
    delivery_confirmation: Dict[str, Any],
    quality_assessment: Dict[str, Any],
) -> Order:
    logger.info("Completing order %s for user %s", scope.order.id, scope.actor.user_id)
    updated = apply_complete(
        scope.order,
        scope.actor,
        now=utc_now(),
        delivery_confirmation=delivery_confirmation,
        quality_assessment=quality_assessment,
    )
    order = await commit(store, scope.order, updated)
    logger.info("Successfully completed order %s", order.id)
    return order
