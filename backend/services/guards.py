"""
Order access guards.

Every order-scoped operation runs the same skeleton: resolve the id, fetch
the order once, let platform admins through, otherwise evaluate exactly one
AccessRule. Rules are pure functions of (actor, order) so they can be tested
without a store. The loaded order travels onward inside an OrderScope value
instead of being re-fetched by the handler.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Union

from domain import Actor, Order, OrderStatus
from errors import ForbiddenError, MissingIdentifierError, NotFoundError
from repositories.order_store import OrderStore

logger = logging.getLogger("trade-orders")

Predicate = Callable[[Actor, Order], bool]
Denial = Union[str, Callable[[Actor, Order], str]]


@dataclass(frozen=True)
class AccessRule:
    name: str
    predicate: Predicate
    denial: Denial

    def allows(self, actor: Actor, order: Order) -> bool:
        return self.predicate(actor, order)

    def denial_message(self, actor: Actor, order: Order) -> str:
        if callable(self.denial):
            return self.denial(actor, order)
        return self.denial


@dataclass(frozen=True)
class OrderScope:
    """An order loaded for one request together with the actor it was checked for."""

    actor: Actor
    order: Order


def is_creator(actor: Actor, order: Order) -> bool:
    return order.created_by_id == actor.user_id


def is_participant(actor: Actor, order: Order) -> bool:
    return order.is_participant(actor.organization_id)


def is_supplier(actor: Actor, order: Order) -> bool:
    return order.supplier_org_id is not None and order.supplier_org_id == actor.organization_id


def is_listed(actor: Actor, order: Order) -> bool:
    return order.status == OrderStatus.CONFIRMED and order.is_public


def is_counterparty(actor: Actor, order: Order) -> bool:
    return is_listed(actor, order) and actor.organization_id != order.buyer_org_id


def _supplier_denial(actor: Actor, order: Order) -> str:
    if order.supplier_org_id is None:
        return "Order has no supplier assigned"
    return "Only the supplier can perform this action"


def _counterparty_denial(actor: Actor, order: Order) -> str:
    if actor.organization_id == order.buyer_org_id:
        return "Order creator cannot accept their own order"
    return "Order is not published and not available for marketplace operations"


OWNERSHIP = AccessRule("ownership", is_creator, "Only the order creator can perform this action")
PARTICIPATION = AccessRule("participation", is_participant, "Access denied to this order")
SUPPLIER_ONLY = AccessRule("supplier", is_supplier, _supplier_denial)
LISTING = AccessRule(
    "listing", is_listed, "Order is not published and not available for marketplace operations"
)
MARKETPLACE = AccessRule("marketplace", is_counterparty, _counterparty_denial)


async def load_order(actor: Actor, order_id: str | None, store: OrderStore) -> OrderScope:
    if not order_id or not order_id.strip():
        logger.warning("Order ID not found in request for user %s", actor.user_id)
        raise MissingIdentifierError("Order ID is required")
    order = await asyncio.to_thread(store.fetch_order, order_id.strip())
    if order is None:
        logger.warning("Order %s not found", order_id)
        raise NotFoundError("Order not found")
    return OrderScope(actor=actor, order=order)


def authorize(scope: OrderScope, rule: AccessRule) -> OrderScope:
    actor, order = scope.actor, scope.order
    if actor.is_platform_admin:
        logger.debug("Platform admin %s accessing order %s (%s)", actor.user_id, order.id, rule.name)
        return scope
    if not rule.allows(actor, order):
        message = rule.denial_message(actor, order)
        logger.warning(
            "User %s from org %s denied %s access to order %s: %s",
            actor.user_id,
            actor.organization_id,
            rule.name,
            order.id,
            message,
        )
        raise ForbiddenError(message)
    logger.debug("User %s granted %s access to order %s", actor.user_id, rule.name, order.id)
    return scope


async def guard_order(
    actor: Actor, order_id: str | None, store: OrderStore, rule: AccessRule
) -> OrderScope:
    scope = await load_order(actor, order_id, store)
    return authorize(scope, rule)
