from typing import Any, Callable, Dict

from fastapi import Depends, HTTPException

from auth import get_current_actor
from domain import Actor
from errors import InvalidTransitionError, OrderError
from repositories.order_store import OrderStore
from services.guards import (
    LISTING,
    MARKETPLACE,
    OWNERSHIP,
    PARTICIPATION,
    SUPPLIER_ONLY,
    AccessRule,
    OrderScope,
    authorize,
    load_order,
)
from stores import get_order_store


def to_http_exception(exc: OrderError) -> HTTPException:
    detail: Dict[str, Any] = {"code": exc.code, "message": exc.message}
    if isinstance(exc, InvalidTransitionError) and exc.current_status:
        detail["currentStatus"] = exc.current_status
    return HTTPException(status_code=exc.status_code, detail=detail)


async def order_scope(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    store: OrderStore = Depends(get_order_store),
) -> OrderScope:
    try:
        return await load_order(actor, order_id, store)
    except OrderError as exc:
        raise to_http_exception(exc) from exc


def require_rule(rule: AccessRule) -> Callable[..., OrderScope]:
    def dependency(scope: OrderScope = Depends(order_scope)) -> OrderScope:
        try:
            return authorize(scope, rule)
        except OrderError as exc:
            raise to_http_exception(exc) from exc

    dependency.__name__ = f"require_{rule.name}"
    return dependency


owned_order = require_rule(OWNERSHIP)
participant_order = require_rule(PARTICIPATION)
supplier_order = require_rule(SUPPLIER_ONLY)
listed_order = require_rule(LISTING)
marketplace_order = require_rule(MARKETPLACE)
