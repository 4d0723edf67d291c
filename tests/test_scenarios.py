import asyncio

import pytest

from domain import OrderStatus
from errors import ConflictError, ForbiddenError
from services import order_lifecycle
from services.guards import MARKETPLACE, OWNERSHIP, SUPPLIER_ONLY, OrderScope, guard_order

from factories import BUYER, BUYER_COLLEAGUE, NOW, RIVAL, SUPPLIER, create_order, published_order, reload


def test_publish_by_creator_confirms_order(store):
    order = create_order(store)
    scope = asyncio.run(guard_order(BUYER, order.id, store, OWNERSHIP))
    published = asyncio.run(order_lifecycle.publish_order(scope, store))
    assert published.status == OrderStatus.CONFIRMED
    assert reload(store, order).is_public is True


def test_publish_by_non_creator_is_forbidden(store):
    order = create_order(store)
    with pytest.raises(ForbiddenError):
        asyncio.run(guard_order(BUYER_COLLEAGUE, order.id, store, OWNERSHIP))
    assert reload(store, order).status == OrderStatus.PENDING


def test_accept_with_negotiation_assigns_supplier(store):
    order = published_order(store)
    scope = asyncio.run(guard_order(SUPPLIER, order.id, store, MARKETPLACE))
    accepted = asyncio.run(
        order_lifecycle.accept_order(scope, store, requires_negotiation=True, message="Let's talk price")
    )
    assert accepted.supplier_org_id == SUPPLIER.organization_id
    assert accepted.status == OrderStatus.PENDING
    assert reload(store, order) == accepted


def test_concurrent_accepts_have_exactly_one_winner(store):
    order = published_order(store)

    async def race():
        first = await guard_order(SUPPLIER, order.id, store, MARKETPLACE)
        second = await guard_order(RIVAL, order.id, store, MARKETPLACE)
        return await asyncio.gather(
            order_lifecycle.accept_order(first, store),
            order_lifecycle.accept_order(second, store),
            return_exceptions=True,
        )

    results = asyncio.run(race())
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)
    assert reload(store, order).supplier_org_id == winners[0].supplier_org_id


def test_late_accept_after_slot_taken_conflicts(store):
    order = published_order(store)
    scope = asyncio.run(guard_order(SUPPLIER, order.id, store, MARKETPLACE))
    asyncio.run(order_lifecycle.accept_order(scope, store))

    late = asyncio.run(guard_order(RIVAL, order.id, store, MARKETPLACE))
    with pytest.raises(ConflictError):
        asyncio.run(order_lifecycle.accept_order(late, store))


def test_start_fulfillment_by_buyer_is_forbidden(store):
    order = published_order(store)
    asyncio.run(order_lifecycle.accept_order(OrderScope(SUPPLIER, order), store))

    with pytest.raises(ForbiddenError):
        asyncio.run(guard_order(BUYER, order.id, store, SUPPLIER_ONLY))

    scope = asyncio.run(guard_order(SUPPLIER, order.id, store, SUPPLIER_ONLY))
    shipped = asyncio.run(
        order_lifecycle.start_fulfillment(scope, store, estimated_completion_date=NOW)
    )
    assert shipped.status == OrderStatus.IN_TRANSIT


def test_confirm_twice_returns_same_marker(store):
    order = published_order(store)
    first = asyncio.run(order_lifecycle.confirm_order(OrderScope(BUYER, order), store))
    second = asyncio.run(order_lifecycle.confirm_order(OrderScope(BUYER, first), store))
    assert second.confirmed_at == first.confirmed_at
    assert second.version == first.version


def test_repeat_accept_keeps_version_and_history(store):
    order = published_order(store)
    first = asyncio.run(order_lifecycle.accept_order(OrderScope(SUPPLIER, order), store))

    scope = asyncio.run(guard_order(SUPPLIER, order.id, store, MARKETPLACE))
    second = asyncio.run(order_lifecycle.accept_order(scope, store, message="Confirming again"))

    assert second.version == first.version
    assert reload(store, order) == first
    assert [type(event).__name__ for event in second.events].count("Accepted") == 1
