import asyncio
from datetime import timedelta

import pytest

from domain import OrderStatus, utc_now
from errors import InvalidTransitionError, NotFoundError
from services import negotiation_service
from services.guards import OrderScope
from services.resources import render_order

from factories import BUYER, SUPPLIER, accepted_order, create_order, in_transit_order


def test_counter_offer_updates_order_and_thread(store):
    order = accepted_order(store)
    expires = utc_now() + timedelta(days=2)
    updated, message = asyncio.run(
        negotiation_service.counter_offer(
            OrderScope(BUYER, order),
            store,
            message="Would you take 8.10?",
            changes={"totalAmount": "4050"},
            expires_at=expires,
        )
    )
    assert updated.status == OrderStatus.PENDING
    assert updated.supplier_org_id == SUPPLIER.organization_id
    assert updated.counter_offer.message_id == message.id

    assert message.type == "negotiation"
    assert message.counter_offer["changes"] == {"totalAmount": "4050"}
    messages, total = asyncio.run(negotiation_service.list_order_messages(OrderScope(BUYER, updated), store))
    assert total == 1
    assert messages[0] == message


def test_counter_offer_rendered_with_expiry_flag(store):
    order = accepted_order(store)
    updated, _ = asyncio.run(
        negotiation_service.counter_offer(
            OrderScope(SUPPLIER, order),
            store,
            message="Needs a later date",
            changes={},
            expires_at=utc_now() - timedelta(minutes=1),
        )
    )
    view = render_order(updated).attributes.counter_offer
    assert view.expired is True
    assert view.proposed_by_org_id == SUPPLIER.organization_id


def test_counter_offer_rejected_once_in_transit(store):
    order = in_transit_order(store)
    with pytest.raises(InvalidTransitionError):
        asyncio.run(
            negotiation_service.counter_offer(
                OrderScope(BUYER, order), store, message="m", changes={}, expires_at=utc_now()
            )
        )
    messages, total = asyncio.run(negotiation_service.list_order_messages(OrderScope(BUYER, order), store))
    assert total == 0


def test_mark_message_as_read_is_idempotent(store):
    order = create_order(store)
    scope = OrderScope(BUYER, order)
    message = asyncio.run(negotiation_service.send_order_message(scope, store, content="Hello"))
    assert message.read_at is None

    first = asyncio.run(negotiation_service.mark_message_as_read(scope, store, message.id))
    second = asyncio.run(negotiation_service.mark_message_as_read(scope, store, message.id))
    assert first.read_at is not None
    assert second.read_at == first.read_at


def test_mark_read_rejects_message_from_other_order(store):
    first = create_order(store)
    second = create_order(store)
    message = asyncio.run(
        negotiation_service.send_order_message(OrderScope(BUYER, first), store, content="Hi")
    )
    with pytest.raises(NotFoundError):
        asyncio.run(negotiation_service.mark_message_as_read(OrderScope(BUYER, second), store, message.id))


def test_list_messages_paginates(store):
    order = create_order(store)
    scope = OrderScope(BUYER, order)
    sent = {
        asyncio.run(negotiation_service.send_order_message(scope, store, content=f"m{i}", is_urgent=i == 0)).id
        for i in range(3)
    }
    page_one, total = asyncio.run(negotiation_service.list_order_messages(scope, store, page=1, limit=2))
    page_two, _ = asyncio.run(negotiation_service.list_order_messages(scope, store, page=2, limit=2))
    assert total == 3
    assert len(page_one) == 2
    assert {m.id for m in page_one + page_two} == sent


def test_failed_thread_post_restores_order(store, monkeypatch):
    order = accepted_order(store)

    def broken_insert(message):
        raise RuntimeError("message table unavailable")

    monkeypatch.setattr(store, "insert_message", broken_insert)
    with pytest.raises(RuntimeError):
        asyncio.run(
            negotiation_service.counter_offer(
                OrderScope(BUYER, order),
                store,
                message="Would you take 8.10?",
                changes={},
                expires_at=utc_now() + timedelta(days=1),
            )
        )

    restored = store.fetch_order(order.id)
    assert restored.status == OrderStatus.CONFIRMED
    assert restored.counter_offer is None
    assert restored.events == order.events
    assert restored.supplier_org_id == SUPPLIER.organization_id
    assert restored.version == order.version + 2
