from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from domain import (
    Accepted,
    Actor,
    Completed,
    Confirmed,
    CounterOffered,
    FulfillmentStarted,
    OrderStatus,
    Published,
    Rejected,
)
from errors import ConflictError, ForbiddenError, InvalidPayloadError, InvalidTransitionError, NotFoundError
from services.order_lifecycle import (
    LEGAL_TRANSITIONS,
    apply_accept,
    apply_add_item,
    apply_complete,
    apply_confirm,
    apply_counter_offer,
    apply_publish,
    apply_reject,
    apply_remove_item,
    apply_start_fulfillment,
    apply_update,
    apply_update_item,
    build_item,
    is_legal_transition,
)

from factories import BUYER, NOW, RIVAL, SUPPLIER, make_order

LATER = NOW + timedelta(hours=1)


def _listed():
    return apply_publish(make_order(), BUYER, now=NOW)


def test_terminal_states_have_no_exits():
    assert LEGAL_TRANSITIONS[OrderStatus.DELIVERED] == frozenset()
    assert LEGAL_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()


def test_pending_cannot_jump_to_transit_or_delivered():
    assert not is_legal_transition(OrderStatus.PENDING, OrderStatus.IN_TRANSIT)
    assert not is_legal_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
    assert is_legal_transition(OrderStatus.CONFIRMED, OrderStatus.PENDING)


def test_publish_lists_the_order():
    order = _listed()
    assert order.status == OrderStatus.CONFIRMED
    assert order.is_public is True
    assert isinstance(order.events[-1], Published)
    assert order.events[-1].actor_id == BUYER.user_id


def test_publish_requires_pending():
    with pytest.raises(InvalidTransitionError) as excinfo:
        apply_publish(_listed(), BUYER, now=LATER)
    assert excinfo.value.current_status == "CONFIRMED"


def test_publish_requires_items():
    with pytest.raises(InvalidPayloadError):
        apply_publish(make_order(items=()), BUYER, now=NOW)


def test_accept_with_negotiation_returns_to_pending():
    order = apply_accept(_listed(), SUPPLIER, now=LATER, requires_negotiation=True, message="Can do")
    assert order.status == OrderStatus.PENDING
    assert order.supplier_org_id == SUPPLIER.organization_id
    event = order.events[-1]
    assert isinstance(event, Accepted)
    assert event.requires_negotiation is True
    assert event.message == "Can do"


def test_accept_without_negotiation_stays_confirmed():
    order = apply_accept(_listed(), SUPPLIER, now=LATER)
    assert order.status == OrderStatus.CONFIRMED
    assert order.supplier_org_id == SUPPLIER.organization_id


def test_accept_when_slot_taken_by_another_org_conflicts():
    order = apply_accept(_listed(), SUPPLIER, now=LATER)
    with pytest.raises(ConflictError):
        apply_accept(order, RIVAL, now=LATER)


def test_buyer_org_never_becomes_its_own_supplier():
    admin_in_buyer_org = Actor(user_id="admin", organization_id=BUYER.organization_id, is_platform_admin=True)
    with pytest.raises(ForbiddenError):
        apply_accept(_listed(), admin_in_buyer_org, now=LATER)


def test_reject_cancels_and_delists():
    order = apply_reject(_listed(), SUPPLIER, now=LATER, reason="price", message="Too low")
    assert order.status == OrderStatus.CANCELLED
    assert order.is_public is False
    assert isinstance(order.events[-1], Rejected)
    assert order.events[-1].reason == "price"


@pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
def test_reject_from_terminal_state_is_invalid(status):
    with pytest.raises(InvalidTransitionError):
        apply_reject(make_order(status=status), BUYER, now=NOW, reason="other", message="x")


def test_counter_offer_keeps_parties_and_reopens_negotiation():
    accepted = apply_accept(_listed(), SUPPLIER, now=LATER)
    order = apply_counter_offer(
        accepted,
        BUYER,
        now=LATER,
        message="Lower the price",
        changes={"totalAmount": "4000"},
        expires_at=LATER + timedelta(days=2),
        message_id="msg-1",
    )
    assert order.status == OrderStatus.PENDING
    assert order.supplier_org_id == SUPPLIER.organization_id
    assert order.buyer_org_id == BUYER.organization_id
    offer = order.counter_offer
    assert isinstance(offer, CounterOffered)
    assert offer.message_id == "msg-1"
    assert not offer.is_expired(LATER)
    assert offer.is_expired(LATER + timedelta(days=3))


def test_counter_offer_not_allowed_in_transit():
    order = make_order(status=OrderStatus.IN_TRANSIT, supplier_org_id=SUPPLIER.organization_id)
    with pytest.raises(InvalidTransitionError):
        apply_counter_offer(order, BUYER, now=NOW, message="m", changes={}, expires_at=LATER)


def test_confirm_is_idempotent():
    listed = _listed()
    first = apply_confirm(listed, BUYER, now=LATER)
    assert first.confirmed_at == LATER
    assert isinstance(first.events[-1], Confirmed)
    second = apply_confirm(first, BUYER, now=LATER + timedelta(minutes=5))
    assert second is first


def test_confirm_requires_confirmed_status():
    with pytest.raises(InvalidTransitionError):
        apply_confirm(make_order(), BUYER, now=NOW)


def test_start_fulfillment_requires_confirmed_with_supplier():
    with pytest.raises(InvalidTransitionError):
        apply_start_fulfillment(make_order(), SUPPLIER, now=NOW, estimated_completion_date=LATER)
    with pytest.raises(InvalidTransitionError):
        apply_start_fulfillment(_listed(), SUPPLIER, now=NOW, estimated_completion_date=LATER)

    accepted = apply_accept(_listed(), SUPPLIER, now=LATER)
    order = apply_start_fulfillment(
        accepted, SUPPLIER, now=LATER, estimated_completion_date=LATER, tracking_info={"carrier": "X"}
    )
    assert order.status == OrderStatus.IN_TRANSIT
    assert order.is_public is False
    assert isinstance(order.events[-1], FulfillmentStarted)


def test_complete_requires_in_transit():
    with pytest.raises(InvalidTransitionError):
        apply_complete(_listed(), BUYER, now=NOW, delivery_confirmation={}, quality_assessment={})
    order = make_order(status=OrderStatus.IN_TRANSIT, supplier_org_id=SUPPLIER.organization_id)
    done = apply_complete(
        order,
        BUYER,
        now=LATER,
        delivery_confirmation={"receivedBy": "Dock 3"},
        quality_assessment={"meetsSpecifications": True},
    )
    assert done.status == OrderStatus.DELIVERED
    assert done.is_terminal
    assert isinstance(done.events[-1], Completed)


def test_full_walk_only_takes_legal_edges():
    steps = [make_order()]
    steps.append(apply_publish(steps[-1], BUYER, now=NOW))
    steps.append(apply_accept(steps[-1], SUPPLIER, now=NOW, requires_negotiation=True))
    steps.append(
        apply_counter_offer(steps[-1], SUPPLIER, now=NOW, message="m", changes={}, expires_at=LATER)
    )
    steps.append(apply_publish(steps[-1], BUYER, now=NOW))
    steps.append(apply_accept(steps[-1], SUPPLIER, now=NOW))
    steps.append(apply_confirm(steps[-1], BUYER, now=NOW))
    steps.append(apply_start_fulfillment(steps[-1], SUPPLIER, now=NOW, estimated_completion_date=LATER))
    steps.append(
        apply_complete(steps[-1], BUYER, now=NOW, delivery_confirmation={}, quality_assessment={})
    )
    for before, after in zip(steps, steps[1:]):
        assert is_legal_transition(before.status, after.status)
    assert steps[-1].status == OrderStatus.DELIVERED
    assert len(steps[-1].events) == 8


def test_update_patches_fields_and_terms():
    order = apply_update(
        make_order(terms={"payment_terms": "Net 30"}),
        {"title": "Durum", "delivery_address": {"street": "9 Silo Ln"}, "special_instructions": "Dry"},
        now=LATER,
    )
    assert order.title == "Durum"
    assert order.delivery_location == "9 Silo Ln"
    assert order.terms == {"payment_terms": "Net 30", "special_instructions": "Dry"}
    assert order.updated_at == LATER


def test_update_after_publish_is_invalid():
    with pytest.raises(InvalidTransitionError):
        apply_update(_listed(), {"title": "x"}, now=LATER)


def test_item_mutations_recompute_total():
    order = make_order()
    assert order.total_price == Decimal("4250.00")

    corn = build_item(commodity_id="corn", quantity="100", unit="bushel", unit_price="4.25", now=NOW)
    order = apply_add_item(order, corn, now=LATER)
    assert order.total_price == Decimal("4675.00")

    order = apply_update_item(order, "item-1", {"quantity": Decimal("400")}, now=LATER)
    assert order.total_price == Decimal("3825.00")

    order = apply_remove_item(order, corn.id, now=LATER)
    assert order.total_price == Decimal("3400.00")
    assert [item.id for item in order.items] == ["item-1"]


def test_items_frozen_outside_pending():
    listed = _listed()
    corn = build_item(commodity_id="corn", quantity="1", unit="t", now=NOW)
    with pytest.raises(InvalidTransitionError):
        apply_add_item(listed, corn, now=LATER)
    with pytest.raises(InvalidTransitionError):
        apply_update_item(listed, "item-1", {"quantity": 1}, now=LATER)
    with pytest.raises(InvalidTransitionError):
        apply_remove_item(listed, "item-1", now=LATER)


def test_removing_last_item_is_rejected():
    with pytest.raises(InvalidPayloadError):
        apply_remove_item(make_order(), "item-1", now=LATER)


def test_unknown_item_is_not_found():
    with pytest.raises(NotFoundError):
        apply_update_item(make_order(), "nope", {"notes": "x"}, now=LATER)


@pytest.mark.parametrize(
    "quantity, price",
    [("0", "1"), ("-5", "1"), ("1", "-0.01")],
)
def test_build_item_validates_amounts(quantity, price):
    with pytest.raises(InvalidPayloadError):
        build_item(commodity_id="wheat", quantity=quantity, unit="t", unit_price=price, now=NOW)


def test_transitions_do_not_mutate_input():
    original = make_order()
    snapshot = replace(original)
    apply_publish(original, BUYER, now=NOW)
    assert original == snapshot


def test_repeat_accept_by_current_supplier_is_a_no_op():
    accepted = apply_accept(_listed(), SUPPLIER, now=NOW)
    again = apply_accept(accepted, SUPPLIER, now=LATER, message="Still in")
    assert again is accepted
    assert sum(isinstance(event, Accepted) for event in again.events) == 1


def test_accept_after_relisting_is_recorded_again():
    negotiating = apply_accept(_listed(), SUPPLIER, now=NOW, requires_negotiation=True)
    relisted = apply_publish(negotiating, BUYER, now=NOW)
    accepted = apply_accept(relisted, SUPPLIER, now=LATER)
    assert accepted is not relisted
    assert isinstance(accepted.events[-1], Accepted)
