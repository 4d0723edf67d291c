import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from domain import Actor, Order, OrderItem, OrderStatus, OrderType
from repositories.order_store import OrderStore
from schemas import OrderCreate
from services import order_lifecycle, orders_service
from services.catalog import StaticCommodityCatalog
from services.guards import OrderScope

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

BUYER = Actor(user_id="user-buyer", organization_id="org-buyer")
BUYER_COLLEAGUE = Actor(user_id="user-buyer-2", organization_id="org-buyer")
SUPPLIER = Actor(user_id="user-supplier", organization_id="org-supplier")
RIVAL = Actor(user_id="user-rival", organization_id="org-rival")
ADMIN = Actor(user_id="user-admin", organization_id="org-platform", is_platform_admin=True)


def order_payload(**overrides: Any) -> OrderCreate:
    data: Dict[str, Any] = {
        "type": "BUY",
        "title": "Hard red winter wheat",
        "deliveryDate": "2026-12-01T00:00:00Z",
        "deliveryAddress": {
            "street": "1 Grain Elevator Rd",
            "city": "Salina",
            "state": "KS",
            "zip": "67401",
        },
        "items": [
            {
                "commodityId": "wheat",
                "quantity": "500",
                "unit": "bushel",
                "unitPrice": "8.50",
            }
        ],
        "paymentTerms": "Net 30",
        "specialInstructions": "Protein above 12%",
    }
    data.update(overrides)
    return OrderCreate.model_validate(data)


def make_order(**overrides: Any) -> Order:
    """Builds an order in memory without a store, for pure transition tests."""
    values: Dict[str, Any] = dict(
        id="order-1",
        order_number="ORD-000001",
        type=OrderType.BUY,
        status=OrderStatus.PENDING,
        title="Hard red winter wheat",
        buyer_org_id=BUYER.organization_id,
        created_by_id=BUYER.user_id,
        delivery_date=NOW + timedelta(days=30),
        delivery_address={"street": "1 Grain Elevator Rd", "city": "Salina"},
        delivery_location="1 Grain Elevator Rd",
        items=(
            OrderItem(
                id="item-1",
                commodity_id="wheat",
                quantity=Decimal("500"),
                unit_price=Decimal("8.50"),
                unit="bushel",
                created_at=NOW,
            ),
        ),
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return Order(**values)


def create_order(store: OrderStore, actor: Actor = BUYER, **overrides: Any) -> Order:
    return asyncio.run(
        orders_service.create_order(
            actor, order_payload(**overrides), store, StaticCommodityCatalog()
        )
    )


def published_order(store: OrderStore, **overrides: Any) -> Order:
    order = create_order(store, **overrides)
    return asyncio.run(order_lifecycle.publish_order(OrderScope(BUYER, order), store))


def accepted_order(
    store: OrderStore, supplier: Actor = SUPPLIER, requires_negotiation: bool = False
) -> Order:
    order = published_order(store)
    return asyncio.run(
        order_lifecycle.accept_order(
            OrderScope(supplier, order), store, requires_negotiation=requires_negotiation
        )
    )


def in_transit_order(store: OrderStore) -> Order:
    order = accepted_order(store)
    return asyncio.run(
        order_lifecycle.start_fulfillment(
            OrderScope(SUPPLIER, order),
            store,
            estimated_completion_date=NOW + timedelta(days=10),
            tracking_info={"carrier": "Prairie Freight", "tracking_number": "PF-1"},
        )
    )


def reload(store: OrderStore, order: Order) -> Optional[Order]:
    return store.fetch_order(order.id)
