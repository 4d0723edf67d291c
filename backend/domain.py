from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip()
        return Decimal(text) if text else Decimal("0")
    raise TypeError(f"Expected number-like value, got {type(value).__name__}")


class OrderType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class DisputeStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Actor:
    """
    Request-scoped identity.

    - user_id: auth user id
    - organization_id: organization the user acts for
    - is_platform_admin: bypasses order guards
    """

    user_id: str
    organization_id: str
    is_platform_admin: bool = False
    email: Optional[str] = None


@dataclass(frozen=True)
class OrderItem:
    id: str
    commodity_id: str
    quantity: Decimal
    unit_price: Decimal
    unit: str
    created_at: datetime
    inventory_id: Optional[str] = None
    quality_requirements: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


# Transition history. Each event kind is a frozen record tagged by `kind`;
# EVENT_TYPES maps the tag back to the class when records are loaded.


@dataclass(frozen=True)
class OrderEvent:
    kind: ClassVar[str] = "event"

    at: datetime
    actor_id: str
    actor_org_id: str


@dataclass(frozen=True)
class Published(OrderEvent):
    kind: ClassVar[str] = "published"


@dataclass(frozen=True)
class Accepted(OrderEvent):
    kind: ClassVar[str] = "accepted"

    supplier_org_id: str
    requires_negotiation: bool = False
    message: Optional[str] = None
    proposed_changes: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CounterOffered(OrderEvent):
    kind: ClassVar[str] = "counter_offered"

    message: str
    changes: Dict[str, Any]
    expires_at: datetime
    message_id: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())


@dataclass(frozen=True)
class Confirmed(OrderEvent):
    kind: ClassVar[str] = "confirmed"


@dataclass(frozen=True)
class FulfillmentStarted(OrderEvent):
    kind: ClassVar[str] = "fulfillment_started"

    estimated_completion_date: datetime
    notes: Optional[str] = None
    tracking_info: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Completed(OrderEvent):
    kind: ClassVar[str] = "completed"

    delivery_confirmation: Dict[str, Any]
    quality_assessment: Dict[str, Any]


@dataclass(frozen=True)
class Rejected(OrderEvent):
    kind: ClassVar[str] = "rejected"

    reason: str
    message: str


AnyOrderEvent = Union[
    Published, Accepted, CounterOffered, Confirmed, FulfillmentStarted, Completed, Rejected
]

EVENT_TYPES: Dict[str, Type[OrderEvent]] = {
    cls.kind: cls
    for cls in (
        Published,
        Accepted,
        CounterOffered,
        Confirmed,
        FulfillmentStarted,
        Completed,
        Rejected,
    )
}


@dataclass(frozen=True)
class Order:
    id: str
    order_number: str
    type: OrderType
    status: OrderStatus
    title: str
    buyer_org_id: str
    created_by_id: str
    delivery_date: datetime
    delivery_address: Dict[str, Any]
    delivery_location: Optional[str]
    items: Tuple[OrderItem, ...]
    created_at: datetime
    updated_at: datetime
    terms: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    supplier_org_id: Optional[str] = None
    is_public: bool = False
    confirmed_at: Optional[datetime] = None
    events: Tuple[AnyOrderEvent, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    version: int = 1

    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    @property
    def total_quantity(self) -> Decimal:
        return sum((item.quantity for item in self.items), Decimal("0"))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_participant(self, organization_id: str) -> bool:
        return organization_id in (self.buyer_org_id, self.supplier_org_id)

    def find_item(self, item_id: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def latest(self, event_type: Type[OrderEvent]) -> Optional[OrderEvent]:
        for event in reversed(self.events):
            if isinstance(event, event_type):
                return event
        return None

    @property
    def counter_offer(self) -> Optional[CounterOffered]:
        return self.latest(CounterOffered)  # type: ignore[return-value]


@dataclass(frozen=True)
class Message:
    id: str
    order_id: str
    sender_id: str
    sender_org_id: str
    content: str
    type: str
    created_at: datetime
    attachments: Tuple[str, ...] = ()
    is_urgent: bool = False
    read_at: Optional[datetime] = None
    counter_offer: Optional[Dict[str, Any]] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


@dataclass(frozen=True)
class DisputeResponse:
    responded_by: str
    responded_at: datetime
    response: str
    evidence: Tuple[str, ...] = ()
    proposed_resolution: Optional[str] = None


@dataclass(frozen=True)
class DisputeResolution:
    resolved_by: str
    resolved_at: datetime
    resolution: str
    compensation: Optional[Decimal] = None
    terms: Optional[str] = None


@dataclass(frozen=True)
class Dispute:
    id: str
    order_id: str
    type: str
    description: str
    requested_resolution: str
    severity: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    evidence: Tuple[str, ...] = ()
    status: DisputeStatus = DisputeStatus.OPEN
    responses: Tuple[DisputeResponse, ...] = ()
    resolution: Optional[DisputeResolution] = None
    version: int = 1

    @property
    def resolved_at(self) -> Optional[datetime]:
        return self.resolution.resolved_at if self.resolution else None
