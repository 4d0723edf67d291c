from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple

from domain import Dispute, DisputeStatus, Message, Order, OrderStatus, OrderType

ORDER_NUMBER_PREFIX = "ORD-"


def format_order_number(sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{sequence:06d}"


@dataclass(frozen=True)
class OrderQuery:
    organization_id: Optional[str] = None
    listed_only: bool = False
    type: Optional[OrderType] = None
    status: Optional[OrderStatus] = None
    commodity_id: Optional[str] = None
    commodity_ids: Tuple[str, ...] = ()
    min_total: Optional[Decimal] = None
    max_total: Optional[Decimal] = None
    delivery_from: Optional[datetime] = None
    delivery_to: Optional[datetime] = None
    sort_by: str = "created_at"
    descending: bool = True
    offset: int = 0
    limit: int = 10


class OrderStore(Protocol):
    """
    Keyed record store for orders and their message/dispute threads.

    Writes that change an existing order or dispute are conditional: they
    only apply when the stored status and version still equal the expected
    ones, and raise ConflictError otherwise (NotFoundError if the record is
    gone). A successful write stores and returns the record with
    version = expected_version + 1.
    """

    name: str

    def next_order_number(self) -> str: ...

    def insert_order(self, order: Order) -> Order: ...

    def fetch_order(self, order_id: str) -> Optional[Order]: ...

    def update_order(
        self,
        order: Order,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> Order: ...

    def delete_order(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> None: ...

    def list_orders(self, query: OrderQuery) -> Tuple[List[Order], int]: ...

    def insert_message(self, message: Message) -> Message: ...

    def fetch_message(self, message_id: str) -> Optional[Message]: ...

    def list_messages(
        self, order_id: str, *, offset: int, limit: int
    ) -> Tuple[List[Message], int]: ...

    def mark_message_read(self, message: Message) -> Message: ...

    def insert_dispute(self, dispute: Dispute) -> Dispute: ...

    def fetch_dispute(self, dispute_id: str) -> Optional[Dispute]: ...

    def list_disputes(self, order_id: str) -> List[Dispute]: ...

    def update_dispute(
        self,
        dispute: Dispute,
        *,
        expected_status: DisputeStatus,
        expected_version: int,
    ) -> Dispute: ...
