import copy
import threading
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from domain import Dispute, DisputeStatus, Message, Order, OrderStatus, as_utc
from errors import ConflictError, NotFoundError
from repositories.order_store import OrderQuery, format_order_number
from repositories.records import (
    dispute_from_row,
    dispute_to_row,
    message_from_row,
    message_to_row,
    order_from_row,
    order_to_row,
    parse_datetime,
)


def _sort_key(row: Dict[str, Any], column: str) -> Any:
    if column == "total_price":
        return Decimal(row["total_price"])
    return parse_datetime(row[column])


def _matches(row: Dict[str, Any], query: OrderQuery) -> bool:
    if query.organization_id and query.organization_id not in (
        row.get("buyer_org_id"),
        row.get("supplier_org_id"),
    ):
        return False
    if query.listed_only and not (
        row.get("status") == OrderStatus.CONFIRMED.value
        and row.get("is_public")
        and row.get("supplier_org_id") is None
    ):
        return False
    if query.type and row.get("type") != query.type.value:
        return False
    if query.status and row.get("status") != query.status.value:
        return False
    if query.commodity_id and not any(
        item.get("commodity_id") == query.commodity_id for item in row.get("items") or []
    ):
        return False
    if query.commodity_ids and not any(
        item.get("commodity_id") in query.commodity_ids for item in row.get("items") or []
    ):
        return False
    total = Decimal(row["total_price"])
    if query.min_total is not None and total < query.min_total:
        return False
    if query.max_total is not None and total > query.max_total:
        return False
    delivery_date = parse_datetime(row["delivery_date"])
    if query.delivery_from and delivery_date < as_utc(query.delivery_from):
        return False
    if query.delivery_to and delivery_date > as_utc(query.delivery_to):
        return False
    return True


class InMemoryOrderStore:
    """
    Process-local store used for tests and single-process runs.

    Rows are kept in the same shape as the Supabase tables and copied on the
    way in and out, so callers never share mutable state with the store.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sequence = 0
        self._orders: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, Dict[str, Any]] = {}
        self._disputes: Dict[str, Dict[str, Any]] = {}

    def next_order_number(self) -> str:
        with self._lock:
            self._sequence += 1
            return format_order_number(self._sequence)

    def insert_order(self, order: Order) -> Order:
        row = order_to_row(order)
        with self._lock:
            if order.id in self._orders:
                raise ConflictError(f"Order {order.id} already exists")
            if any(r["order_number"] == order.order_number for r in self._orders.values()):
                raise ConflictError(f"Order number {order.order_number} already exists")
            self._orders[order.id] = copy.deepcopy(row)
        return order_from_row(row)

    def fetch_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            row = copy.deepcopy(self._orders.get(order_id))
        return order_from_row(row) if row else None

    def _check_order(
        self, order_id: str, expected_status: OrderStatus, expected_version: int
    ) -> Dict[str, Any]:
        current = self._orders.get(order_id)
        if current is None:
            raise NotFoundError("Order not found")
        if current["status"] != expected_status.value or current["version"] != expected_version:
            raise ConflictError(
                f"Order {order_id} was modified concurrently "
                f"(now {current['status']} v{current['version']})"
            )
        return current

    def update_order(
        self,
        order: Order,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> Order:
        stored = replace(order, version=expected_version + 1)
        row = order_to_row(stored)
        with self._lock:
            self._check_order(order.id, expected_status, expected_version)
            self._orders[order.id] = copy.deepcopy(row)
        return order_from_row(row)

    def delete_order(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> None:
        with self._lock:
            self._check_order(order_id, expected_status, expected_version)
            del self._orders[order_id]
            for message_id in [
                key for key, row in self._messages.items() if row["order_id"] == order_id
            ]:
                del self._messages[message_id]

    def list_orders(self, query: OrderQuery) -> Tuple[List[Order], int]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._orders.values() if _matches(row, query)]
        rows.sort(key=lambda row: _sort_key(row, query.sort_by), reverse=query.descending)
        page = rows[query.offset : query.offset + query.limit]
        return [order_from_row(row) for row in page], len(rows)

    def insert_message(self, message: Message) -> Message:
        row = message_to_row(message)
        with self._lock:
            self._messages[message.id] = copy.deepcopy(row)
        return message_from_row(row)

    def fetch_message(self, message_id: str) -> Optional[Message]:
        with self._lock:
            row = copy.deepcopy(self._messages.get(message_id))
        return message_from_row(row) if row else None

    def list_messages(
        self, order_id: str, *, offset: int, limit: int
    ) -> Tuple[List[Message], int]:
        with self._lock:
            rows = [
                copy.deepcopy(row) for row in self._messages.values() if row["order_id"] == order_id
            ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [message_from_row(row) for row in rows[offset : offset + limit]], len(rows)

    def mark_message_read(self, message: Message) -> Message:
        with self._lock:
            current = self._messages.get(message.id)
            if current is None:
                raise NotFoundError("Message not found")
            if current.get("read_at") is None:
                current["read_at"] = message_to_row(message)["read_at"]
            row = copy.deepcopy(current)
        return message_from_row(row)

    def insert_dispute(self, dispute: Dispute) -> Dispute:
        row = dispute_to_row(dispute)
        with self._lock:
            self._disputes[dispute.id] = copy.deepcopy(row)
        return dispute_from_row(row)

    def fetch_dispute(self, dispute_id: str) -> Optional[Dispute]:
        with self._lock:
            row = copy.deepcopy(self._disputes.get(dispute_id))
        return dispute_from_row(row) if row else None

    def list_disputes(self, order_id: str) -> List[Dispute]:
        with self._lock:
            rows = [
                copy.deepcopy(row) for row in self._disputes.values() if row["order_id"] == order_id
            ]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dispute_from_row(row) for row in rows]

    def update_dispute(
        self,
        dispute: Dispute,
        *,
        expected_status: DisputeStatus,
        expected_version: int,
    ) -> Dispute:
        row = dispute_to_row(replace(dispute, version=expected_version + 1))
        with self._lock:
            current = self._disputes.get(dispute.id)
            if current is None:
                raise NotFoundError("Dispute not found")
            if current["status"] != expected_status.value or current["version"] != expected_version:
                raise ConflictError(f"Dispute {dispute.id} was modified concurrently")
            self._disputes[dispute.id] = copy.deepcopy(row)
        return dispute_from_row(row)
