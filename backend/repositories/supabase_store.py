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
)
from supabase_client import get_supabase

ORDERS_TABLE = "orders"
MESSAGES_TABLE = "order_messages"
DISPUTES_TABLE = "order_disputes"
ORDER_NUMBER_FUNCTION = "next_order_number"


def _first(response) -> Optional[Dict[str, Any]]:
    items = response.data or []
    return items[0] if items else None


class SupabaseOrderStore:
    """
    Order store backed by Supabase (PostgREST).

    Conditional writes filter on id, status and version in the same UPDATE,
    so the database decides the single winner of a race.
    """

    name = "supabase"

    def __init__(self, client=None) -> None:
        self._client = client or get_supabase()

    def next_order_number(self) -> str:
        response = self._client.rpc(ORDER_NUMBER_FUNCTION, {}).execute()
        return format_order_number(int(response.data))

    def insert_order(self, order: Order) -> Order:
        response = self._client.table(ORDERS_TABLE).insert(order_to_row(order)).execute()
        row = _first(response)
        if not row:
            raise RuntimeError("Failed to store order")
        return order_from_row(row)

    def fetch_order(self, order_id: str) -> Optional[Order]:
        response = (
            self._client.table(ORDERS_TABLE)
            .select("*")
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
        row = _first(response)
        return order_from_row(row) if row else None

    def _raise_write_miss(self, order_id: str) -> None:
        current = self.fetch_order(order_id)
        if current is None:
            raise NotFoundError("Order not found")
        raise ConflictError(
            f"Order {order_id} was modified concurrently "
            f"(now {current.status.value} v{current.version})"
        )

    def update_order(
        self,
        order: Order,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> Order:
        record = order_to_row(order)
        record["version"] = expected_version + 1
        for key in ("id", "order_number", "created_at", "created_by_id", "buyer_org_id"):
            record.pop(key)
        response = (
            self._client.table(ORDERS_TABLE)
            .update(record)
            .eq("id", order.id)
            .eq("status", expected_status.value)
            .eq("version", expected_version)
            .execute()
        )
        row = _first(response)
        if not row:
            self._raise_write_miss(order.id)
        return order_from_row(row)

    def delete_order(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_version: int,
    ) -> None:
        response = (
            self._client.table(ORDERS_TABLE)
            .delete()
            .eq("id", order_id)
            .eq("status", expected_status.value)
            .eq("version", expected_version)
            .execute()
        )
        if not response.data:
            self._raise_write_miss(order_id)

    def list_orders(self, query: OrderQuery) -> Tuple[List[Order], int]:
        request = self._client.table(ORDERS_TABLE).select("*", count="exact")
        if query.organization_id:
            request = request.or_(
                f"buyer_org_id.eq.{query.organization_id},"
                f"supplier_org_id.eq.{query.organization_id}"
            )
        if query.listed_only:
            request = (
                request.eq("status", OrderStatus.CONFIRMED.value)
                .eq("is_public", True)
                .is_("supplier_org_id", "null")
            )
        if query.type:
            request = request.eq("type", query.type.value)
        if query.status:
            request = request.eq("status", query.status.value)
        if query.commodity_id:
            request = request.contains("commodity_ids", [query.commodity_id])
        if query.commodity_ids:
            request = request.overlaps("commodity_ids", list(query.commodity_ids))
        if query.min_total is not None:
            request = request.gte("total_price", str(query.min_total))
        if query.max_total is not None:
            request = request.lte("total_price", str(query.max_total))
        if query.delivery_from:
            request = request.gte("delivery_date", as_utc(query.delivery_from).isoformat())
        if query.delivery_to:
            request = request.lte("delivery_date", as_utc(query.delivery_to).isoformat())
        response = (
            request.order(query.sort_by, desc=query.descending)
            .range(query.offset, query.offset + query.limit - 1)
            .execute()
        )
        rows = response.data or []
        total = response.count if response.count is not None else len(rows)
        return [order_from_row(row) for row in rows], total

    def insert_message(self, message: Message) -> Message:
        response = self._client.table(MESSAGES_TABLE).insert(message_to_row(message)).execute()
        row = _first(response)
        if not row:
            raise RuntimeError("Failed to store message")
        return message_from_row(row)

    def fetch_message(self, message_id: str) -> Optional[Message]:
        response = (
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .eq("id", message_id)
            .limit(1)
            .execute()
        )
        row = _first(response)
        return message_from_row(row) if row else None

    def list_messages(
        self, order_id: str, *, offset: int, limit: int
    ) -> Tuple[List[Message], int]:
        response = (
            self._client.table(MESSAGES_TABLE)
            .select("*", count="exact")
            .eq("order_id", order_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        rows = response.data or []
        total = response.count if response.count is not None else len(rows)
        return [message_from_row(row) for row in rows], total

    def mark_message_read(self, message: Message) -> Message:
        read_at = message_to_row(message)["read_at"]
        response = (
            self._client.table(MESSAGES_TABLE)
            .update({"read_at": read_at})
            .eq("id", message.id)
            .is_("read_at", "null")
            .execute()
        )
        row = _first(response)
        if row:
            return message_from_row(row)
        current = self.fetch_message(message.id)
        if current is None:
            raise NotFoundError("Message not found")
        return current

    def insert_dispute(self, dispute: Dispute) -> Dispute:
        response = self._client.table(DISPUTES_TABLE).insert(dispute_to_row(dispute)).execute()
        row = _first(response)
        if not row:
            raise RuntimeError("Failed to store dispute")
        return dispute_from_row(row)

    def fetch_dispute(self, dispute_id: str) -> Optional[Dispute]:
        response = (
            self._client.table(DISPUTES_TABLE)
            .select("*")
            .eq("id", dispute_id)
            .limit(1)
            .execute()
        )
        row = _first(response)
        return dispute_from_row(row) if row else None

    def list_disputes(self, order_id: str) -> List[Dispute]:
        response = (
            self._client.table(DISPUTES_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [dispute_from_row(row) for row in response.data or []]

    def update_dispute(
        self,
        dispute: Dispute,
        *,
        expected_status: DisputeStatus,
        expected_version: int,
    ) -> Dispute:
        record = dispute_to_row(dispute)
        record["version"] = expected_version + 1
        record.pop("id")
        response = (
            self._client.table(DISPUTES_TABLE)
            .update(record)
            .eq("id", dispute.id)
            .eq("status", expected_status.value)
            .eq("version", expected_version)
            .execute()
        )
        row = _first(response)
        if row:
            return dispute_from_row(row)
        if self.fetch_dispute(dispute.id) is None:
            raise NotFoundError("Dispute not found")
        raise ConflictError(f"Dispute {dispute.id} was modified concurrently")
