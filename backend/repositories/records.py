"""
Row <-> domain conversion shared by the store adapters.

Rows are plain JSON-compatible dicts shaped like the Supabase tables
(`orders`, `order_messages`, `order_disputes`); datetimes are ISO strings and
money is a decimal string.
"""

from dataclasses import fields
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from domain import (
    EVENT_TYPES,
    Dispute,
    DisputeResolution,
    DisputeResponse,
    DisputeStatus,
    Message,
    Order,
    OrderEvent,
    OrderItem,
    OrderStatus,
    OrderType,
    as_utc,
    to_decimal,
)

_EVENT_DATETIME_FIELDS = {"at", "expires_at", "estimated_completion_date"}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"Cannot parse datetime from {type(value).__name__}")


def _money(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def item_to_row(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "commodity_id": item.commodity_id,
        "inventory_id": item.inventory_id,
        "quantity": _money(item.quantity),
        "unit_price": _money(item.unit_price),
        "unit": item.unit,
        "quality_requirements": item.quality_requirements,
        "notes": item.notes,
        "created_at": _iso(item.created_at),
    }


def item_from_row(row: Dict[str, Any]) -> OrderItem:
    return OrderItem(
        id=row["id"],
        commodity_id=row["commodity_id"],
        inventory_id=row.get("inventory_id"),
        quantity=to_decimal(row["quantity"]),
        unit_price=to_decimal(row.get("unit_price")),
        unit=row.get("unit") or "",
        quality_requirements=row.get("quality_requirements"),
        notes=row.get("notes"),
        created_at=parse_datetime(row["created_at"]),
    )


def event_to_row(event: OrderEvent) -> Dict[str, Any]:
    row: Dict[str, Any] = {"kind": event.kind}
    for f in fields(event):
        value = getattr(event, f.name)
        row[f.name] = _iso(value) if isinstance(value, datetime) else value
    return row


def event_from_row(row: Dict[str, Any]) -> OrderEvent:
    kind = row.get("kind")
    event_cls = EVENT_TYPES.get(kind)
    if event_cls is None:
        raise ValueError(f"Unknown order event kind: {kind!r}")
    values = {}
    for f in fields(event_cls):
        if f.name not in row:
            continue
        value = row[f.name]
        values[f.name] = parse_datetime(value) if f.name in _EVENT_DATETIME_FIELDS else value
    return event_cls(**values)


def order_to_row(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "type": order.type.value,
        "status": order.status.value,
        "title": order.title,
        "description": order.description,
        "buyer_org_id": order.buyer_org_id,
        "supplier_org_id": order.supplier_org_id,
        "created_by_id": order.created_by_id,
        "delivery_date": _iso(order.delivery_date),
        "delivery_address": order.delivery_address,
        "delivery_location": order.delivery_location,
        "items": [item_to_row(item) for item in order.items],
        # Denormalized for filtering and sorting; always recomputed from items.
        "total_price": _money(order.total_price),
        "commodity_ids": sorted({item.commodity_id for item in order.items}),
        "terms": order.terms,
        "is_public": order.is_public,
        "confirmed_at": _iso(order.confirmed_at),
        "events": [event_to_row(event) for event in order.events],
        "metadata": order.metadata,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "version": order.version,
    }


def order_from_row(row: Dict[str, Any]) -> Order:
    return Order(
        id=row["id"],
        order_number=row["order_number"],
        type=OrderType(row["type"]),
        status=OrderStatus(row["status"]),
        title=row["title"],
        description=row.get("description"),
        buyer_org_id=row["buyer_org_id"],
        supplier_org_id=row.get("supplier_org_id"),
        created_by_id=row["created_by_id"],
        delivery_date=parse_datetime(row["delivery_date"]),
        delivery_address=row.get("delivery_address") or {},
        delivery_location=row.get("delivery_location"),
        items=tuple(item_from_row(item) for item in row.get("items") or []),
        terms=row.get("terms") or {},
        is_public=bool(row.get("is_public")),
        confirmed_at=parse_datetime(row.get("confirmed_at")),
        events=tuple(event_from_row(event) for event in row.get("events") or []),
        metadata=row.get("metadata") or {},
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
        version=int(row.get("version") or 1),
    )


def message_to_row(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "order_id": message.order_id,
        "sender_id": message.sender_id,
        "sender_org_id": message.sender_org_id,
        "content": message.content,
        "type": message.type,
        "attachments": list(message.attachments),
        "is_urgent": message.is_urgent,
        "counter_offer": message.counter_offer,
        "read_at": _iso(message.read_at),
        "created_at": _iso(message.created_at),
    }


def message_from_row(row: Dict[str, Any]) -> Message:
    return Message(
        id=row["id"],
        order_id=row["order_id"],
        sender_id=row["sender_id"],
        sender_org_id=row["sender_org_id"],
        content=row["content"],
        type=row.get("type") or "general",
        attachments=tuple(row.get("attachments") or ()),
        is_urgent=bool(row.get("is_urgent")),
        counter_offer=row.get("counter_offer"),
        read_at=parse_datetime(row.get("read_at")),
        created_at=parse_datetime(row["created_at"]),
    )


def _response_to_row(response: DisputeResponse) -> Dict[str, Any]:
    return {
        "responded_by": response.responded_by,
        "responded_at": _iso(response.responded_at),
        "response": response.response,
        "evidence": list(response.evidence),
        "proposed_resolution": response.proposed_resolution,
    }


def _response_from_row(row: Dict[str, Any]) -> DisputeResponse:
    return DisputeResponse(
        responded_by=row["responded_by"],
        responded_at=parse_datetime(row["responded_at"]),
        response=row["response"],
        evidence=tuple(row.get("evidence") or ()),
        proposed_resolution=row.get("proposed_resolution"),
    )


def _resolution_to_row(resolution: Optional[DisputeResolution]) -> Optional[Dict[str, Any]]:
    if resolution is None:
        return None
    return {
        "resolved_by": resolution.resolved_by,
        "resolved_at": _iso(resolution.resolved_at),
        "resolution": resolution.resolution,
        "compensation": _money(resolution.compensation),
        "terms": resolution.terms,
    }


def _resolution_from_row(row: Optional[Dict[str, Any]]) -> Optional[DisputeResolution]:
    if not row:
        return None
    compensation = row.get("compensation")
    return DisputeResolution(
        resolved_by=row["resolved_by"],
        resolved_at=parse_datetime(row["resolved_at"]),
        resolution=row["resolution"],
        compensation=to_decimal(compensation) if compensation is not None else None,
        terms=row.get("terms"),
    )


def dispute_to_row(dispute: Dispute) -> Dict[str, Any]:
    return {
        "id": dispute.id,
        "order_id": dispute.order_id,
        "type": dispute.type,
        "description": dispute.description,
        "evidence": list(dispute.evidence),
        "requested_resolution": dispute.requested_resolution,
        "severity": dispute.severity,
        "status": dispute.status.value,
        "created_by": dispute.created_by,
        "responses": [_response_to_row(response) for response in dispute.responses],
        "resolution": _resolution_to_row(dispute.resolution),
        "created_at": _iso(dispute.created_at),
        "updated_at": _iso(dispute.updated_at),
        "version": dispute.version,
    }


def dispute_from_row(row: Dict[str, Any]) -> Dispute:
    responses: List[DisputeResponse] = [
        _response_from_row(item) for item in row.get("responses") or []
    ]
    return Dispute(
        id=row["id"],
        order_id=row["order_id"],
        type=row["type"],
        description=row["description"],
        evidence=tuple(row.get("evidence") or ()),
        requested_resolution=row["requested_resolution"],
        severity=row["severity"],
        status=DisputeStatus(row.get("status") or DisputeStatus.OPEN.value),
        created_by=row["created_by"],
        responses=tuple(responses),
        resolution=_resolution_from_row(row.get("resolution")),
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
        version=int(row.get("version") or 1),
    )
