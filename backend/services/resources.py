import math
from datetime import datetime
from typing import Dict, Optional, Sequence

from domain import Dispute, Message, Order, OrderItem, utc_now
from schemas import (
    CounterOfferView,
    DisputeAttributes,
    DisputeResolutionView,
    DisputeResource,
    DisputeResponseView,
    MessageAttributes,
    MessageResource,
    OrderAttributes,
    OrderItemAttributes,
    OrderItemResource,
    OrderResource,
    OrderRelationship,
    PageMeta,
    Relationship,
    RelationshipDocument,
    RelationshipLinks,
    ResourceIdentifier,
)


def _relation(type_: str, id_: Optional[str]) -> Relationship:
    if not id_:
        return Relationship(data=None)
    return Relationship(data=ResourceIdentifier(type=type_, id=id_))


def render_relationship(order: Order, name: OrderRelationship) -> RelationshipDocument:
    org_id = order.buyer_org_id if name == OrderRelationship.BUYER else order.supplier_org_id
    return RelationshipDocument(
        data=_relation("organizations", org_id).data,
        links=RelationshipLinks(
            self=f"/api/orders/{order.id}/relationships/{name.value}",
            related=f"/api/orders/{order.id}",
        ),
    )


def page_meta(total: int, page: int, limit: int) -> PageMeta:
    return PageMeta(
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if limit else 0,
    )


def render_item(order_id: str, item: OrderItem) -> OrderItemResource:
    return OrderItemResource(
        id=item.id,
        attributes=OrderItemAttributes(
            commodity_id=item.commodity_id,
            inventory_id=item.inventory_id,
            quantity=float(item.quantity),
            unit=item.unit,
            unit_price=float(item.unit_price),
            line_total=float(item.line_total),
            quality_requirements=item.quality_requirements,
            notes=item.notes,
            created_at=item.created_at,
        ),
        relationships={
            "order": _relation("orders", order_id),
            "commodity": _relation("commodities", item.commodity_id),
            "inventory": _relation("inventory", item.inventory_id),
        },
    )


def _render_counter_offer(order: Order, now: datetime) -> Optional[CounterOfferView]:
    offer = order.counter_offer
    if offer is None:
        return None
    return CounterOfferView(
        message=offer.message,
        changes=offer.changes,
        expires_at=offer.expires_at,
        expired=offer.is_expired(now),
        proposed_at=offer.at,
        proposed_by=offer.actor_id,
        proposed_by_org_id=offer.actor_org_id,
        message_id=offer.message_id,
    )


def render_order(order: Order, now: Optional[datetime] = None) -> OrderResource:
    now = now or utc_now()
    return OrderResource(
        id=order.id,
        attributes=OrderAttributes(
            order_number=order.order_number,
            title=order.title,
            description=order.description,
            type=order.type,
            status=order.status,
            delivery_date=order.delivery_date,
            delivery_location=order.delivery_location,
            delivery_address=order.delivery_address,
            total_price=float(order.total_price),
            terms=order.terms,
            is_public=order.is_public,
            confirmed_at=order.confirmed_at,
            counter_offer=_render_counter_offer(order, now),
            metadata=order.metadata,
            items=[render_item(order.id, item) for item in order.items],
            created_at=order.created_at,
            updated_at=order.updated_at,
            version=order.version,
        ),
        relationships={
            "buyer": _relation("organizations", order.buyer_org_id),
            "supplier": _relation("organizations", order.supplier_org_id),
            "creator": _relation("users", order.created_by_id),
        },
    )


def render_orders(orders: Sequence[Order]) -> list:
    now = utc_now()
    return [render_order(order, now) for order in orders]


def render_message(message: Message) -> MessageResource:
    return MessageResource(
        id=message.id,
        attributes=MessageAttributes(
            content=message.content,
            type=message.type,
            attachments=list(message.attachments),
            is_urgent=message.is_urgent,
            is_read=message.is_read,
            read_at=message.read_at,
            counter_offer=message.counter_offer,
            created_at=message.created_at,
        ),
        relationships={
            "order": _relation("orders", message.order_id),
            "sender": _relation("users", message.sender_id),
            "senderOrganization": _relation("organizations", message.sender_org_id),
        },
    )


def render_dispute(dispute: Dispute) -> DisputeResource:
    resolution = dispute.resolution
    resolution_view: Optional[DisputeResolutionView] = None
    if resolution is not None:
        resolution_view = DisputeResolutionView(
            resolved_by=resolution.resolved_by,
            resolved_at=resolution.resolved_at,
            resolution=resolution.resolution,
            compensation=(
                float(resolution.compensation) if resolution.compensation is not None else None
            ),
            terms=resolution.terms,
        )
    relationships: Dict[str, object] = {
        "order": _relation("orders", dispute.order_id),
        "creator": _relation("users", dispute.created_by),
    }
    return DisputeResource(
        id=dispute.id,
        attributes=DisputeAttributes(
            type=dispute.type,
            description=dispute.description,
            evidence=list(dispute.evidence),
            requested_resolution=dispute.requested_resolution,
            severity=dispute.severity,
            status=dispute.status.value,
            responses=[
                DisputeResponseView(
                    responded_by=response.responded_by,
                    responded_at=response.responded_at,
                    response=response.response,
                    evidence=list(response.evidence),
                    proposed_resolution=response.proposed_resolution,
                )
                for response in dispute.responses
            ],
            resolution=resolution_view,
            created_at=dispute.created_at,
            updated_at=dispute.updated_at,
            resolved_at=dispute.resolved_at,
        ),
        relationships=relationships,
    )
