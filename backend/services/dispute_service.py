import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import uuid4

from domain import (
    Dispute,
    DisputeResolution,
    DisputeResponse,
    DisputeStatus,
    OrderStatus,
    utc_now,
)
from errors import InvalidPayloadError, InvalidTransitionError, NotFoundError
from repositories.order_store import OrderStore
from services.guards import OrderScope
from services.order_lifecycle import require_status

logger = logging.getLogger("trade-orders")

DISPUTABLE_STATUSES = (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED)
ACTIVE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.IN_REVIEW)


def _require_active(dispute: Dispute, action: str) -> None:
    if dispute.status not in ACTIVE_DISPUTE_STATUSES:
        raise InvalidTransitionError(
            f"Dispute is {dispute.status.value} and cannot be {action}",
            current_status=dispute.status.value,
        )


async def _save(store: OrderStore, loaded: Dispute, updated: Dispute) -> Dispute:
    return await asyncio.to_thread(
        store.update_dispute,
        updated,
        expected_status=loaded.status,
        expected_version=loaded.version,
    )


async def create_dispute(
    scope: OrderScope,
    store: OrderStore,
    *,
    type: str,
    description: str,
    requested_resolution: str,
    severity: str,
    evidence: Sequence[str] = (),
) -> Dispute:
    logger.info("Opening %s dispute on order %s for user %s", type, scope.order.id, scope.actor.user_id)
    require_status(scope.order, DISPUTABLE_STATUSES, "be disputed")
    now = utc_now()
    dispute = Dispute(
        id=uuid4().hex,
        order_id=scope.order.id,
        type=type,
        description=description,
        evidence=tuple(evidence),
        requested_resolution=requested_resolution,
        severity=severity,
        created_by=scope.actor.user_id,
        created_at=now,
        updated_at=now,
    )
    stored = await asyncio.to_thread(store.insert_dispute, dispute)
    logger.info("Successfully opened dispute %s on order %s", stored.id, scope.order.id)
    return stored


async def list_order_disputes(scope: OrderScope, store: OrderStore) -> List[Dispute]:
    return await asyncio.to_thread(store.list_disputes, scope.order.id)


async def get_dispute(scope: OrderScope, store: OrderStore, dispute_id: str) -> Dispute:
    dispute = await asyncio.to_thread(store.fetch_dispute, dispute_id)
    if dispute is None or dispute.order_id != scope.order.id:
        raise NotFoundError("Dispute not found")
    return dispute


async def respond_to_dispute(
    scope: OrderScope,
    store: OrderStore,
    dispute_id: str,
    *,
    response: str,
    evidence: Sequence[str] = (),
    proposed_resolution: Optional[str] = None,
) -> Dispute:
    dispute = await get_dispute(scope, store, dispute_id)
    _require_active(dispute, "responded to")
    now = utc_now()
    entry = DisputeResponse(
        responded_by=scope.actor.user_id,
        responded_at=now,
        response=response,
        evidence=tuple(evidence),
        proposed_resolution=proposed_resolution,
    )
    updated = replace(
        dispute,
        status=DisputeStatus.IN_REVIEW,
        responses=dispute.responses + (entry,),
        updated_at=now,
    )
    saved = await _save(store, dispute, updated)
    logger.info("User %s responded to dispute %s", scope.actor.user_id, saved.id)
    return saved


async def resolve_dispute(
    scope: OrderScope,
    store: OrderStore,
    dispute_id: str,
    *,
    resolution: str,
    compensation: Optional[Decimal] = None,
    terms: Optional[str] = None,
) -> Dispute:
    if compensation is not None and compensation < 0:
        raise InvalidPayloadError("Compensation must be non-negative")
    dispute = await get_dispute(scope, store, dispute_id)
    _require_active(dispute, "resolved")
    now = utc_now()
    updated = replace(
        dispute,
        status=DisputeStatus.RESOLVED,
        resolution=DisputeResolution(
            resolved_by=scope.actor.user_id,
            resolved_at=now,
            resolution=resolution,
            compensation=compensation,
            terms=terms,
        ),
        updated_at=now,
    )
    saved = await _save(store, dispute, updated)
    logger.info("Dispute %s on order %s resolved by user %s", saved.id, scope.order.id, scope.actor.user_id)
    return saved
