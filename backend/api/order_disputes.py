from fastapi import APIRouter, Depends, status

from errors import OrderError
from repositories.order_store import OrderStore
from schemas import (
    DisputeCollection,
    DisputeCreate,
    DisputeDocument,
    DisputeRespond,
    DisputeResolve,
)
from services import dispute_service
from services.guards import OrderScope
from services.resources import render_dispute
from stores import get_order_store

from .deps import participant_order, to_http_exception

router = APIRouter(prefix="/api/orders", tags=["order-disputes"])


@router.get("/{order_id}/disputes", response_model=DisputeCollection)
async def list_disputes(
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> DisputeCollection:
    disputes = await dispute_service.list_order_disputes(scope, store)
    return DisputeCollection(data=[render_dispute(dispute) for dispute in disputes])


@router.post(
    "/{order_id}/disputes",
    response_model=DisputeDocument,
    status_code=status.HTTP_201_CREATED,
)
async def create_dispute(
    payload: DisputeCreate,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> DisputeDocument:
    try:
        dispute = await dispute_service.create_dispute(
            scope,
            store,
            type=payload.type.value,
            description=payload.description,
            requested_resolution=payload.requested_resolution.value,
            severity=payload.severity.value,
            evidence=[str(url) for url in payload.evidence],
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return DisputeDocument(data=render_dispute(dispute))


@router.get("/{order_id}/disputes/{dispute_id}", response_model=DisputeDocument)
async def read_dispute(
    dispute_id: str,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> DisputeDocument:
    try:
        dispute = await dispute_service.get_dispute(scope, store, dispute_id)
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return DisputeDocument(data=render_dispute(dispute))


@router.post("/{order_id}/disputes/{dispute_id}/respond", response_model=DisputeDocument)
async def respond(
    dispute_id: str,
    payload: DisputeRespond,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> DisputeDocument:
    try:
        dispute = await dispute_service.respond_to_dispute(
            scope,
            store,
            dispute_id,
            response=payload.response,
            evidence=[str(url) for url in payload.evidence],
            proposed_resolution=payload.proposed_resolution,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return DisputeDocument(data=render_dispute(dispute))


@router.post("/{order_id}/disputes/{dispute_id}/resolve", response_model=DisputeDocument)
async def resolve(
    dispute_id: str,
    payload: DisputeResolve,
    scope: OrderScope = Depends(participant_order),
    store: OrderStore = Depends(get_order_store),
) -> DisputeDocument:
    try:
        dispute = await dispute_service.resolve_dispute(
            scope,
            store,
            dispute_id,
            resolution=payload.resolution,
            compensation=payload.compensation,
            terms=payload.terms,
        )
    except OrderError as exc:
        raise to_http_exception(exc) from exc
    return DisputeDocument(data=render_dispute(dispute))
