from fastapi import APIRouter, Depends

from repositories.order_store import OrderStore
from schemas import HealthResponse
from stores import get_order_store

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(store: OrderStore = Depends(get_order_store)) -> HealthResponse:
    return HealthResponse(status="ok", store_backend=store.name)
