from .health import router as health_router
from .orders import router as orders_router
from .order_lifecycle import router as order_lifecycle_router
from .order_messages import router as order_messages_router
from .order_disputes import router as order_disputes_router

__all__ = [
    "health_router",
    "orders_router",
    "order_lifecycle_router",
    "order_messages_router",
    "order_disputes_router",
]
