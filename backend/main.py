import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import (
    health_router,
    order_disputes_router,
    order_lifecycle_router,
    order_messages_router,
    orders_router,
)
from config import settings

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("trade-orders")

app = FastAPI(title="Trade Orders API")

if settings.allowed_origins == ["*"]:
    allow_origins = ["*"]
else:
    allow_origins = settings.allowed_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(orders_router)
app.include_router(order_lifecycle_router)
app.include_router(order_messages_router)
app.include_router(order_disputes_router)


@app.on_event("startup")
async def _on_startup() -> None:
    logger.info("Order store backend: %s", settings.store_backend)
    if allow_origins == ["*"]:
        logger.warning(
            "CORS is set to allow all origins with credentials; set ALLOWED_ORIGINS to explicit values for local dev."
        )


@app.middleware("http")
async def log_preflight(request, call_next):
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "")
        logger.info("CORS preflight %s %s origin=%s", request.method, request.url.path, origin)
    response = await call_next(request)
    return response
