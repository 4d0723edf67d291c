import logging
from functools import lru_cache

from config import settings
from repositories.memory_store import InMemoryOrderStore
from repositories.order_store import OrderStore
from repositories.supabase_store import SupabaseOrderStore
from services.catalog import CommodityCatalog, StaticCommodityCatalog, SupabaseCommodityCatalog

logger = logging.getLogger("trade-orders")


@lru_cache(maxsize=1)
def get_order_store() -> OrderStore:
    if settings.store_backend == "supabase":
        return SupabaseOrderStore()
    logger.warning("Using the in-memory order store; data is lost on restart.")
    return InMemoryOrderStore()


@lru_cache(maxsize=1)
def get_catalog() -> CommodityCatalog:
    if settings.store_backend == "supabase":
        return SupabaseCommodityCatalog()
    return StaticCommodityCatalog(settings.known_commodity_ids)
