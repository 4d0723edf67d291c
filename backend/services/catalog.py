from typing import Dict, Iterable, Optional, Protocol

from supabase_client import get_supabase

COMMODITIES_TABLE = "commodities"
INVENTORY_TABLE = "inventory"


class CommodityCatalog(Protocol):
    def commodity_exists(self, commodity_id: str) -> bool: ...

    def inventory_matches(self, inventory_id: str, commodity_id: str) -> bool: ...


class StaticCommodityCatalog:
    """Catalog over fixed id sets; an empty commodity set accepts any id."""

    def __init__(
        self,
        commodity_ids: Iterable[str] = (),
        inventory: Optional[Dict[str, str]] = None,
    ) -> None:
        self._commodity_ids = frozenset(commodity_ids)
        self._inventory = dict(inventory or {})

    def commodity_exists(self, commodity_id: str) -> bool:
        if not self._commodity_ids:
            return True
        return commodity_id in self._commodity_ids

    def inventory_matches(self, inventory_id: str, commodity_id: str) -> bool:
        if not self._inventory:
            return True
        return self._inventory.get(inventory_id) == commodity_id


class SupabaseCommodityCatalog:
    def __init__(self, client=None) -> None:
        self._client = client or get_supabase()

    def commodity_exists(self, commodity_id: str) -> bool:
        response = (
            self._client.table(COMMODITIES_TABLE)
            .select("id")
            .eq("id", commodity_id)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def inventory_matches(self, inventory_id: str, commodity_id: str) -> bool:
        response = (
            self._client.table(INVENTORY_TABLE)
            .select("id, commodity_id")
            .eq("id", inventory_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return bool(rows) and rows[0].get("commodity_id") == commodity_id
