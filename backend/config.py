import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

STORE_BACKENDS = ("memory", "supabase")


def require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_list(name: str, fallback: str = "") -> List[str]:
    raw_value = os.getenv(name, fallback)
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


def _get_backend() -> str:
    value = os.getenv("ORDER_STORE_BACKEND", "memory").strip().lower()
    if value not in STORE_BACKENDS:
        raise RuntimeError(
            f"ORDER_STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {value!r}"
        )
    return value


@dataclass(frozen=True)
class Settings:
    store_backend: str = field(default_factory=_get_backend)
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_service_role_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    order_page_size: int = int(os.getenv("ORDER_PAGE_SIZE", "10"))
    messages_page_size: int = int(os.getenv("MESSAGES_PAGE_SIZE", "20"))
    allowed_origins: List[str] = field(
        default_factory=lambda: _get_list("ALLOWED_ORIGINS", "*")
    )
    known_commodity_ids: List[str] = field(
        default_factory=lambda: _get_list("KNOWN_COMMODITY_IDS")
    )


settings = Settings()
