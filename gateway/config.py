"""Gateway settings, read from the environment (a .env file is loaded by main)."""
from __future__ import annotations

import os

from pydantic import BaseModel


DEFAULT_REGION = "United States"
DEFAULT_USER_AGENT = "ProxyBrowser/1.0"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


class GatewaySettings(BaseModel):
    fetch_timeout_ms: int = 30_000
    resource_timeout_ms: int = 15_000
    cache_max_entries: int = 500
    cache_ttl_seconds: int = 300
    default_region: str = DEFAULT_REGION
    user_agent: str = DEFAULT_USER_AGENT
    resource_path: str = "/api/proxy/resource"

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            fetch_timeout_ms=_env_int("GATEWAY_FETCH_TIMEOUT_MS", 30_000),
            resource_timeout_ms=_env_int("GATEWAY_RESOURCE_TIMEOUT_MS", 15_000),
            cache_max_entries=_env_int("GATEWAY_CACHE_MAX_ENTRIES", 500),
            cache_ttl_seconds=_env_int("GATEWAY_CACHE_TTL_SECONDS", 300),
            default_region=os.environ.get("GATEWAY_DEFAULT_REGION") or DEFAULT_REGION,
            user_agent=os.environ.get("GATEWAY_USER_AGENT") or DEFAULT_USER_AGENT,
            resource_path=os.environ.get("GATEWAY_RESOURCE_PATH") or "/api/proxy/resource",
        )
