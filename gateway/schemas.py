from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FetchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1)
    region_hint: str | None = Field(default=None, alias="regionHint")


class GatewayResponse(BaseModel):
    """One processed page. Frozen: cached and shared by value."""
    model_config = ConfigDict(frozen=True)

    sanitized_html: str
    title: str
    snapshot: str
    source_url: str
    processing_time_ms: int
    served_from_cache: bool = False
    used_fallback: bool = False
    region: str

    def to_payload(self) -> dict:
        """Wire shape for POST /api/proxy/fetch."""
        return {
            "html": self.sanitized_html,
            "title": self.title,
            "url": self.source_url,
            "snapshot": self.snapshot,
            "processingTime": self.processing_time_ms,
            "cached": self.served_from_cache,
            "fallback": self.used_fallback,
            "region": self.region,
        }


class RegionStatus(BaseModel):
    name: str
    flag: str
    region: str
    description: str
    ping: int | None = None
