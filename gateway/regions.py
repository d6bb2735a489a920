# gateway/regions.py
"""
Known regions and their simulated latency.

The ping values are decorative: they feed the region picker in the viewer and
are never used for timeouts or routing.
"""
from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable

SPIKE_PROBABILITY = 0.05
SPIKE_MIN, SPIKE_MAX = 1.5, 2.3
REFRESH_MIN_S, REFRESH_MAX_S = 2.0, 8.0


@dataclass(frozen=True)
class RegionProfile:
    name: str
    flag: str
    proxy_url: str
    region: str
    description: str
    base_latency_ms: int
    variance_ms: int


REGIONS = [
    RegionProfile("United States", "🇺🇸", "http://us-proxy.example.com:8080", "us-east-1",
                  "East Coast USA servers", base_latency_ms=45, variance_ms=15),
    RegionProfile("Germany", "🇩🇪", "http://de-proxy.example.com:8080", "eu-central-1",
                  "Frankfurt, Germany servers", base_latency_ms=85, variance_ms=20),
    RegionProfile("India", "🇮🇳", "http://in-proxy.example.com:8080", "ap-south-1",
                  "Mumbai, India servers", base_latency_ms=160, variance_ms=35),
    RegionProfile("Singapore", "🇸🇬", "http://sg-proxy.example.com:8080", "ap-southeast-1",
                  "Singapore servers", base_latency_ms=190, variance_ms=40),
    RegionProfile("United Kingdom", "🇬🇧", "http://uk-proxy.example.com:8080", "eu-west-2",
                  "London, UK servers", base_latency_ms=75, variance_ms=18),
]


def find_region(name: str | None, profiles: list[RegionProfile] | None = None) -> RegionProfile | None:
    if not name:
        return None
    for profile in REGIONS if profiles is None else profiles:
        if profile.name == name:
            return profile
    return None


@dataclass
class RegionPingState:
    base_latency_ms: int
    variance_ms: int
    last_value: int
    next_refresh_at: float


class RegionLatencyAdvertiser:
    """Per-region simulated ping, refreshed on independent jittered deadlines."""

    def __init__(
        self,
        profiles: list[RegionProfile] | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.profiles = list(REGIONS if profiles is None else profiles)
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = threading.Lock()

        now = self._clock()
        self._states: dict[str, RegionPingState] = {}
        for profile in self.profiles:
            state = RegionPingState(
                base_latency_ms=profile.base_latency_ms,
                variance_ms=profile.variance_ms,
                last_value=profile.base_latency_ms,
                next_refresh_at=now,
            )
            self._refresh(state, now)
            self._states[profile.name] = state

    def _draw(self, state: RegionPingState) -> int:
        value = state.base_latency_ms + self._rng.uniform(-state.variance_ms, state.variance_ms)
        # occasional congestion spike
        if self._rng.random() < SPIKE_PROBABILITY:
            value *= self._rng.uniform(SPIKE_MIN, SPIKE_MAX)
        return max(1, round(value))

    def _refresh(self, state: RegionPingState, now: float) -> None:
        state.last_value = self._draw(state)
        state.next_refresh_at = now + self._rng.uniform(REFRESH_MIN_S, REFRESH_MAX_S)

    def current_ping(self, region: str | None) -> int | None:
        """Current simulated ping in ms; None for a region we don't know."""
        state = self._states.get(region) if region else None
        if state is None:
            return None
        with self._lock:
            now = self._clock()
            if now >= state.next_refresh_at:
                self._refresh(state, now)
            return state.last_value

    def snapshot(self) -> list[dict]:
        return [
            {
                "name": profile.name,
                "flag": profile.flag,
                "region": profile.region,
                "description": profile.description,
                "ping": self.current_ping(profile.name),
            }
            for profile in self.profiles
        ]
