"""
How an outbound request leaves the gateway.

Only SimulatedRegion and DirectEgress exist today: both go out through the
gateway's own network identity. SimulatedRegion just labels the request with
the region the caller asked for. A real multi-egress backend would implement
NetworkEgress and route the request itself.
"""
from __future__ import annotations

from typing import Protocol

from gateway.regions import RegionProfile, find_region


REGION_HEADER = "X-Gateway-Region"
EGRESS_HEADER = "X-Gateway-Egress"


class NetworkEgress(Protocol):
    name: str
    simulated: bool

    def advisory_headers(self) -> dict[str, str]:
        ...


class DirectEgress:
    name = "direct"
    simulated = False

    def advisory_headers(self) -> dict[str, str]:
        return {}


class SimulatedRegion:
    simulated = True

    def __init__(self, profile: RegionProfile):
        self.profile = profile
        self.name = profile.name

    def advisory_headers(self) -> dict[str, str]:
        return {
            REGION_HEADER: self.profile.region,
            EGRESS_HEADER: "simulated",
        }


def egress_for(region: str | None, profiles: list[RegionProfile] | None = None) -> NetworkEgress:
    profile = find_region(region, profiles)
    if profile is None:
        return DirectEgress()
    return SimulatedRegion(profile)
