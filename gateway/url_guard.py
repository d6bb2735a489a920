"""
URL validation and SSRF screening.
Pure functions: no DNS lookups, no sockets opened. The only side effect is a
guard_rejected log event.

Known gap: hostnames are checked as strings, not as the address the fetcher
eventually connects to, so a public name that resolves to a private address
(DNS rebinding) passes.
"""
from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from gateway.error_codes import FORBIDDEN_URL, MALFORMED_URL, PRIVATE_NETWORK
from gateway.logging_utils import log_event


ALLOWED_SCHEMES = frozenset(["http", "https"])

# Loopback/internal markers; any substring hit rejects the host
BLOCKED_HOST_SUBSTRINGS = ("internal", "localhost", "local", "0.0.0.0")

PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)

_ABSOLUTE_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
# "example.com:8080/path" has a colon but no scheme
_HOST_PORT_RE = re.compile(r"^[^/?#:@]+:\d*(?:[/?#]|$)")
_BAD_HOST_CHARS = re.compile(r"[\x00-\x20\x7f<>\"{}|\\^`]")
_NUMERIC_HOST_RE = re.compile(r"[0-9][0-9a-fA-Fx.]*")


class GuardVerdict(str, Enum):
    OK = "OK"
    MALFORMED = "MALFORMED"
    FORBIDDEN_SCHEME = "FORBIDDEN_SCHEME"
    FORBIDDEN_HOST = "FORBIDDEN_HOST"
    PRIVATE_NETWORK = "PRIVATE_NETWORK"


VERDICT_CODES = {
    GuardVerdict.MALFORMED: MALFORMED_URL,
    GuardVerdict.FORBIDDEN_SCHEME: FORBIDDEN_URL,
    GuardVerdict.FORBIDDEN_HOST: FORBIDDEN_URL,
    GuardVerdict.PRIVATE_NETWORK: PRIVATE_NETWORK,
}


@dataclass(frozen=True)
class NormalizedURL:
    scheme: str
    host: str
    port: int | None
    path: str
    query: str = ""
    fragment: str = ""
    userinfo: str = ""

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            host = f"{host}:{self.port}"
        return f"{self.userinfo}@{host}" if self.userinfo else host

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.netloc.rpartition('@')[2]}"

    def geturl(self) -> str:
        return urlunsplit((self.scheme, self.netloc, self.path, self.query, self.fragment))

    def __str__(self) -> str:
        return self.geturl()


def with_default_scheme(candidate: str) -> str:
    """Prepend https:// unless the candidate already names a scheme."""
    if candidate.startswith("//"):
        return "https:" + candidate
    if _ABSOLUTE_RE.match(candidate):
        return candidate
    if _HOST_PORT_RE.match(candidate):
        return "https://" + candidate
    if _SCHEME_RE.match(candidate):
        # javascript:, mailto:, data: ... keep them so the scheme check sees them
        return candidate
    return "https://" + candidate


def parse_ip_literal(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """
    Return the address if host is an IP literal, else None.

    Besides dotted quads this accepts the legacy forms (2130706433, 0x7f.1,
    0177.0.0.1) that the platform resolver would turn into an address.
    """
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    if not _NUMERIC_HOST_RE.fullmatch(host):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host))
    except (OSError, ValueError):
        return None


def is_private_ip(addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return any(addr.version == net.version and addr in net for net in PRIVATE_NETWORKS)


def is_private_host(hostname: str) -> bool:
    """
    Private-network screen for a bare hostname.
    IP literals are tested against PRIVATE_NETWORKS; names only against
    static patterns (no resolution).
    """
    host = hostname.lower().rstrip(".")
    addr = parse_ip_literal(host)
    if addr is not None:
        return is_private_ip(addr)
    return host == "localhost" or host.endswith(".local") or host.endswith(".internal")


def has_blocked_substring(hostname: str) -> bool:
    host = hostname.lower().rstrip(".")
    return any(marker in host for marker in BLOCKED_HOST_SUBSTRINGS)


def _reject(candidate: str, verdict: GuardVerdict, **fields) -> tuple[None, GuardVerdict]:
    log_event("guard_rejected", verdict=verdict.value, candidate=candidate[:200], **fields)
    return None, verdict


def validate(candidate: str) -> tuple[NormalizedURL | None, GuardVerdict]:
    """
    Classify a caller-supplied URL.

    Never raises: every input maps to a verdict. On OK the NormalizedURL is
    what the fetcher should request; on rejection it is None.
    """
    if not isinstance(candidate, str) or not candidate.strip():
        return _reject(str(candidate), GuardVerdict.MALFORMED)

    text = with_default_scheme(candidate.strip())
    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError:
        return _reject(candidate, GuardVerdict.MALFORMED)

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return _reject(candidate, GuardVerdict.FORBIDDEN_SCHEME, scheme=scheme)

    hostname = parts.hostname
    if not hostname or _BAD_HOST_CHARS.search(hostname):
        return _reject(candidate, GuardVerdict.MALFORMED)

    host = hostname.lower()
    # IP literals go straight to the range check so 10.0.0.0 reports PRIVATE_NETWORK
    is_literal = parse_ip_literal(host.rstrip(".")) is not None
    if not is_literal and has_blocked_substring(host):
        return _reject(candidate, GuardVerdict.FORBIDDEN_HOST, host=host)

    if is_private_host(host):
        return _reject(candidate, GuardVerdict.PRIVATE_NETWORK, host=host)

    userinfo = parts.netloc.rpartition("@")[0] if "@" in parts.netloc else ""
    normalized = NormalizedURL(
        scheme=scheme,
        host=host,
        port=port,
        path=parts.path or "/",
        query=parts.query,
        fragment=parts.fragment,
        userinfo=userinfo,
    )
    return normalized, GuardVerdict.OK
