"""
IP Firewall - Address Patterns & Matching.

A list entry is one of three pattern kinds:
  - exact address   ``192.168.1.10``, ``2001:db8::1``
  - CIDR block      ``10.0.0.0/8``, ``2001:db8::/32``
  - wildcard        ``192.168.*.*``, ``2001:db8:*:*:*:*:*:1``

Patterns are validated once at construction; matching never fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from ipaddress import (
    IPv4Address,
    IPv4Network,
    IPv6Address,
    IPv6Network,
    ip_address,
    ip_network,
)
from typing import Optional, Union

from ipfirewall.errors import InvalidAddressError, InvalidPatternError

Address = Union[IPv4Address, IPv6Address]
Network = Union[IPv4Network, IPv6Network]

WILDCARD = "*"

_MAPPED_V4 = IPv6Network("::ffff:0:0/96")


# ── Address helpers ──────────────────────────────────────


def normalize_address(addr: Address) -> Address:
    """Collapse IPv4-mapped IPv6 (``::ffff:a.b.c.d``) to plain IPv4 and drop zone ids."""
    if isinstance(addr, IPv6Address):
        if addr.ipv4_mapped is not None:
            return addr.ipv4_mapped
        if addr.scope_id is not None:
            return IPv6Address(addr.packed)
    return addr


def parse_address(value: Union[str, Address]) -> Address:
    """Parse and normalize a single IP address."""
    if isinstance(value, (IPv4Address, IPv6Address)):
        return normalize_address(value)
    text = value.strip() if isinstance(value, str) else ""
    try:
        return normalize_address(ip_address(_strip_zone(text)))
    except ValueError:
        raise InvalidAddressError(str(value)) from None


def _strip_zone(text: str) -> str:
    # Zone ids ("fe80::1%eth0") carry no meaning for list membership
    return text.split("%", 1)[0]


def _normalize_network(net: Network) -> Network:
    if (
        isinstance(net, IPv6Network)
        and net.prefixlen >= 96
        and net.subnet_of(_MAPPED_V4)
    ):
        base = net.network_address.ipv4_mapped
        return IPv4Network(f"{base}/{net.prefixlen - 96}")
    return net


# ── Patterns ─────────────────────────────────────────────


@dataclass(frozen=True)
class Pattern(ABC):
    """Base class. ``text`` is the canonical form and the pattern's identity."""

    kind = "pattern"

    @property
    @abstractmethod
    def text(self) -> str:
        """Canonical pattern text."""

    @property
    @abstractmethod
    def version(self) -> int:
        """4 or 6."""

    @abstractmethod
    def matches(self, addr: Address) -> bool:
        """True if ``addr`` is covered by this pattern."""

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ExactPattern(Pattern):
    address: Address

    kind = "exact"

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", normalize_address(self.address))

    @property
    def text(self) -> str:
        return str(self.address)

    @property
    def version(self) -> int:
        return self.address.version

    def matches(self, addr: Address) -> bool:
        return normalize_address(addr) == self.address


@dataclass(frozen=True)
class CIDRPattern(Pattern):
    network: Network

    kind = "cidr"

    def __post_init__(self) -> None:
        object.__setattr__(self, "network", _normalize_network(self.network))

    @property
    def text(self) -> str:
        return self.network.with_prefixlen

    @property
    def version(self) -> int:
        return self.network.version

    @property
    def prefix_length(self) -> int:
        return self.network.prefixlen

    def matches(self, addr: Address) -> bool:
        addr = normalize_address(addr)
        if addr.version != self.network.version:
            return False
        return addr in self.network


@dataclass(frozen=True)
class WildcardPattern(Pattern):
    """Per-segment pattern; ``None`` segments match any value.

    IPv4 segments are octets, IPv6 segments are 16-bit groups.
    """

    segments: tuple[Optional[int], ...]

    kind = "wildcard"

    @property
    def version(self) -> int:
        return 4 if len(self.segments) == 4 else 6

    @property
    def text(self) -> str:
        if self.version == 4:
            parts = [WILDCARD if s is None else str(s) for s in self.segments]
            return ".".join(parts)
        parts = [WILDCARD if s is None else format(s, "x") for s in self.segments]
        return ":".join(parts)

    def matches(self, addr: Address) -> bool:
        addr = normalize_address(addr)
        if addr.version != self.version:
            return False
        values = _segments_of(addr)
        return all(
            want is None or want == got
            for want, got in zip(self.segments, values)
        )


def _segments_of(addr: Address) -> tuple[int, ...]:
    packed = addr.packed
    if addr.version == 4:
        return tuple(packed)
    return tuple(
        int.from_bytes(packed[i:i + 2], "big") for i in range(0, 16, 2)
    )


# ── Parsing ──────────────────────────────────────────────


def parse_pattern(text: Union[str, Pattern]) -> Pattern:
    """Parse pattern text; raises InvalidPatternError on malformed input."""
    if isinstance(text, Pattern):
        return text
    if not isinstance(text, str):
        raise InvalidPatternError(repr(text), "not a string")

    raw = text.strip()
    if not raw:
        raise InvalidPatternError(text, "empty pattern")

    if WILDCARD in raw:
        return _parse_wildcard(raw)
    if "/" in raw:
        return _parse_cidr(raw)
    try:
        return ExactPattern(ip_address(_strip_zone(raw)))
    except ValueError:
        raise InvalidPatternError(text, "not an IP address") from None


def _parse_cidr(raw: str) -> CIDRPattern:
    base, _, prefix = raw.partition("/")
    if not (prefix.isascii() and prefix.isdigit()):
        raise InvalidPatternError(raw, "prefix length must be numeric")
    try:
        addr = ip_address(_strip_zone(base))
    except ValueError:
        raise InvalidPatternError(raw, "invalid network address") from None
    max_prefix = 32 if addr.version == 4 else 128
    if int(prefix) > max_prefix:
        raise InvalidPatternError(
            raw, f"prefix length out of range (0-{max_prefix})",
        )
    # Host bits are masked off: 10.1.2.3/8 -> 10.0.0.0/8
    return CIDRPattern(ip_network(f"{addr}/{int(prefix)}", strict=False))


def _parse_wildcard(raw: str) -> WildcardPattern:
    if "/" in raw:
        raise InvalidPatternError(raw, "wildcards cannot carry a prefix length")

    if ":" in raw:
        parts = raw.split(":")
        if len(parts) != 8:
            raise InvalidPatternError(
                raw, "IPv6 wildcard needs exactly 8 groups",
            )
        return WildcardPattern(tuple(_segment(raw, p, 16, 0xFFFF) for p in parts))

    parts = raw.split(".")
    if len(parts) != 4:
        raise InvalidPatternError(raw, "IPv4 wildcard needs exactly 4 octets")
    return WildcardPattern(tuple(_segment(raw, p, 10, 255) for p in parts))


def _segment(raw: str, part: str, base: int, limit: int) -> Optional[int]:
    if part == WILDCARD:
        return None
    digits = "0123456789" if base == 10 else "0123456789abcdefABCDEF"
    if not part or len(part) > 4 or any(c not in digits for c in part):
        raise InvalidPatternError(raw, f"bad segment {part!r}")
    value = int(part, base)
    if value > limit:
        raise InvalidPatternError(raw, f"segment {part!r} out of range")
    return value


def matches(address: Union[str, Address], pattern: Union[str, Pattern]) -> bool:
    """Return True if ``address`` is covered by ``pattern``."""
    return parse_pattern(pattern).matches(parse_address(address))
