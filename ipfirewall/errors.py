"""
IP Firewall - Exceptions.
"""

from __future__ import annotations


class FirewallError(Exception):
    """Base class for all firewall errors."""


class InvalidPatternError(FirewallError, ValueError):
    """Pattern text is not an IP address, CIDR block or wildcard pattern."""

    def __init__(self, pattern: str, reason: str = "") -> None:
        self.pattern = pattern
        self.reason = reason
        message = f"Invalid pattern: {pattern!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidAddressError(FirewallError, ValueError):
    """Text is not a single IPv4 or IPv6 address."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Invalid IP address: {address!r}")


class StoreUnavailableError(FirewallError):
    """The durable store could not be reached or did not answer in time."""
