"""
IP Firewall - Request Guard.

Decides per request whether the client address gets through:

  1. on the blacklist                       -> BLOCKED_BY_BLACKLIST
  2. whitelist enforced and not whitelisted -> BLOCKED_BY_NOT_WHITELISTED
  3. otherwise                              -> ALLOWED

The blacklist is checked first and always wins, even for addresses
that are also whitelisted. The guard returns a verdict; turning it
into an HTTP response is up to the hosting application (see
``denial_for`` for the configured status / message / redirect).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ipfirewall.errors import InvalidAddressError
from ipfirewall.lists.models import ListType
from ipfirewall.repository import DataRepository

logger = logging.getLogger("ipfirewall.guard")


class Verdict(str, Enum):
    ALLOWED = "allowed"
    BLOCKED_BY_BLACKLIST = "blocked_by_blacklist"
    BLOCKED_BY_NOT_WHITELISTED = "blocked_by_not_whitelisted"


@dataclass(frozen=True)
class GuardResult:
    """Outcome of one check."""
    address: str
    verdict: Verdict
    matched_list: Optional[ListType] = None

    @property
    def allowed(self) -> bool:
        return self.verdict == Verdict.ALLOWED

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "verdict": self.verdict.value,
            "matched_list": self.matched_list.value if self.matched_list else None,
        }


@dataclass(frozen=True)
class Denial:
    """What the hosting app should answer for a blocked request."""
    status_code: int
    message: str
    redirect_to: Optional[str] = None


class FirewallGuard:
    """Per-request verdicts over a DataRepository."""

    def __init__(
        self,
        repository: DataRepository,
        enforce_whitelist: bool = False,
        enable_log: bool = True,
        block_response_code: int = 403,
        block_response_message: str = "403 Forbidden",
        redirect_non_whitelisted_to: Optional[str] = None,
        trust_forwarded_for: bool = False,
    ) -> None:
        self.repository = repository
        self.enforce_whitelist = enforce_whitelist
        self.enable_log = enable_log
        self.block_response_code = block_response_code
        self.block_response_message = block_response_message
        self.redirect_non_whitelisted_to = redirect_non_whitelisted_to
        self.trust_forwarded_for = trust_forwarded_for

    async def check(self, address: str) -> GuardResult:
        """Return the verdict for ``address``."""
        try:
            blacklisted = await self.repository.is_member(address, ListType.BLACKLIST)
        except InvalidAddressError:
            # Unparseable addresses match no entry on either list
            logger.warning("Cannot parse client address %r", address)
            return self._verdict(address, blacklisted=False, whitelisted=False)

        if blacklisted:
            return self._verdict(address, blacklisted=True, whitelisted=False)

        whitelisted = await self.repository.is_member(address, ListType.WHITELIST)
        return self._verdict(address, blacklisted=False, whitelisted=whitelisted)

    async def is_blacklisted(self, address: str) -> bool:
        try:
            return await self.repository.is_member(address, ListType.BLACKLIST)
        except InvalidAddressError:
            return False

    async def is_whitelisted(self, address: str) -> bool:
        try:
            return await self.repository.is_member(address, ListType.WHITELIST)
        except InvalidAddressError:
            return False

    def denial_for(self, result: GuardResult) -> Optional[Denial]:
        """Configured response for a blocked verdict; None when allowed."""
        if result.allowed:
            return None
        redirect = None
        if result.verdict == Verdict.BLOCKED_BY_NOT_WHITELISTED:
            redirect = self.redirect_non_whitelisted_to
        return Denial(
            status_code=self.block_response_code,
            message=self.block_response_message,
            redirect_to=redirect,
        )

    # ── Internal ─────────────────────────────────────────

    def _verdict(self, address: str, blacklisted: bool, whitelisted: bool) -> GuardResult:
        if blacklisted:
            result = GuardResult(address, Verdict.BLOCKED_BY_BLACKLIST, ListType.BLACKLIST)
            self._log("[blocked] IP blacklisted: %s", address)
            return result

        if self.enforce_whitelist and not whitelisted:
            action = "redirected" if self.redirect_non_whitelisted_to else "blocked"
            self._log("[%s] IP not whitelisted: %s", action, address)
            return GuardResult(address, Verdict.BLOCKED_BY_NOT_WHITELISTED)

        return GuardResult(
            address,
            Verdict.ALLOWED,
            ListType.WHITELIST if whitelisted else None,
        )

    def _log(self, message: str, *args) -> None:
        if self.enable_log:
            logger.info("Firewall: " + message, *args)
