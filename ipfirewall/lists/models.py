"""
IP Firewall - List Entries & Snapshots.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from ipfirewall.matching.patterns import Address, ExactPattern, Pattern, parse_pattern


class ListType(str, Enum):
    """The two lists an entry can live on."""
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"


SOURCE_ADMIN = "admin"    # written through the repository
SOURCE_CONFIG = "config"  # static, seeded from settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Entry:
    """One pattern on one list. Identity is (pattern text, list)."""
    pattern: Pattern
    list_type: ListType
    added_at: datetime = field(default_factory=utcnow)
    note: Optional[str] = None
    source: str = SOURCE_ADMIN

    @property
    def key(self) -> tuple[str, ListType]:
        return self.pattern.text, self.list_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern.text,
            "kind": self.pattern.kind,
            "list": self.list_type.value,
            "added_at": self.added_at.isoformat(),
            "note": self.note,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        """Rebuild an entry from ``to_dict`` output (stores use this)."""
        added_at = data.get("added_at")
        if isinstance(added_at, str):
            added_at = datetime.fromisoformat(added_at)
        if added_at is None:
            added_at = utcnow()
        elif added_at.tzinfo is None:
            added_at = added_at.replace(tzinfo=timezone.utc)
        return cls(
            pattern=parse_pattern(data["pattern"]),
            list_type=ListType(data["list"]),
            added_at=added_at,
            note=data.get("note"),
            source=data.get("source") or SOURCE_ADMIN,
        )


@dataclass(frozen=True)
class ListSnapshot:
    """
    Immutable view of one list as loaded from the store.

    Exact addresses are indexed in a set; CIDR and wildcard entries
    are scanned. Membership is an OR over every entry.
    """
    list_type: ListType
    entries: tuple[Entry, ...] = ()
    loaded_at: float = field(default_factory=time.monotonic)
    _exact: dict[Address, Entry] = field(default_factory=dict, repr=False, compare=False)
    _scan: tuple[Entry, ...] = field(default=(), repr=False, compare=False)

    @classmethod
    def build(
        cls,
        list_type: ListType,
        entries: Iterable[Entry],
        loaded_at: Optional[float] = None,
    ) -> "ListSnapshot":
        ordered: list[Entry] = []
        seen: set[str] = set()
        exact: dict[Address, Entry] = {}
        scan: list[Entry] = []
        for entry in entries:
            if entry.list_type != list_type or entry.pattern.text in seen:
                continue
            seen.add(entry.pattern.text)
            ordered.append(entry)
            if isinstance(entry.pattern, ExactPattern):
                exact[entry.pattern.address] = entry
            else:
                scan.append(entry)
        return cls(
            list_type=list_type,
            entries=tuple(ordered),
            loaded_at=time.monotonic() if loaded_at is None else loaded_at,
            _exact=exact,
            _scan=tuple(scan),
        )

    def __len__(self) -> int:
        return len(self.entries)

    def age(self, now: Optional[float] = None) -> float:
        return (time.monotonic() if now is None else now) - self.loaded_at

    def find(self, addr: Address) -> Optional[Entry]:
        """Return an entry covering ``addr`` (exact entries first)."""
        hit = self._exact.get(addr)
        if hit is not None:
            return hit
        for entry in self._scan:
            if entry.pattern.matches(addr):
                return entry
        return None

    def contains(self, addr: Address) -> bool:
        return self.find(addr) is not None

    def get(self, pattern: Pattern) -> Optional[Entry]:
        """Look up the entry stored for exactly this pattern."""
        for entry in self.entries:
            if entry.pattern.text == pattern.text:
                return entry
        return None
