"""
IP Firewall - Durable Store Interface.

Every backend (SQL table, Redis hash, YAML file, memory) implements
this contract. Backend-specific failures are raised as
StoreUnavailableError so callers only handle one error type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ipfirewall.lists.models import Entry, ListType
from ipfirewall.matching.patterns import Pattern


class EntryStore(ABC):
    """Async persistence for list entries."""

    name = "store"

    async def init(self) -> None:
        """Prepare the backend (create tables, check connectivity)."""

    async def close(self) -> None:
        """Release connections / handles."""

    @abstractmethod
    async def load_entries(self, list_type: ListType) -> Sequence[Entry]:
        """Return all entries of a list, oldest first."""

    @abstractmethod
    async def save_entry(self, entry: Entry) -> bool:
        """Persist an entry. Returns False if (pattern, list) already exists."""

    @abstractmethod
    async def delete_entry(self, pattern: Pattern, list_type: ListType) -> bool:
        """Delete one entry. Returns True if something was removed."""

    @abstractmethod
    async def clear_list(self, list_type: ListType) -> int:
        """Delete every entry of a list in one operation. Returns the count."""
