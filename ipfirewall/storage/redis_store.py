"""
IP Firewall - Redis Store.

Each list is one hash ``firewall:<list>`` mapping pattern text to a
JSON document with the entry metadata. HSETNX gives idempotent adds
across processes; DEL clears a list in one command.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

from redis.exceptions import RedisError

from ipfirewall.errors import InvalidPatternError, StoreUnavailableError
from ipfirewall.lists.models import Entry, ListType
from ipfirewall.matching.patterns import Pattern
from ipfirewall.storage.base import EntryStore
from ipfirewall.storage.redis_client import RedisManager

logger = logging.getLogger("ipfirewall.storage.redis_store")


class RedisEntryStore(EntryStore):
    """EntryStore backed by one Redis hash per list."""

    name = "redis"
    KEY_PREFIX = "firewall"

    def __init__(
        self,
        manager: Optional[RedisManager] = None,
        client=None,
        key_prefix: Optional[str] = None,
    ) -> None:
        self.manager = manager
        self._client = client
        self.key_prefix = key_prefix or self.KEY_PREFIX

    def key(self, list_type: ListType) -> str:
        return f"{self.key_prefix}:{list_type.value}"

    @property
    def client(self):
        if self._client is not None:
            return self._client
        if self.manager is not None and self.manager.client is not None:
            return self.manager.client
        raise StoreUnavailableError("Redis is not connected")

    async def init(self) -> None:
        if self._client is None and self.manager is not None and self.manager.client is None:
            try:
                await self.manager.connect()
            except (RedisError, OSError) as exc:
                raise StoreUnavailableError(f"Redis connect failed: {exc}") from exc

    async def close(self) -> None:
        if self.manager is not None:
            await self.manager.disconnect()

    async def load_entries(self, list_type: ListType) -> Sequence[Entry]:
        try:
            raw = await self.client.hgetall(self.key(list_type))
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis read failed: {exc}") from exc

        entries: list[Entry] = []
        for pattern_text, doc in raw.items():
            try:
                data = json.loads(doc)
                if not isinstance(data, dict):
                    raise ValueError("entry document is not an object")
                data["pattern"] = _decode(pattern_text)
                data["list"] = list_type.value
                entries.append(Entry.from_dict(data))
            except (InvalidPatternError, ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed stored entry: %r", pattern_text)
        entries.sort(key=lambda e: e.added_at)
        return entries

    async def save_entry(self, entry: Entry) -> bool:
        doc = json.dumps({
            "added_at": entry.added_at.isoformat(),
            "note": entry.note,
            "source": entry.source,
        })
        try:
            created = await self.client.hsetnx(
                self.key(entry.list_type), entry.pattern.text, doc,
            )
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis write failed: {exc}") from exc
        return bool(created)

    async def delete_entry(self, pattern: Pattern, list_type: ListType) -> bool:
        try:
            removed = await self.client.hdel(self.key(list_type), pattern.text)
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis write failed: {exc}") from exc
        return removed > 0

    async def clear_list(self, list_type: ListType) -> int:
        key = self.key(list_type)
        try:
            pipe = self.client.pipeline()
            pipe.hlen(key)
            pipe.delete(key)
            count, _ = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis write failed: {exc}") from exc
        return int(count)


def _decode(value) -> str:
    return value.decode() if isinstance(value, bytes) else value
