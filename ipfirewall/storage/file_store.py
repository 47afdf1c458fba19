"""
IP Firewall - YAML File Store.

Stores both lists in one YAML document:

    whitelist:
      - pattern: 192.168.1.0/24
        added_at: "2024-01-01T00:00:00+00:00"
        note: office
    blacklist: []

Writes go to a temp file in the same directory followed by os.replace,
so readers in other processes see the old or the new file, never a
half-written one. Every read-modify-write holds an exclusive lock on
``<file>.lock``, so writers in different processes never drop each
other's updates.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Sequence, Union

import yaml
from filelock import FileLock, Timeout

from ipfirewall.errors import InvalidPatternError, StoreUnavailableError
from ipfirewall.lists.models import Entry, ListType
from ipfirewall.matching.patterns import Pattern
from ipfirewall.storage.base import EntryStore

logger = logging.getLogger("ipfirewall.storage.file")


class FileEntryStore(EntryStore):
    """EntryStore backed by a single YAML file."""

    name = "file"
    LOCK_TIMEOUT = 10.0

    def __init__(self, path: Union[str, Path], lock_timeout: float = LOCK_TIMEOUT) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        # Sidecar lock shared with every process (and store instance) using this path
        self._file_lock = FileLock(
            str(self.path.with_name(self.path.name + ".lock")), timeout=lock_timeout,
        )

    async def init(self) -> None:
        created = await self._mutate(self._create)
        if created:
            logger.info("Created list file: %s", self.path)

    async def load_entries(self, list_type: ListType) -> Sequence[Entry]:
        data = await asyncio.to_thread(self._read)
        return self._entries(data, list_type)

    async def save_entry(self, entry: Entry) -> bool:
        def save(data: dict) -> bool:
            rows = data.setdefault(entry.list_type.value, [])
            if any(_row_pattern(row) == entry.pattern.text for row in rows):
                return False
            row = entry.to_dict()
            del row["list"], row["kind"]
            rows.append(row)
            return True

        return await self._mutate(save)

    async def delete_entry(self, pattern: Pattern, list_type: ListType) -> bool:
        def delete(data: dict) -> bool:
            rows = data.get(list_type.value, [])
            kept = [row for row in rows if _row_pattern(row) != pattern.text]
            if len(kept) == len(rows):
                return False
            data[list_type.value] = kept
            return True

        return await self._mutate(delete)

    async def clear_list(self, list_type: ListType) -> int:
        def clear(data: dict) -> int:
            count = len(data.get(list_type.value, []))
            data[list_type.value] = []
            return count

        return await self._mutate(clear)

    # ── Internal ─────────────────────────────────────────

    async def _mutate(self, change: Callable[[dict], Any]) -> Any:
        async with self._lock:
            return await asyncio.to_thread(self._locked_update, change)

    def _locked_update(self, change: Callable[[dict], Any]) -> Any:
        """Read, apply ``change`` and write back while holding the file lock.

        The file is rewritten only when ``change`` returns a truthy value.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._file_lock:
                data = self._read()
                result = change(data)
                if result:
                    self._write(data)
                return result
        except Timeout as exc:
            raise StoreUnavailableError(f"timed out waiting for lock on {self.path}") from exc
        except OSError as exc:
            raise StoreUnavailableError(f"cannot lock {self.path}: {exc}") from exc

    def _create(self, data: dict) -> bool:
        if self.path.exists():
            return False
        data.update({lt.value: [] for lt in ListType})
        return True

    def _read(self) -> dict[str, list[Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise StoreUnavailableError(f"cannot read {self.path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"{self.path} is not a mapping")
        lists: dict[str, list[Any]] = {}
        for key, value in data.items():
            if value is None:
                value = []
            if not isinstance(value, list):
                raise StoreUnavailableError(
                    f"{self.path}: {key!r} must be a list, got {type(value).__name__}"
                )
            lists[key] = value
        return lists

    def _write(self, data: dict[str, list[dict[str, Any]]]) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, sort_keys=False)
                os.replace(tmp, self.path)
            except BaseException:
                os.unlink(tmp)
                raise
        except (OSError, yaml.YAMLError) as exc:
            raise StoreUnavailableError(f"cannot write {self.path}: {exc}") from exc

    def _entries(self, data: dict, list_type: ListType) -> list[Entry]:
        entries: list[Entry] = []
        for row in data.get(list_type.value, []):
            if isinstance(row, str):
                row = {"pattern": row}
            try:
                entries.append(Entry.from_dict({**row, "list": list_type.value}))
            except (InvalidPatternError, AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed entry in %s: %r", self.path, row)
        return entries


def _row_pattern(row: Any) -> Any:
    if isinstance(row, dict):
        return row.get("pattern")
    return row
