"""
IP Firewall - SQL Store (async SQLAlchemy, SQLite via aiosqlite by default).

One row per (pattern, list). The unique constraint makes concurrent
adds from several processes safe: the loser gets an IntegrityError
and reports the entry as already present.
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Optional, Sequence

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ipfirewall.errors import InvalidPatternError, StoreUnavailableError
from ipfirewall.lists.models import SOURCE_ADMIN, Entry, ListType
from ipfirewall.matching.patterns import Pattern, parse_pattern
from ipfirewall.storage.base import EntryStore

logger = logging.getLogger("ipfirewall.storage.database")


# ── ORM Base ─────────────────────────────────────────────


class Base(DeclarativeBase):
    pass


# ── Models ───────────────────────────────────────────────


class FirewallEntry(Base):
    """Persisted whitelist / blacklist entry."""
    __tablename__ = "firewall_entries"
    __table_args__ = (
        UniqueConstraint("pattern", "list_type", name="uq_firewall_pattern_list"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pattern = Column(String(64), nullable=False, index=True)
    list_type = Column(String(16), nullable=False, index=True)  # whitelist / blacklist
    note = Column(Text, nullable=True)
    source = Column(String(16), nullable=False, default=SOURCE_ADMIN)
    added_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)


# ── Store ────────────────────────────────────────────────


class SQLEntryStore(EntryStore):
    """EntryStore backed by the ``firewall_entries`` table."""

    name = "database"

    def __init__(
        self,
        database_url: str = "sqlite+aiosqlite:///./firewall.db",
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.engine = engine or create_async_engine(database_url, echo=False)
        self.session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    async def init(self) -> None:
        """Create tables."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"database init failed: {exc}") from exc
        logger.info("Database tables created / verified")

    async def close(self) -> None:
        await self.engine.dispose()

    async def load_entries(self, list_type: ListType) -> Sequence[Entry]:
        stmt = (
            select(FirewallEntry)
            .where(FirewallEntry.list_type == list_type.value)
            .order_by(FirewallEntry.id)
        )
        try:
            async with self.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"database read failed: {exc}") from exc

        entries: list[Entry] = []
        for row in rows:
            try:
                entries.append(_row_to_entry(row))
            except InvalidPatternError:
                logger.warning("Skipping malformed stored pattern: %r", row.pattern)
        return entries

    async def save_entry(self, entry: Entry) -> bool:
        row = FirewallEntry(
            pattern=entry.pattern.text,
            list_type=entry.list_type.value,
            note=entry.note,
            source=entry.source,
            added_at=entry.added_at,
        )
        try:
            async with self.session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"database write failed: {exc}") from exc
        return True

    async def delete_entry(self, pattern: Pattern, list_type: ListType) -> bool:
        stmt = delete(FirewallEntry).where(
            FirewallEntry.pattern == pattern.text,
            FirewallEntry.list_type == list_type.value,
        )
        return await self._delete(stmt) > 0

    async def clear_list(self, list_type: ListType) -> int:
        stmt = delete(FirewallEntry).where(FirewallEntry.list_type == list_type.value)
        return await self._delete(stmt)

    async def _delete(self, stmt) -> int:
        try:
            async with self.session() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"database write failed: {exc}") from exc
        return result.rowcount or 0


def _row_to_entry(row: FirewallEntry) -> Entry:
    added_at = row.added_at
    # SQLite drops tzinfo on the way back
    if added_at is not None and added_at.tzinfo is None:
        added_at = added_at.replace(tzinfo=timezone.utc)
    return Entry(
        pattern=parse_pattern(row.pattern),
        list_type=ListType(row.list_type),
        added_at=added_at,
        note=row.note,
        source=row.source or SOURCE_ADMIN,
    )
