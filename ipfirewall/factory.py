"""
IP Firewall - Composition.

Builds the store, repository and guard from Settings once at process
start. Nothing is looked up from a global registry at request time.
"""

from __future__ import annotations

import logging
from typing import Optional

from ipfirewall.config import Settings, StoreBackend
from ipfirewall.config import settings as default_settings
from ipfirewall.guard import FirewallGuard
from ipfirewall.lists.cache import MembershipCache
from ipfirewall.repository import DataRepository
from ipfirewall.storage.base import EntryStore
from ipfirewall.storage.database import SQLEntryStore
from ipfirewall.storage.file_store import FileEntryStore
from ipfirewall.storage.memory import MemoryEntryStore
from ipfirewall.storage.redis_client import RedisManager
from ipfirewall.storage.redis_store import RedisEntryStore

logger = logging.getLogger("ipfirewall.factory")


def create_store(settings: Settings) -> EntryStore:
    """Instantiate the configured durable store (not yet initialised)."""
    backend = settings.store_backend
    if backend == StoreBackend.DATABASE:
        return SQLEntryStore(settings.database_url)
    if backend == StoreBackend.REDIS:
        return RedisEntryStore(
            RedisManager(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
        )
    if backend == StoreBackend.FILE:
        return FileEntryStore(settings.store_file)
    return MemoryEntryStore()


def create_repository(settings: Settings, store: Optional[EntryStore] = None) -> DataRepository:
    return DataRepository.with_static_lists(
        store if store is not None else create_store(settings),
        whitelist=settings.whitelist,
        blacklist=settings.blacklist,
        cache=MembershipCache(
            ttl=settings.cache_ttl,
            max_entries=settings.cache_max_entries,
        ),
        fail_policy=settings.fail_policy,
        store_timeout=settings.store_timeout,
        snapshot_max_age=settings.snapshot_max_age,
    )


def create_guard(
    settings: Optional[Settings] = None,
    store: Optional[EntryStore] = None,
) -> FirewallGuard:
    """Wire store -> repository -> guard from settings (env / .env by default)."""
    settings = settings or default_settings
    repository = create_repository(settings, store)
    logger.info(
        "Firewall ready | store: %s | whitelist enforced: %s | fail-%s",
        repository.store.name,
        settings.enforce_whitelist,
        settings.fail_policy.value,
    )
    return FirewallGuard(
        repository,
        enforce_whitelist=settings.enforce_whitelist,
        enable_log=settings.enable_log,
        block_response_code=settings.block_response_code,
        block_response_message=settings.block_response_message,
        redirect_non_whitelisted_to=settings.redirect_non_whitelisted_to,
        trust_forwarded_for=settings.trust_forwarded_for,
    )


async def start_guard(
    settings: Optional[Settings] = None,
    store: Optional[EntryStore] = None,
) -> FirewallGuard:
    """Build the guard and initialise its store (tables, connections)."""
    guard = create_guard(settings, store)
    await guard.repository.store.init()
    return guard
