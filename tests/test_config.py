"""
Tests for settings and composition of the guard from settings.
"""

import logging

import pytest
from pydantic import ValidationError

from ipfirewall.config import FailPolicy, Settings, StoreBackend
from ipfirewall.factory import create_guard, create_store, start_guard
from ipfirewall.guard import Verdict
from ipfirewall.lists.models import ListType
from ipfirewall.log import setup_logging
from ipfirewall.storage.database import SQLEntryStore
from ipfirewall.storage.file_store import FileEntryStore
from ipfirewall.storage.memory import MemoryEntryStore
from ipfirewall.storage.redis_store import RedisEntryStore


def test_defaults():
    s = Settings(_env_file=None)
    assert s.enforce_whitelist is False
    assert s.fail_policy == FailPolicy.CLOSED
    assert s.block_response_code == 403
    assert s.store_backend == StoreBackend.DATABASE


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("FIREWALL_ENFORCE_WHITELIST", "true")
    monkeypatch.setenv("FIREWALL_FAIL_POLICY", "open")
    monkeypatch.setenv("FIREWALL_BLACKLIST", '["10.0.0.0/8", "192.168.*.*"]')
    s = Settings(_env_file=None)
    assert s.enforce_whitelist is True
    assert s.fail_policy == FailPolicy.OPEN
    assert s.blacklist == ["10.0.0.0/8", "192.168.*.*"]


def test_static_patterns_normalized_and_validated():
    s = Settings(_env_file=None, whitelist=["10.1.2.3/8"])
    assert s.whitelist == ["10.0.0.0/8"]
    with pytest.raises(ValidationError):
        Settings(_env_file=None, blacklist=["10.0.0.999"])


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="loud")


def test_cache_ttl_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, cache_ttl=0)


@pytest.mark.parametrize("backend, cls", [
    ("database", SQLEntryStore),
    ("redis", RedisEntryStore),
    ("file", FileEntryStore),
    ("memory", MemoryEntryStore),
])
def test_create_store(backend, cls):
    store = create_store(Settings(_env_file=None, store_backend=backend))
    assert isinstance(store, cls)


def test_create_guard_wires_settings():
    s = Settings(
        _env_file=None,
        store_backend="memory",
        enforce_whitelist=True,
        cache_ttl=5,
        block_response_code=451,
        redirect_non_whitelisted_to="/nope",
        fail_policy="open",
    )
    guard = create_guard(s)
    assert guard.enforce_whitelist is True
    assert guard.block_response_code == 451
    assert guard.redirect_non_whitelisted_to == "/nope"
    assert guard.repository.cache.ttl == 5
    assert guard.repository.fail_policy == FailPolicy.OPEN


@pytest.mark.asyncio
async def test_start_guard_with_sql_and_static_lists(tmp_path):
    s = Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'fw.db'}",
        whitelist=["127.0.0.1"],
        enforce_whitelist=True,
    )
    guard = await start_guard(s)
    try:
        await guard.repository.add("10.0.0.0/8", ListType.BLACKLIST)
        assert (await guard.check("127.0.0.1")).verdict == Verdict.ALLOWED
        assert (await guard.check("10.0.0.1")).verdict == Verdict.BLOCKED_BY_BLACKLIST
        assert (await guard.check("8.8.8.8")).verdict == Verdict.BLOCKED_BY_NOT_WHITELISTED
    finally:
        await guard.repository.store.close()


def test_setup_logging():
    root = logging.getLogger()
    level = root.level
    try:
        setup_logging(Settings(_env_file=None, log_level="warning"))
        assert root.level == logging.WARNING
    finally:
        root.setLevel(level)


def test_create_guard_defaults_to_env_settings():
    store = MemoryEntryStore()
    guard = create_guard(store=store)
    assert guard.repository.store is store
