"""
IP Firewall - Configuration via Pydantic Settings.

All settings are loaded from environment variables or .env file.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from ipfirewall.matching.patterns import parse_pattern


class FailPolicy(str, Enum):
    """What membership checks answer when the store is down and nothing is cached."""
    CLOSED = "closed"  # treat as blacklisted / not whitelisted
    OPEN = "open"      # treat as not blacklisted / whitelisted


class StoreBackend(str, Enum):
    """Durable store used for list entries."""
    DATABASE = "database"
    REDIS = "redis"
    FILE = "file"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Firewall settings loaded from env / .env."""

    # ── General ──────────────────────────────────────────────
    log_level: str = "info"
    enable_log: bool = Field(
        default=True, description="Log every blocked or redirected request",
    )

    # ── Guard ────────────────────────────────────────────────
    enforce_whitelist: bool = Field(
        default=False,
        description="Only let whitelisted addresses through",
    )
    fail_policy: FailPolicy = Field(
        default=FailPolicy.CLOSED,
        description=(
            "Answer used when the store is unreachable and no snapshot was "
            "ever loaded: 'closed' blocks, 'open' lets traffic through"
        ),
    )
    trust_forwarded_for: bool = Field(
        default=False,
        description="Take the client IP from X-Forwarded-For (behind a proxy)",
    )

    # ── Responses (consumed by the hosting app) ──────────────
    block_response_code: int = 403
    block_response_message: str = "403 Forbidden"
    redirect_non_whitelisted_to: Optional[str] = None

    # ── Cache ────────────────────────────────────────────────
    cache_ttl: float = Field(
        default=60.0, description="Seconds a membership answer stays cached",
    )
    cache_max_entries: int = Field(
        default=10000, description="Upper bound on cached answers",
    )
    snapshot_max_age: float = Field(
        default=300.0,
        description="Seconds before an in-memory list snapshot is reloaded",
    )

    # ── Store ────────────────────────────────────────────────
    store_backend: StoreBackend = StoreBackend.DATABASE
    store_timeout: float = Field(
        default=5.0, description="Timeout in seconds for a single store call",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./firewall.db",
        description="SQLAlchemy database URL for list entries",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for list entries",
    )
    redis_socket_timeout: float = 2.0
    store_file: str = Field(
        default="firewall.yml", description="YAML file for the file backend",
    )

    # ── Static lists ─────────────────────────────────────────
    whitelist: list[str] = Field(
        default_factory=list,
        description="Patterns always whitelisted, in addition to stored ones",
    )
    blacklist: list[str] = Field(
        default_factory=list,
        description="Patterns always blacklisted, in addition to stored ones",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.lower()

    @field_validator("whitelist", "blacklist")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        return [parse_pattern(p).text for p in v]

    @field_validator("cache_ttl", "snapshot_max_age", "store_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    model_config = {
        "env_prefix": "FIREWALL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton
settings = Settings()
