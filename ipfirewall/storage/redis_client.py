"""
IP Firewall - Redis Client Manager.

Manages the async Redis connection lifecycle.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger("ipfirewall.storage.redis")


class RedisManager:
    """Owns a shared async Redis connection pool."""

    def __init__(self, url: str, socket_timeout: Optional[float] = None) -> None:
        self.url = url
        self.socket_timeout = socket_timeout
        self.client: Optional[aioredis.Redis] = None

    async def connect(self) -> aioredis.Redis:
        """Connect to Redis."""
        client = aioredis.from_url(
            self.url,
            decode_responses=True,
            max_connections=50,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        # Test connection; if this fails, self.client stays None
        await client.ping()
        self.client = client
        logger.info("Redis connected: %s", self.url)
        return client

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Redis disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is reachable."""
        if self.client is None:
            return False
        try:
            await self.client.ping()
        except (RedisError, OSError):
            return False
        return True
