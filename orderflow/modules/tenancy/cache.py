"""Per-tenant Redis cache for lookups made while pricing and taxing orders."""

import json
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from orderflow.config import settings
from orderflow.modules.tenancy.constants import CACHE_PREFIX, CACHE_TTL_DEFAULT, CACHE_SCAN_BATCH

logger = logging.getLogger(__name__)

T = TypeVar("T")


def tenant_namespace(tenant_id: uuid.UUID) -> str:
    return f"{CACHE_PREFIX}:{tenant_id}"


class TenantCache:
    """JSON values stored under ``tenant:{tenant_id}:{key}``.

    A tenant can only ever address keys inside its own namespace. The
    client is created lazily from ``settings.redis_url`` unless one is
    passed in.
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self._client = redis_client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(settings.redis_url, decode_responses=True)
        return self._client

    def key_for(self, tenant_id: uuid.UUID, key: str) -> str:
        return f"{tenant_namespace(tenant_id)}:{key}"

    async def get(self, tenant_id: uuid.UUID, key: str) -> Any | None:
        full_key = self.key_for(tenant_id, key)
        raw = await self.client.get(full_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", full_key)
            await self.client.delete(full_key)
            return None

    async def set(self, tenant_id: uuid.UUID, key: str, value: Any, ttl: int = CACHE_TTL_DEFAULT) -> None:
        payload = json.dumps(value, default=str)
        await self.client.set(self.key_for(tenant_id, key), payload, ex=ttl)

    async def delete(self, tenant_id: uuid.UUID, key: str) -> None:
        await self.client.delete(self.key_for(tenant_id, key))

    async def tenant_keys(self, tenant_id: uuid.UUID) -> AsyncIterator[str]:
        async for full_key in self.client.scan_iter(
            match=f"{tenant_namespace(tenant_id)}:*", count=CACHE_SCAN_BATCH
        ):
            yield full_key

    async def invalidate_tenant(self, tenant_id: uuid.UUID) -> int:
        """Remove the whole namespace of one tenant and return how many keys went."""
        removed = 0
        async for full_key in self.tenant_keys(tenant_id):
            removed += await self.client.delete(full_key)
        logger.info("Invalidated %d cache keys for tenant %s", removed, tenant_id)
        return removed

    async def get_or_set(
        self,
        tenant_id: uuid.UUID,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: int = CACHE_TTL_DEFAULT,
    ) -> T:
        """Read-through lookup.

        Values come back as decoded JSON, so a cached Decimal is a string.
        When Redis is unreachable the factory result is returned uncached.
        """
        try:
            cached = await self.get(tenant_id, key)
        except RedisError:
            logger.warning("Cache read failed for %s, computing directly", self.key_for(tenant_id, key))
            return await factory()
        if cached is not None:
            return cached

        value = await factory()
        try:
            await self.set(tenant_id, key, value, ttl=ttl)
        except RedisError:
            logger.warning("Cache write failed for %s", self.key_for(tenant_id, key))
        return value
