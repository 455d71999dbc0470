"""Redis-backed fixed-window rate limiting dependency.

Counters live in Redis so limits hold across API workers. When Redis is
unreachable the dependency degrades to a per-process counter instead of
rejecting traffic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings


logger = logging.getLogger(__name__)

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _client_identifier(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_key(prefix: str, client_id: str) -> str:
    return f"{settings.RATE_LIMIT_KEY_PREFIX}:{prefix}:{client_id}"


async def _consume_redis_quota(key: str, window_seconds: int) -> Tuple[int, int]:
    """Increment the window counter; returns (count, seconds until reset)."""
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
    try:
        async with redis_client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            pipe.ttl(key)
            count, _, ttl = await pipe.execute()
    finally:
        await redis_client.aclose()
    return int(count), max(int(ttl), 1)


async def _consume_local_quota(key: str, window_seconds: int) -> Tuple[int, int]:
    now = time.time()
    async with _local_lock:
        for stale_key in [k for k, (_, expires) in _local_counters.items() if expires <= now and k != key]:
            del _local_counters[stale_key]
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count = 0
            reset_at = now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
    return count, max(int(reset_at - now), 1)


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[Request], None]:
    """Return a FastAPI dependency allowing ``limit`` calls per client per window."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = rate_limit_key(prefix, _client_identifier(request))
        retry_after: Optional[int]
        try:
            count, retry_after = await _consume_redis_quota(key, window_seconds)
        except Exception as exc:
            logger.debug("Rate limit store unavailable, using local counter for %s: %s", prefix, exc)
            count, retry_after = await _consume_local_quota(key, window_seconds)

        if count > limit:
            logger.info("Rate limit exceeded for %s (%s/%s)", key, count, limit)
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Try again later.",
                headers={"Retry-After": str(retry_after)},
            )

    return _dependency
