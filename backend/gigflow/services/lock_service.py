"""
Entity locks serializing state transitions per booking or contract.

LOCKING STRATEGY: Advisory Redis Lock + In-Process Lock + Row Lock
==================================================================

Problem:
  The artist and the promoter act on the same booking/contract at the same
  time (both press "accept", or one signs while the deadline sweep runs).
  Each action is read-modify-write; interleaving two of them loses one.

Solution, outermost first:
  1. Redis lock `lock:{kind}:{id}` (redis.asyncio Lock): serializes across
     API workers. Advisory only.
  2. asyncio.Lock keyed by (kind, id): serializes inside one process, and
     is all that remains when Redis is disabled or down.
  3. SELECT ... FOR UPDATE inside the service transaction: authoritative.
     Preconditions are re-validated after the row lock is taken.

Circuit Breaker:
  Redis failures fail open to the in-process lock, the same way an
  admission gate in front of the DB would. The row lock still prevents
  lost updates; the Redis layer only keeps contention off the database.
"""

import asyncio
import time
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.core.config import get_settings
from gigflow.core.errors import GigflowError
from gigflow.core.logging import get_logger
from gigflow.core.metrics import entity_lock_wait, redis_lock_errors, redis_lock_fail_open

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None
_local_locks: "weakref.WeakValueDictionary[tuple[str, int], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis connection. Returns None if Redis is disabled or unreachable."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
            redis_lock_fail_open.set(0)
        except (RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            redis_lock_fail_open.set(1)
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def get_lock_status() -> dict:
    """Lock backend status for /health."""
    client = await get_redis()
    if not client:
        return {"backend": "in_process", "redis": "disabled" if not settings.REDIS_ENABLED else "unavailable"}
    try:
        await client.ping()
        return {"backend": "redis", "redis": "connected"}
    except (RedisError, OSError) as e:
        return {"backend": "in_process", "redis": "error", "error": str(e)}


def _local_lock(kind: str, entity_id: int) -> asyncio.Lock:
    key = (kind, entity_id)
    lock = _local_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[key] = lock
    return lock


async def _acquire_redis_lock(kind: str, entity_id: int):
    client = await get_redis()
    if client is None:
        return None

    lock = client.lock(
        f"lock:{kind}:{entity_id}",
        timeout=settings.REDIS_LOCK_TIMEOUT_SECONDS,
        blocking_timeout=settings.REDIS_LOCK_BLOCKING_TIMEOUT_SECONDS,
    )
    try:
        acquired = await lock.acquire()
    except (RedisError, OSError) as e:
        # Circuit breaker: fall back to the in-process lock
        redis_lock_errors.inc()
        redis_lock_fail_open.set(1)
        logger.warning("redis_lock_failed_open", kind=kind, entity_id=entity_id, error=str(e))
        return None

    redis_lock_fail_open.set(0)
    if not acquired:
        logger.warning("redis_lock_timeout", kind=kind, entity_id=entity_id)
        return None
    return lock


async def _release_redis_lock(lock, kind: str, entity_id: int) -> None:
    try:
        await lock.release()
    except (LockError, RedisError, OSError) as e:
        # Expired or unreachable; the row lock has already done its job
        redis_lock_errors.inc()
        logger.warning("redis_lock_release_failed", kind=kind, entity_id=entity_id, error=str(e))


@asynccontextmanager
async def entity_lock(kind: str, entity_id: int) -> AsyncIterator[None]:
    """
    Serialize transitions on one entity.

    Usage:
        async with entity_lock("contract", contract_id):
            contract = await _load_for_update(db, contract_id)
            ...
            await db.commit()
    """
    start = time.perf_counter()
    redis_lock = await _acquire_redis_lock(kind, entity_id)
    local = _local_lock(kind, entity_id)
    try:
        async with local:
            entity_lock_wait.labels(kind=kind).observe(time.perf_counter() - start)
            yield
    finally:
        if redis_lock is not None:
            await _release_redis_lock(redis_lock, kind, entity_id)


@asynccontextmanager
async def locked_transaction(db: AsyncSession, kind: str, entity_id: int) -> AsyncIterator[None]:
    """
    One state transition: entity lock held across the whole unit of work,
    commit on success, rollback on any error so state is left unchanged.
    """
    async with entity_lock(kind, entity_id):
        try:
            yield
            await db.commit()
        except GigflowError:
            await db.rollback()
            raise
        except Exception as e:
            logger.error("transaction_failed", kind=kind, entity_id=entity_id, error=str(e), exc_info=True)
            await db.rollback()
            raise
