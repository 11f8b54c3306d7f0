# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Per-key exclusive locks.

Every command on a proposal holds ``proposal:<id>``; commands that touch an
area's availability also hold ``area:<id>`` (always acquired after the
proposal lock). The in-process backend serves a single worker; the Redis
backend serializes several workers sharing one store.
"""

import os
import threading
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

import redis
from opentelemetry import trace

from adocao.domain.errors import LockTimeout

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0


def proposal_lock_key(proposal_id: str) -> str:
    return f"proposal:{proposal_id}"


def area_lock_key(area_id: str) -> str:
    return f"area:{area_id}"


class LockManager(Protocol):
    """Hands out exclusive per-key critical sections."""

    def hold(self, key: str, timeout: Optional[float] = None):
        ...


class InMemoryLockManager:
    """
    One ``threading.Lock`` per key.

    A key's entry lives while some thread holds or waits for it and is
    dropped when the last one leaves.
    """

    def __init__(self, default_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.default_timeout = default_timeout
        # key -> [lock, holders and waiters]
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        bound = self.default_timeout if timeout is None else timeout
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=bound):
                logger.warning(f"Timed out waiting for lock {key}")
                raise LockTimeout(key, bound)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)


class RedisLockManager:
    """
    Distributed locks backed by redis-py's ``Lock``.

    Args:
        redis_url: Redis connection URL (redis://host:port)
        default_timeout: Seconds to wait for a busy lock
        lease_seconds: Lock expiry, so a crashed worker cannot hold a key forever
        client: Pre-built client (tests inject a mock)
    """

    KEY_PREFIX = "adocao:lock:"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        default_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        lease_seconds: float = 30.0,
        client: Optional[redis.Redis] = None
    ):
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
        self.default_timeout = default_timeout
        self.lease_seconds = lease_seconds
        self.client = client if client is not None else redis.from_url(self.redis_url)
        logger.info(f"Redis lock manager initialized at {self.redis_url}")

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        bound = self.default_timeout if timeout is None else timeout
        with tracer.start_as_current_span("redis.lock") as span:
            span.set_attributes({
                "redis.key": key,
                "redis.blocking_timeout": bound
            })
            lock = self.client.lock(
                f"{self.KEY_PREFIX}{key}",
                timeout=self.lease_seconds,
                blocking_timeout=bound
            )
            if not lock.acquire(blocking=True):
                span.set_attribute("redis.result", "timeout")
                logger.warning(f"Timed out waiting for Redis lock {key}")
                raise LockTimeout(key, bound)
            span.set_attribute("redis.result", "acquired")
            try:
                yield
            finally:
                try:
                    lock.release()
                except redis.exceptions.LockError as e:
                    # Lease expired while the command was running.
                    logger.error(f"Redis lock {key} was lost before release: {str(e)}")


def create_lock_manager(backend: str = "memory", redis_url: Optional[str] = None,
                        default_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS) -> LockManager:
    """
    Factory function to create the configured lock manager.

    Returns:
        InMemoryLockManager or RedisLockManager
    """
    if backend == "redis":
        return RedisLockManager(redis_url=redis_url, default_timeout=default_timeout)
    return InMemoryLockManager(default_timeout=default_timeout)
