# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Admission Guard: at most one in-flight sandbox creation per client.

Admission is per client, never global: different clients create sandboxes
in parallel. Two backends are available:
- MemoryAdmissionGuard: process-local, the default
- RedisAdmissionGuard: SET NX EX keys, for several replicas behind one address

Every successful acquisition returns a lease token. Release only frees the
lock while it still holds that token, so a late release never frees a lock
that another request acquired in the meantime.
"""

import secrets
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import redis

from sandbox_manager.common.config import (
    ADMISSION_LOCK_MARGIN,
    AppConfig,
    get_config,
)
from sandbox_manager.common.exceptions import AdmissionDeniedError
from sandbox_manager.common.redis_factory import RedisClientFactory
from shared.logger import setup_logger

logger = setup_logger(__name__)

# Lock key prefix
LOCK_KEY_PREFIX = "k3d-sandbox:admission:"

# Delete the key only if it still holds the caller's lease token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _new_lease() -> str:
    return secrets.token_hex(16)


def resolve_lock_ttl(config: Optional[AppConfig] = None) -> int:
    """Expiry for Redis admission keys.

    Defaults to the worst-case creation time plus a margin. An explicit
    SANDBOX_ADMISSION_LOCK_TTL must exceed the worst-case creation time.

    Raises:
        ValueError: The configured expiry could lapse mid-creation
    """
    config = config or get_config()
    budget = config.timeout.creation_budget()
    configured = config.admission.lock_ttl
    if configured is None:
        return budget + ADMISSION_LOCK_MARGIN
    if configured <= budget:
        raise ValueError(
            f"SANDBOX_ADMISSION_LOCK_TTL={configured} must exceed the worst-case "
            f"creation time of {budget}s"
        )
    return configured


class AdmissionGuard:
    """Base class holding the scoped acquire/release protocol."""

    def try_acquire(self, client_key: str) -> Optional[str]:
        """Acquire the creation lock for a client.

        Returns:
            A lease token if granted, None if a creation is already in flight
        """
        raise NotImplementedError

    def release(self, client_key: str, lease: str) -> None:
        """Free the client's lock if it is still held under ``lease``."""
        raise NotImplementedError

    def is_held(self, client_key: str) -> bool:
        raise NotImplementedError

    @contextmanager
    def admit(self, client_key: str) -> Iterator[None]:
        """Hold the client's creation lock for the duration of the block.

        Raises:
            AdmissionDeniedError: If the lock is already held
        """
        lease = self.try_acquire(client_key)
        if lease is None:
            logger.info(f"[AdmissionGuard] Denied concurrent creation for {client_key}")
            raise AdmissionDeniedError(client_key)
        try:
            yield
        finally:
            self.release(client_key, lease)


class MemoryAdmissionGuard(AdmissionGuard):
    """Process-local guard backed by a lock-protected map of leases."""

    def __init__(self):
        self._held: Dict[str, str] = {}
        self._lock = threading.Lock()

    def try_acquire(self, client_key: str) -> Optional[str]:
        with self._lock:
            if client_key in self._held:
                return None
            lease = _new_lease()
            self._held[client_key] = lease
            return lease

    def release(self, client_key: str, lease: str) -> None:
        with self._lock:
            if self._held.get(client_key) == lease:
                del self._held[client_key]

    def is_held(self, client_key: str) -> bool:
        with self._lock:
            return client_key in self._held


class RedisAdmissionGuard(AdmissionGuard):
    """Guard shared across replicas through Redis.

    Uses Redis SET NX (set if not exists) with expiration, so a replica that
    dies mid-creation locks its client out for at most ``expire_seconds``.
    The key's value is the lease token; release compares and deletes in one
    server-side script.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        expire_seconds: Optional[int] = None,
    ):
        self._redis_client = redis_client
        self._expire_seconds = expire_seconds or resolve_lock_ttl()
        self._release_script = None

    @property
    def redis_client(self) -> Optional[redis.Redis]:
        """Lazy-load Redis client."""
        if self._redis_client is None:
            self._redis_client = RedisClientFactory.get_sync_client()
        return self._redis_client

    @property
    def expire_seconds(self) -> int:
        return self._expire_seconds

    def try_acquire(self, client_key: str) -> Optional[str]:
        if self.redis_client is None:
            logger.error("[RedisAdmissionGuard] Redis client not available")
            return None

        lock_key = f"{LOCK_KEY_PREFIX}{client_key}"
        lease = _new_lease()
        try:
            # SET key value NX EX seconds - only set if not exists
            result = self.redis_client.set(
                lock_key, lease, nx=True, ex=self._expire_seconds
            )
        except Exception as e:
            logger.error(
                f"[RedisAdmissionGuard] Failed to acquire lock for {client_key}: {e}"
            )
            return None
        return lease if result is True else None

    def release(self, client_key: str, lease: str) -> None:
        if self.redis_client is None:
            return

        lock_key = f"{LOCK_KEY_PREFIX}{client_key}"
        try:
            if self._release_script is None:
                self._release_script = self.redis_client.register_script(
                    RELEASE_SCRIPT
                )
            deleted = self._release_script(keys=[lock_key], args=[lease])
        except Exception as e:
            # The key still expires on its own after expire_seconds
            logger.error(
                f"[RedisAdmissionGuard] Failed to release lock for {client_key}: {e}"
            )
            return
        if not deleted:
            logger.warning(
                f"[RedisAdmissionGuard] Lock for {client_key} expired or changed "
                f"hands before release"
            )

    def is_held(self, client_key: str) -> bool:
        if self.redis_client is None:
            return False
        try:
            return bool(self.redis_client.exists(f"{LOCK_KEY_PREFIX}{client_key}"))
        except Exception as e:
            logger.error(f"[RedisAdmissionGuard] Failed to check lock: {e}")
            return False


# Singleton instance
_guard_instance: Optional[AdmissionGuard] = None
_guard_lock = threading.Lock()


def get_admission_guard() -> AdmissionGuard:
    """Get the global AdmissionGuard for the configured backend.

    Returns:
        The AdmissionGuard singleton

    Raises:
        ValueError: The Redis backend is configured with too short a lock expiry
    """
    global _guard_instance
    if _guard_instance is None:
        with _guard_lock:
            if _guard_instance is None:
                backend = get_config().admission.backend
                if backend == "redis":
                    _guard_instance = RedisAdmissionGuard()
                else:
                    if backend != "memory":
                        logger.warning(
                            f"[AdmissionGuard] Unknown backend '{backend}', "
                            "using memory"
                        )
                    _guard_instance = MemoryAdmissionGuard()
                logger.info(
                    f"[AdmissionGuard] Using {type(_guard_instance).__name__}"
                )
    return _guard_instance


def reset_admission_guard() -> None:
    """Drop the global guard. Used by tests."""
    global _guard_instance
    _guard_instance = None
