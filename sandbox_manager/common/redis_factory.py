# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Redis client factory for centralized connection management.

Only the Redis-backed Admission Guard talks to Redis; the sandbox registry
itself is process-local.
"""

import threading
from typing import Optional

import redis

from sandbox_manager.common.config import RedisConfig, get_config
from shared.logger import setup_logger

logger = setup_logger(__name__)


class RedisClientFactory:
    """Factory for creating and sharing one synchronous Redis client."""

    _sync_client: Optional[redis.Redis] = None
    _lock = threading.Lock()
    _config: Optional[RedisConfig] = None

    @classmethod
    def _get_config(cls) -> RedisConfig:
        """Get Redis configuration."""
        if cls._config is None:
            cls._config = get_config().redis
        return cls._config

    @classmethod
    def get_sync_client(cls, verify_connection: bool = True) -> Optional[redis.Redis]:
        """Get or create a synchronous Redis client.

        Args:
            verify_connection: If True, verify the connection is working

        Returns:
            Redis client if successful, None if connection failed
        """
        if cls._sync_client is not None:
            return cls._sync_client

        with cls._lock:
            # Double-check after acquiring lock
            if cls._sync_client is not None:
                return cls._sync_client

            config = cls._get_config()
            try:
                client = redis.from_url(
                    config.url,
                    encoding=config.encoding,
                    decode_responses=config.decode_responses,
                    socket_timeout=config.socket_timeout,
                    socket_connect_timeout=config.connect_timeout,
                )

                if verify_connection:
                    client.ping()

                cls._sync_client = client
                logger.info("[RedisClientFactory] Sync Redis connection established")
                return client

            except Exception as e:
                logger.error(f"[RedisClientFactory] Failed to connect to Redis: {e}")
                return None

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client and config. Used by tests."""
        with cls._lock:
            if cls._sync_client is not None:
                try:
                    cls._sync_client.close()
                except Exception as e:
                    logger.debug(f"[RedisClientFactory] Error closing client: {e}")
            cls._sync_client = None
            cls._config = None
