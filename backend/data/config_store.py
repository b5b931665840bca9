#!/usr/bin/env python3
"""
Store configuration persistence.

Saves and loads the whole StoreConfiguration as JSON under one key. Redis is
used when it is reachable, otherwise an in-memory slot. Both operations are
best-effort: failures are logged and never raised, so the app keeps working
with the configuration it holds in memory.
"""

from typing import Dict, Optional

import redis
from pydantic import ValidationError

from ..app.config import Config
from ..schemas.io_models import StoreConfiguration
from ..utils.logger import get_logger

logger = get_logger("storage")


class ConfigStore:
    """Single-slot store for the store configuration."""

    def __init__(self, key: Optional[str] = None, redis_client=None, use_redis: bool = True):
        """
        Initialize the store with Redis or fall back to in-memory.

        Args:
            key: Storage key (defaults to Config.CONFIG_STORAGE_KEY)
            redis_client: Ready client to use instead of connecting
            use_redis: False skips Redis entirely
        """
        self.key = key or Config.CONFIG_STORAGE_KEY
        self.memory_slots: Dict[str, str] = {}
        self.redis_client = None
        self.use_redis = False

        if redis_client is not None:
            self.redis_client = redis_client
            self.use_redis = True
        elif use_redis:
            try:
                client = redis.Redis(
                    host=Config.REDIS_HOST,
                    port=Config.REDIS_PORT,
                    db=Config.REDIS_DB,
                    decode_responses=True,
                    socket_connect_timeout=2,
                )
                client.ping()
                self.redis_client = client
                self.use_redis = True
                logger.info("Using Redis for configuration storage")
            except redis.RedisError as e:
                logger.info(f"Redis not available ({e}), using in-memory configuration storage")

    def _write(self, value: str):
        if self.use_redis:
            self.redis_client.set(self.key, value)
        else:
            self.memory_slots[self.key] = value

    def _read(self) -> Optional[str]:
        if self.use_redis:
            return self.redis_client.get(self.key)
        return self.memory_slots.get(self.key)

    def save(self, config: StoreConfiguration) -> None:
        """Replace the stored configuration. Never raises."""
        try:
            self._write(config.model_dump_json(by_alias=True))
            logger.info(f"Saved configuration for {config.store_name!r} "
                        f"({len(config.products)} products, {len(config.documents)} documents)")
        except Exception as e:
            logger.error(f"Failed to save config: {e}")

    def load(self) -> Optional[StoreConfiguration]:
        """Return the stored configuration, or None if absent or unreadable."""
        try:
            data = self._read()
            if not data:
                return None
            return StoreConfiguration.model_validate_json(data)
        except ValidationError as e:
            logger.error(f"Failed to load config: stored value is invalid ({e.error_count()} errors)")
            return None
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            return None

    def clear(self) -> bool:
        try:
            if self.use_redis:
                return bool(self.redis_client.delete(self.key))
            return self.memory_slots.pop(self.key, None) is not None
        except Exception as e:
            logger.error(f"Failed to clear config: {e}")
            return False
