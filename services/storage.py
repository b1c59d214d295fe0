"""
Постоянное key-value хранилище (JSON-значения) на Redis.

Используется журналом отклонённых заказов и сессиями курьеров.
Если Redis недоступен при старте, работаем с хранилищем в памяти
(данные живут до перезапуска процесса).
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from config import config
from services.errors import PersistenceFailure

logger = logging.getLogger(__name__)


class RedisKeyValueStorage:
    """JSON-хранилище на Redis. Ошибки Redis превращаются в PersistenceFailure."""

    def __init__(self, redis_client, prefix: str = "courier:"):
        self.redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            data = await self.redis.get(self._key(key))
        except Exception as e:
            raise PersistenceFailure(f"Redis get failed for {key}: {e}") from e
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return json.loads(data)
        except ValueError as e:
            raise PersistenceFailure(f"Corrupted JSON under {key}: {e}") from e

    async def set_json(self, key: str, value: Any) -> None:
        try:
            await self.redis.set(self._key(key), json.dumps(value, ensure_ascii=False))
        except Exception as e:
            raise PersistenceFailure(f"Redis set failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except Exception as e:
            raise PersistenceFailure(f"Redis delete failed for {key}: {e}") from e


class MemoryKeyValueStorage:
    """In-memory хранилище (fallback если Redis недоступен)."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get_json(self, key: str) -> Optional[Any]:
        async with self._lock:
            data = self._data.get(key)
        return json.loads(data) if data is not None else None

    async def set_json(self, key: str, value: Any) -> None:
        # Сериализуем сразу: внешние изменения объекта не должны протекать в хранилище
        encoded = json.dumps(value, ensure_ascii=False)
        async with self._lock:
            self._data[key] = encoded

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)


KeyValueStorage = RedisKeyValueStorage | MemoryKeyValueStorage


async def init_storage(redis_client=None) -> KeyValueStorage:
    """Выбрать хранилище: Redis, если отвечает на ping, иначе память."""
    if redis_client:
        try:
            await redis_client.ping()
            logger.info("Using Redis key-value storage")
            return RedisKeyValueStorage(redis_client, prefix=config.REDIS_KEY_PREFIX)
        except Exception as e:
            logger.warning("Redis not available for storage, using memory: %s", e)

    logger.info("Using memory key-value storage")
    return MemoryKeyValueStorage()
