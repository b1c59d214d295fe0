import pytest

from services.errors import PersistenceFailure
from services.storage import MemoryKeyValueStorage, RedisKeyValueStorage, init_storage


class FakeRedis:
    def __init__(self, alive: bool = True):
        self.alive = alive
        self.data = {}

    async def ping(self):
        if not self.alive:
            raise ConnectionError("redis is down")
        return True

    async def get(self, key):
        if not self.alive:
            raise ConnectionError("redis is down")
        return self.data.get(key)

    async def set(self, key, value):
        if not self.alive:
            raise ConnectionError("redis is down")
        self.data[key] = value.encode("utf-8")

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.mark.asyncio
async def test_redis_storage_prefixes_and_decodes():
    redis = FakeRedis()
    storage = RedisKeyValueStorage(redis, prefix="courier:")

    await storage.set_json("rejected_orders:1", {"orderIds": ["1"], "note": "заказ"})

    assert "courier:rejected_orders:1" in redis.data
    assert await storage.get_json("rejected_orders:1") == {"orderIds": ["1"], "note": "заказ"}

    await storage.delete("rejected_orders:1")
    assert await storage.get_json("rejected_orders:1") is None


@pytest.mark.asyncio
async def test_redis_errors_become_persistence_failures():
    redis = FakeRedis()
    storage = RedisKeyValueStorage(redis)
    redis.alive = False

    with pytest.raises(PersistenceFailure):
        await storage.get_json("k")
    with pytest.raises(PersistenceFailure):
        await storage.set_json("k", 1)


@pytest.mark.asyncio
async def test_corrupted_json_is_a_persistence_failure():
    redis = FakeRedis()
    redis.data["courier:k"] = b"{not json"
    storage = RedisKeyValueStorage(redis)

    with pytest.raises(PersistenceFailure):
        await storage.get_json("k")


@pytest.mark.asyncio
async def test_memory_storage_copies_values():
    storage = MemoryKeyValueStorage()
    value = {"ids": [1]}
    await storage.set_json("k", value)
    value["ids"].append(2)

    assert await storage.get_json("k") == {"ids": [1]}


@pytest.mark.asyncio
async def test_init_storage_prefers_live_redis():
    assert isinstance(await init_storage(FakeRedis()), RedisKeyValueStorage)


@pytest.mark.asyncio
async def test_init_storage_falls_back_to_memory():
    assert isinstance(await init_storage(FakeRedis(alive=False)), MemoryKeyValueStorage)
    assert isinstance(await init_storage(None), MemoryKeyValueStorage)
