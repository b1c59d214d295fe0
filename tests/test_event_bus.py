import pytest

from services.event_bus import ORDER_UPDATED, OrderUpdateBus


@pytest.mark.asyncio
async def test_publish_reaches_every_subscriber():
    bus = OrderUpdateBus()
    calls = []

    async def first():
        calls.append("first")

    def second():
        calls.append("second")

    bus.subscribe(first)
    bus.subscribe(second)
    await bus.publish(ORDER_UPDATED)

    assert sorted(calls) == ["first", "second"]


@pytest.mark.asyncio
async def test_unsubscribed_handler_is_not_called():
    bus = OrderUpdateBus()
    calls = []

    async def handler():
        calls.append(1)

    unsubscribe = bus.subscribe(handler)
    unsubscribe()
    await bus.publish()

    assert calls == []
    assert bus.subscriber_count() == 0


@pytest.mark.asyncio
async def test_subscribing_twice_delivers_once():
    bus = OrderUpdateBus()
    calls = []

    async def handler():
        calls.append(1)

    bus.subscribe(handler)
    bus.subscribe(handler)
    await bus.publish()

    assert calls == [1]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    bus = OrderUpdateBus()
    calls = []

    async def broken():
        raise RuntimeError("boom")

    async def healthy():
        calls.append("ok")

    bus.subscribe(broken)
    bus.subscribe(healthy)
    await bus.publish()

    assert calls == ["ok"]


@pytest.mark.asyncio
async def test_unsubscribe_during_publish_uses_snapshot():
    bus = OrderUpdateBus()
    calls = []

    async def late():
        calls.append("late")

    async def remover():
        calls.append("remover")
        bus.unsubscribe(late)

    bus.subscribe(remover)
    bus.subscribe(late)
    await bus.publish()
    await bus.publish()

    assert calls == ["remover", "late", "remover"]


@pytest.mark.asyncio
async def test_topics_are_independent():
    bus = OrderUpdateBus()
    calls = []

    async def handler():
        calls.append(1)

    bus.subscribe(handler, "other")
    await bus.publish(ORDER_UPDATED)

    assert calls == []
    assert bus.subscriber_count("other") == 1


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop():
    await OrderUpdateBus().publish()
