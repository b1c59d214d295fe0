import pytest

from conftest import PHONE, STAFF_ID, make_raw_order
from services.errors import NetworkFailure, OrderNotFound, TransitionRejected
from services.order_mapper import map_api_order
from services.order_store import partition


async def _loaded(store, backend, available=(), assigned=()):
    backend.available = list(available)
    backend.assigned = list(assigned)
    assert await store.refresh()
    return store


def test_partition_only_delivered_is_past():
    orders = [map_api_order(make_raw_order(order_id=i, status_id=s)) for i, s in enumerate([52, 58, 263, 8, 57])]

    parts = partition(orders)

    assert [o.status_id for o in parts.past] == [58]
    assert [o.status_id for o in parts.current] == [52, 263, 8, 57]


@pytest.mark.asyncio
async def test_refresh_fills_snapshot(store, backend):
    await _loaded(
        store, backend,
        available=[make_raw_order(1, 5)],
        assigned=[make_raw_order(2, 53), make_raw_order(3, 58)],
    )

    snap = await store.snapshot()

    assert [o.id for o in snap.available] == ["1"]
    assert [o.id for o in snap.current] == ["2"]
    assert [o.id for o in snap.past] == ["3"]
    assert snap.loaded and snap.last_updated is not None


@pytest.mark.asyncio
async def test_snapshot_returns_copies(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(2, 53)])

    snap = await store.snapshot()
    snap.current[0].apply_status(58)

    assert store.get_order("2").status_id == 53


@pytest.mark.asyncio
async def test_snapshot_hides_rejected_orders(store, backend, ledger):
    await _loaded(store, backend, available=[make_raw_order(1, 5), make_raw_order(4, 5)])
    await ledger.reject("1")

    snap = await store.snapshot()

    assert [o.id for o in snap.available] == ["4"]


@pytest.mark.asyncio
async def test_first_load_failure_raises(store, backend):
    backend.fail_available = backend.fail_assigned = True

    with pytest.raises(NetworkFailure):
        await store.refresh()


@pytest.mark.asyncio
async def test_failed_refresh_keeps_stale_data(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(2, 53)])
    backend.fail_available = backend.fail_assigned = True

    assert await store.refresh() is False
    assert [o.id for o in (await store.snapshot()).current] == ["2"]


@pytest.mark.asyncio
async def test_partial_failure_keeps_stale_side(store, backend):
    await _loaded(store, backend, available=[make_raw_order(1, 5)], assigned=[make_raw_order(2, 53)])
    backend.available = []
    backend.assigned = [make_raw_order(2, 65)]
    backend.fail_available = True

    assert await store.refresh() is True
    snap = await store.snapshot()

    assert [o.id for o in snap.available] == ["1"]
    assert snap.current[0].status_id == 65


@pytest.mark.asyncio
async def test_unknown_status_does_not_break_refresh(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(2, 53), make_raw_order(3, 999)])

    assert [o.id for o in (await store.snapshot()).current] == ["2"]


@pytest.mark.asyncio
async def test_explicit_no_show_from_reached(store, backend, bus):
    await _loaded(store, backend, assigned=[make_raw_order(9, 57)])
    published = []
    bus.subscribe(lambda: published.append(1))

    order = await store.apply_transition("9", 263)

    assert (order.status_id, order.status) == (263, "customer_not_showed_up")
    assert backend.updates == [(9, 263, STAFF_ID, PHONE)]
    assert store.get_order("9").status_id == 263
    assert published == [1]


@pytest.mark.asyncio
async def test_delivery_stamps_delivered_at(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(9, 57)])

    order = await store.advance("9")

    assert order.status_id == 58
    assert order.delivered_at is not None
    assert [o.id for o in (await store.snapshot()).past] == ["9"]


@pytest.mark.asyncio
async def test_failed_backend_update_leaves_store_unchanged(store, backend, bus):
    await _loaded(store, backend, assigned=[make_raw_order(9, 54)])
    backend.fail_update = True
    published = []
    bus.subscribe(lambda: published.append(1))

    with pytest.raises(NetworkFailure):
        await store.apply_transition("9", 56)

    assert store.get_order("9").status_id == 54
    assert published == []


@pytest.mark.asyncio
async def test_rejected_transition_never_reaches_backend(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(9, 52)])

    with pytest.raises(TransitionRejected):
        await store.apply_transition("9", 58)

    assert "update" not in backend.calls
    assert store.get_order("9").status_id == 52


@pytest.mark.asyncio
async def test_accept_moves_order_to_assigned(store, backend):
    await _loaded(store, backend, available=[make_raw_order(1, 5)])

    order = await store.accept("1")
    snap = await store.snapshot()

    assert order.status == "assigned"
    assert snap.available == []
    assert [o.id for o in snap.current] == ["1"]
    assert backend.updates == [(1, 52, STAFF_ID, PHONE)]


@pytest.mark.asyncio
async def test_advance_from_terminal_is_rejected(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(9, 58)])

    with pytest.raises(TransitionRejected):
        await store.advance("9")


@pytest.mark.asyncio
async def test_transition_of_unknown_order(store, backend):
    await _loaded(store, backend)

    with pytest.raises(OrderNotFound) as exc:
        await store.apply_transition("404", 53)
    assert "не найден" in str(exc.value)
    assert "update" not in backend.calls


@pytest.mark.asyncio
async def test_transition_on_fresh_store_finds_order_on_backend(store, backend):
    backend.assigned = [make_raw_order(9, 52)]

    order = await store.apply_transition("9", 53)

    assert order.status_id == 53
    assert backend.updates == [(9, 53, STAFF_ID, PHONE)]
    assert store.get_order("9").status == "started"


@pytest.mark.asyncio
async def test_accept_on_fresh_store(store, backend):
    backend.available = [make_raw_order(1, 5)]

    await store.accept("1")

    assert [o.id for o in store.assigned_orders()] == ["1"]


@pytest.mark.asyncio
async def test_advance_on_fresh_store(store, backend):
    backend.assigned = [make_raw_order(9, 57)]

    order = await store.advance("9")

    assert order.status_id == 58


@pytest.mark.asyncio
async def test_reject_on_fresh_store_checks_backend_status(store, backend):
    backend.assigned = [make_raw_order(9, 54)]

    with pytest.raises(TransitionRejected):
        await store.reject("9")


@pytest.mark.asyncio
async def test_reject_hides_order_and_notifies(store, backend, bus):
    await _loaded(store, backend, available=[make_raw_order(1, 5)])
    published = []
    bus.subscribe(lambda: published.append(1))

    await store.reject("1")

    assert (await store.snapshot()).available == []
    assert published == [1]


@pytest.mark.asyncio
async def test_reject_not_allowed_after_pickup_started(store, backend):
    await _loaded(store, backend, assigned=[make_raw_order(9, 53)])

    with pytest.raises(TransitionRejected):
        await store.reject("9")


@pytest.mark.asyncio
async def test_locate_order_falls_back_to_backend(store, backend):
    backend.fail_available = True
    backend.assigned = [make_raw_order(9, 56)]

    order = await store.locate_order("9")

    assert order.status_id == 56
    assert backend.calls == ["available", "assigned"]
    assert store.get_order("9") is not None


@pytest.mark.asyncio
async def test_locate_order_not_found(store, backend):
    with pytest.raises(OrderNotFound):
        await store.locate_order("404")


@pytest.mark.asyncio
async def test_locate_order_both_sources_down(store, backend):
    backend.fail_available = backend.fail_assigned = True

    with pytest.raises(NetworkFailure):
        await store.locate_order("9")


@pytest.mark.asyncio
async def test_clear_available(store, backend):
    await _loaded(store, backend, available=[make_raw_order(1, 5)], assigned=[make_raw_order(2, 52)])

    await store.clear_available()

    assert await store.visible_status_ids() == [52]
