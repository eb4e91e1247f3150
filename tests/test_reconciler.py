import asyncio
import threading

from conftest import keys, kinds, settle

from fleet_admin.route_builder.errors import StoreError
from fleet_admin.route_builder.store import ROUTES, STOPS


async def spin(times=5):
    for _ in range(times):
        await asyncio.sleep(0)


async def test_remote_stop_insert_refreshes_catalog(route_r, store):
    store.seed_stop('stop-f', 'F Street', 6.906, 79.856)
    store.emit(STOPS, 'insert', 'stop-f')
    await settle(route_r)

    assert route_r.catalog.stop('stop-f') is not None
    assert 'stop-f' in [s.id for s in route_r.engine.available_stops()]
    assert keys(route_r) == ['link-a', 'link-b', 'link-c']


async def test_notifications_during_refetch_coalesce(session, store):
    baseline = len(store.calls_to('list_stops'))
    store.hold('list_stops')
    store.emit(STOPS, 'update', 'stop-a')
    await spin()
    store.emit(STOPS, 'update', 'stop-b')
    store.emit(STOPS, 'update', 'stop-c')
    await spin()

    store.release('list_stops')
    await settle(session)

    assert len(store.calls_to('list_stops')) == baseline + 2


async def test_remote_route_delete_closes_open_route(route_r, store):
    store.routes.pop('route-r')
    store.emit(ROUTES, 'delete', 'route-r')
    await settle(route_r)

    assert route_r.engine.route_id is None
    assert route_r.engine.entries() == []
    notices = route_r.notices.drain()
    assert kinds(notices) == ['info']
    assert notices[0].message == 'The selected route was deleted.'


async def test_remote_change_to_another_route_keeps_selection(route_r, store):
    store.seed_route('route-t', 'Route T')
    store.emit(ROUTES, 'insert', 'route-t')
    await settle(route_r)

    assert route_r.engine.route_id == 'route-r'
    assert [r.id for r in route_r.catalog.routes] == ['route-r', 'route-s', 'route-t']


async def test_failed_refetch_keeps_previous_catalog(session, store):
    store.fail('list_routes', StoreError('unavailable'))
    store.emit(ROUTES, 'update', 'route-r')
    await settle(session)

    assert [r.id for r in session.catalog.routes] == ['route-r', 'route-s']
    assert kinds(session.notices.drain()) == ['transient']


async def test_notify_from_listener_thread(session, store):
    store.seed_stop('stop-f', 'F Street', 6.906, 79.856)
    worker = threading.Thread(target=store.emit, args=(STOPS, 'insert', 'stop-f'))
    worker.start()
    worker.join()
    await settle(session)

    assert session.catalog.stop('stop-f') is not None


async def test_stop_unsubscribes(session, store):
    session.reconciler.stop()
    assert not session.reconciler.started
    baseline = len(store.calls_to('list_stops'))

    store.emit(STOPS, 'insert', 'stop-a')
    await settle(session)

    assert len(store.calls_to('list_stops')) == baseline
