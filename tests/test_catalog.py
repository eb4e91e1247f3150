import pytest
from conftest import keys, kinds, orders, settle

from fleet_admin.route_builder.errors import DuplicateStopError, ReferentialError, StoreError, ValidationError


async def test_catalogs_load_sorted_by_name(session):
    assert [r.name for r in session.catalog.routes] == ['Route R', 'Route S']
    assert [s.name for s in session.catalog.stops] == ['A Street', 'B Street', 'C Street', 'D Street', 'E Street']


async def test_available_stops_exclude_the_open_route(route_r):
    assert [s.id for s in route_r.engine.available_stops()] == ['stop-d', 'stop-e']
    assert len(route_r.catalog.stops) == 5


async def test_duplicate_coordinates_are_rejected(session, store):
    store.seed_stop('stop-main', 'Main St', 6.93, 79.86)
    await session.catalog.refresh_stops()

    with pytest.raises(DuplicateStopError):
        await session.catalog.create_stop('Main St again', 6.93, 79.86)

    names = [s.name for s in session.catalog.stops]
    assert 'Main St again' not in names
    assert names.count('Main St') == 1


async def test_blank_stop_name_never_reaches_the_store(session, store):
    with pytest.raises(ValidationError):
        await session.catalog.create_stop('   ', 6.95, 79.87)
    assert store.calls_to('insert_stop') == []


async def test_create_route_keeps_name_order(session):
    route = await session.create_route('Morning Loop')
    assert route is not None
    assert [r.name for r in session.catalog.routes] == ['Morning Loop', 'Route R', 'Route S']


async def test_create_route_requires_a_name(session, store):
    assert await session.create_route('') is None
    assert kinds(session.notices.drain()) == ['validation']
    assert store.calls_to('insert_route') == []


async def test_delete_route_clears_references_first(session, store):
    store.buses['bus-1'] = {'route_id': 'route-s'}
    store.students['student-1'] = {'route_id': 'route-s'}

    assert await session.delete_route('route-s') is True

    ops = [name for name, _ in store.calls if name in ('clear_route_references', 'delete_route')]
    assert ops == ['clear_route_references', 'delete_route']
    assert store.buses['bus-1']['route_id'] is None
    assert store.students['student-1']['route_id'] is None
    assert session.catalog.route('route-s') is None


async def test_rejected_route_delete_changes_nothing_locally(session, store):
    store.fail('delete_route', ReferentialError('Route is still referenced'))

    assert await session.delete_route('route-s') is False
    assert session.catalog.route('route-s') is not None
    assert kinds(session.notices.drain()) == ['referential']


async def test_deleting_the_open_route_clears_selection(route_r):
    assert await route_r.delete_route('route-r') is True
    assert route_r.engine.route_id is None
    assert route_r.engine.entries() == []


async def test_deleting_a_stop_drops_it_from_the_open_route(route_r, store):
    assert await route_r.delete_stop('stop-b') is True

    assert keys(route_r) == ['link-a', 'link-c']
    assert orders(route_r) == [1, 2]
    assert route_r.catalog.stop('stop-b') is None
    assert store.route_orders('route-r') == {'stop-a': 1, 'stop-c': 2}


async def test_failed_stop_delete_keeps_the_stop(session, store):
    store.fail('delete_stop', StoreError('offline'))
    assert await session.delete_stop('stop-d') is False
    assert session.catalog.stop('stop-d') is not None
    await settle(session)
