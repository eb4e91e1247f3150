import asyncio
import itertools
from typing import Callable, Dict, List, Tuple

import pytest

from fleet_admin.route_builder.errors import DuplicateRouteStopError, DuplicateStopError
from fleet_admin.route_builder.models import ChangeEvent, LinkRecord, Route, Stop
from fleet_admin.route_builder.session import BuilderSession
from fleet_admin.route_builder.store import ROUTES, STOPS, FleetStore, Subscription


class FakeSubscription(Subscription):
    def __init__(self, listeners, callback):
        self._listeners = listeners
        self._callback = callback

    def unsubscribe(self):
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class FakeStore(FleetStore):
    """In-memory store. Any operation can be held on a gate or made to fail once."""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.stops: Dict[str, Stop] = {}
        self.links: Dict[str, LinkRecord] = {}
        self.buses: Dict[str, dict] = {}
        self.students: Dict[str, dict] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.listeners: Dict[str, List[Callable]] = {STOPS: [], ROUTES: []}
        self._ids = itertools.count(1)

    # Test controls ---------------------------------------------------
    def fail(self, op, exc):
        self.failures[op] = exc

    def hold(self, op):
        self.gates[op] = asyncio.Event()

    def release(self, op):
        self.gates.pop(op).set()

    def calls_to(self, op):
        return [args for name, args in self.calls if name == op]

    def emit(self, table, kind, row_id=None):
        for callback in list(self.listeners.get(table, [])):
            callback(ChangeEvent(table, kind, row_id))

    def seed_route(self, route_id, name):
        self.routes[route_id] = Route(route_id, name)
        return self.routes[route_id]

    def seed_stop(self, stop_id, name, lat, lng):
        self.stops[stop_id] = Stop(stop_id, name, lat, lng)
        return self.stops[stop_id]

    def seed_link(self, link_id, route_id, stop_id, order):
        self.links[link_id] = LinkRecord(link_id, route_id, stop_id, order)
        return self.links[link_id]

    def route_orders(self, route_id):
        """{stop_id: order} as the store holds it."""
        return {l.stop_id: l.order for l in self.links.values() if l.route_id == route_id}

    async def _enter(self, op, *args):
        self.calls.append((op, args))
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        exc = self.failures.pop(op, None)
        if exc is not None:
            raise exc

    def _next_id(self, prefix):
        return f'{prefix}-{next(self._ids)}'

    # FleetStore ------------------------------------------------------
    async def list_routes(self):
        await self._enter('list_routes')
        return sorted(self.routes.values(), key=lambda r: r.name)

    async def list_stops(self):
        await self._enter('list_stops')
        return sorted(self.stops.values(), key=lambda s: s.name)

    async def list_route_stops(self, route_id):
        await self._enter('list_route_stops', route_id)
        links = sorted((l for l in self.links.values() if l.route_id == route_id), key=lambda l: l.order)
        return [(l, self.stops[l.stop_id]) for l in links if l.stop_id in self.stops]

    async def insert_stop(self, name, lat, lng):
        await self._enter('insert_stop', name, lat, lng)
        if any(s.lat == lat and s.lng == lng for s in self.stops.values()):
            raise DuplicateStopError()
        stop = Stop(self._next_id('stop'), name, lat, lng)
        self.stops[stop.id] = stop
        self.emit(STOPS, 'insert', stop.id)
        return stop

    async def delete_stop(self, stop_id):
        await self._enter('delete_stop', stop_id)
        self.stops.pop(stop_id, None)
        affected = {l.route_id for l in self.links.values() if l.stop_id == stop_id}
        self.links = {k: l for k, l in self.links.items() if l.stop_id != stop_id}
        for route_id in affected:
            remaining = sorted((l for l in self.links.values() if l.route_id == route_id), key=lambda l: l.order)
            for index, link in enumerate(remaining):
                self.links[link.id] = LinkRecord(link.id, route_id, link.stop_id, index + 1)
        self.emit(STOPS, 'delete', stop_id)

    async def insert_route(self, name):
        await self._enter('insert_route', name)
        route = Route(self._next_id('route'), name)
        self.routes[route.id] = route
        self.emit(ROUTES, 'insert', route.id)
        return route

    async def clear_route_references(self, route_id):
        await self._enter('clear_route_references', route_id)
        for row in list(self.buses.values()) + list(self.students.values()):
            if row.get('route_id') == route_id:
                row['route_id'] = None

    async def delete_route(self, route_id):
        await self._enter('delete_route', route_id)
        self.routes.pop(route_id, None)
        self.links = {k: l for k, l in self.links.items() if l.route_id != route_id}
        self.emit(ROUTES, 'delete', route_id)

    async def insert_route_stop(self, route_id, stop_id, order):
        await self._enter('insert_route_stop', route_id, stop_id, order)
        if any(l.route_id == route_id and l.stop_id == stop_id for l in self.links.values()):
            raise DuplicateRouteStopError()
        link = LinkRecord(self._next_id('link'), route_id, stop_id, order)
        self.links[link.id] = link
        return link

    async def delete_route_stop(self, link_id):
        await self._enter('delete_route_stop', link_id)
        self.links.pop(link_id, None)

    async def upsert_route_stops(self, rows):
        rows = list(rows)
        await self._enter('upsert_route_stops', rows)
        for row in rows:
            self.links[row.id] = row

    def subscribe(self, table, callback):
        listeners = self.listeners.setdefault(table, [])
        listeners.append(callback)
        return FakeSubscription(listeners, callback)


async def settle(session):
    """Let queued callbacks run, then wait for every in-flight task."""
    await asyncio.sleep(0)
    await session.wait_idle()
    await asyncio.sleep(0)
    await session.wait_idle()


@pytest.fixture
def store():
    store = FakeStore()
    store.seed_route('route-r', 'Route R')
    store.seed_route('route-s', 'Route S')
    store.seed_stop('stop-a', 'A Street', 6.901, 79.851)
    store.seed_stop('stop-b', 'B Street', 6.902, 79.852)
    store.seed_stop('stop-c', 'C Street', 6.903, 79.853)
    store.seed_stop('stop-d', 'D Street', 6.904, 79.854)
    store.seed_stop('stop-e', 'E Street', 6.905, 79.855)
    store.seed_link('link-a', 'route-r', 'stop-a', 1)
    store.seed_link('link-b', 'route-r', 'stop-b', 2)
    store.seed_link('link-c', 'route-r', 'stop-c', 3)
    return store


@pytest.fixture
async def session(store):
    session = BuilderSession(store)
    await session.open()
    yield session
    await session.wait_idle()
    session.close()


@pytest.fixture
async def route_r(session):
    await session.select_route('route-r')
    return session


def keys(session):
    return [e.key for e in session.engine.entries()]


def orders(session):
    return [e.order for e in session.engine.entries()]


def kinds(notices):
    return [n.kind for n in notices]
