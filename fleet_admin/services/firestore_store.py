"""Cloud Firestore implementation of the route builder store.

Every collection lives under ``organizations/{org_id}``. Firestore has no
unique constraints, so uniqueness of stop coordinates and of a stop on a
route is enforced with guard documents created in the same batch as the row:
``batch.create`` fails the whole commit with ``AlreadyExists`` if the guard
is already there.
"""
from __future__ import annotations

import functools
import logging
from typing import Callable, Dict, Iterable, List, Tuple

from firebase_admin import firestore
from google.api_core import exceptions

from fleet_admin.route_builder.errors import (
    DuplicateRouteStopError,
    DuplicateStopError,
    ReferentialError,
    RouteBuilderError,
    StoreError,
)
from fleet_admin.route_builder.models import ChangeEvent, LinkRecord, Route, Stop
from fleet_admin.route_builder.store import ROUTE_STOPS, ROUTES, STOPS, FleetStore, Subscription
from fleet_admin.services.firebase_service import get_async_db, get_db

logger = logging.getLogger(__name__)

STOP_COORDINATES = 'stop_coordinates'
ROUTE_STOP_KEYS = 'route_stop_keys'
BATCH_LIMIT = 400

_CHANGE_KINDS = {'ADDED': 'insert', 'MODIFIED': 'update', 'REMOVED': 'delete'}


def coordinate_key(lat: float, lng: float) -> str:
    return f'{float(lat):.6f}_{float(lng):.6f}'


def route_stop_key(route_id: str, stop_id: str) -> str:
    return f'{route_id}_{stop_id}'


def _store_call(action: str):
    """Translate Firestore failures into the route builder's error taxonomy."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except RouteBuilderError:
                raise
            except exceptions.FailedPrecondition as e:
                raise ReferentialError(f'Could not {action}: {e.message}') from e
            except exceptions.GoogleAPICallError as e:
                raise StoreError(f'Could not {action}: {e.message}') from e

        return wrapper

    return decorator


class _BatchWriter:
    """Write batch that commits every ``BATCH_LIMIT`` operations."""

    def __init__(self, client) -> None:
        self._client = client
        self._batch = client.batch()
        self._count = 0

    async def set(self, ref, data: dict, merge: bool = False) -> None:
        self._batch.set(ref, data, merge=merge)
        await self._tick()

    async def update(self, ref, data: dict) -> None:
        self._batch.update(ref, data)
        await self._tick()

    async def delete(self, ref) -> None:
        self._batch.delete(ref)
        await self._tick()

    async def flush(self) -> None:
        if self._count > 0:
            await self._batch.commit()
            self._batch = self._client.batch()
            self._count = 0

    async def _tick(self) -> None:
        self._count += 1
        if self._count >= BATCH_LIMIT:
            await self.flush()


class _WatchSubscription(Subscription):
    def __init__(self, watch) -> None:
        self._watch = watch

    def unsubscribe(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None


def _stop_from_doc(doc) -> Stop:
    data = doc.to_dict() or {}
    return Stop(
        id=doc.id,
        name=data.get('stop_name', ''),
        lat=float(data.get('lat', 0.0)),
        lng=float(data.get('long', 0.0)),
    )


def _link_from_doc(doc) -> LinkRecord:
    data = doc.to_dict() or {}
    return LinkRecord(
        id=doc.id,
        route_id=data.get('route_id', ''),
        stop_id=data.get('stop_id', ''),
        order=int(data.get('stop_order', 0)),
    )


class FirestoreFleetStore(FleetStore):
    def __init__(self, org_id: str, client=None, listen_client=None) -> None:
        self.org_id = org_id
        self._client = client
        self._listen_client = listen_client

    @property
    def client(self):
        if self._client is None:
            self._client = get_async_db()
        return self._client

    def _collection(self, name: str):
        return self.client.collection('organizations').document(self.org_id).collection(name)

    # Reads ----------------------------------------------------------
    @_store_call('load routes')
    async def list_routes(self) -> List[Route]:
        routes = []
        async for doc in self._collection(ROUTES).order_by('route_name').stream():
            data = doc.to_dict() or {}
            routes.append(Route(doc.id, data.get('route_name', '')))
        return routes

    @_store_call('load stops')
    async def list_stops(self) -> List[Stop]:
        return [_stop_from_doc(doc) async for doc in self._collection(STOPS).order_by('stop_name').stream()]

    @_store_call("load the route's stops")
    async def list_route_stops(self, route_id: str) -> List[Tuple[LinkRecord, Stop]]:
        links = await self._links_for('route_id', route_id)
        links.sort(key=lambda link: link.order)
        if not links:
            return []
        refs = [self._collection(STOPS).document(link.stop_id) for link in links]
        stops: Dict[str, Stop] = {}
        async for doc in self.client.get_all(refs):
            if doc.exists:
                stops[doc.id] = _stop_from_doc(doc)
        # Links whose stop is gone are skipped
        return [(link, stops[link.stop_id]) for link in links if link.stop_id in stops]

    async def _links_for(self, field: str, value: str) -> List[LinkRecord]:
        query = self._collection(ROUTE_STOPS).where(field, '==', value)
        return [_link_from_doc(doc) async for doc in query.stream()]

    # Stops ----------------------------------------------------------
    @_store_call('create the stop')
    async def insert_stop(self, name: str, lat: float, lng: float) -> Stop:
        stop_ref = self._collection(STOPS).document()
        guard_ref = self._collection(STOP_COORDINATES).document(coordinate_key(lat, lng))
        batch = self.client.batch()
        batch.create(guard_ref, {'stop_id': stop_ref.id})
        batch.set(stop_ref, {
            'stop_name': name,
            'lat': float(lat),
            'long': float(lng),
            'created_at': firestore.SERVER_TIMESTAMP,
        })
        try:
            await batch.commit()
        except exceptions.Conflict as e:
            raise DuplicateStopError() from e
        return Stop(stop_ref.id, name, float(lat), float(lng))

    @_store_call('delete the stop')
    async def delete_stop(self, stop_id: str) -> None:
        stop_ref = self._collection(STOPS).document(stop_id)
        snap = await stop_ref.get()
        if not snap.exists:
            return
        stop = _stop_from_doc(snap)

        doomed = await self._links_for('stop_id', stop_id)
        writer = _BatchWriter(self.client)
        for link in doomed:
            await writer.delete(self._collection(ROUTE_STOPS).document(link.id))
            await writer.delete(self._collection(ROUTE_STOP_KEYS).document(route_stop_key(link.route_id, stop_id)))

        # Close the gaps the cascade leaves in every affected route
        for route_id in sorted({link.route_id for link in doomed}):
            remaining = [link for link in await self._links_for('route_id', route_id) if link.stop_id != stop_id]
            remaining.sort(key=lambda link: link.order)
            for index, link in enumerate(remaining):
                if link.order != index + 1:
                    await writer.update(self._collection(ROUTE_STOPS).document(link.id), {'stop_order': index + 1})

        await writer.delete(self._collection(STOP_COORDINATES).document(coordinate_key(stop.lat, stop.lng)))
        await writer.delete(stop_ref)
        await writer.flush()
        logger.info('Deleted stop %s and %d route links', stop_id, len(doomed))

    # Routes ---------------------------------------------------------
    @_store_call('create the route')
    async def insert_route(self, name: str) -> Route:
        route_ref = self._collection(ROUTES).document()
        await route_ref.set({'route_name': name, 'created_at': firestore.SERVER_TIMESTAMP})
        return Route(route_ref.id, name)

    @_store_call('clear route assignments')
    async def clear_route_references(self, route_id: str) -> None:
        writer = _BatchWriter(self.client)
        async for bus in self._collection('buses').where('route_id', '==', route_id).stream():
            await writer.update(bus.reference, {'route_id': None, 'route': 'N/A'})
        async for student in self._collection('students').where('route_id', '==', route_id).stream():
            await writer.update(student.reference, {'route_id': None, 'route_name': ''})
        await writer.flush()

    @_store_call('delete the route')
    async def delete_route(self, route_id: str) -> None:
        writer = _BatchWriter(self.client)
        for link in await self._links_for('route_id', route_id):
            await writer.delete(self._collection(ROUTE_STOPS).document(link.id))
            await writer.delete(self._collection(ROUTE_STOP_KEYS).document(route_stop_key(route_id, link.stop_id)))
        await writer.delete(self._collection(ROUTES).document(route_id))
        await writer.flush()

    # Route stops ----------------------------------------------------
    @_store_call('add the stop to the route')
    async def insert_route_stop(self, route_id: str, stop_id: str, order: int) -> LinkRecord:
        link_ref = self._collection(ROUTE_STOPS).document()
        guard_ref = self._collection(ROUTE_STOP_KEYS).document(route_stop_key(route_id, stop_id))
        batch = self.client.batch()
        batch.create(guard_ref, {'link_id': link_ref.id})
        batch.set(link_ref, {'route_id': route_id, 'stop_id': stop_id, 'stop_order': order})
        try:
            await batch.commit()
        except exceptions.Conflict as e:
            raise DuplicateRouteStopError() from e
        return LinkRecord(link_ref.id, route_id, stop_id, order)

    @_store_call('remove the stop from the route')
    async def delete_route_stop(self, link_id: str) -> None:
        link_ref = self._collection(ROUTE_STOPS).document(link_id)
        snap = await link_ref.get()
        if not snap.exists:
            return
        link = _link_from_doc(snap)
        batch = self.client.batch()
        batch.delete(link_ref)
        batch.delete(self._collection(ROUTE_STOP_KEYS).document(route_stop_key(link.route_id, link.stop_id)))
        await batch.commit()

    @_store_call('save the stop order')
    async def upsert_route_stops(self, rows: Iterable[LinkRecord]) -> None:
        writer = _BatchWriter(self.client)
        for row in rows:
            await writer.set(
                self._collection(ROUTE_STOPS).document(row.id),
                {'route_id': row.route_id, 'stop_id': row.stop_id, 'stop_order': row.order},
                merge=True,
            )
        await writer.flush()

    # Change feed ----------------------------------------------------
    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        listen_client = self._listen_client or get_db()

        def on_snapshot(col_snapshot, changes, read_time):
            # Runs on the listener thread
            for change in changes:
                callback(ChangeEvent(table, _CHANGE_KINDS.get(change.type.name, 'update'), change.document.id))

        collection = listen_client.collection('organizations').document(self.org_id).collection(table)
        return _WatchSubscription(collection.on_snapshot(on_snapshot))
