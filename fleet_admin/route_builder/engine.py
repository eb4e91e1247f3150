"""Optimistic add/remove/reorder over the open route's stop sequence.

Public mutators run synchronously on the event loop: they change the local
sequence first and return the ``asyncio.Task`` carrying the store round trip
(or ``None`` when nothing needs persisting). Confirmations are matched to
their entry by key, never by index, and a confirmation that belongs to a
route the operator has since closed only touches the store.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Iterable, List, Optional, Set

from fleet_admin.route_builder.catalog import Catalog
from fleet_admin.route_builder.errors import DuplicateRouteStopError
from fleet_admin.route_builder.models import (
    ConfirmedLink,
    LinkRecord,
    PendingLink,
    SequenceEntry,
    Stop,
)
from fleet_admin.route_builder.notices import NoticeBoard
from fleet_admin.route_builder.sequence import RouteStopSequence
from fleet_admin.route_builder.store import FleetStore

logger = logging.getLogger(__name__)


class SequenceEngine:
    def __init__(self, store: FleetStore, catalog: Catalog, notices: NoticeBoard) -> None:
        self._store = store
        self._catalog = catalog
        self._notices = notices
        self.route_id: Optional[str] = None
        self.sequence: Optional[RouteStopSequence] = None
        self._generation = 0
        self._placeholder_ids = itertools.count(1)
        # Placeholders removed by the operator before their create call resolved.
        self._cancelled: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._saving = 0
        # Deletes and order writes reach the store one at a time, in call order.
        self._write_lock = asyncio.Lock()

    # State ----------------------------------------------------------
    @property
    def is_saving(self) -> bool:
        return self._saving > 0

    def entries(self) -> List[SequenceEntry]:
        return self.sequence.entries if self.sequence is not None else []

    def available_stops(self) -> List[Stop]:
        taken = self.sequence.stop_ids() if self.sequence is not None else set()
        return self._catalog.available_stops(taken)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Selection ------------------------------------------------------
    async def select_route(self, route_id: Optional[str]) -> Optional[RouteStopSequence]:
        self.clear_selection()
        if route_id is None:
            return None
        if self._catalog.route(route_id) is None:
            self._notices.post('validation', 'That route no longer exists.')
            return None
        generation = self._generation
        self.route_id = route_id
        try:
            rows = await self._store.list_route_stops(route_id)
        except Exception as e:
            if generation == self._generation:
                self._notices.post_error(e, "load the route's stops")
                self.route_id = None
            return None
        if generation != self._generation:
            return None

        sequence = RouteStopSequence.from_records(route_id, rows)
        self.sequence = sequence
        if sequence.renumber():
            logger.info('Route %s had a non-dense stop order; repairing', route_id)
            self._persist_order()
        return sequence

    def clear_selection(self) -> None:
        self._generation += 1
        self.route_id = None
        self.sequence = None

    def reconcile_routes(self, route_ids: Iterable[str]) -> bool:
        """Close the open route if it disappeared from the catalog."""
        if self.route_id is None or self.route_id in set(route_ids):
            return False
        logger.info('Selected route %s was deleted elsewhere', self.route_id)
        self.clear_selection()
        self._notices.post('info', 'The selected route was deleted.')
        return True

    def drop_stop(self, stop_id: str) -> None:
        """Forget a stop deleted from the catalog; the store has already renumbered."""
        if self.sequence is not None:
            self.sequence.drop_stop(stop_id)

    # Mutations ------------------------------------------------------
    def add_stop(self, stop_id: str) -> Optional[asyncio.Task]:
        sequence = self.sequence
        if sequence is None:
            self._notices.post('validation', 'Please select a route first.')
            return None
        stop = self._catalog.stop(stop_id)
        if stop is None:
            self._notices.post('validation', 'That stop no longer exists.')
            return None
        if stop.id in sequence.stop_ids():
            self._notices.post_error(DuplicateRouteStopError(), 'add the stop to the route')
            return None

        entry = PendingLink(f'temp-{next(self._placeholder_ids)}', stop, sequence.next_order())
        sequence.append(entry)
        logger.debug('Added %s to route %s as %s', stop.id, sequence.route_id, entry.key)
        return self._spawn(self._confirm_add(self._generation, sequence.route_id, entry))

    def remove_stop(self, key: str) -> Optional[asyncio.Task]:
        if self.sequence is None:
            return None
        entry = self.sequence.remove(key)
        if entry is None:
            return None
        if isinstance(entry, PendingLink):
            self._cancelled.add(entry.key)
            return None
        self._saving += 1
        return self._spawn(self._confirm_remove(self._generation, entry))

    def reorder(self, from_index: int, to_index: int) -> Optional[asyncio.Task]:
        sequence = self.sequence
        if sequence is None:
            self._notices.post('validation', 'Please select a route first.')
            return None
        size = len(sequence)
        if not (0 <= from_index < size and 0 <= to_index < size):
            self._notices.post('validation', 'Invalid stop position.')
            return None
        if from_index == to_index:
            return None
        sequence.move(from_index, to_index)
        return self._persist_order()

    # Confirmations --------------------------------------------------
    async def _confirm_add(self, generation: int, route_id: str, entry: PendingLink) -> None:
        try:
            record = await self._store.insert_route_stop(route_id, entry.stop.id, entry.order)
        except Exception as e:
            cancelled = entry.key in self._cancelled
            self._cancelled.discard(entry.key)
            self._notices.post_error(e, 'add the stop to the route')
            if self._is_current(generation):
                removed = self.sequence.remove(entry.key)
                # Siblings after it moved up; the store still has their old order
                if cancelled or (removed is not None and removed.order <= len(self.sequence)):
                    self._persist_order()
            return

        if entry.key in self._cancelled:
            self._cancelled.discard(entry.key)
            await self._delete_created(generation, record)
            return
        if not self._is_current(generation):
            return

        confirmed = ConfirmedLink(record.id, entry.stop, entry.order)
        if not self.sequence.replace(entry.key, confirmed):
            # Dropped locally while the create was in flight.
            await self._delete_created(generation, record)
            return
        if record.order != confirmed.order:
            self._persist_order()

    async def _confirm_remove(self, generation: int, entry: ConfirmedLink) -> None:
        try:
            async with self._write_lock:
                try:
                    await self._store.delete_route_stop(entry.id)
                except Exception as e:
                    self._notices.post_error(e, 'remove the stop from the route')
                    if self._is_current(generation) and entry.stop.id not in self.sequence.stop_ids():
                        self.sequence.reinsert(entry)
                        self._persist_order()
                    return
                if self._is_current(generation):
                    await self._write_order(self.sequence.records())
        finally:
            self._saving -= 1

    async def _delete_created(self, generation: int, record: LinkRecord) -> None:
        self._saving += 1
        try:
            async with self._write_lock:
                try:
                    await self._store.delete_route_stop(record.id)
                except Exception as e:
                    self._notices.post_error(e, 'remove the stop from the route')
                    return
                if self._is_current(generation):
                    await self._write_order(self.sequence.records())
        finally:
            self._saving -= 1

    # Persistence ----------------------------------------------------
    def _persist_order(self) -> Optional[asyncio.Task]:
        if not self.sequence.records():
            return None
        self._saving += 1
        return self._spawn(self._save_order(self._generation))

    async def _save_order(self, generation: int) -> None:
        # Rows are taken when the request goes out, so it carries the latest local order.
        try:
            async with self._write_lock:
                if self._is_current(generation):
                    await self._write_order(self.sequence.records())
        finally:
            self._saving -= 1

    async def _write_order(self, rows: List[LinkRecord]) -> None:
        if not rows:
            return
        try:
            await self._store.upsert_route_stops(rows)
        except Exception as e:
            self._notices.post_error(e, 'save the stop order')

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.sequence is not None

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
