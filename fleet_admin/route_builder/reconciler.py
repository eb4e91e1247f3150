"""Folds the store's change feed into the stop and route catalogs.

Any notification on a watched table triggers a full refetch of that catalog.
Notifications that arrive while a refetch is running collapse into a single
follow-up refetch. The open route-stop sequence is never touched here; the
only effect on the engine is closing a route that no longer exists.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set

from fleet_admin.route_builder.catalog import Catalog
from fleet_admin.route_builder.engine import SequenceEngine
from fleet_admin.route_builder.models import ChangeEvent
from fleet_admin.route_builder.notices import NoticeBoard
from fleet_admin.route_builder.store import ROUTES, STOPS, FleetStore, Subscription

logger = logging.getLogger(__name__)


class ChangeFeedReconciler:
    tables = (STOPS, ROUTES)

    def __init__(
        self,
        store: FleetStore,
        catalog: Catalog,
        engine: SequenceEngine,
        notices: NoticeBoard,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._engine = engine
        self._notices = notices
        self._loop = loop
        self._subscriptions: List[Subscription] = []
        self._running: Dict[str, asyncio.Task] = {}
        self._dirty: Set[str] = set()

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        for table in self.tables:
            self._subscriptions.append(self._store.subscribe(table, self.notify))
        logger.info('Listening for changes on %s', ', '.join(self.tables))

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def notify(self, event: ChangeEvent) -> None:
        """Entry point for store callbacks; safe to call from any thread."""
        if event.table not in self.tables or self._loop is None or self._loop.is_closed():
            return
        logger.debug('Change on %s: %s %s', event.table, event.kind, event.row_id)
        self._loop.call_soon_threadsafe(self._schedule, event.table)

    async def wait_idle(self) -> None:
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    def _schedule(self, table: str) -> None:
        if table in self._running:
            self._dirty.add(table)
            return
        task = self._loop.create_task(self._refetch(table))
        self._running[table] = task

    async def _refetch(self, table: str) -> None:
        try:
            while True:
                self._dirty.discard(table)
                try:
                    if table == STOPS:
                        await self._catalog.refresh_stops()
                    else:
                        await self._catalog.refresh_routes()
                        self._engine.reconcile_routes(r.id for r in self._catalog.routes)
                except Exception as e:
                    self._notices.post_error(e, f'refresh {table}')
                if table not in self._dirty:
                    break
        finally:
            self._running.pop(table, None)
