"""Stop and route catalogs shared by every route of an organisation."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from fleet_admin.route_builder.errors import ValidationError
from fleet_admin.route_builder.models import Route, Stop
from fleet_admin.route_builder.notices import NoticeBoard
from fleet_admin.route_builder.store import FleetStore

logger = logging.getLogger(__name__)


def _by_name(item):
    return item.name


class Catalog:
    def __init__(self, store: FleetStore, notices: NoticeBoard) -> None:
        self._store = store
        self._notices = notices
        self.routes: List[Route] = []
        self.stops: List[Stop] = []

    # Reads ----------------------------------------------------------
    async def refresh(self) -> None:
        await self.refresh_routes()
        await self.refresh_stops()

    async def refresh_routes(self) -> None:
        self.routes = list(await self._store.list_routes())
        logger.debug('Loaded %d routes', len(self.routes))

    async def refresh_stops(self) -> None:
        self.stops = list(await self._store.list_stops())
        logger.debug('Loaded %d stops', len(self.stops))

    def route(self, route_id: str) -> Optional[Route]:
        return next((r for r in self.routes if r.id == route_id), None)

    def stop(self, stop_id: str) -> Optional[Stop]:
        return next((s for s in self.stops if s.id == stop_id), None)

    def available_stops(self, taken_stop_ids: Iterable[str]) -> List[Stop]:
        taken = set(taken_stop_ids)
        return [s for s in self.stops if s.id not in taken]

    # Writes ---------------------------------------------------------
    async def create_route(self, name: str) -> Optional[Route]:
        name = (name or '').strip()
        if not name:
            self._notices.post('validation', 'Route Name is required')
            return None
        try:
            route = await self._store.insert_route(name)
        except Exception as e:
            self._notices.post_error(e, 'create the route')
            return None
        self.routes = sorted([r for r in self.routes if r.id != route.id] + [route], key=_by_name)
        logger.info('Created route %s (%s)', route.name, route.id)
        return route

    async def delete_route(self, route_id: str) -> bool:
        """Clear bus/student references, then delete. Nothing changes locally on failure."""
        try:
            await self._store.clear_route_references(route_id)
            await self._store.delete_route(route_id)
        except Exception as e:
            self._notices.post_error(e, 'delete the route')
            return False
        self.routes = [r for r in self.routes if r.id != route_id]
        logger.info('Deleted route %s', route_id)
        return True

    async def create_stop(self, name: str, lat: float, lng: float) -> Stop:
        """Raises ``ValidationError`` for a blank name or a duplicate location."""
        name = (name or '').strip()
        if not name:
            raise ValidationError('Stop Name is required')
        stop = await self._store.insert_stop(name, float(lat), float(lng))
        self.stops = sorted([s for s in self.stops if s.id != stop.id] + [stop], key=_by_name)
        logger.info('Created stop %s at (%s, %s)', stop.name, stop.lat, stop.lng)
        return stop

    async def delete_stop(self, stop_id: str) -> bool:
        try:
            await self._store.delete_stop(stop_id)
        except Exception as e:
            self._notices.post_error(e, 'delete the stop')
            return False
        self.stops = [s for s in self.stops if s.id != stop_id]
        logger.info('Deleted stop %s', stop_id)
        return True
