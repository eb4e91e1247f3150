"""Interface the route builder expects from the persistent store.

Reads and writes are coroutines; ``subscribe`` registers a callback that the
store may invoke from any thread, once per row-level change.
"""
from __future__ import annotations

import abc
from typing import Callable, Iterable, List, Tuple

from fleet_admin.route_builder.models import ChangeEvent, LinkRecord, Route, Stop

STOPS = 'stops'
ROUTES = 'routes'
ROUTE_STOPS = 'route_stops'


class Subscription(abc.ABC):
    @abc.abstractmethod
    def unsubscribe(self) -> None:
        ...


class FleetStore(abc.ABC):
    @abc.abstractmethod
    async def list_routes(self) -> List[Route]:
        """All routes ordered by name."""

    @abc.abstractmethod
    async def list_stops(self) -> List[Stop]:
        """All stops ordered by name."""

    @abc.abstractmethod
    async def list_route_stops(self, route_id: str) -> List[Tuple[LinkRecord, Stop]]:
        """Links of one route joined with their stop, ordered by ``order``."""

    @abc.abstractmethod
    async def insert_stop(self, name: str, lat: float, lng: float) -> Stop:
        """Raises ``DuplicateStopError`` when a stop already sits at ``(lat, lng)``."""

    @abc.abstractmethod
    async def delete_stop(self, stop_id: str) -> None:
        """Deletes the stop and every link to it, renumbering affected routes."""

    @abc.abstractmethod
    async def insert_route(self, name: str) -> Route:
        ...

    @abc.abstractmethod
    async def clear_route_references(self, route_id: str) -> None:
        """Null out ``route_id`` on buses and students that point at the route."""

    @abc.abstractmethod
    async def delete_route(self, route_id: str) -> None:
        ...

    @abc.abstractmethod
    async def insert_route_stop(self, route_id: str, stop_id: str, order: int) -> LinkRecord:
        """Raises ``DuplicateRouteStopError`` when the stop is already on the route."""

    @abc.abstractmethod
    async def delete_route_stop(self, link_id: str) -> None:
        ...

    @abc.abstractmethod
    async def upsert_route_stops(self, rows: Iterable[LinkRecord]) -> None:
        """Insert-or-update every row by id in one round trip."""

    @abc.abstractmethod
    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        ...
