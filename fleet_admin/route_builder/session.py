"""One operator's route builder: catalogs, open sequence, stop draft."""
from __future__ import annotations

import logging
from typing import Optional

from fleet_admin.route_builder.catalog import Catalog
from fleet_admin.route_builder.engine import SequenceEngine
from fleet_admin.route_builder.intake import GeocodeResult, GeocodingIntake
from fleet_admin.route_builder.models import Route, Stop, entry_to_dict
from fleet_admin.route_builder.notices import NoticeBoard
from fleet_admin.route_builder.reconciler import ChangeFeedReconciler
from fleet_admin.route_builder.store import FleetStore

logger = logging.getLogger(__name__)


class BuilderSession:
    def __init__(self, store: FleetStore) -> None:
        self.store = store
        self.notices = NoticeBoard()
        self.catalog = Catalog(store, self.notices)
        self.engine = SequenceEngine(store, self.catalog, self.notices)
        self.intake = GeocodingIntake(self.catalog, self.notices)
        self.reconciler = ChangeFeedReconciler(store, self.catalog, self.engine, self.notices)
        self.loaded = False

    async def open(self) -> None:
        """Load both catalogs and start listening for remote changes."""
        if self.loaded:
            return
        try:
            await self.catalog.refresh()
        except Exception as e:
            self.notices.post_error(e, 'load routes and stops')
            return
        if not self.reconciler.started:
            self.reconciler.start()
        self.loaded = True

    def close(self) -> None:
        self.reconciler.stop()
        self.engine.clear_selection()
        self.loaded = False

    async def wait_idle(self) -> None:
        await self.engine.wait_idle()
        await self.reconciler.wait_idle()

    # Routes ---------------------------------------------------------
    async def select_route(self, route_id: Optional[str]) -> None:
        await self.engine.select_route(route_id)

    async def create_route(self, name: str) -> Optional[Route]:
        return await self.catalog.create_route(name)

    async def delete_route(self, route_id: str) -> bool:
        deleted = await self.catalog.delete_route(route_id)
        if deleted and self.engine.route_id == route_id:
            self.engine.clear_selection()
        return deleted

    # Stops ----------------------------------------------------------
    def map_click(self, lat: float, lng: float) -> None:
        self.intake.from_map_click(lat, lng)

    def geocoder_result(self, lat: float, lng: float, label: str) -> None:
        self.intake.from_geocoder_result(GeocodeResult(float(lat), float(lng), label or ''))

    def discard_draft(self) -> None:
        self.intake.discard()

    async def commit_draft(self, name: Optional[str] = None) -> Optional[Stop]:
        return await self.intake.commit(name)

    async def delete_stop(self, stop_id: str) -> bool:
        deleted = await self.catalog.delete_stop(stop_id)
        if deleted:
            self.engine.drop_stop(stop_id)
        return deleted

    # Sequence -------------------------------------------------------
    def add_stop(self, stop_id: str) -> None:
        self.engine.add_stop(stop_id)

    def remove_stop(self, key: str) -> None:
        self.engine.remove_stop(key)

    def reorder(self, from_index: int, to_index: int) -> None:
        self.engine.reorder(from_index, to_index)

    # View model -----------------------------------------------------
    def snapshot(self, drain_notices: bool = True) -> dict:
        draft = self.intake.draft
        notices = self.notices.drain() if drain_notices else self.notices.peek()
        return {
            'routes': [r.to_dict() for r in self.catalog.routes],
            'stops': [s.to_dict() for s in self.catalog.stops],
            'available_stops': [s.to_dict() for s in self.engine.available_stops()],
            'selected_route_id': self.engine.route_id,
            'route_stops': [entry_to_dict(e) for e in self.engine.entries()],
            'is_saving': self.engine.is_saving,
            'stop_draft': draft.to_dict() if draft else None,
            'notices': [n.to_dict() for n in notices],
        }
