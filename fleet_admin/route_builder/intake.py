"""Turns map clicks and address-search picks into a new-stop draft."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fleet_admin.route_builder.catalog import Catalog
from fleet_admin.route_builder.models import Stop
from fleet_admin.route_builder.notices import NoticeBoard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    label: str

    def to_dict(self) -> dict:
        return {'lat': self.lat, 'lng': self.lng, 'label': self.label}


@dataclass
class StopDraft:
    lat: float
    lng: float
    suggested_name: str = ''

    def to_dict(self) -> dict:
        return {'lat': self.lat, 'lng': self.lng, 'suggested_name': self.suggested_name}


class GeocodingIntake:
    """Holds at most one pending draft; opening a new one discards the old."""

    def __init__(self, catalog: Catalog, notices: NoticeBoard) -> None:
        self._catalog = catalog
        self._notices = notices
        self.draft: Optional[StopDraft] = None

    def from_map_click(self, lat: float, lng: float) -> StopDraft:
        return self._open(StopDraft(float(lat), float(lng)))

    def from_geocoder_result(self, result: GeocodeResult) -> StopDraft:
        return self._open(StopDraft(result.lat, result.lng, result.label or ''))

    def discard(self) -> None:
        self.draft = None

    async def commit(self, name: Optional[str] = None) -> Optional[Stop]:
        """Create the drafted stop. The draft survives a failed attempt."""
        draft = self.draft
        if draft is None:
            self._notices.post('validation', 'Click the map or search an address first.')
            return None
        if name is not None:
            draft.suggested_name = name
        try:
            stop = await self._catalog.create_stop(draft.suggested_name, draft.lat, draft.lng)
        except Exception as e:
            self._notices.post_error(e, 'create the stop')
            return None
        if self.draft is draft:
            self.draft = None
        return stop

    def _open(self, draft: StopDraft) -> StopDraft:
        if self.draft is not None:
            logger.debug('Discarding uncommitted stop draft at (%s, %s)', self.draft.lat, self.draft.lng)
        self.draft = draft
        return draft
