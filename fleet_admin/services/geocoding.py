"""Async client for Mapbox forward geocoding (address search)."""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

import httpx

from fleet_admin.route_builder.errors import StoreError
from fleet_admin.route_builder.intake import GeocodeResult

logger = logging.getLogger(__name__)

GEOCODING_URL = 'https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json'


def _label(feature: dict) -> str:
    """Full address when Mapbox gives one, else the name plus its context."""
    if feature.get('place_name'):
        return feature['place_name']
    text = feature.get('text', '')
    context = [c.get('text', '') for c in feature.get('context') or [] if c.get('text')]
    if context:
        return f"{text}, {', '.join(context)}"
    return text


class MapboxGeocoder:
    def __init__(
        self,
        access_token: str,
        proximity: Optional[str] = None,
        types: Optional[str] = 'address',
        timeout: float = 10.0,
        limit: int = 5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._access_token = access_token
        self._proximity = proximity
        self._types = types
        self._timeout = timeout
        self._limit = limit
        self._client = client

    @classmethod
    def from_config(cls, config) -> 'MapboxGeocoder':
        return cls(
            access_token=config.get('MAPBOX_TOKEN', ''),
            proximity=config.get('GEOCODER_PROXIMITY') or None,
            types=config.get('GEOCODER_TYPES') or None,
            timeout=float(config.get('GEOCODER_TIMEOUT', 10.0)),
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str) -> List[GeocodeResult]:
        """Ranked candidate addresses for ``query``; best match first."""
        query = (query or '').strip()
        if not query:
            return []
        if not self._access_token:
            raise RuntimeError('MAPBOX_TOKEN is not configured')

        params = {'access_token': self._access_token, 'limit': str(self._limit)}
        if self._proximity:
            params['proximity'] = self._proximity
        if self._types:
            params['types'] = self._types

        client = await self._ensure_client()
        try:
            response = await client.get(GEOCODING_URL.format(query=quote(query, safe='')), params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning('Geocoding %r failed: %s', query, e)
            raise StoreError(f'Address search failed: {e}') from e

        results = []
        for feature in response.json().get('features', []):
            coordinates = (feature.get('geometry') or {}).get('coordinates') or feature.get('center')
            if not coordinates or len(coordinates) < 2:
                continue
            lng, lat = coordinates[0], coordinates[1]
            results.append(GeocodeResult(lat=float(lat), lng=float(lng), label=_label(feature)))
        return results
