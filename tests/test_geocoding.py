import httpx
import pytest

from fleet_admin.route_builder.errors import StoreError
from fleet_admin.services.geocoding import MapboxGeocoder, _label


def _geocoder(handler, token='pk.test'):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MapboxGeocoder(token, proximity='79.8612,6.9271', types='address', client=client)


async def test_search_returns_ranked_candidates():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={'features': [
            {'place_name': 'Galle Road, Colombo 03', 'geometry': {'coordinates': [79.85, 6.91]}},
            {'text': 'Galle Road', 'center': [79.86, 6.88], 'context': [{'text': 'Dehiwala'}]},
        ]})

    geocoder = _geocoder(handler)
    results = await geocoder.search('galle road')
    await geocoder.aclose()

    assert [(r.lat, r.lng, r.label) for r in results] == [
        (6.91, 79.85, 'Galle Road, Colombo 03'),
        (6.88, 79.86, 'Galle Road, Dehiwala'),
    ]
    params = seen[0].url.params
    assert params['types'] == 'address'
    assert params['proximity'] == '79.8612,6.9271'
    assert '/galle%20road.json' in str(seen[0].url)


async def test_features_without_coordinates_are_skipped():
    geocoder = _geocoder(lambda request: httpx.Response(200, json={'features': [{'text': 'Nowhere'}]}))
    assert await geocoder.search('nowhere') == []


async def test_blank_query_makes_no_request():
    def handler(request):
        raise AssertionError('unexpected request')

    assert await _geocoder(handler).search('   ') == []


async def test_http_failure_is_transient():
    geocoder = _geocoder(lambda request: httpx.Response(503))
    with pytest.raises(StoreError):
        await geocoder.search('galle road')


async def test_missing_token():
    with pytest.raises(RuntimeError):
        await _geocoder(lambda request: httpx.Response(200), token='').search('galle road')


def test_label_prefers_place_name():
    assert _label({'place_name': 'Full', 'text': 'Short'}) == 'Full'
    assert _label({'text': 'Short'}) == 'Short'
