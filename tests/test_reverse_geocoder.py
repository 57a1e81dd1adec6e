# tests/test_reverse_geocoder.py
import httpx
import pytest

from app.errors import ExternalServiceError
from app.geocoding.reverse_geocoder import ReverseGeocoder
from .test_utils import print_test_name, print_test_result

GEOCODER_URL = "https://geocoder.test/data/reverse-geocode-client"


def make_geocoder(handler, cache=None, cache_ttl=0):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReverseGeocoder(
        base_url=GEOCODER_URL,
        language="en",
        timeout=1.0,
        cache=cache,
        cache_ttl=cache_ttl,
        client=client,
    )


@pytest.mark.asyncio
class TestReverseGeocoder:
    """Géocodage inverse."""

    async def test_resolves_city(self):
        test_name = "test_resolves_city"
        print_test_name(test_name)
        try:
            seen = []

            def handler(request):
                seen.append(request)
                return httpx.Response(200, json={"city": "Paris", "countryName": "France"})

            geocoder = make_geocoder(handler)
            locality = await geocoder.reverse_geocode(48.853, 2.3499)

            assert locality.name == "Paris"
            assert seen[0].url.params["latitude"] == "48.853"
            assert seen[0].url.params["longitude"] == "2.3499"
            assert seen[0].url.params["localityLanguage"] == "en"
            await geocoder.close()
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    async def test_http_error(self):
        geocoder = make_geocoder(lambda request: httpx.Response(503, json={}))
        with pytest.raises(ExternalServiceError, match="503"):
            await geocoder.reverse_geocode(48.853, 2.3499)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        geocoder = make_geocoder(handler)
        with pytest.raises(ExternalServiceError, match="timed out"):
            await geocoder.reverse_geocode(48.853, 2.3499)

    async def test_missing_city(self):
        geocoder = make_geocoder(lambda request: httpx.Response(200, json={"countryName": "France"}))
        with pytest.raises(ExternalServiceError):
            await geocoder.reverse_geocode(48.853, 2.3499)

    async def test_invalid_json(self):
        geocoder = make_geocoder(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ExternalServiceError):
            await geocoder.reverse_geocode(48.853, 2.3499)

    async def test_cache_hit_skips_http(self, mock_cache_manager):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"city": "Lyon"})

        mock_cache_manager.get.return_value = "Paris"
        geocoder = make_geocoder(handler, cache=mock_cache_manager, cache_ttl=60)

        locality = await geocoder.reverse_geocode(48.853, 2.3499)

        assert locality.name == "Paris"
        assert calls == []
        mock_cache_manager.get.assert_awaited_once_with("geocode:en:48.8530,2.3499")

    async def test_cache_miss_stores_result(self, mock_cache_manager):
        geocoder = make_geocoder(
            lambda request: httpx.Response(200, json={"city": "Paris"}),
            cache=mock_cache_manager, cache_ttl=60,
        )
        await geocoder.reverse_geocode(48.853, 2.3499)
        mock_cache_manager.set.assert_awaited_once_with(
            "geocode:en:48.8530,2.3499", "Paris", expire=60
        )

    async def test_failure_is_not_cached(self, mock_cache_manager):
        geocoder = make_geocoder(
            lambda request: httpx.Response(500),
            cache=mock_cache_manager, cache_ttl=60,
        )
        with pytest.raises(ExternalServiceError):
            await geocoder.reverse_geocode(48.853, 2.3499)
        mock_cache_manager.set.assert_not_awaited()
