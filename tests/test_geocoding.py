"""Tests for KakaoGeocoder against a mocked Kakao local search API."""

from __future__ import annotations

import httpx
import pytest
from tenacity import wait_none

from src.meetup.meetings.errors import AddressNotFoundError, GeocodingError
from src.meetup.services.geocoding import ADDRESS_SEARCH_PATH, KakaoGeocoder


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(KakaoGeocoder._search.retry, "wait", wait_none())


def _geocoder(handler) -> KakaoGeocoder:
    return KakaoGeocoder(api_key="test-key", transport=httpx.MockTransport(handler))


async def test_resolves_first_document():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "documents": [
                    {"x": "126.9769", "y": "37.5759"},
                    {"x": "0", "y": "0"},
                ]
            },
        )

    location = await _geocoder(handler).geocode("Seoul Jongno-gu Sejong-daero 175")

    assert location.latitude == pytest.approx(37.5759)
    assert location.longitude == pytest.approx(126.9769)
    assert location.address == "Seoul Jongno-gu Sejong-daero 175"
    assert seen[0].url.path == ADDRESS_SEARCH_PATH
    assert seen[0].url.params["query"] == "Seoul Jongno-gu Sejong-daero 175"
    assert seen[0].headers["Authorization"] == "KakaoAK test-key"


async def test_no_documents_is_address_not_found():
    geocoder = _geocoder(lambda request: httpx.Response(200, json={"documents": []}))

    with pytest.raises(AddressNotFoundError):
        await geocoder.geocode("nowhere")


async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"message": "bad key"})

    with pytest.raises(GeocodingError):
        await _geocoder(handler).geocode("Seoul")

    assert len(calls) == 1


async def test_server_error_is_retried_then_raised():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(GeocodingError):
        await _geocoder(handler).geocode("Seoul")

    assert len(calls) == 3


async def test_recovers_after_transient_failure():
    responses = iter(
        [
            httpx.Response(502),
            httpx.Response(200, json={"documents": [{"x": "127.0", "y": "37.5"}]}),
        ]
    )

    location = await _geocoder(lambda request: next(responses)).geocode("Seoul")

    assert location.latitude == 37.5


async def test_malformed_document_is_geocoding_error():
    geocoder = _geocoder(lambda request: httpx.Response(200, json={"documents": [{"x": "127"}]}))

    with pytest.raises(GeocodingError):
        await geocoder.geocode("Seoul")


async def test_non_json_body_is_geocoding_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GeocodingError):
        await _geocoder(handler).geocode("Seoul")

    assert len(calls) == 1


async def test_disabled_without_api_key():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    geocoder = KakaoGeocoder(api_key="", transport=httpx.MockTransport(handler))

    assert geocoder.enabled is False
    assert await geocoder.geocode("Seoul") is None
