"""Address geocoding via the Kakao local search REST API.

Provides KakaoGeocoder with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s) for transport errors and 5xx responses. It is always called
before a meeting unit of work opens, never inside one.

GET /v2/local/search/address.json?query=<address>
    documents[0].x -> longitude, documents[0].y -> latitude
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from src.meetup.meetings.errors import AddressNotFoundError, GeocodingError
from src.meetup.meetings.schemas import GeocodedLocation

logger = structlog.get_logger(__name__)

ADDRESS_SEARCH_PATH = "/v2/local/search/address.json"


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


_geocoder_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable),
    reraise=True,
)


class KakaoGeocoder:
    """Resolves street addresses to coordinates.

    Without an API key geocoding is disabled and ``geocode`` returns None,
    leaving meeting coordinates empty.

    Args:
        api_key: Kakao REST API key.
        base_url: API origin.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://dapi.kakao.com",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"KakaoAK {self._api_key}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    @_geocoder_retry
    async def _search(self, address: str) -> dict:
        async with self._client() as client:
            response = await client.get(ADDRESS_SEARCH_PATH, params={"query": address})
            response.raise_for_status()
            return response.json()

    async def geocode(self, address: str) -> GeocodedLocation | None:
        """Resolve ``address`` to its first match.

        Returns:
            GeocodedLocation, or None when geocoding is disabled.

        Raises:
            AddressNotFoundError: The API found no match.
            GeocodingError: The API could not be reached or answered with an error.
        """
        if not self.enabled:
            return None

        try:
            data = await self._search(address)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("geocoder.request_failed", address=address, error=str(exc))
            raise GeocodingError(f"Address lookup failed: {exc}") from exc

        documents = data.get("documents") or []
        if not documents:
            raise AddressNotFoundError(address)

        first = documents[0]
        try:
            location = GeocodedLocation(
                address=address,
                latitude=float(first["y"]),
                longitude=float(first["x"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(f"Malformed geocoder response for {address!r}") from exc

        logger.info(
            "geocoder.resolved",
            address=address,
            latitude=location.latitude,
            longitude=location.longitude,
        )
        return location
