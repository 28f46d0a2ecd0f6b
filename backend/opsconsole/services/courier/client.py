"""
Courier REST client with HMAC request signing.

Every call is signed immediately before it is sent: the client serializes
the payload once, signs exactly those bytes together with a fresh
millisecond timestamp, method and path, and transmits the same bytes. The
client performs no retries; callers decide whether a failed call is safe to
repeat.
"""

import json
import time
import uuid
from typing import Any, Callable, Optional

import httpx

from opsconsole.core.config import get_settings
from opsconsole.core.logging import get_logger
from opsconsole.core.signing import SignedRequest, build_signed_request

logger = get_logger(__name__)


class CourierClientError(Exception):
    """Base exception for courier client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any):
        super().__init__(message)
        self.status_code = status_code
        self.context = context


class CourierConfigurationError(CourierClientError):
    """Raised when credentials or market are not configured."""

    pass


class CourierRequestError(CourierClientError):
    """Raised when the call fails or the courier answers with a non-2xx status."""

    pass


class CourierResponseError(CourierClientError):
    """Raised when the courier answers with a body that is not JSON."""

    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def serialize_payload(payload: Optional[Any]) -> str:
    """Serialize a request payload to the compact JSON that gets signed."""
    if payload is None:
        return ""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class CourierClient:
    """
    Async client for the courier REST API.

    Usage:
        async with CourierClient() as courier:
            quote = await courier.post("/v3/quotations", {"data": {...}})
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        market: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        """
        Initialize courier client, falling back to settings for any
        argument not given.

        Args:
            api_key: Courier public API key
            api_secret: Shared signing secret
            market: Market code sent in the ``Market`` header
            base_url: Courier REST base URL
            timeout: Per-call timeout in seconds
            transport: Optional httpx transport, used by tests
            clock: Millisecond timestamp source

        Raises:
            CourierConfigurationError: If key, secret or market is missing
        """
        settings = get_settings()

        if api_secret is None and settings.courier_api_secret is not None:
            api_secret = settings.courier_api_secret.get_secret_value()

        self.api_key = api_key or settings.courier_api_key
        self._api_secret = api_secret
        self.market = market or settings.courier_market
        self.base_url = (base_url or settings.courier_base_url).rstrip("/")
        self.clock = clock

        missing = [
            name
            for name, value in (
                ("api_key", self.api_key),
                ("api_secret", self._api_secret),
                ("market", self.market),
            )
            if not value
        ]
        if missing:
            raise CourierConfigurationError(
                "Courier client is not configured",
                missing=missing,
            )

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.courier_timeout_seconds,
            transport=transport,
        )

        logger.info(
            "Courier client initialized",
            base_url=self.base_url,
            market=self.market,
        )

    async def __aenter__(self) -> "CourierClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    def sign_request(
        self,
        method: str,
        path: str,
        payload: Optional[Any] = None,
    ) -> SignedRequest:
        """
        Serialize and sign a request with a fresh timestamp.

        Args:
            method: HTTP verb
            path: Request path with leading slash
            payload: JSON-serializable body, or None for no body

        Returns:
            SignedRequest holding the exact body to transmit
        """
        return build_signed_request(
            self._api_secret,
            str(self.clock()),
            method.upper(),
            path,
            serialize_payload(payload),
        )

    def build_headers(self, signed: SignedRequest) -> dict[str, str]:
        """Build the courier authentication headers for a signed request."""
        return {
            "Authorization": f"hmac {self.api_key}:{signed.timestamp}:{signed.signature}",
            "Market": self.market,
            "Request-ID": str(uuid.uuid4()),
            "Content-Type": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        payload: Optional[Any] = None,
    ) -> Any:
        """
        Send a signed request and decode the JSON response.

        Args:
            method: HTTP verb
            path: Request path with leading slash
            payload: JSON-serializable body

        Returns:
            Decoded JSON body, or None for an empty response

        Raises:
            CourierRequestError: On transport failure or non-2xx status
            CourierResponseError: If the response body is not JSON
        """
        signed = self.sign_request(method, path, payload)
        headers = self.build_headers(signed)

        logger.debug(
            "Sending courier request",
            method=signed.method,
            path=path,
            courier_request_id=headers["Request-ID"],
            authorization=headers["Authorization"],
        )

        try:
            response = await self._client.request(
                signed.method,
                path,
                content=signed.body.encode("utf-8") if signed.body else None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Courier request failed",
                method=signed.method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CourierRequestError(
                "Courier request failed",
                method=signed.method,
                path=path,
                error=str(e),
            ) from e

        if not response.is_success:
            logger.warning(
                "Courier returned error status",
                method=signed.method,
                path=path,
                status_code=response.status_code,
            )
            raise CourierRequestError(
                f"Courier returned HTTP {response.status_code}",
                status_code=response.status_code,
                method=signed.method,
                path=path,
                body=response.text,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise CourierResponseError(
                "Courier returned a non-JSON response",
                status_code=response.status_code,
                method=signed.method,
                path=path,
            ) from e

    async def get(self, path: str) -> Any:
        """Send a signed GET request."""
        return await self.request("GET", path)

    async def post(self, path: str, payload: Any) -> Any:
        """Send a signed POST request."""
        return await self.request("POST", path, payload)

    async def patch(self, path: str, payload: Any) -> Any:
        """Send a signed PATCH request."""
        return await self.request("PATCH", path, payload)
