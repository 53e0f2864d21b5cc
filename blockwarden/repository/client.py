"""Async HTTP client for the blockwarden configuration API.

Every request carries the service key header and, once one has been issued,
a bearer token. A 401/403 answer triggers a single token refresh against the
auth endpoint followed by a single retry of the original request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from blockwarden.errors import (
    APIError,
    AuthenticationFailed,
    ClientError,
    DecodingError,
    InvalidURL,
    MalformedEndpoint,
    NetworkError,
    ServerError,
    Unauthorized,
)

logger = logging.getLogger(__name__)

API_PATH = "/api/v1"
AUTH_PATH = "/v1/auth/token"
AUTH_STATUS_CODES = (401, 403)


@dataclass
class ApiConfig:
    """Connection settings for the remote API."""

    base_url: str = "http://127.0.0.1:8000"
    service_key: str = ""
    service_name: str = "blockwarden"
    timeout: float = 10.0


class ApiClient:
    """Thin request layer shared by all repository calls.

    Usage:
        async with ApiClient(config) as client:
            lists = await client.request("GET", "/block-lists")
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: API connection settings
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def endpoint_url(self, endpoint: str) -> str:
        """Build the absolute URL for an API endpoint.

        Raises:
            MalformedEndpoint: If the endpoint does not start with '/'
            InvalidURL: If the resulting URL cannot be parsed
        """
        if not endpoint.startswith("/"):
            raise MalformedEndpoint(f"Endpoint must start with /: {endpoint}")

        full_url = self.config.base_url.rstrip("/") + API_PATH + endpoint
        try:
            url = httpx.URL(full_url)
        except httpx.InvalidURL as e:
            raise InvalidURL(f"{full_url}: {e}") from e
        if not url.scheme or not url.host:
            raise InvalidURL(full_url)
        return full_url

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Service-Key": self.config.service_key,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _send(self, method: str, url: str, body: Any = None) -> httpx.Response:
        client = self._get_client()
        logger.debug(f"{method} {url}")
        try:
            response = await client.request(method, url, json=body, headers=self._headers())
        except httpx.InvalidURL as e:
            raise InvalidURL(f"{url}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    async def authenticate(self) -> str:
        """Obtain a fresh bearer token from the auth endpoint.

        Returns:
            The new token (also stored for subsequent requests)

        Raises:
            AuthenticationFailed: If the endpoint refuses or returns no token
            NetworkError: If the endpoint cannot be reached
        """
        url = self.config.base_url.rstrip("/") + AUTH_PATH
        client = self._get_client()
        body = {
            "serviceName": self.config.service_name,
            "serviceKey": self.config.service_key,
        }

        logger.debug(f"Requesting auth token from {url}")
        try:
            response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise NetworkError(f"Auth request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationFailed(response.text or "no error message", response.status_code)

        try:
            token = response.json().get("token")
        except (ValueError, AttributeError) as e:
            raise AuthenticationFailed(f"unreadable token response: {e}", response.status_code) from e
        if not isinstance(token, str) or not token:
            raise AuthenticationFailed("token missing from response", response.status_code)

        self._token = token
        logger.info("Authenticated with configuration API")
        return token

    async def request(self, method: str, endpoint: str, body: Any = None) -> Any:
        """Send a request and decode its JSON response.

        Args:
            method: HTTP method
            endpoint: Path below the API root, e.g. "/block-lists"
            body: JSON-serializable request body

        Returns:
            Decoded JSON, or None for empty bodies and idempotent deletes

        Raises:
            APIError: One of its subclasses, see module docs
        """
        method = method.upper()
        url = self.endpoint_url(endpoint)

        response = await self._send(method, url, body)
        if response.status_code in AUTH_STATUS_CODES:
            logger.info(f"{method} {endpoint} returned {response.status_code}, reauthenticating")
            await self.authenticate()
            response = await self._send(method, url, body)
            if response.status_code in AUTH_STATUS_CODES:
                raise Unauthorized(response.status_code, response.text)

        return self._handle_response(method, endpoint, response)

    def _handle_response(self, method: str, endpoint: str, response: httpx.Response) -> Any:
        status = response.status_code

        if 200 <= status < 300:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise DecodingError(f"Invalid JSON from {endpoint}: {e}") from e

        if status == 404 and method == "DELETE":
            # Target already gone
            logger.debug(f"DELETE {endpoint}: not found, treating as deleted")
            return None

        if 400 <= status < 500:
            raise ClientError(status, response.text or "Client error")
        if 500 <= status < 600:
            raise ServerError(status, response.text or "Server error")

        raise APIError(f"Unexpected status {status} from {endpoint}")
