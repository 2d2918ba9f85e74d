"""JSON-over-HTTPS client for the App Store Connect API."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx

from testflight_uploader.api.auth import TokenProvider
from testflight_uploader.config.settings import DEFAULT_BASE_URL
from testflight_uploader.errors import ApiRequestError
from testflight_uploader.utils.logging import get_logger

logger = get_logger("api.client")

# Response bodies are truncated to this many characters in errors and logs
MAX_ERROR_BODY = 2000


class AppStoreConnectClient:
    """
    Thin async wrapper around ``httpx.AsyncClient``.

    Every API request carries a bearer token from the :class:`TokenProvider`.
    Chunk transfers go through :meth:`send_chunk` instead, which sends the
    server-supplied headers verbatim and no credentials.

    Usage::

        async with AppStoreConnectClient(tokens) as client:
            apps = await client.fetch_json("/apps", "Failed to list apps.")
    """

    def __init__(
        self,
        tokens: TokenProvider,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            tokens: Source of bearer tokens
            base_url: API root, e.g. https://api.appstoreconnect.apple.com/v1
            timeout: Per-request timeout in seconds
            http_client: Pre-built httpx client (not closed by this wrapper)
        """
        self.tokens = tokens
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> "AppStoreConnectClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this wrapper created it."""
        if self._owns_client:
            await self._http.aclose()

    def url_for(self, path: str) -> str:
        """Join an API path onto the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"

    async def fetch_json(
        self,
        path: str,
        error_message: str,
        method: str = "GET",
        payload: Optional[dict[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        """
        Send an authenticated API request and parse the JSON body.

        A 401 is retried once with a freshly signed token.

        Args:
            path: API path relative to the base URL
            error_message: Message used if the request fails
            method: HTTP method
            payload: JSON body
            params: Query parameters

        Returns:
            Parsed JSON body, or an empty dict for 204 / non-JSON responses

        Raises:
            ApiRequestError: On transport failure, a non-2xx status or a malformed body
        """
        url = self.url_for(path)
        response = await self._send(method, url, path, error_message, payload, params)

        if response.status_code == 401:
            logger.warning("api_token_rejected", method=method, path=path)
            self.tokens.invalidate()
            response = await self._send(method, url, path, error_message, payload, params)

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY]
            logger.error(
                "api_request_failed",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise ApiRequestError(error_message, status=response.status_code, body=body)

        logger.debug("api_request", method=method, path=path, status=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as e:
            logger.error("api_response_malformed", method=method, path=path, error=str(e))
            raise ApiRequestError(
                error_message,
                status=response.status_code,
                body=response.text[:MAX_ERROR_BODY],
            ) from e

    async def _send(
        self,
        method: str,
        url: str,
        path: str,
        error_message: str,
        payload: Optional[dict[str, Any]],
        params: Optional[Mapping[str, str]],
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.tokens.get_token()}",
            "Accept": "application/json",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        try:
            return await self._http.request(
                method,
                url,
                headers=headers,
                json=payload,
                params=params,
            )
        except httpx.TransportError as e:
            logger.error("api_transport_error", method=method, path=path, error=str(e))
            raise ApiRequestError(error_message, body=str(e)) from e

    async def send_chunk(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> httpx.Response:
        """
        Send one upload chunk exactly as the upload operation describes it.

        Raises:
            httpx.TransportError: If the connection fails
        """
        return await self._http.request(method, url, headers=dict(headers), content=body)
