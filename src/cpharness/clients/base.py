from __future__ import annotations

from typing import Any

import httpx
import structlog

from cpharness.core.errors import ApiError, NetworkError

logger = structlog.get_logger()


class ControlPlaneTransport:
    """Authenticated REST client for the control-plane API gateway.

    The transport never retries on its own; callers decide which operations
    are safe to repeat and wrap them in a RetryExecutor. Any HTTP status of
    400 or above becomes an `ApiError` subclass (`NotFoundError` for 404,
    `ServerError` for 5xx); transport failures become `NetworkError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Execute a request and return the decoded JSON body (or None)."""
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(token),
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise NetworkError(status_code=None, cause=str(exc), method=method, url=url) from exc

        if response.status_code >= 400:
            error = ApiError.from_response(response)
            log = logger.debug if response.status_code == 404 else logger.warning
            log("http_error", status=response.status_code, method=method, url=url)
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
