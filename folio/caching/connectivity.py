"""
Connectivity Oracle
===================

Reports whether the remote backend is reachable right now. Oracles never
cache; every call is a fresh snapshot. When reachability cannot be
determined the answer is "offline", which steers reads toward cached data
instead of blocking on a dead network.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx
import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class ConnectivityOracle(Protocol):
    """Source of the current online/offline state."""

    async def is_online(self) -> bool:
        """Return True when the backend is believed reachable."""
        ...


class StaticConnectivity:
    """Oracle with a manually controlled state. Used by tests and offline tooling."""

    def __init__(self, online: bool = True) -> None:
        self._online = online

    def set_online(self, online: bool) -> None:
        self._online = online

    async def is_online(self) -> bool:
        return self._online


class HttpConnectivityProbe:
    """
    Probe reachability with a lightweight HTTP request.

    Any response below 500 counts as online. Transport errors, timeouts and
    server errors count as offline.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def is_online(self) -> bool:
        try:
            response = await self._get_client().head(self._url, timeout=self._timeout)
        except (httpx.HTTPError, OSError) as e:
            logger.debug("connectivity_probe_failed", url=self._url, error=str(e))
            return False
        online = response.status_code < 500
        if not online:
            logger.debug("connectivity_probe_server_error", status=response.status_code)
        return online

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


__all__ = ["ConnectivityOracle", "StaticConnectivity", "HttpConnectivityProbe"]
