"""Async HTTP client for a remote instance — data API and WebDAV channels.

A :class:`RemoteTarget` is constructed once per invocation from a
:class:`~unitflow.config.TargetConfig` and passed explicitly to every
component that talks to the instance.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from unitflow.config import TargetConfig
from unitflow.remote.auth import fetch_access_token

logger = logging.getLogger(__name__)

# Statuses the state layer interprets instead of treating as failures
FORBIDDEN = 403
NOT_FOUND = 404


def fault_message(response: httpx.Response, default: str) -> str:
    """Extract the remote fault message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        fault = body.get("fault") or {}
        if isinstance(fault, dict) and fault.get("message"):
            return str(fault["message"])
    return default


class RemoteTarget:
    """Handle to one remote instance.

    Parameters
    ----------
    config : TargetConfig
        Hostname and credentials.
    transport : httpx.AsyncBaseTransport | None
        Custom transport (tests use :class:`httpx.MockTransport`).
    poll_interval : float
        Seconds between job status polls.
    """

    def __init__(
        self,
        config: TargetConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.config = config
        self.poll_interval = poll_interval
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._token = config.access_token or ""

    # -- properties ----------------------------------------------------------

    @property
    def hostname(self) -> str:
        return self.config.hostname

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client

    # -- lifecycle -----------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteTarget":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # -- auth ----------------------------------------------------------------

    async def auth_headers(self) -> dict[str, str]:
        if not self._token and self.config.client_id and self.config.client_secret:
            logger.debug("Requesting access token for %s", self.config.client_id)
            self._token = await fetch_access_token(self._client, self.config)
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    # -- requests ------------------------------------------------------------

    async def data_request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a data API request. Never raises on HTTP status."""
        url = self.config.data_api_url + _clean(path)
        headers = await self.auth_headers()
        return await self._client.request(method, url, json=json, params=params, headers=headers)

    async def webdav_request(
        self,
        method: str,
        path: str,
        content: bytes | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a WebDAV request relative to ``/Sites``. Never raises on HTTP status."""
        url = self.config.webdav_url + _clean(path)
        headers = await self.auth_headers()
        return await self._client.request(method, url, content=content, data=data, headers=headers)


def _clean(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"
