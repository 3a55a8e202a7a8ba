"""Raw-request environment exposed to scripts as ``args.env``.

Scripts that need an endpoint the helpers do not wrap can call the data
API, WebDAV or SCAPI directly. Responses carry ``data``, ``status`` and
``headers``; a non-2xx answer raises :class:`LegacyHttpError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from unitflow.errors import RemoteAccessError
from unitflow.remote.client import RemoteTarget

logger = logging.getLogger(__name__)

SCAPI_URL_TEMPLATE = "https://{short_code}.api.commercecloud.salesforce.com"


@dataclass
class LegacyResponse:
    data: Any
    status: int
    headers: dict[str, str]

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "LegacyResponse":
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        return cls(data=data, status=response.status_code, headers=dict(response.headers))


class LegacyHttpError(RemoteAccessError):
    """Non-2xx answer from a raw request; ``response`` holds the body."""

    def __init__(self, message: str, response: LegacyResponse):
        super().__init__(message, status=response.status)
        self.response = response


class LegacyHttpClient:
    """Minimal request client bound to a base URL and the target's credentials."""

    def __init__(self, target: RemoteTarget, base_url: str):
        self.target = target
        self.base_url = base_url.rstrip("/")

    async def request(self, method: str, path: str, **kwargs: Any) -> LegacyResponse:
        url = self.base_url + (path if path.startswith("/") else f"/{path}")
        headers = {**await self.target.auth_headers(), **kwargs.pop("headers", {})}
        resp = await self.target.http.request(method, url, headers=headers, **kwargs)
        response = LegacyResponse.from_httpx(resp)
        if not resp.is_success:
            raise LegacyHttpError(f"{method} {path} failed", response)
        return response

    async def get(self, path: str, **kwargs: Any) -> LegacyResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> LegacyResponse:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> LegacyResponse:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any = None, **kwargs: Any) -> LegacyResponse:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> LegacyResponse:
        return await self.request("DELETE", path, **kwargs)


class LegacyEnvironment:
    """Connection details and raw clients for one target."""

    def __init__(self, target: RemoteTarget, short_code: str | None = None):
        self.target = target
        self.server = target.hostname
        self.client_id = target.client_id
        self.code_version = target.config.code_version or None
        self.short_code = short_code or target.config.short_code or None
        self.ocapi = LegacyHttpClient(target, target.config.data_api_url)
        self.webdav = LegacyHttpClient(target, target.config.webdav_url)
        self._scapi: LegacyHttpClient | None = None

    @property
    def scapi(self) -> LegacyHttpClient:
        if self._scapi is None:
            if not self.short_code:
                raise RemoteAccessError("short code is required for SCAPI access (--short-code)")
            self._scapi = LegacyHttpClient(
                self.target, SCAPI_URL_TEMPLATE.format(short_code=self.short_code)
            )
        return self._scapi
