"""Client-credentials token exchange."""

from __future__ import annotations

import httpx

from unitflow.config import TargetConfig
from unitflow.errors import RemoteAccessError


async def fetch_access_token(client: httpx.AsyncClient, config: TargetConfig) -> str:
    """Exchange the configured client ID/secret for a bearer token."""
    resp = await client.post(
        config.auth_server,
        data={"grant_type": "client_credentials"},
        auth=(config.client_id, config.client_secret),
        headers={"Accept": "application/json"},
    )
    if resp.status_code != 200:
        raise RemoteAccessError(
            f"Unable to obtain access token for client {config.client_id}",
            status=resp.status_code,
        )
    token = resp.json().get("access_token", "")
    if not token:
        raise RemoteAccessError(f"No access token returned for client {config.client_id}")
    return token
