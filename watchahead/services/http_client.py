"""HTTP client service — one managed httpx.AsyncClient per backend."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from watchahead.errors import BackendAuthError, BackendError, BackendUnreachable, MalformedRecord

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "watchahead/1.0",
    "Accept": "application/json",
}


class HttpClientService:
    """Creates the backend clients and closes them all on shutdown.

    ``transport`` is forwarded to every client; tests pass an
    ``httpx.MockTransport`` here.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._clients: list[httpx.AsyncClient] = []

    def create_client(self, base_url: str, headers: Optional[dict[str, str]] = None) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            base_url=base_url,
            headers={**HEADERS, **(headers or {})},
            timeout=httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            follow_redirects=True,
            transport=self._transport,
        )
        self._clients.append(client)
        return client

    async def close(self):
        for client in self._clients:
            if not client.is_closed:
                await client.aclose()
        if self._clients:
            logger.info(f"Closed {len(self._clients)} HTTP client(s)")
        self._clients = []


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    backend: str,
    **kwargs,
) -> Any:
    """Send a request and decode the JSON body, mapping failures to watchahead errors.

    Only ``method`` and ``path`` end up in error messages; query parameters
    may carry credentials (Tautulli) and are left out on purpose.
    """
    try:
        response = await client.request(method, path, **kwargs)
    except httpx.TimeoutException as e:
        raise BackendUnreachable(backend, f"timeout on {method} {path}") from e
    except httpx.TransportError as e:
        raise BackendUnreachable(backend, f"{type(e).__name__} on {method} {path}") from e

    if response.status_code in (401, 403):
        raise BackendAuthError(backend, f"HTTP {response.status_code} on {method} {path}, check the API key")
    if response.status_code >= 400:
        raise BackendError(backend, f"HTTP {response.status_code} on {method} {path}")

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise MalformedRecord(f"{backend}: invalid JSON from {method} {path}") from e
