from __future__ import annotations

import logging
from typing import Any

import httpx

__all__ = ["ApiIdentityLookup"]

logger = logging.getLogger(__name__)


class ApiIdentityLookup:
    """Resolves node identity keys through a validator API over HTTP.

    ``GET {base_url}{path}`` answers ``404`` for keys with no bonded node and a
    JSON body carrying ``node_id`` (or ``mix_id``) otherwise. Other statuses are
    raised as :class:`httpx.HTTPError` and bodies without a node id as
    :class:`ValueError`, for the resolver to report as unavailable.
    """

    def __init__(
        self,
        base_url: str,
        *,
        path: str = "/v1/nodes/by-identity/{identity_key}",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._path = path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def resolve_identity(self, identity_key: str) -> int | None:
        url = self._base_url + self._path.format(identity_key=identity_key)
        response = await self._client.get(url)
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.debug("No bonded node for identity %s", identity_key)
            return None
        response.raise_for_status()
        return _node_id(response.json())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _node_id(payload: Any) -> int:
    if isinstance(payload, int) and not isinstance(payload, bool):
        return payload
    if not isinstance(payload, dict):
        raise ValueError(f"unexpected identity payload: {payload!r}")
    for key in ("node_id", "mix_id"):
        value = payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    raise ValueError(f"identity payload carries no node id: {payload!r}")
