"""Async HTTP client for the notes service.

Every failure is normalised into :class:`RemoteBackendError` (or one of its
subclasses) so callers only have to handle a single recoverable error type.

Usage::

    async with RemoteBackendClient.from_settings(token) as remote:
        await remote.insert("notes", {"id": str(note_id), "title": "Draft"})
        state = await remote.fetch_note_state(note_id)
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx

from shared.config import settings
from shared.exceptions import RemoteBackendError, RemoteConflictError, RemoteNotFoundError

logger = logging.getLogger(__name__)

COLLECTIONS: frozenset[str] = frozenset({"notes", "folders"})


class RemoteBackendClient:
    """Row CRUD over ``notes``/``folders`` plus the note snapshot column.

    Args:
        client: An ``httpx.AsyncClient`` whose ``base_url`` points at the
            service. The bearer token is sent on every request.
        token: JWT identifying the local user.
    """

    def __init__(self, client: httpx.AsyncClient, token: str | None = None) -> None:
        self._client = client
        self._headers: dict[str, str] = {"Authorization": f"Bearer {token}"} if token else {}

    @classmethod
    def from_settings(cls, token: str | None = None) -> RemoteBackendClient:
        client = httpx.AsyncClient(
            base_url=settings.API_URL,
            timeout=settings.API_TIMEOUT_SECONDS,
        )
        return cls(client, token)

    async def __aenter__(self) -> RemoteBackendClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def insert(self, collection: str, row: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", f"/api/{_check(collection)}", json=row)
        return response.json()

    async def update(self, collection: str, row_id: UUID, data: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("PATCH", f"/api/{_check(collection)}/{row_id}", json=data)
        return response.json()

    async def delete(self, collection: str, row_id: UUID) -> None:
        await self._request("DELETE", f"/api/{_check(collection)}/{row_id}")

    async def get(self, collection: str, row_id: UUID) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"/api/{_check(collection)}/{row_id}")
        except RemoteNotFoundError:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Document snapshots
    # ------------------------------------------------------------------

    async def fetch_note_state(self, note_id: UUID) -> bytes | None:
        """Return the stored CRDT snapshot, or ``None`` if there is none yet."""
        try:
            response = await self._request("GET", f"/api/notes/{note_id}/state")
        except RemoteNotFoundError:
            return None
        if response.status_code == 204 or not response.content:
            return None
        return response.content

    async def save_note_state(self, note_id: UUID, state: bytes) -> None:
        await self._request(
            "PUT",
            f"/api/notes/{note_id}/state",
            content=state,
            headers={"Content-Type": "application/octet-stream"},
        )

    async def health(self) -> bool:
        try:
            await self._request("GET", "/health")
        except RemoteBackendError:
            return False
        return True

    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteBackendError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 404:
            raise RemoteNotFoundError(_detail(response))
        if response.status_code == 409:
            raise RemoteConflictError(_detail(response))
        if response.is_error:
            raise RemoteBackendError(
                f"{method} {url} returned {response.status_code}: {_detail(response)}",
                status_code=response.status_code,
            )
        return response


def _check(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    return collection


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text
