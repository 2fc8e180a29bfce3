"""httpx client for the note API: batch sync plus the single-note routes."""
from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from notesync import config
from notesync.models.notes import NoteOut
from notesync.models.sync import SyncChange, SyncResponse

logger = logger.bind(module="client.transport")


class SyncError(Exception):
    """Base class for client-side sync failures."""


class TransportError(SyncError):
    """The request did not produce a usable 2xx response.

    Nothing was applied locally. `retryable` is False for answers that a
    retry cannot change (bad credentials, rejected payloads).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in (408, 429)


class NotesTransport:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or config.api_url()).rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else config.http_timeout_seconds()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        try:
            resp = await self.client.request(method, path, json=json, headers=self._auth_headers())
        except httpx.TimeoutException as exc:
            raise TransportError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.debug(f"{method} {path} -> {resp.status_code}: {resp.text[:200]}")
            raise TransportError(f"{method} {path} returned {resp.status_code}", status_code=resp.status_code)
        return resp

    @staticmethod
    def _parse(resp: httpx.Response, model: Any) -> Any:
        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(f"Malformed response body (HTTP {resp.status_code})") from exc

    async def login(self, user_id: str, password: str) -> str:
        resp = await self._request("POST", "/auth/login", json={"user_id": user_id, "password": password})
        try:
            self.token = resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TransportError("Malformed login response") from exc
        return self.token

    async def sync(self, changes: list[SyncChange]) -> SyncResponse:
        body = {"changes": [c.model_dump(by_alias=True, exclude_none=True) for c in changes]}
        resp = await self._request("POST", "/notes/sync", json=body)
        return self._parse(resp, SyncResponse)

    async def list_notes(self) -> list[NoteOut]:
        resp = await self._request("GET", "/notes")
        try:
            return [NoteOut.model_validate(item) for item in resp.json()]
        except (ValueError, TypeError, ValidationError) as exc:
            raise TransportError(f"Malformed response body (HTTP {resp.status_code})") from exc

    async def create_note(self, title: str, content: str) -> NoteOut:
        resp = await self._request("POST", "/notes", json={"title": title, "content": content})
        return self._parse(resp, NoteOut)

    async def update_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        base_version: Optional[int] = None,
    ) -> NoteOut:
        body: dict[str, Any] = {}
        if title is not None:
            body["title"] = title
        if content is not None:
            body["content"] = content
        if base_version is not None:
            body["baseVersion"] = base_version
        resp = await self._request("PUT", f"/notes/{note_id}", json=body)
        return self._parse(resp, NoteOut)

    async def delete_note(self, note_id: str) -> None:
        await self._request("DELETE", f"/notes/{note_id}")
