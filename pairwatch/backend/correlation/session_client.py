"""
correlation/session_client.py

Async client for an Arkime-compatible session API.

Responsibilities:
  - GET /api/sessions for a [start, end] window, newest first, paging
    through ``start``/``length`` until the window is exhausted
  - GET /api/session/<node>/<id>/detail for the raw detail payload used
    by DNS address extraction
  - Translate transport and HTTP errors into SessionAPIError

Usage:
    client = SessionAPIClient("http://arkime.local:8005", user="u", password="p")
    sessions = await client.fetch_sessions(start, end)
    await client.aclose()
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from ..errors import SessionAPIError
from .models import SessionRecord

logger = logging.getLogger(__name__)

_SESSION_FIELDS = ",".join([
    "id",
    "node",
    "source.ip",
    "source.port",
    "destination.ip",
    "destination.port",
    "network.bytes",
    "network.packets",
    "totDataBytes",
    "firstPacket",
    "lastPacket",
    "dns.host",
    "dns.ip",
])


class SessionSource(Protocol):
    """What the correlation engine needs from the external API."""

    async def fetch_sessions(self, start: float, end: float) -> list[SessionRecord]: ...

    async def fetch_session_detail(self, session: SessionRecord) -> str: ...


class SessionAPIClient:
    """
    Args:
        base_url:  API root, e.g. "http://arkime.local:8005"
        user:      Digest-auth user; empty disables auth
        password:  Digest-auth password
        timeout:   Per-request timeout in seconds
        page_size: Rows requested per page
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        user: str = "",
        password: str = "",
        timeout: float = 10.0,
        page_size: int = 500,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.DigestAuth(user, password) if user else None,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_sessions(self, start: float, end: float) -> list[SessionRecord]:
        """
        Return every session whose last packet falls in [start, end],
        newest first, each id once. Rows that cannot be parsed are dropped
        and logged.
        """
        sessions: list[SessionRecord] = []
        seen: set[tuple[str, str]] = set()
        offset = 0
        while True:
            data = await self._get_json(
                "/api/sessions",
                params={
                    "startTime": int(start),
                    "stopTime": int(end),
                    "date": -1,
                    "order": "lastPacket:desc",
                    "fields": _SESSION_FIELDS,
                    "start": offset,
                    "length": self._page_size,
                },
            )
            rows = data.get("data")
            if not isinstance(rows, list):
                raise SessionAPIError("sessions response has no 'data' list")

            for row in rows:
                try:
                    record = SessionRecord.from_api(row)
                except SessionAPIError as exc:
                    logger.warning("Dropping session row: %s", exc)
                    continue
                # Offset paging over a live index can repeat a row on the
                # next page once newer sessions push it down.
                key = (record.node, record.id)
                if key in seen:
                    logger.debug("Skipping session %s already seen on an earlier page", record.id)
                    continue
                seen.add(key)
                sessions.append(record)

            offset += len(rows)
            total = data.get("recordsFiltered")
            if len(rows) < self._page_size or (isinstance(total, int) and offset >= total):
                break

        # The API orders by lastPacket already; re-sort so page boundaries
        # can never interleave out of order.
        sessions.sort(key=lambda s: s.last_packet, reverse=True)
        logger.debug(
            "Fetched %d sessions for window [%.0f, %.0f]", len(sessions), start, end
        )
        return sessions

    async def fetch_session_detail(self, session: SessionRecord) -> str:
        """Return the raw detail payload for ``session``."""
        path = f"/api/session/{session.node}/{session.id}/detail"
        try:
            resp = await self._client.get(path)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise SessionAPIError(f"detail request for {session.id} failed: {exc}") from exc
        return resp.text

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict) -> dict:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise SessionAPIError(f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            raise SessionAPIError(f"GET {path} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SessionAPIError(f"GET {path} returned {type(data).__name__}, expected object")
        return data
