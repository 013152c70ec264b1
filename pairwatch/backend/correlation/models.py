"""
correlation/models.py

Data models for the session-correlation path.

SessionRecord — one completed flow as reported by the external session API
Watermark     — how far the external feed has been consumed
CycleResult   — what one correlation cycle did (for logs and tests)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import SessionAPIError


def _field(row: dict, dotted: str, default: Any = None) -> Any:
    """
    Read ``dotted`` from an API row.

    The session API returns either flat dotted keys ("source.ip") or nested
    objects ({"source": {"ip": ...}}) depending on its version; both work.
    """
    if dotted in row:
        return row[dotted]
    node: Any = row
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    return tuple(str(v) for v in value if v)


@dataclass(frozen=True)
class SessionRecord:
    """Immutable view of one session row from the external API."""

    id: str
    src_ip: str
    dst_ip: str
    node: str = ""
    src_port: int = 0
    dst_port: int = 0
    bytes: int = 0
    packets: int = 0
    data_bytes: int = 0
    """Application payload bytes (``totDataBytes``); what correlation sums."""

    first_packet: float = 0.0
    last_packet: float = 0.0
    """Unix seconds."""

    dns_hosts: tuple[str, ...] = ()
    dns_ips: tuple[str, ...] = ()
    """Answer addresses when the API returns them as a structured field."""

    @classmethod
    def from_api(cls, row: dict) -> SessionRecord:
        """
        Build a SessionRecord from one row of the sessions response.

        Raises:
            SessionAPIError: the row lacks an id or either endpoint.
        """
        session_id = row.get("id")
        src_ip = _field(row, "source.ip") or row.get("srcIp")
        dst_ip = _field(row, "destination.ip") or row.get("dstIp")
        if not session_id or not src_ip or not dst_ip:
            raise SessionAPIError(f"session row missing id or endpoints: {row!r}")

        try:
            return cls(
                id=str(session_id),
                node=str(row.get("node") or ""),
                src_ip=str(src_ip),
                dst_ip=str(dst_ip),
                src_port=int(_field(row, "source.port") or row.get("srcPort") or 0),
                dst_port=int(_field(row, "destination.port") or row.get("dstPort") or 0),
                bytes=int(_field(row, "network.bytes") or row.get("totBytes") or 0),
                packets=int(_field(row, "network.packets") or row.get("totPackets") or 0),
                data_bytes=int(row.get("totDataBytes") or 0),
                first_packet=float(row.get("firstPacket") or 0) / 1000.0,
                last_packet=float(row.get("lastPacket") or 0) / 1000.0,
                dns_hosts=_as_tuple(_field(row, "dns.host")),
                dns_ips=_as_tuple(_field(row, "dns.ip")),
            )
        except (TypeError, ValueError) as exc:
            raise SessionAPIError(f"session {session_id!r} has malformed counters: {exc}") from exc


@dataclass
class Watermark:
    """
    Correlation progress, owned by the single correlation task.

    since        — end of the last fetch window (Unix seconds)
    last_seen_id — newest session id seen by the previous cycle
    """

    since: float
    last_seen_id: str | None = None

    @classmethod
    def cold_start(cls, now: float, grace_seconds: float) -> Watermark:
        return cls(since=now - grace_seconds)


@dataclass
class CycleResult:
    window_start: float
    window_end: float
    fetched: int = 0
    processed: int = 0
    hints_added: int = 0
    merged: int = 0
    failed_merges: int = 0
    totals: dict[tuple[str, str], int] = field(default_factory=dict)
    """(destination, source) → bytes accumulated this cycle."""

    fetch_failed: bool = False
