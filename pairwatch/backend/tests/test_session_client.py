"""
tests/test_session_client.py

Tests for correlation/session_client.py and SessionRecord.from_api().
HTTP is served by httpx.MockTransport — no network required.
"""

from __future__ import annotations

import httpx
import pytest

from pairwatch.backend.correlation.models import SessionRecord
from pairwatch.backend.correlation.session_client import SessionAPIClient
from pairwatch.backend.errors import SessionAPIError


def row(sid, last_ms, src="10.0.0.9", dst="10.0.0.5", data_bytes=100):
    return {
        "id": sid,
        "node": "node1",
        "source": {"ip": src, "port": 51000},
        "destination": {"ip": dst, "port": 443},
        "network": {"bytes": data_bytes + 400, "packets": 8},
        "totDataBytes": data_bytes,
        "firstPacket": last_ms - 2_000,
        "lastPacket": last_ms,
    }


def make_client(handler, page_size=500):
    return SessionAPIClient(
        "http://arkime.test:8005/",
        page_size=page_size,
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# SessionRecord.from_api
# ---------------------------------------------------------------------------

class TestSessionRecord:

    def test_nested_row(self):
        rec = SessionRecord.from_api(row("s1", 1_700_000_000_000))
        assert rec.id == "s1"
        assert (rec.src_ip, rec.dst_ip) == ("10.0.0.9", "10.0.0.5")
        assert rec.dst_port == 443
        assert rec.data_bytes == 100
        assert rec.last_packet == 1_700_000_000.0

    def test_flat_dotted_row(self):
        rec = SessionRecord.from_api({
            "id": "s2",
            "source.ip": "10.0.0.1",
            "destination.ip": "10.0.0.2",
            "dns.host": ["example.com"],
            "dns.ip": ["93.184.216.34"],
        })
        assert rec.dns_hosts == ("example.com",)
        assert rec.dns_ips == ("93.184.216.34",)

    def test_missing_endpoint_rejected(self):
        with pytest.raises(SessionAPIError):
            SessionRecord.from_api({"id": "s3", "source": {"ip": "10.0.0.1"}})

    def test_bad_counter_rejected(self):
        bad = row("s4", 1)
        bad["totDataBytes"] = "lots"
        with pytest.raises(SessionAPIError, match="malformed"):
            SessionRecord.from_api(bad)


# ---------------------------------------------------------------------------
# fetch_sessions
# ---------------------------------------------------------------------------

class TestFetchSessions:

    @pytest.mark.asyncio
    async def test_window_params_sent(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": [], "recordsFiltered": 0})

        client = make_client(handler)
        await client.fetch_sessions(1_700_000_000.7, 1_700_000_060.2)
        await client.aclose()

        params = seen[0].url.params
        assert seen[0].url.path == "/api/sessions"
        assert params["startTime"] == "1700000000"
        assert params["stopTime"] == "1700000060"
        assert params["order"] == "lastPacket:desc"
        assert "totDataBytes" in params["fields"]

    @pytest.mark.asyncio
    async def test_newest_first(self):
        def handler(request):
            return httpx.Response(200, json={
                "data": [row("old", 1_000_000), row("new", 3_000_000), row("mid", 2_000_000)],
                "recordsFiltered": 3,
            })

        client = make_client(handler)
        sessions = await client.fetch_sessions(0, 10_000)
        await client.aclose()
        assert [s.id for s in sessions] == ["new", "mid", "old"]

    @pytest.mark.asyncio
    async def test_pages_until_exhausted(self):
        rows = [row(f"s{i}", (10 - i) * 1_000) for i in range(5)]
        offsets: list[int] = []

        def handler(request):
            start = int(request.url.params["start"])
            length = int(request.url.params["length"])
            offsets.append(start)
            return httpx.Response(200, json={
                "data": rows[start:start + length],
                "recordsFiltered": len(rows),
            })

        client = make_client(handler, page_size=2)
        sessions = await client.fetch_sessions(0, 100)
        await client.aclose()
        assert offsets == [0, 2, 4]
        assert [s.id for s in sessions] == ["s0", "s1", "s2", "s3", "s4"]

    @pytest.mark.asyncio
    async def test_row_repeated_on_next_page_counted_once(self):
        # s2 slides from page 0 to page 1 after a newer session arrives
        pages = {
            0: [row("s3", 3_000), row("s2", 2_000)],
            2: [row("s2", 2_000), row("s1", 1_000)],
        }

        def handler(request):
            start = int(request.url.params["start"])
            return httpx.Response(200, json={"data": pages.get(start, []), "recordsFiltered": 4})

        client = make_client(handler, page_size=2)
        sessions = await client.fetch_sessions(0, 100)
        await client.aclose()
        assert [s.id for s in sessions] == ["s3", "s2", "s1"]
        assert sum(s.data_bytes for s in sessions) == 300

    @pytest.mark.asyncio
    async def test_unparseable_rows_dropped(self):
        def handler(request):
            return httpx.Response(200, json={"data": [row("ok", 5_000), {"id": "broken"}]})

        client = make_client(handler)
        sessions = await client.fetch_sessions(0, 100)
        await client.aclose()
        assert [s.id for s in sessions] == ["ok"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="internal error"),
        httpx.Response(401, text="unauthorized"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"error": "no data key"}),
    ])
    async def test_bad_responses_raise(self, response):
        client = make_client(lambda request: response)
        with pytest.raises(SessionAPIError):
            await client.fetch_sessions(0, 100)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(SessionAPIError, match="connection refused"):
            await client.fetch_sessions(0, 100)
        await client.aclose()


# ---------------------------------------------------------------------------
# fetch_session_detail
# ---------------------------------------------------------------------------

class TestFetchDetail:

    @pytest.mark.asyncio
    async def test_detail_path_and_body(self):
        paths: list[str] = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, text="ip.dns == 10.0.0.5")

        client = make_client(handler)
        session = SessionRecord.from_api(row("abc", 1_000))
        payload = await client.fetch_session_detail(session)
        await client.aclose()
        assert paths == ["/api/session/node1/abc/detail"]
        assert payload == "ip.dns == 10.0.0.5"

    @pytest.mark.asyncio
    async def test_detail_error_raises(self):
        client = make_client(lambda request: httpx.Response(404))
        session = SessionRecord.from_api(row("abc", 1_000))
        with pytest.raises(SessionAPIError):
            await client.fetch_session_detail(session)
        await client.aclose()
