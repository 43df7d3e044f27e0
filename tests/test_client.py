"""Tests for the track data HTTP client and its session cache."""

from __future__ import annotations

import json

import httpx
import pytest
import pytest_asyncio

from demoreel.trackdata.client import TrackDataCache, TrackDataClient
from demoreel.trackdata.models import TrackData

from helpers import make_track_data

BASE_URL = "http://testserver"


class FakeServer:
    """Serves artifacts from a dict and records every request."""

    def __init__(self, artifacts=None, batch_status: int = 200):
        self.artifacts = dict(artifacts or {})
        self.batch_status = batch_status
        self.requests: list[httpx.Request] = []
        self.files: list[dict] = []
        self.running_orders: dict[str, dict] = {}

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path == "/api/track-data" and request.method == "GET":
            data = self.artifacts.get(params["path"])
            if data is None:
                return httpx.Response(404, json={"detail": "Track data not found"})
            return httpx.Response(200, json=data.model_dump())

        if path == "/api/track-data" and request.method == "POST":
            self.artifacts[params["path"]] = TrackData.model_validate_json(request.content)
            return httpx.Response(200, json={"message": "Track data saved successfully"})

        if path == "/api/track-data/batch":
            if self.batch_status != 200:
                return httpx.Response(self.batch_status)
            paths = json.loads(request.content)["paths"]
            data = {
                p: (self.artifacts[p].model_dump() if p in self.artifacts else None) for p in paths
            }
            return httpx.Response(200, json={"data": data})

        if path == "/api/files":
            return httpx.Response(200, json={"files": self.files})

        if path == "/api/running-order":
            for key in (params.get("path"), params.get("legacyPath")):
                if key in self.running_orders:
                    return httpx.Response(200, json=self.running_orders[key])
            return httpx.Response(404)

        if path == "/api/audio-url":
            return httpx.Response(200, json={"url": f"https://cdn.example/{params['path']}"})

        return httpx.Response(404)


@pytest.fixture
def server():
    return FakeServer()


@pytest_asyncio.fixture
async def http(server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(server), base_url=BASE_URL) as http:
        yield http


@pytest.fixture
def client(http):
    return TrackDataClient(http)


class TestTrackDataCache:
    def test_store_and_get(self):
        cache = TrackDataCache()
        data = make_track_data()
        cache.store("a.json", data)
        assert cache.get("a.json") is data
        assert "a.json" in cache
        assert len(cache) == 1

    def test_clear(self):
        cache = TrackDataCache()
        cache.store("a.json", make_track_data())
        cache.clear()
        assert cache.get("a.json") is None
        assert len(cache) == 0


class TestFetchOne:
    @pytest.mark.asyncio
    async def test_second_fetch_uses_cache(self, client, server):
        server.artifacts["a.json"] = make_track_data()
        first = await client.fetch_one("a.json")
        second = await client.fetch_one("a.json")
        assert first == second == make_track_data()
        assert server.count("GET", "/api/track-data") == 1

    @pytest.mark.asyncio
    async def test_absence_is_not_cached(self, client, server):
        assert await client.fetch_one("a.json") is None
        server.artifacts["a.json"] = make_track_data()
        assert await client.fetch_one("a.json") is not None
        assert server.count("GET", "/api/track-data") == 2

    @pytest.mark.asyncio
    async def test_fetch_remote_bypasses_cache(self, client, server):
        server.artifacts["a.json"] = make_track_data()
        await client.fetch_one("a.json")
        await client.fetch_remote("a.json")
        assert server.count("GET", "/api/track-data") == 2


class TestFetchMany:
    @pytest.mark.asyncio
    async def test_single_batch_request(self, client, server):
        server.artifacts["a.json"] = make_track_data(duration=1.0)
        server.artifacts["b.json"] = make_track_data(duration=2.0)
        result = await client.fetch_many(["a.json", "b.json", "c.json"])
        assert result["a.json"].duration == 1.0
        assert result["b.json"].duration == 2.0
        assert result["c.json"] is None
        assert server.count("POST", "/api/track-data/batch") == 1
        assert "c.json" not in client.cache

    @pytest.mark.asyncio
    async def test_cached_keys_not_requested(self, client, server):
        server.artifacts["a.json"] = make_track_data()
        server.artifacts["b.json"] = make_track_data()
        await client.fetch_one("a.json")

        await client.fetch_many(["a.json", "b.json"])
        batch = [r for r in server.requests if r.url.path == "/api/track-data/batch"]
        assert json.loads(batch[0].content) == {"paths": ["b.json"]}

    @pytest.mark.asyncio
    async def test_fully_cached_makes_no_request(self, client, server):
        server.artifacts["a.json"] = make_track_data()
        await client.fetch_one("a.json")
        result = await client.fetch_many(["a.json"])
        assert result["a.json"] is not None
        assert server.count("POST", "/api/track-data/batch") == 0

    @pytest.mark.asyncio
    async def test_batch_failure_returns_cached_only(self, http, server):
        server.batch_status = 500
        server.artifacts["a.json"] = make_track_data()
        client = TrackDataClient(http)
        result = await client.fetch_many(["a.json"])
        assert result == {}


class TestFetchManyWithFallback:
    @pytest.mark.asyncio
    async def test_batch_failure_falls_back_to_single_fetches(self, http, server):
        server.batch_status = 500
        server.artifacts["a.json"] = make_track_data(duration=1.0)
        client = TrackDataClient(http)

        result = await client.fetch_many_with_fallback(["a.json", "b.json"])
        assert result["a.json"].duration == 1.0
        assert result["b.json"] is None
        assert server.count("GET", "/api/track-data") == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch_body", [b"<html>gateway</html>", b"[1, 2]", b'{"data": [1]}'])
    async def test_unparseable_batch_falls_back(self, server, batch_body):
        server.artifacts["a.json"] = make_track_data()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/track-data/batch":
                server.requests.append(request)
                return httpx.Response(200, content=batch_body)
            return server(request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=BASE_URL
        ) as http:
            result = await TrackDataClient(http).fetch_many_with_fallback(["a.json"])

        assert result == {"a.json": make_track_data()}
        assert server.count("GET", "/api/track-data") == 1

    @pytest.mark.asyncio
    async def test_null_entries_retried_individually(self, client, server):
        server.artifacts["a.json"] = make_track_data()
        result = await client.fetch_many_with_fallback(["a.json", "missing.json"])
        assert result["missing.json"] is None
        # Only the null entry is retried one at a time
        gets = [r.url.params["path"] for r in server.requests if r.method == "GET"]
        assert gets == ["missing.json"]

    @pytest.mark.asyncio
    async def test_transport_error_isolated_per_key(self, server):
        server.artifacts["good.json"] = make_track_data()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/track-data/batch":
                raise httpx.ConnectError("offline")
            if request.url.params.get("path") == "bad.json":
                raise httpx.ConnectError("offline")
            return server(request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=BASE_URL
        ) as http:
            client = TrackDataClient(http)
            result = await client.fetch_many_with_fallback(["bad.json", "good.json"])

        assert result["bad.json"] is None
        assert result["good.json"] == make_track_data()


class TestCheckAndSave:
    @pytest.mark.asyncio
    async def test_check_sends_audio_path(self, server):
        def handler(request: httpx.Request) -> httpx.Response:
            server.requests.append(request)
            return httpx.Response(200, json={"exists": True, "needsRegeneration": True})

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=BASE_URL
        ) as http:
            verdict = await TrackDataClient(http).check("a.wav.json", "a.wav")

        assert verdict.exists and verdict.needsRegeneration
        params = server.requests[0].url.params
        assert params["check"] == "1"
        assert params["audioPath"] == "a.wav"

    @pytest.mark.asyncio
    async def test_check_raises_on_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http:
            with pytest.raises(httpx.HTTPStatusError):
                await TrackDataClient(http).check("a.json")

    @pytest.mark.asyncio
    async def test_save_caches_artifact(self, client, server):
        data = make_track_data()
        await client.save("a.json", data)
        assert server.artifacts["a.json"].generatedAt == data.generatedAt
        assert await client.fetch_one("a.json") is data
        assert server.count("GET", "/api/track-data") == 0

    @pytest.mark.asyncio
    async def test_audio_url(self, client):
        assert await client.audio_url("band/a.wav") == "https://cdn.example/band/a.wav"


class TestFolderPlaylist:
    @pytest.mark.asyncio
    async def test_running_order_applied(self, client, server):
        server.files = [
            {"name": "live", "type": "directory"},
            {"name": "a.wav", "type": "file"},
            {"name": "b.mp3", "type": "file"},
            {"name": "c.ogg", "type": "file"},
            {"name": "notes.txt", "type": "file"},
        ]
        server.running_orders["band/running-order.v2.json"] = {"playlist": ["c.ogg", "gone.wav", "a.wav"]}
        assert await client.folder_playlist("band") == ["c.ogg", "a.wav", "b.mp3"]

    @pytest.mark.asyncio
    async def test_legacy_order_used(self, client, server):
        server.files = [{"name": "a.wav", "type": "file"}, {"name": "b.wav", "type": "file"}]
        server.running_orders["band/running-order.json"] = {"playlist": ["b.wav"]}
        assert await client.folder_playlist("band") == ["b.wav", "a.wav"]

    @pytest.mark.asyncio
    async def test_without_running_order(self, client, server):
        server.files = [{"name": "a.wav", "type": "file"}, {"name": "b.wav", "type": "file"}]
        assert await client.folder_playlist("band") == ["a.wav", "b.wav"]
