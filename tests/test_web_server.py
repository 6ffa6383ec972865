from __future__ import annotations

import asyncio
import json
import threading
from typing import Awaitable, Callable
from unittest.mock import patch

from aiohttp import test_utils

from conftest import GTFS_TABLES, make_config, write_gtfs_zip
from flashbacks.api.context import BackendContext, build_context
from flashbacks.api.web_server import WebServer
from flashbacks.clock import now_ms
from flashbacks.config import TransitConfig, WeatherConfig

Scenario = Callable[[test_utils.TestClient], Awaitable[None]]


def _run(context: BackendContext, scenario: Scenario) -> None:
    async def runner() -> None:
        server = WebServer(context)
        async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
            await scenario(client)

    asyncio.run(runner())


def _album_context(photo_root, tmp_path) -> BackendContext:
    return build_context(make_config(photo_root, tmp_path / "cache"))


def test_state_reports_active_set(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        response = await client.get("/state")
        assert response.status == 200
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        body = await response.json()
        assert body["streamCount"] == 6
        assert len(body["windowRel"]) == 6
        assert body["rotateFlags"] == [False] * 6
        assert body["albumExposeSec"] == 120
        assert body["refreshInMs"] > 0
        assert body["picked"]["year"] in {"2019", "2020", "2021"}
        assert body["filesCount"] >= 3

        again = await (await client.get("/state")).json()
        assert again["picked"] == body["picked"]
        assert again["expiresAt"] == body["expiresAt"]

    _run(_album_context(photo_root, tmp_path), scenario)


def test_image_serves_window_slot(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        response = await client.get("/image/0")
        assert response.status == 200
        assert response.content_type == "image/jpeg"
        assert response.headers["Cache-Control"] == "no-store"
        assert int(response.headers["X-Flashbacks-Refresh-In-Ms"]) > 0
        assert response.headers["X-Flashbacks-Refresh-At"].endswith("Z")
        body = await response.read()
        assert body[:2] == b"\xff\xd8"

    _run(_album_context(photo_root, tmp_path), scenario)


def test_image_rejects_bad_stream_ids(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        for path in ("/image/6", "/image/-1", "/image/abc"):
            response = await client.get(path)
            assert response.status == 400
            assert await response.text() == "Bad stream id"

    _run(_album_context(photo_root, tmp_path), scenario)


def test_collages_are_jpeg(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        overview = await client.get("/collage/overview")
        sequence = await client.get("/collage/sequence")

        assert overview.status == 200
        assert overview.content_type == "image/jpeg"
        assert (await overview.read())[:2] == b"\xff\xd8"
        assert sequence.status == 200
        assert "X-Flashbacks-Refresh-In-Ms" in sequence.headers

    _run(_album_context(photo_root, tmp_path), scenario)


def test_next_forces_new_set(photo_root, tmp_path) -> None:
    context = _album_context(photo_root, tmp_path)

    async def scenario(client: test_utils.TestClient) -> None:
        first = await (await client.get("/state")).json()
        response = await client.get("/next")
        assert response.status == 200
        body = await response.json()
        assert body["generatedAt"] >= first["generatedAt"]
        assert len(body["windowRel"]) == 6
        assert set(body["picked"]) == {"year", "event", "startIndex", "pickedAt"}

    _run(context, scenario)


def test_exclude_requires_active_set(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        response = await client.get("/exclude")
        assert response.status == 400
        assert await response.json() == {"error": "no_active_set"}

    _run(_album_context(photo_root, tmp_path), scenario)


def test_excluded_album_never_returns(photo_root, tmp_path) -> None:
    context = _album_context(photo_root, tmp_path)

    async def scenario(client: test_utils.TestClient) -> None:
        state = await (await client.get("/state")).json()
        excluded_key = f"{state['picked']['year']}/{state['picked']['event']}"

        response = await client.get("/exclude")
        assert response.status == 200
        body = await response.json()
        assert body["excluded"] == [excluded_key]
        assert f"{body['picked']['year']}/{body['picked']['event']}" != excluded_key

        for _ in range(100):
            picked = (await (await client.get("/next")).json())["picked"]
            assert f"{picked['year']}/{picked['event']}" != excluded_key

    _run(context, scenario)
    stored = json.loads((tmp_path / "cache" / "exclude.json").read_text(encoding="utf-8"))
    assert len(stored) == 1


def test_empty_root_reports_failures(tmp_path) -> None:
    root = tmp_path / "media"
    root.mkdir()
    context = build_context(make_config(root, tmp_path / "cache"))

    async def scenario(client: test_utils.TestClient) -> None:
        state = await client.get("/state")
        assert state.status == 500
        assert await state.json() == {"error": "state_failed"}

        image = await client.get("/image/0")
        assert image.status == 500
        assert await image.text() == "Internal error"

        collage = await client.get("/collage/overview")
        assert collage.status == 500

        forced = await client.get("/next")
        assert forced.status == 500
        assert await forced.json() == {"error": "next_failed"}

    _run(context, scenario)


def test_help_lists_only_enabled_routes(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        body = await (await client.get("/help")).json()
        paths = [endpoint["path"] for endpoint in body["endpoints"]]
        assert "/state" in paths
        assert paths[-1] == "/help"
        assert not any(path.startswith("/vvt") for path in paths)
        assert "/weather/trends" not in paths

        missing = await client.get("/vvt/next")
        assert missing.status == 404

    _run(_album_context(photo_root, tmp_path), scenario)


def _transit_context(photo_root, tmp_path) -> BackendContext:
    cache_dir = tmp_path / "cache"
    write_gtfs_zip(cache_dir / "gtfs.zip", GTFS_TABLES)
    transit = TransitConfig(enabled=True, gtfs_url="https://example.test/gtfs.zip", stop_name="Central")
    return build_context(make_config(photo_root, cache_dir, transit=transit))


def test_vvt_next_resolves_stop(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        response = await client.get("/vvt/next", params={"stop": "central", "limit": "3"})
        assert response.status == 200
        body = await response.json()
        assert body["stopName"] == "Central"
        assert body["stopId"] == "S2"
        assert isinstance(body["items"], list)
        assert len(body["items"]) <= 3

        unknown = await (await client.get("/vvt/next", params={"stop": "Nowhere"})).json()
        assert unknown["stopId"] is None
        assert unknown["items"] == []

        bad = await client.get("/vvt/next", params={"limit": "many"})
        assert bad.status == 400

    with patch("requests.get") as mock_get:
        _run(_transit_context(photo_root, tmp_path), scenario)

    mock_get.assert_not_called()


def test_vvt_stops_and_debug(photo_root, tmp_path) -> None:
    async def scenario(client: test_utils.TestClient) -> None:
        stops = await (await client.get("/vvt/stops", params={"q": "central"})).json()
        assert [item["stop_id"] for item in stops["items"]] == ["S1", "S2", "S3"]

        debug = await (await client.get("/vvt/debug")).json()
        assert debug["stopId"] == "S2"
        assert debug["gtfsUrl"] == "https://example.test/gtfs.zip"

        body = await (await client.get("/help")).json()
        assert "/vvt/next" in [endpoint["path"] for endpoint in body["endpoints"]]

    with patch("requests.get"):
        _run(_transit_context(photo_root, tmp_path), scenario)


def test_vvt_download_failure(photo_root, tmp_path) -> None:
    transit = TransitConfig(enabled=True, gtfs_url="https://example.test/gtfs.zip", stop_name="Central")
    context = build_context(make_config(photo_root, tmp_path / "cache", transit=transit))

    async def scenario(client: test_utils.TestClient) -> None:
        response = await client.get("/vvt/next")
        assert response.status == 500
        assert await response.json() == {"error": "vvt_failed"}

    with patch("requests.get") as mock_get:
        mock_get.return_value.status_code = 503
        _run(context, scenario)


def test_weather_trends(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    sample = {"ts": now_ms(), "temp": 12.5, "feels": 11.0}
    (cache_dir / "weather-trends.json").write_text(json.dumps([sample]), encoding="utf-8")
    weather = WeatherConfig(enabled=True, interval_min=30, history_hours=24)
    context = build_context(make_config(photo_root, cache_dir, weather=weather))
    context.weather.load()

    async def scenario(client: test_utils.TestClient) -> None:
        body = await (await client.get("/weather/trends")).json()
        assert body["historyHours"] == 24
        assert body["intervalMin"] == 30
        assert body["samples"] == [sample]
        assert body["current"] == sample

    _run(context, scenario)


def test_exclude_persists_off_event_loop_thread(photo_root, tmp_path) -> None:
    context = _album_context(photo_root, tmp_path)
    store_add = context.exclusions.add
    add_threads: list[int] = []

    def recording_add(year: str, event: str) -> None:
        add_threads.append(threading.get_ident())
        store_add(year, event)

    async def scenario(client: test_utils.TestClient) -> None:
        await client.get("/state")
        response = await client.get("/exclude")
        assert response.status == 200
        assert add_threads
        assert threading.get_ident() not in add_threads

    with patch.object(context.exclusions, "add", side_effect=recording_add):
        _run(context, scenario)

    assert (tmp_path / "cache" / "exclude.json").exists()
