"""Tests for the Sonarr library client against a faked Sonarr API."""

import asyncio
import json

import httpx
import pytest

from watchahead.errors import AcquisitionRequestFailed, BackendAuthError, SeriesNotFound
from watchahead.models.config import SonarrConfig
from watchahead.models.session import SeriesIdentity
from watchahead.services.http_client import HttpClientService
from watchahead.services.sonarr_client import SonarrClient

API_KEY = "0123456789abcdef"


def _season(number, monitored=True, files=None, total=None):
    season = {"seasonNumber": number, "monitored": monitored}
    if files is not None:
        season["statistics"] = {
            "episodeFileCount": files,
            "episodeCount": total,
            "totalEpisodeCount": total,
            "sizeOnDisk": 0,
        }
    return season


def _series(series_id, title, tvdb_id, seasons, monitored=True, monitor_new_items="none", tags=()):
    return {
        "id": series_id,
        "title": title,
        "tvdbId": tvdb_id,
        "monitored": monitored,
        "monitorNewItems": monitor_new_items,
        "seasons": seasons,
        "tags": list(tags),
        "qualityProfileId": 1,
        "path": f"/tv/{title}",
    }


class FakeSonarr:
    """Minimal in-memory Sonarr v3 API recording every request."""

    def __init__(self, series=(), episodes=(), tags=(), fail_commands=False, status=200):
        self.series = {s["id"]: s for s in series}
        self.episodes = list(episodes)
        self.tags = list(tags)
        self.fail_commands = fail_commands
        self.status = status
        self.requests = []

    def handler(self, request):
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, dict(request.url.params), body, request.headers))
        if self.status != 200:
            return httpx.Response(self.status)

        path = request.url.path.removeprefix("/api/v3/")
        if request.method == "GET" and path == "system/status":
            return httpx.Response(200, json={"version": "4.0.0"})
        if request.method == "GET" and path == "series":
            listing = list(self.series.values())
            tvdb_id = request.url.params.get("tvdbId")
            if tvdb_id is not None:
                listing = [s for s in listing if str(s.get("tvdbId")) == tvdb_id]
            return httpx.Response(200, json=listing)
        if path.startswith("series/"):
            series_id = int(path.split("/")[1])
            if request.method == "PUT":
                self.series[series_id] = body
                return httpx.Response(202, json=body)
            return httpx.Response(200, json=self.series[series_id])
        if request.method == "GET" and path == "episode":
            series_id = int(request.url.params["seriesId"])
            return httpx.Response(200, json=[e for e in self.episodes if e.get("seriesId") == series_id])
        if request.method == "PUT" and path == "episode/monitor":
            return httpx.Response(202, json=[])
        if request.method == "POST" and path == "command":
            if self.fail_commands:
                return httpx.Response(500, json={"message": "boom"})
            return httpx.Response(201, json={"id": 1, "name": body["name"], "status": "queued"})
        if request.method == "GET" and path == "tag":
            return httpx.Response(200, json=self.tags)
        return httpx.Response(404)

    def calls(self, method=None):
        return [(m, p, b) for m, p, _, b, _ in self.requests if method is None or m == method]


def _run(fake, action, threshold=90):
    async def scenario():
        http = HttpClientService(transport=httpx.MockTransport(fake.handler))
        client = SonarrClient.from_config(SonarrConfig(url="http://sonarr:8989/", api_key=API_KEY), http, threshold)
        try:
            return await action(client)
        finally:
            await http.close()

    return asyncio.run(scenario())


# -------------------------------------------------------------------
# Lookup
# -------------------------------------------------------------------

class TestFindSeries:
    def test_by_tvdb_id(self):
        fake = FakeSonarr(
            series=[
                _series(1, "Andor", 393189, [_season(0, False, 0, 2), _season(1, True, 12, 12)], tags=[3]),
                _series(2, "Severance", 371980, [_season(1, True, 9, 9)]),
            ],
            tags=[{"id": 3, "label": "no-prefetch"}, {"id": 4, "label": "anime"}],
        )
        state = _run(fake, lambda c: c.find_series(SeriesIdentity(external_id=393189, name="Andor")))

        assert state.series_id == 1
        assert state.tags == {"no-prefetch"}
        assert state.season(1).fully_downloaded is True
        assert state.last_known_season == 1
        assert fake.requests[0][2] == {"tvdbId": "393189"}

    def test_tvdb_filter_ignored_by_server(self):
        """Older servers return the whole library; the client filters itself."""
        fake = FakeSonarr(series=[
            _series(1, "Andor", 393189, [_season(1)]),
            _series(2, "Severance", 371980, [_season(1)]),
        ])
        original = fake.handler

        def unfiltered(request):
            if request.url.path == "/api/v3/series":
                return httpx.Response(200, json=list(fake.series.values()))
            return original(request)

        fake.handler = unfiltered
        state = _run(fake, lambda c: c.find_series(SeriesIdentity(external_id=371980)))
        assert state.series_id == 2

    def test_unknown_tvdb_id(self):
        fake = FakeSonarr(series=[_series(1, "Andor", 393189, [_season(1)])])
        with pytest.raises(SeriesNotFound):
            _run(fake, lambda c: c.find_series(SeriesIdentity(external_id=1)))

    def test_by_name_skips_malformed_entries(self):
        fake = FakeSonarr()
        fake.series = {
            0: {"title": "Hijack (2023)", "seasons": []},  # no id
            5: _series(5, "Hijack (2023)", None, [_season(1, True, 3, 7)]),
            6: _series(6, "Hijack", 999, [_season(1)]),
        }
        state = _run(fake, lambda c: c.find_series(SeriesIdentity(name="Hijack")))
        assert state.series_id == 5
        assert state.season(1).fully_downloaded is False

    def test_by_name_fuzzy(self):
        fake = FakeSonarr(series=[_series(8, "Marvel's Daredevil", 281662, [_season(1)])])
        state = _run(fake, lambda c: c.find_series(SeriesIdentity(name="Marvels Daredevil")))
        assert state.series_id == 8

    def test_by_name_not_found(self):
        fake = FakeSonarr(series=[_series(8, "Daredevil", 281662, [_season(1)])])
        with pytest.raises(SeriesNotFound):
            _run(fake, lambda c: c.find_series(SeriesIdentity(name="The Expanse")))

    def test_missing_statistics_and_future_seasons(self):
        fake = FakeSonarr(series=[
            _series(1, "Andor", 393189, [_season(1, True, 12, 12), _season(2, True)], monitor_new_items="all"),
        ])
        state = _run(fake, lambda c: c.find_series(SeriesIdentity(external_id=393189)))
        assert state.season(2).statistics_available is False
        assert state.season(2).fully_downloaded is None
        assert state.future_seasons_monitored is True


class TestEpisodes:
    def test_get_episodes_skips_malformed(self):
        fake = FakeSonarr(episodes=[
            {"id": 11, "seriesId": 1, "seasonNumber": 1, "episodeNumber": 1, "hasFile": True, "monitored": True},
            {"id": 12, "seriesId": 1, "seasonNumber": 1, "hasFile": False},
            {"id": 13, "seriesId": 1, "seasonNumber": 1, "episodeNumber": 3, "hasFile": False, "monitored": False},
            {"id": 21, "seriesId": 2, "seasonNumber": 1, "episodeNumber": 1},
        ])
        episodes = _run(fake, lambda c: c.get_episodes(1))
        assert [(e.episode_id, e.has_file) for e in episodes] == [(11, True), (13, False)]
        assert fake.requests[0][2] == {"seriesId": "1"}


# -------------------------------------------------------------------
# Acquisition
# -------------------------------------------------------------------

class TestRequests:
    def test_request_unmonitored_season(self):
        fake = FakeSonarr(series=[_series(4, "Andor", 393189, [_season(1, True), _season(2, False)])])
        _run(fake, lambda c: c.request_season(4, 2))

        calls = fake.calls()
        assert [(m, p) for m, p, _ in calls] == [
            ("GET", "/api/v3/series/4"),
            ("PUT", "/api/v3/series/4"),
            ("POST", "/api/v3/command"),
        ]
        put_body = calls[1][2]
        assert put_body["seasons"][1] == {"seasonNumber": 2, "monitored": True}
        assert put_body["qualityProfileId"] == 1
        assert calls[2][2] == {"name": "SeasonSearch", "seriesId": 4, "seasonNumber": 2}

    def test_request_monitored_season_monitors_its_episodes(self):
        fake = FakeSonarr(
            series=[_series(4, "Andor", 393189, [_season(1, True)])],
            episodes=[
                {"id": 41, "seriesId": 4, "seasonNumber": 1, "episodeNumber": 1, "monitored": True},
                {"id": 42, "seriesId": 4, "seasonNumber": 1, "episodeNumber": 2, "monitored": False},
                {"id": 51, "seriesId": 4, "seasonNumber": 2, "episodeNumber": 1, "monitored": False},
            ],
        )
        _run(fake, lambda c: c.request_season(4, 1))

        assert fake.calls("PUT") == [("PUT", "/api/v3/episode/monitor", {"episodeIds": [41, 42], "monitored": True})]
        assert fake.calls("POST")[0][2]["name"] == "SeasonSearch"

    def test_request_episodes(self):
        from watchahead.models.library import EpisodeState

        fake = FakeSonarr()
        episodes = [
            EpisodeState(episode_id=106, season_number=1, episode_number=6),
            EpisodeState(episode_id=107, season_number=1, episode_number=7, monitored=True),
        ]
        _run(fake, lambda c: c.request_episodes(3, episodes))

        assert fake.calls() == [
            ("PUT", "/api/v3/episode/monitor", {"episodeIds": [106, 107], "monitored": True}),
            ("POST", "/api/v3/command", {"name": "EpisodeSearch", "episodeIds": [106, 107]}),
        ]

    def test_enable_future_seasons(self):
        fake = FakeSonarr(series=[
            _series(4, "Andor", 393189, [_season(0, False), _season(1, True), _season(2, False)], monitored=False),
        ])
        _run(fake, lambda c: c.enable_future_seasons(4))

        put_body = fake.calls("PUT")[0][2]
        assert put_body["monitored"] is True
        assert put_body["monitorNewItems"] == "all"
        assert [s["monitored"] for s in put_body["seasons"]] == [False, True, True]
        assert fake.calls("POST") == []

    def test_failed_command_raises(self):
        fake = FakeSonarr(series=[_series(4, "Andor", 393189, [_season(1, False)])], fail_commands=True)
        with pytest.raises(AcquisitionRequestFailed) as exc:
            _run(fake, lambda c: c.request_season(4, 1))
        assert exc.value.series_id == 4
        assert exc.value.season_number == 1

    def test_unknown_season_raises(self):
        fake = FakeSonarr(series=[_series(4, "Andor", 393189, [_season(1)])])
        with pytest.raises(AcquisitionRequestFailed):
            _run(fake, lambda c: c.request_season(4, 3))


class TestAuth:
    def test_api_key_sent_as_header_only(self):
        fake = FakeSonarr()
        _run(fake, lambda c: c.probe())
        method, path, params, _, headers = fake.requests[0]
        assert (method, path) == ("GET", "/api/v3/system/status")
        assert headers["X-Api-Key"] == API_KEY
        assert params == {}

    def test_rejected_key(self):
        fake = FakeSonarr(status=401)
        with pytest.raises(BackendAuthError):
            _run(fake, lambda c: c.probe())
