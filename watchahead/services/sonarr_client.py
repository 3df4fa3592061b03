"""Sonarr client — series lookup, episode state and search commands (API v3)."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from watchahead.errors import AcquisitionRequestFailed, BackendError, MalformedRecord, SeriesNotFound
from watchahead.models.library import EpisodeState, SeasonState, SeriesState
from watchahead.models.session import SeriesIdentity
from watchahead.services.filter_service import match_title
from watchahead.services.http_client import request_json
from watchahead.services.library import LibraryClient

if TYPE_CHECKING:
    import httpx

    from watchahead.models.config import SonarrConfig
    from watchahead.services.http_client import HttpClientService

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class _SeasonStatistics(_CamelModel):
    episode_file_count: int
    episode_count: int = 0
    total_episode_count: int


class _Season(_CamelModel):
    season_number: int
    monitored: bool = False
    statistics: Optional[_SeasonStatistics] = None


class _Series(_CamelModel):
    id: int
    title: Optional[str] = None
    tvdb_id: Optional[int] = None
    monitored: bool = False
    monitor_new_items: Optional[str] = None
    seasons: list[_Season] = Field(default_factory=list)
    tags: list[int] = Field(default_factory=list)


class _Episode(_CamelModel):
    id: int
    season_number: int
    episode_number: int
    has_file: bool = False
    monitored: bool = False


class _Tag(_CamelModel):
    id: int
    label: Optional[str] = None


M = TypeVar("M", bound=BaseModel)


def _parse_listing(data: Any, model: type[M], what: str) -> list[M]:
    """Validate a bulk listing entry by entry, dropping the malformed ones."""
    if not isinstance(data, list):
        raise MalformedRecord(f"Sonarr: {what} listing is not a list")
    items: list[M] = []
    for entry in data:
        try:
            items.append(model.model_validate(entry))
        except ValidationError as e:
            logger.debug(f"Sonarr: ignoring malformed {what} entry: {e.error_count()} error(s), {entry!r:.200}")
    return items


class SonarrClient(LibraryClient):
    backend_name = "Sonarr"

    def __init__(self, client: "httpx.AsyncClient", name_match_threshold: int = 90):
        self.client = client
        self.name_match_threshold = name_match_threshold
        self._tag_labels: dict[int, str] = {}

    @classmethod
    def from_config(cls, config: "SonarrConfig", http: "HttpClientService", name_match_threshold: int = 90) -> "SonarrClient":
        return cls(http.create_client(config.url, {"X-Api-Key": config.api_key}), name_match_threshold)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        return await request_json(self.client, method, f"api/v3/{path}", self.backend_name, **kwargs)

    async def probe(self) -> None:
        await self._request("GET", "system/status")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    async def _labels_for(self, tag_ids: list[int]) -> set[str]:
        if any(t not in self._tag_labels for t in tag_ids):
            tags = _parse_listing(await self._request("GET", "tag"), _Tag, "tag")
            self._tag_labels = {t.id: t.label for t in tags if t.label}
        return {self._tag_labels[t] for t in tag_ids if t in self._tag_labels}

    async def _to_state(self, series: _Series) -> SeriesState:
        seasons = []
        for s in series.seasons:
            stats = s.statistics
            seasons.append(SeasonState(
                season_number=s.season_number,
                monitored=s.monitored,
                episode_count=stats.total_episode_count if stats else 0,
                downloaded_episode_count=stats.episode_file_count if stats else 0,
                statistics_available=stats is not None,
            ))
        return SeriesState(
            series_id=series.id,
            title=series.title or "",
            tvdb_id=series.tvdb_id,
            monitored=series.monitored,
            future_seasons_monitored=series.monitored and (series.monitor_new_items or "").lower() == "all",
            tags=await self._labels_for(series.tags) if series.tags else set(),
            seasons=seasons,
        )

    async def find_series(self, identity: SeriesIdentity) -> SeriesState:
        if identity.external_id is not None:
            data = await self._request("GET", "series", params={"tvdbId": identity.external_id})
            # Older Sonarr versions ignore the tvdbId filter and list everything
            for series in _parse_listing(data, _Series, "series"):
                if series.tvdb_id == identity.external_id:
                    return await self._to_state(series)
            raise SeriesNotFound(identity)

        listing = _parse_listing(await self._request("GET", "series"), _Series, "series")
        index = match_title(identity.name or "", [s.title or "" for s in listing], self.name_match_threshold)
        if index is None:
            raise SeriesNotFound(identity)
        return await self._to_state(listing[index])

    async def get_episodes(self, series_id: int) -> list[EpisodeState]:
        data = await self._request("GET", "episode", params={"seriesId": series_id})
        return [
            EpisodeState(
                episode_id=e.id,
                season_number=e.season_number,
                episode_number=e.episode_number,
                has_file=e.has_file,
                monitored=e.monitored,
            )
            for e in _parse_listing(data, _Episode, "episode")
        ]

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    async def _command(self, cmd: dict) -> Any:
        logger.debug(f"Sonarr command {cmd['name']}: {cmd}")
        return await self._request("POST", "command", json=cmd)

    async def _monitor_episodes(self, episode_ids: list[int]) -> None:
        await self._request("PUT", "episode/monitor", json={"episodeIds": episode_ids, "monitored": True})

    async def _series_resource(self, series_id: int) -> dict:
        resource = await self._request("GET", f"series/{series_id}")
        if not isinstance(resource, dict) or not isinstance(resource.get("seasons"), list):
            raise MalformedRecord(f"Sonarr: series {series_id} resource is malformed")
        return resource

    async def request_episodes(self, series_id: int, episodes: Sequence[EpisodeState]) -> None:
        episode_ids = [e.episode_id for e in episodes]
        if not episode_ids:
            return
        logger.info(f"Searching episodes {', '.join(str(e.ref) for e in episodes)} of series {series_id}")
        try:
            await self._monitor_episodes(episode_ids)
            await self._command({"name": "EpisodeSearch", "episodeIds": episode_ids})
        except (BackendError, MalformedRecord) as e:
            raise AcquisitionRequestFailed(series_id, str(e)) from e

    async def request_season(self, series_id: int, season_number: int) -> None:
        logger.info(f"Searching season {season_number} of series {series_id}")
        try:
            resource = await self._series_resource(series_id)
            season = next((s for s in resource["seasons"] if isinstance(s, dict) and s.get("seasonNumber") == season_number), None)
            if season is None:
                raise AcquisitionRequestFailed(series_id, "season not known to Sonarr", season_number)

            if season.get("monitored"):
                # A monitored season may still contain unmonitored episodes
                episodes = await self.get_episodes(series_id)
                episode_ids = [e.episode_id for e in episodes if e.season_number == season_number]
                if episode_ids:
                    await self._monitor_episodes(episode_ids)

            if not season.get("monitored") or not resource.get("monitored"):
                season["monitored"] = True
                resource["monitored"] = True
                await self._request("PUT", f"series/{series_id}", json=resource)

            await self._command({"name": "SeasonSearch", "seriesId": series_id, "seasonNumber": season_number})
        except (BackendError, MalformedRecord) as e:
            raise AcquisitionRequestFailed(series_id, str(e), season_number) from e

    async def enable_future_seasons(self, series_id: int) -> None:
        logger.info(f"Monitoring future seasons of series {series_id}")
        try:
            resource = await self._series_resource(series_id)
            resource["monitored"] = True
            resource["monitorNewItems"] = "all"
            regular = [s for s in resource["seasons"] if isinstance(s, dict) and (s.get("seasonNumber") or 0) > 0]
            if regular:
                max(regular, key=lambda s: s["seasonNumber"])["monitored"] = True
            await self._request("PUT", f"series/{series_id}", json=resource)
        except (BackendError, MalformedRecord) as e:
            raise AcquisitionRequestFailed(series_id, str(e)) from e
