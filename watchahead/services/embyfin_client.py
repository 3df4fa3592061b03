"""Jellyfin / Emby session client.

Both servers share the same REST surface; only the authentication header
differs. Episode numbers come from the session's NowPlayingItem, the series
TVDB id from the series item's ProviderIds and the library from matching the
item path against the virtual folder locations.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from watchahead.errors import BackendError, MalformedRecord
from watchahead.models.config import MediaServerType
from watchahead.models.session import PlaybackSession
from watchahead.services.media_server import MediaServerClient, make_session

if TYPE_CHECKING:
    import httpx

    from watchahead.models.config import MediaServerConfig
    from watchahead.services.http_client import HttpClientService

logger = logging.getLogger(__name__)


class _PascalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")


class _NowPlayingItem(_PascalModel):
    type: Optional[str] = None
    series_id: Optional[str] = None
    series_name: Optional[str] = None
    season_id: Optional[str] = None
    index_number: Optional[int] = None
    parent_index_number: Optional[int] = None
    path: Optional[str] = None


class _SessionInfo(_PascalModel):
    user_id: str = ""
    user_name: str = ""
    now_playing_item: Optional[_NowPlayingItem] = None


class _Item(_PascalModel):
    name: str = ""
    index_number: Optional[int] = None
    provider_ids: dict[str, str] = Field(default_factory=dict)


class _VirtualFolder(_PascalModel):
    name: str
    locations: list[str] = Field(default_factory=list)


def _location_depth(path: str, location: str) -> int:
    """Length of *location* when *path* is that folder or lies inside it, else -1."""
    root = location.rstrip("/\\")
    if not root:
        return len(location) if location and path.startswith(location) else -1
    if path == root or path.startswith(root + "/") or path.startswith(root + "\\"):
        return len(root)
    return -1


class EmbyfinClient(MediaServerClient):
    def __init__(self, client: "httpx.AsyncClient", fork: MediaServerType = MediaServerType.JELLYFIN):
        super().__init__(client)
        self.fork = fork
        self.backend_name = fork.display_name
        self._folders: Optional[list[_VirtualFolder]] = None

    @classmethod
    def from_config(cls, config: "MediaServerConfig", http: "HttpClientService") -> "EmbyfinClient":
        if config.type == MediaServerType.EMBY:
            headers = {"X-Emby-Token": config.api_key}
        else:
            headers = {"Authorization": f'MediaBrowser Token="{config.api_key}"'}
        return cls(http.create_client(config.url, headers), config.type)

    async def probe(self) -> None:
        await self._get("System/Endpoint")

    async def _fetch_sessions(self) -> list[Any]:
        self._folders = None
        data = await self._get("Sessions")
        if not isinstance(data, list):
            raise MalformedRecord(f"{self.backend_name}: Sessions did not return a list")
        return data

    async def _item(self, user_id: str, item_id: str) -> _Item:
        return _Item.model_validate(await self._get(f"Users/{user_id}/Items/{item_id}"))

    async def _library_for(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        if self._folders is None:
            try:
                data = await self._get("Library/VirtualFolders")
                self._folders = [_VirtualFolder.model_validate(f) for f in (data or [])]
            except (BackendError, ValueError) as e:
                logger.warning(f"{self.backend_name}: cannot list libraries: {e}")
                self._folders = []
        # Nested libraries resolve to the deepest matching location
        best, best_depth = None, -1
        for folder in self._folders:
            for loc in folder.locations:
                depth = _location_depth(path, loc)
                if depth > best_depth:
                    best, best_depth = folder.name, depth
        return best

    async def _extract(self, record: Any) -> Optional[PlaybackSession]:
        info = _SessionInfo.model_validate(record)
        item = info.now_playing_item
        if item is None or (item.type or "").lower() != "episode":
            return None
        if not item.series_id:
            raise MalformedRecord(f"episode without SeriesId in session of user {info.user_name or info.user_id}")

        series = await self._item(info.user_id, item.series_id)
        tvdb = next((v for k, v in series.provider_ids.items() if k.lower() == "tvdb"), None)
        try:
            tvdb_id = int(tvdb) if tvdb else None
        except ValueError:
            logger.debug(f"{self.backend_name}: ignoring non-numeric TVDB id {tvdb!r}")
            tvdb_id = None

        season = item.parent_index_number
        if season is None and item.season_id:
            season = (await self._item(info.user_id, item.season_id)).index_number

        return make_session(
            user_id=info.user_id,
            user_name=info.user_name,
            library=await self._library_for(item.path),
            tvdb_id=tvdb_id,
            title=series.name or item.series_name,
            season=season,
            episode=item.index_number,
        )
