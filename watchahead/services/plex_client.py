"""Plex session client."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from watchahead.errors import BackendError, MalformedRecord
from watchahead.models.session import PlaybackSession
from watchahead.services.media_server import MediaServerClient, make_session, tvdb_from_guids

if TYPE_CHECKING:
    import httpx

    from watchahead.models.config import MediaServerConfig
    from watchahead.services.http_client import HttpClientService

logger = logging.getLogger(__name__)


class _PlexUser(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str = ""
    title: str = ""


class _PlexSession(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str = ""
    grandparent_title: Optional[str] = None
    grandparent_key: Optional[str] = None
    index: Optional[int] = None
    parent_index: Optional[int] = None
    library_section_title: Optional[str] = None
    user: _PlexUser = Field(default_factory=_PlexUser, alias="User")


def _metadata(data: Any) -> list:
    """``MediaContainer.Metadata`` of a Plex response; raises MalformedRecord on an unexpected shape."""
    if data is None:
        return []
    if not isinstance(data, dict):
        raise MalformedRecord("Plex: response is not an object")
    container = data.get("MediaContainer")
    if container is None:
        return []
    if not isinstance(container, dict):
        raise MalformedRecord("Plex: `MediaContainer` is not an object")
    metadata = container.get("Metadata") or []
    if not isinstance(metadata, list):
        raise MalformedRecord("Plex: `Metadata` is not a list")
    return metadata


class PlexClient(MediaServerClient):
    backend_name = "Plex"

    def __init__(self, client: "httpx.AsyncClient"):
        super().__init__(client)
        self._tvdb_cache: dict[str, Optional[int]] = {}

    @classmethod
    def from_config(cls, config: "MediaServerConfig", http: "HttpClientService") -> "PlexClient":
        return cls(http.create_client(config.url, {"X-Plex-Token": config.api_key}))

    async def probe(self) -> None:
        await self._get("identity")

    async def _fetch_sessions(self) -> list[Any]:
        self._tvdb_cache = {}
        data = await self._get("status/sessions")
        if data is not None and not isinstance(data, dict):
            raise MalformedRecord("Plex: status/sessions did not return an object")
        return _metadata(data)

    async def _tvdb(self, key: str) -> Optional[int]:
        """TVDB id of the series behind *key*, None when Plex has none."""
        if key in self._tvdb_cache:
            return self._tvdb_cache[key]
        try:
            metadata = _metadata(await self._get(key.lstrip("/")))
        except (BackendError, MalformedRecord) as e:
            logger.debug(f"Plex: cannot read series metadata {key}: {e}")
            return None
        guids = []
        raw = metadata[0].get("Guid") if metadata and isinstance(metadata[0], dict) else None
        if isinstance(raw, list):
            guids = [str(g.get("id") or "") for g in raw if isinstance(g, dict)]
        tvdb_id = tvdb_from_guids(guids)
        self._tvdb_cache[key] = tvdb_id
        return tvdb_id

    async def _extract(self, record: Any) -> Optional[PlaybackSession]:
        session = _PlexSession.model_validate(record)
        if session.type != "episode":
            return None
        tvdb_id = await self._tvdb(session.grandparent_key) if session.grandparent_key else None
        return make_session(
            user_id=session.user.id,
            user_name=session.user.title,
            library=session.library_section_title,
            tvdb_id=tvdb_id,
            title=session.grandparent_title,
            season=session.parent_index,
            episode=session.index,
        )
