"""Media server abstraction — list what is being played right now."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from watchahead.errors import BackendError, MalformedRecord
from watchahead.models.session import PlaybackSession, SeriesIdentity
from watchahead.services.http_client import request_json

if TYPE_CHECKING:
    from watchahead.models.config import MediaServerConfig
    from watchahead.services.filter_service import SessionFilter
    from watchahead.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

_GUID_RE = re.compile(r"^(?P<provider>[a-z]+)://(?P<id>[^?/]+)")


def tvdb_from_guids(guids: Iterable[str]) -> Optional[int]:
    """Extract the TVDB id from Plex-style ``tvdb://12345`` guids."""
    for guid in guids:
        m = _GUID_RE.match(guid or "")
        if m and m.group("provider") == "tvdb":
            try:
                return int(m.group("id"))
            except ValueError:
                continue
    return None


def make_session(
    *,
    user_id: Any,
    user_name: Optional[str],
    library: Optional[str],
    tvdb_id: Optional[int],
    title: Optional[str],
    season: Optional[int],
    episode: Optional[int],
) -> PlaybackSession:
    """Build a PlaybackSession; raises MalformedRecord when the series can't be identified."""
    try:
        identity = SeriesIdentity(external_id=tvdb_id, name=title or None)
    except ValidationError as e:
        raise MalformedRecord("session has neither a TVDB id nor a series title") from e
    return PlaybackSession(
        user_id=str(user_id or ""),
        user_name=user_name or "",
        library_id=library,
        series=identity,
        season_number=season,
        episode_number=episode,
        is_pilot=season == 1 and episode == 1,
    )


class MediaServerClient(ABC):
    """Common behaviour of every playback-server variant.

    Subclasses only know how to fetch their native session records and how to
    turn one record into a PlaybackSession. Skipping bad records and applying
    the allow-lists happens here, once.
    """

    backend_name = "Media server"

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        return await request_json(self.client, "GET", path, self.backend_name, params=params)

    @abstractmethod
    async def probe(self) -> None:
        """One cheap authenticated request; raises BackendError on failure."""

    @abstractmethod
    async def _fetch_sessions(self) -> list[Any]:
        """Return the raw session records of the server."""

    @abstractmethod
    async def _extract(self, record: Any) -> Optional[PlaybackSession]:
        """Convert one record; None when the record is not an episode playback."""

    async def list_active_sessions(self, session_filter: Optional["SessionFilter"] = None) -> list[PlaybackSession]:
        records = await self._fetch_sessions()
        sessions: list[PlaybackSession] = []
        for record in records:
            try:
                session = await self._extract(record)
            except (MalformedRecord, ValidationError) as e:
                logger.warning(f"{self.backend_name}: skipping malformed session record: {e}")
                continue
            except BackendError as e:
                logger.warning(f"{self.backend_name}: skipping session, lookup failed: {e}")
                continue
            except Exception as e:
                logger.warning(f"{self.backend_name}: skipping session record, unexpected error: {e!r}")
                continue
            if session is None:
                logger.debug(f"{self.backend_name}: ignoring non-episode playback")
                continue
            if session_filter is not None and not session_filter.accepts(session):
                continue
            sessions.append(session)
        logger.debug(f"{self.backend_name}: {len(sessions)} episode session(s) out of {len(records)} record(s)")
        return sessions


def create_media_server_client(config: "MediaServerConfig", http: "HttpClientService") -> MediaServerClient:
    """Select the variant matching the configured server type."""
    from watchahead.models.config import MediaServerType
    from watchahead.services.embyfin_client import EmbyfinClient
    from watchahead.services.plex_client import PlexClient
    from watchahead.services.tautulli_client import TautulliClient

    if config.type in (MediaServerType.JELLYFIN, MediaServerType.EMBY):
        return EmbyfinClient.from_config(config, http)
    if config.type == MediaServerType.PLEX:
        return PlexClient.from_config(config, http)
    if config.type == MediaServerType.TAUTULLI:
        return TautulliClient.from_config(config, http)
    raise ValueError(f"unsupported media server type: {config.type}")
