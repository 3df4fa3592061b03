"""Tautulli session client (Plex activity as seen by Tautulli)."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from watchahead.errors import BackendAuthError, BackendError, MalformedRecord
from watchahead.models.session import PlaybackSession
from watchahead.services.media_server import MediaServerClient, make_session, tvdb_from_guids

if TYPE_CHECKING:
    import httpx

    from watchahead.models.config import MediaServerConfig
    from watchahead.services.http_client import HttpClientService

logger = logging.getLogger(__name__)


class _TautulliSession(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    media_type: str = ""
    grandparent_title: Optional[str] = None
    grandparent_guids: list[str] = Field(default_factory=list)
    media_index: Optional[int] = None
    parent_media_index: Optional[int] = None
    user_id: str = ""
    username: str = ""
    library_name: Optional[str] = None

    @field_validator("media_index", "parent_media_index", mode="before")
    @classmethod
    def _int_or_none(cls, v: Union[str, int, None]) -> Optional[int]:
        # Tautulli reports these as strings, empty when unknown
        if v is None or v == "":
            return None
        return int(v)


class TautulliClient(MediaServerClient):
    backend_name = "Tautulli"

    def __init__(self, client: "httpx.AsyncClient", api_key: str):
        super().__init__(client)
        self._api_key = api_key

    @classmethod
    def from_config(cls, config: "MediaServerConfig", http: "HttpClientService") -> "TautulliClient":
        return cls(http.create_client(config.url), config.api_key)

    async def _command(self, cmd: str) -> Any:
        body = await self._get("api/v2", params={"apikey": self._api_key, "cmd": cmd})
        response = body.get("response") if isinstance(body, dict) else None
        if not isinstance(response, dict):
            raise MalformedRecord(f"Tautulli: {cmd} response missing `response` field")
        if response.get("result") == "error":
            message = response.get("message") or "unknown error"
            if "apikey" in message.lower():
                raise BackendAuthError(self.backend_name, message)
            raise BackendError(self.backend_name, f"{cmd}: {message}")
        return response.get("data")

    async def probe(self) -> None:
        await self._command("get_activity")

    async def _fetch_sessions(self) -> list[Any]:
        data = await self._command("get_activity")
        if not isinstance(data, dict):
            raise MalformedRecord("Tautulli: get_activity response missing `data` field")
        sessions = data.get("sessions")
        if sessions is None:
            return []
        if not isinstance(sessions, list):
            raise MalformedRecord("Tautulli: `sessions` field is not a list")
        return sessions

    async def _extract(self, record: Any) -> Optional[PlaybackSession]:
        session = _TautulliSession.model_validate(record)
        if session.media_type != "episode":
            return None
        return make_session(
            user_id=session.user_id,
            user_name=session.username,
            library=session.library_name,
            tvdb_id=tvdb_from_guids(session.grandparent_guids),
            title=session.grandparent_title,
            season=session.parent_media_index,
            episode=session.media_index,
        )
