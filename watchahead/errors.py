"""Error taxonomy shared by the backend clients, the engine and the CLI."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from watchahead.models.session import SeriesIdentity
    from watchahead.models.probe import ConnectionProbeResult


class WatchaheadError(Exception):
    """Base class for every error raised by watchahead itself."""


class ConfigError(WatchaheadError):
    """The configuration file is missing, unreadable or invalid."""


class BackendError(WatchaheadError):
    """A backend (media server or Sonarr) answered with an error."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class BackendUnreachable(BackendError):
    """Connection refused, DNS failure or timeout."""


class BackendAuthError(BackendError):
    """The backend rejected the configured credential (HTTP 401/403)."""


class MalformedRecord(WatchaheadError):
    """A single record from a backend listing could not be interpreted."""


class SeriesNotFound(WatchaheadError):
    def __init__(self, identity: "SeriesIdentity"):
        super().__init__(f"series not found in library: {identity}")
        self.identity = identity


class AcquisitionRequestFailed(WatchaheadError):
    """The library service rejected a monitor/search request."""

    def __init__(self, series_id: int, message: str, season_number: Optional[int] = None):
        where = f"series {series_id}" if season_number is None else f"series {series_id} season {season_number}"
        super().__init__(f"{where}: {message}")
        self.series_id = series_id
        self.season_number = season_number


class StartupProbeFailed(WatchaheadError):
    """A backend stayed unreachable after every connection retry."""

    def __init__(self, result: "ConnectionProbeResult"):
        super().__init__(
            f"{result.backend} unreachable after {result.attempt_count} attempt(s): {result.error}"
        )
        self.result = result
