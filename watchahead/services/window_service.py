"""Episode window resolution — which upcoming episodes a session needs."""
from __future__ import annotations

import logging
from typing import Optional

from watchahead.models.library import EpisodeRef, EpisodeWindow, SeriesState
from watchahead.models.session import PlaybackSession

logger = logging.getLogger(__name__)


def is_pilot(session: PlaybackSession) -> bool:
    return session.is_pilot or (session.season_number == 1 and session.episode_number == 1)


def resolve_window(session: PlaybackSession, series: SeriesState, prefetch_num: int) -> Optional[EpisodeWindow]:
    """Compute the lookahead window for *session*.

    Returns None when there is nothing to resolve: no position, a special
    (season 0) or a season the library does not know.

    A pilot always resolves to the whole of season 1. Otherwise the window
    holds the next ``prefetch_num`` episodes, continuing into later seasons
    when the current one runs out. A season without statistics cannot be
    enumerated, so it is targeted as a whole and the walk ends there. Running
    past the last known season sets ``needs_future_seasons``.
    """
    if not session.has_position:
        return None
    if session.season_number < 1:
        logger.debug(f"Ignoring special episode {session.describe()}")
        return None

    pilot = is_pilot(session)
    current = series.season(1 if pilot else session.season_number)
    if current is None:
        logger.info(f"Season {1 if pilot else session.season_number} of '{series.title}' not known to the library")
        return None

    window = EpisodeWindow(last_known_season=series.last_known_season)

    if pilot:
        window.pilot = True
        window.seasons = [1]
        if current.statistics_available:
            window.episodes = [EpisodeRef(1, e) for e in range(1, current.episode_count + 1)]
        else:
            window.unknown_seasons = [1]
        return window

    remaining = prefetch_num
    for season in series.regular_seasons:
        if remaining <= 0:
            break
        if season.season_number < session.season_number:
            continue
        if not season.statistics_available:
            window.seasons.append(season.season_number)
            window.unknown_seasons.append(season.season_number)
            return window

        first = session.episode_number + 1 if season.season_number == session.season_number else 1
        last = min(season.episode_count, first + remaining - 1)
        if last >= first:
            window.episodes.extend(EpisodeRef(season.season_number, e) for e in range(first, last + 1))
            window.seasons.append(season.season_number)
            remaining -= last - first + 1

    if remaining > 0:
        window.needs_future_seasons = True
    return window
