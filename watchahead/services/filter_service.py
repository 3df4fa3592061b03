"""Filter service — session allow-lists and series title matching."""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable, Optional, Sequence

from rapidfuzz import fuzz

from watchahead.models.session import PlaybackSession

logger = logging.getLogger(__name__)


class SessionFilter:
    """Optional user and library allow-lists.

    An empty list accepts everything. Users match on either ID or name.
    A session whose library is unknown is rejected once a library
    allow-list is configured.
    """

    def __init__(self, users: Iterable[str] = (), libraries: Iterable[str] = ()):
        self.users = {u for u in users if u}
        self.libraries = {lib for lib in libraries if lib}

    def accepts_user(self, session: PlaybackSession) -> bool:
        if not self.users:
            return True
        return session.user_id in self.users or session.user_name in self.users

    def accepts_library(self, session: PlaybackSession) -> bool:
        if not self.libraries:
            return True
        return session.library_id is not None and session.library_id in self.libraries

    def accepts(self, session: PlaybackSession) -> bool:
        if not self.accepts_user(session):
            logger.debug(f"Ignoring session from unwanted user: {session.describe()}")
            return False
        if not self.accepts_library(session):
            logger.debug(f"Ignoring session from unwanted library {session.library_id!r}: {session.describe()}")
            return False
        return True


def normalize_title(name: str) -> str:
    """Normalize a series title for comparison.

    Lowercases, strips accents, drops parenthesized tags such as the year or
    country ('Hijack (2023) (GB)' -> 'hijack') and collapses punctuation.
    """
    n = name.strip().lower()
    n = "".join(c for c in unicodedata.normalize("NFD", n) if unicodedata.category(c) != "Mn")
    n = re.sub(r"\s*[\(\[][^)\]]*[\)\]]\s*", " ", n)
    n = n.replace("&", " and ")
    n = re.sub(r"[^\w\s]", " ", n)
    n = re.sub(r"\s+", " ", n)
    return n.strip()


def match_title(target: str, candidates: Sequence[str], threshold: int = 90) -> Optional[int]:
    """Return the index of the candidate matching *target*, or None.

    An exact normalized match wins over a fuzzy one. Among several matches of
    the same kind the earliest candidate is returned, so the result only
    depends on the order the library listed its series in.
    """
    target_normalized = normalize_title(target)
    if not target_normalized:
        return None

    normalized = [normalize_title(c) for c in candidates]
    for i, n in enumerate(normalized):
        if n == target_normalized:
            return i

    for i, n in enumerate(normalized):
        if not n:
            continue
        score = fuzz.token_sort_ratio(target_normalized, n)
        if score >= threshold:
            logger.debug(f"Fuzzy title match {target!r} ~ {candidates[i]!r} (score {score:.0f})")
            return i
    return None
