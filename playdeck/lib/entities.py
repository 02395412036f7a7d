# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playlists, tracks and output devices, plus the per-driver playlist cache.

Caching convention, used for both the playlist list and each playlist's
track list:
  None  — not fetched yet
  []    — fetched, nothing there

There is no expiry.  A driver clears its EntityCache when it (re)connects and
when the UI asks for a refresh.

Owners that treat listing as best-effort pass ``swallow_errors=True``: a failed
fetch then yields [] *without* being memoized, so the next call tries again.
"""

import asyncio
import logging

log = logging.getLogger(__name__)


async def _not_playable() -> bool:
    return False


class Track:
    def __init__(self, id, name: str, playlist=None, play=None, description: str = ""):
        self.id = id
        self.name = name or ""
        self.description = description or ""
        self.playlist = playlist
        self._play = play

    async def play(self) -> bool:
        """Start this track; False when the backend can't."""
        if self._play is None:
            return False
        return bool(await self._play(self))

    def __repr__(self):
        return f"Track(id={self.id!r}, name={self.name!r})"


class Playlist:
    def __init__(self, id, name: str, fetch_tracks=None, player=None,
                 play=None, description: str = "", swallow_errors: bool = False):
        self.id = id
        self.name = name or ""
        self.description = description or ""
        self.player = player
        self._fetch_tracks = fetch_tracks
        self._play = play
        self._swallow_errors = swallow_errors
        self._tracks: list[Track] | None = None

    @property
    def tracks_loaded(self) -> bool:
        return self._tracks is not None

    async def get_tracks(self) -> list[Track]:
        """Return the track list, fetching it on first use (document order)."""
        if self._tracks is not None:
            return list(self._tracks)
        if self._fetch_tracks is None:
            self._tracks = []
            return []
        try:
            tracks = list(await self._fetch_tracks(self))
        except Exception as e:
            if not self._swallow_errors:
                raise
            log.warning("Could not load tracks of playlist %s: %s", self.name or self.id, e)
            return []
        self._tracks = tracks
        return list(tracks)

    def set_tracks(self, tracks: list[Track]) -> None:
        self._tracks = list(tracks)

    def clear(self) -> None:
        self._tracks = None

    async def play(self) -> bool:
        if self._play is None:
            return False
        return bool(await self._play(self))

    def __repr__(self):
        return f"Playlist(id={self.id!r}, name={self.name!r})"


class Device:
    """An output device.  Restricted devices can be listed but never selected."""

    def __init__(self, id, name: str, is_active: bool = False,
                 is_restricted: bool = False, select=None):
        self.id = id
        self.name = name or ""
        self.is_active = bool(is_active)
        self.is_restricted = bool(is_restricted)
        self._select = None if is_restricted else select

    async def select(self) -> bool:
        if self._select is None:
            return False
        return bool(await self._select(self))

    def __repr__(self):
        return f"Device(id={self.id!r}, name={self.name!r}, active={self.is_active})"


class EntityCache:
    """Memoized playlist list of one driver."""

    def __init__(self, fetch_playlists, swallow_errors: bool = False):
        self._fetch_playlists = fetch_playlists
        self._swallow_errors = swallow_errors
        self._playlists: list[Playlist] | None = None
        self._pending: asyncio.Future | None = None
        self._generation = 0

    @property
    def is_loaded(self) -> bool:
        return self._playlists is not None

    async def get_playlists(self) -> list[Playlist]:
        """Cached playlists, sorted by name.  Concurrent first callers share one fetch."""
        if self._playlists is not None:
            return list(self._playlists)
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(self._load(self._generation))
        return list(await asyncio.shield(self._pending))

    async def _load(self, generation: int) -> list[Playlist]:
        try:
            playlists = list(await self._fetch_playlists())
        except Exception as e:
            if not self._swallow_errors:
                raise
            log.warning("Could not load playlists: %s", e)
            return []
        playlists.sort(key=lambda p: p.name.lower())
        # A clear() while fetching invalidates this result
        if generation == self._generation:
            self._playlists = playlists
        return playlists

    def cached(self) -> list[Playlist]:
        """Whatever is cached right now, without fetching."""
        return list(self._playlists or [])

    def clear(self) -> None:
        self._playlists = None
        self._pending = None
        self._generation += 1
