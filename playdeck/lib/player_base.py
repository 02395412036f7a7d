# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlayerBase — shared plumbing for Playdeck player drivers.

A driver controls one already-running player (VLC, Spotify, ...) and reports
its status.  Everything is async; every network call goes through
``_request`` so transport failures surface as PlayerConnectionError.

Subclass contract:

    class MyPlayer(PlayerBase):
        type = "vlc"

        async def connect(self) -> bool: ...
        async def get_status(self) -> StatusSnapshot: ...
        async def play(self) -> bool: ...
        async def pause(self) -> bool: ...
        async def next(self) -> bool: ...
        async def prev(self) -> bool: ...
        async def set_volume(self, volume: float) -> bool: ...
        async def volume_up(self) -> bool: ...
        async def volume_down(self) -> bool: ...
        async def toggle_repeat(self) -> bool: ...
        async def toggle_shuffle(self) -> bool: ...
        async def _fetch_playlists(self) -> list[Playlist]: ...

Built-in (no override needed):
    get_playlists()      — memoized via self.entities
    refresh()            — drop cached playlists/tracks
    search_playlists(e)  — filter cached playlists by expression parts
    search_tracks(e)     — filter cached tracks by expression parts
    get_devices()        — [] (no output selection)
    start_monitor()      — attach a StatusSynchronizer, stopped by dispose()
    dispose()            — idempotent cleanup

Transport controls return True when the change is believed to have taken
effect.  False is a legitimate answer (unsupported, gave up), not an error.
"""

import asyncio
import logging

import aiohttp

from .entities import EntityCache
from .errors import PlayerConnectionError
from .status_sync import POLL_INTERVAL, StatusSynchronizer

log = logging.getLogger(__name__)


def to_search_parts(expr) -> list[str]:
    """Split a search expression into distinct, lower-cased words."""
    text = str(expr if expr is not None else "")
    text = text.replace("\n", "").replace("\r", "").replace("\t", "    ")
    parts = []
    for word in text.split(" "):
        word = word.strip().lower()
        if word and word not in parts:
            parts.append(word)
    return parts


def matches_search(name: str, parts: list[str]) -> bool:
    haystack = (name or "").lower()
    return all(p in haystack for p in parts)


class PlayerBase:
    # ── Subclass must set this ──
    type: str = ""

    # Playlist fetch failures are swallowed (cloud) or propagated (local)
    best_effort_listing: bool = False

    def __init__(self, config, uid: int | None = None,
                 session: aiohttp.ClientSession | None = None):
        self.config = config
        self.uid = uid
        self.entities = EntityCache(self._fetch_playlists,
                                    swallow_errors=self.best_effort_listing)
        self._http_session = session
        self._owns_session = session is None
        self._connected = False
        self._disposed = False
        self._monitor = None

    # ── Identity ──

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.display_name

    @property
    def is_connected(self) -> bool:
        return self._connected and not self._disposed

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ── Abstract methods (subclass must implement) ──

    async def connect(self) -> bool:
        """Connect; False when already connected."""
        raise NotImplementedError

    async def get_status(self):
        raise NotImplementedError

    async def play(self) -> bool:
        raise NotImplementedError

    async def pause(self) -> bool:
        raise NotImplementedError

    async def next(self) -> bool:
        raise NotImplementedError

    async def prev(self) -> bool:
        raise NotImplementedError

    async def set_volume(self, volume: float) -> bool:
        raise NotImplementedError

    async def volume_up(self) -> bool:
        """Raise the volume by one step."""
        raise NotImplementedError

    async def volume_down(self) -> bool:
        raise NotImplementedError

    async def toggle_repeat(self) -> bool:
        raise NotImplementedError

    async def toggle_shuffle(self) -> bool:
        raise NotImplementedError

    async def _fetch_playlists(self) -> list:
        raise NotImplementedError

    # ── Entities ──

    async def get_playlists(self) -> list:
        return await self.entities.get_playlists()

    def refresh(self) -> None:
        """Forget cached playlists and tracks; next access refetches."""
        self.entities.clear()
        log.info("%s: playlist cache cleared", self.name)

    async def get_devices(self) -> list:
        return []

    async def search_playlists(self, expr) -> list:
        parts = to_search_parts(expr)
        if not parts:
            return []
        return [pl for pl in await self.get_playlists() if matches_search(pl.name, parts)]

    async def search_tracks(self, expr) -> list:
        parts = to_search_parts(expr)
        if not parts:
            return []
        found = []
        for pl in await self.get_playlists():
            for track in await pl.get_tracks():
                if matches_search(track.name, parts):
                    found.append(track)
        return found

    # ── HTTP ──

    def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self._http_session

    async def _request(self, method: str, url: str, *, params=None, headers=None,
                       json=None, data=None, auth=None) -> tuple[int, str]:
        """Send one request, return ``(status, body_text)``.

        Connection problems become PlayerConnectionError; status codes are
        left to the caller.
        """
        try:
            async with self._session().request(
                method, url, params=params, headers=headers, json=json, data=data, auth=auth,
            ) as resp:
                body = await resp.text()
                return resp.status, body
        except asyncio.TimeoutError as e:
            raise PlayerConnectionError(f"{method} {url}: timed out") from e
        except aiohttp.ClientError as e:
            raise PlayerConnectionError(f"{method} {url}: {e}") from e

    def _set_connected(self, connected: bool, err=None) -> None:
        """Record the connection state.  Every (re)connection drops cached playlists."""
        if self._connected != connected:
            if connected:
                self.entities.clear()
                log.info("%s: connected", self.name)
            elif err is not None:
                log.warning("%s: connection lost: %s", self.name, err)
            else:
                log.info("%s: disconnected", self.name)
        self._connected = connected

    # ── Status monitoring ──

    def start_monitor(self, interval: float | None = None):
        """Start polling get_status(); returns the StatusSynchronizer."""
        if self._monitor is None:
            self._monitor = StatusSynchronizer(self, interval=interval or POLL_INTERVAL)
        self._monitor.start()
        return self._monitor

    @property
    def monitor(self):
        return self._monitor

    # ── Lifecycle ──

    async def dispose(self) -> None:
        """Stop monitoring, drop caches, close the HTTP session.  Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._monitor is not None:
            self._monitor.stop()
            self._monitor = None
        self.entities.clear()
        await self.on_dispose()
        self._connected = False
        if self._http_session is not None and self._owns_session:
            await self._http_session.close()
        self._http_session = None
        log.info("%s: disposed", self.name)

    async def on_dispose(self) -> None:
        """Subclass hook, called during dispose() before the session closes."""
