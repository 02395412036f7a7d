# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playdeck Spotify driver.

Controls Spotify Connect playback through the Spotify Web API.

Spotify Web API (https://api.spotify.com/v1, Bearer token):
  GET  /me/player                    — playback state (204 = nothing active)
  GET  /me/player/devices            — Connect devices
  PUT  /me/player                    — transfer playback {"device_ids": [id]}
  PUT  /me/player/play | /pause      — resume / pause (play takes context_uri, uris)
  POST /me/player/next | /previous
  PUT  /me/player/volume?volume_percent=N
  PUT  /me/player/repeat?state=context|track|off
  PUT  /me/player/shuffle?state=true|false
  GET  /me/playlists, /playlists/{id}/tracks, /search

Write calls are eventually consistent: Spotify may answer 202 before the
device has acted, so every write goes through retry_until_applied.  Reads
never retry.

Without a usable token the driver stays useful through the desktop client's
local helper (status, play, pause) and its status carries an "authorize"
button.
"""

import json
import logging

import aiohttp

from ...lib.entities import Device, Playlist, Track
from ...lib.errors import AuthorizationError, ParseError, PlayerConnectionError, PlayerError, UnexpectedResponseError
from ...lib.player_base import PlayerBase, to_search_parts
from ...lib.retry import MAX_RETRIES, RETRY_DELAY, retry_until_applied
from ...lib.status import InfoButton, PlaybackState, RepeatMode, StatusSnapshot, clamp_volume
from .auth import SpotifyAuth
from .local import LocalSpotifyClient

log = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
SEARCH_LIMIT = 20
PLAYLIST_LIMIT = 50
TRACK_LIMIT = 100
VOLUME_STEP = 5  # percent

AUTHORIZE_BUTTON = InfoButton(
    text="$(plug)",
    tooltip="Not authorized!",
    color="#ffff00",
    command="authorize",
)

_REPEAT_FROM_API = {
    "off": RepeatMode.NONE,
    "context": RepeatMode.LOOP_ALL,
    "track": RepeatMode.REPEAT_CURRENT,
}

# none → loop all → repeat current → none; unknown resets to off
_NEXT_REPEAT_STATE = {
    RepeatMode.NONE: "context",
    RepeatMode.LOOP_ALL: "track",
    RepeatMode.REPEAT_CURRENT: "off",
    RepeatMode.UNKNOWN: "off",
}


def _parse_json(body, what):
    try:
        return json.loads(body)
    except ValueError as e:
        raise ParseError(f"Invalid JSON in {what}: {e}") from e


def _artists(item):
    return ", ".join(a.get("name", "") for a in item.get("artists") or [] if a)


def _uri_id(uri):
    """spotify:playlist:37i9d... → 37i9d..."""
    return str(uri or "").rsplit(":", 1)[-1]


class SpotifyDriver(PlayerBase):
    """Spotify Connect driver using the Web API, with a local fallback."""

    type = "spotify"
    best_effort_listing = True

    def __init__(self, config, credentials, uid=None,
                 session: aiohttp.ClientSession | None = None,
                 retry_delay: float = RETRY_DELAY, max_retries: int = MAX_RETRIES,
                 local: LocalSpotifyClient | None = None):
        super().__init__(config, uid=uid, session=session)
        self.auth = SpotifyAuth(config, credentials)
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.local = local or LocalSpotifyClient(self._local_request)

    # ── Authorization ──

    def authorization_url(self, state=None) -> str:
        return self.auth.authorization_url(state=state)

    async def authorize(self, code: str) -> bool:
        """Explicit user action: exchange *code* and start using the Web API."""
        await self.auth.authorize(self._session(), code)
        self.entities.clear()
        self._set_connected(True)
        return True

    def logout(self) -> None:
        self.auth.logout()
        self.entities.clear()

    async def get_access_token(self) -> str | None:
        """Current bearer token, or None when not authorized."""
        return await self.auth.get_token(self._session)

    @property
    def is_authorized(self) -> bool:
        return self.auth.cache.get_token(self.auth.fp) is not None

    async def _local_request(self, method, url, **kwargs):
        return await self._request(method, url, **kwargs)

    # ── Web API helpers ──

    async def _api(self, method: str, path: str, token: str, *, params=None, json=None) -> tuple[int, str]:
        status, body = await self._request(
            method, f"{API_BASE}{path}", params=params, json=json,
            headers={"Authorization": f"Bearer {token}"},
        )
        if status == 401:
            self.auth.evict()
            raise AuthorizationError(f"{method} {path}: access token rejected")
        return status, body

    async def _get_json(self, path: str, params=None):
        """Authorized GET.  Returns parsed JSON, None for 204."""
        token = await self.get_access_token()
        if not token:
            raise AuthorizationError("Spotify Web API not authorized")
        status, body = await self._api("GET", path, token, params=params)
        if status == 204:
            return None
        if status != 200:
            raise UnexpectedResponseError(status, path, body)
        data = _parse_json(body, path)
        if not isinstance(data, dict):
            raise ParseError(f"Expected a JSON object from {path}")
        return data

    async def _write(self, method: str, path: str, label: str, *, params=None, json=None) -> bool:
        """Send a write command until Spotify applies it.  False without a token."""
        token = await self.get_access_token()
        if not token:
            log.info("%s: %s skipped — not authorized", self.name, label)
            return False

        async def send():
            status, _ = await self._api(method, path, token, params=params, json=json)
            return status

        return await retry_until_applied(
            send, retries=self.max_retries, delay=self.retry_delay, label=label)

    # ── Connection ──

    async def connect(self) -> bool:
        """Probe the Web API when authorized, else the desktop client.

        Raises PlayerConnectionError when neither answers.
        """
        if self.is_connected:
            return False
        if await self.get_access_token():
            try:
                await self._get_json("/me/player")
            except AuthorizationError:
                raise
            except PlayerError as e:
                self._set_connected(False, e)
                raise PlayerConnectionError(f"{self.name}: Spotify Web API unreachable: {e}") from e
        else:
            try:
                await self.local.init()
            except PlayerError as e:
                self._set_connected(False, e)
                raise PlayerConnectionError(
                    f"{self.name}: not authorized and desktop client unreachable") from e
        self._set_connected(True)
        return True

    # ── Status ──

    async def get_status(self) -> StatusSnapshot:
        if await self.get_access_token():
            return await self._api_status()
        return await self._local_status()

    async def _api_status(self) -> StatusSnapshot:
        data = await self._get_json("/me/player")
        if not data:
            return StatusSnapshot(is_connected=True, state=PlaybackState.STOPPED,
                                  volume=0.0, player_id=self.id)
        device = data.get("device") or {}
        item = data.get("item")
        track = None
        if item:
            track = Track(id=item.get("uri"), name=item.get("name", ""),
                          play=self._play_track, description=_artists(item))

        volume = device.get("volume_percent")
        return StatusSnapshot(
            is_connected=True,
            state=PlaybackState.PLAYING if data.get("is_playing") else PlaybackState.PAUSED,
            track=track,
            volume=clamp_volume(volume / 100.0) if volume is not None else 0.0,
            is_shuffle=bool(data.get("shuffle_state")),
            repeat=_REPEAT_FROM_API.get(data.get("repeat_state"), RepeatMode.UNKNOWN),
            player_id=self.id,
        )

    async def _local_status(self) -> StatusSnapshot:
        data = await self.local.get_status()
        track = None
        resource = (data.get("track") or {}).get("track_resource") or {}
        if resource.get("uri"):
            track = Track(id=resource["uri"], name=resource.get("name", ""))
        return StatusSnapshot(
            is_connected=True,
            state=PlaybackState.PLAYING if data.get("playing") else PlaybackState.PAUSED,
            track=track,
            volume=clamp_volume(data.get("volume", 1.0)),
            is_shuffle=data.get("shuffle"),
            repeat=RepeatMode.LOOP_ALL if data.get("repeat") else RepeatMode.UNKNOWN,
            button=AUTHORIZE_BUTTON,
            player_id=self.id,
        )

    async def _current_playback(self) -> dict:
        """GET /me/player for toggles; {} when it cannot be read."""
        try:
            return await self._get_json("/me/player") or {}
        except PlayerError as e:
            log.warning("%s: could not read playback state: %s", self.name, e)
            return {}

    # ── Transport ──

    async def play(self) -> bool:
        if await self.get_access_token():
            return await self._write("PUT", "/me/player/play", "play")
        return await self.local.pause(False)

    async def pause(self) -> bool:
        if await self.get_access_token():
            return await self._write("PUT", "/me/player/pause", "pause")
        return await self.local.pause(True)

    async def next(self) -> bool:
        return await self._write("POST", "/me/player/next", "next")

    async def prev(self) -> bool:
        return await self._write("POST", "/me/player/previous", "previous")

    async def set_volume(self, volume: float) -> bool:
        percent = int(round(clamp_volume(volume) * 100))
        return await self._write("PUT", "/me/player/volume", "volume",
                                 params={"volume_percent": str(percent)})

    async def _step_volume(self, delta: int) -> bool:
        """Read the active device's volume and write it back moved by *delta* percent."""
        if not await self.get_access_token():
            return False
        current = ((await self._current_playback()).get("device") or {}).get("volume_percent")
        if current is None:
            log.info("%s: volume step skipped, no active device volume", self.name)
            return False
        percent = max(0, min(100, int(current) + delta))
        return await self._write("PUT", "/me/player/volume", "volume",
                                 params={"volume_percent": str(percent)})

    async def volume_up(self) -> bool:
        return await self._step_volume(VOLUME_STEP)

    async def volume_down(self) -> bool:
        return await self._step_volume(-VOLUME_STEP)

    async def toggle_repeat(self) -> bool:
        if not await self.get_access_token():
            return False
        current = _REPEAT_FROM_API.get(
            (await self._current_playback()).get("repeat_state"), RepeatMode.UNKNOWN)
        state = _NEXT_REPEAT_STATE[current]
        return await self._write("PUT", "/me/player/repeat", "repeat",
                                 params={"state": state})

    async def toggle_shuffle(self) -> bool:
        if not await self.get_access_token():
            return False
        shuffle = bool((await self._current_playback()).get("shuffle_state"))
        return await self._write("PUT", "/me/player/shuffle", "shuffle",
                                 params={"state": "false" if shuffle else "true"})

    async def _play_uris(self, context_uri=None, uri=None) -> bool:
        body = {}
        if context_uri:
            body["context_uri"] = context_uri
            if uri:
                body["offset"] = {"uri": uri}
        elif uri:
            body["uris"] = [uri]
        if await self.get_access_token():
            return await self._write("PUT", "/me/player/play", "play", json=body)
        return await self.local.play(uri or context_uri, context_uri)

    async def _play_track(self, track: Track) -> bool:
        context = track.playlist.id if track.playlist is not None else None
        log.info("%s: playing '%s'", self.name, track.name)
        return await self._play_uris(context_uri=context, uri=track.id)

    async def _play_playlist(self, playlist: Playlist) -> bool:
        log.info("%s: playing playlist '%s'", self.name, playlist.name)
        return await self._play_uris(context_uri=playlist.id)

    # ── Devices ──

    async def get_devices(self) -> list[Device]:
        try:
            data = await self._get_json("/me/player/devices") or {}
        except PlayerError as e:
            log.warning("%s: device list unavailable: %s", self.name, e)
            return []
        devices = []
        for d in data.get("devices") or []:
            if not d or not d.get("id"):
                continue
            devices.append(Device(
                id=d["id"],
                name=d.get("name", ""),
                is_active=d.get("is_active", False),
                is_restricted=d.get("is_restricted", False),
                select=self._select_device,
            ))
        return devices

    async def _select_device(self, device: Device) -> bool:
        log.info("%s: transferring playback to %s", self.name, device.name)
        return await self._write("PUT", "/me/player", "transfer",
                                 json={"device_ids": [device.id]})

    async def select_device_by_name(self, name: str) -> bool:
        wanted = (name or "").strip().lower()
        if not wanted:
            return False
        for device in await self.get_devices():
            if device.name.strip().lower() == wanted:
                return await device.select()
        log.warning("%s: no output device named '%s'", self.name, name)
        return False

    # ── Playlists ──

    def _make_playlist(self, item: dict) -> Playlist:
        return Playlist(
            id=item.get("uri"),
            name=item.get("name", ""),
            description=item.get("description") or "",
            fetch_tracks=self._fetch_tracks,
            player=self,
            play=self._play_playlist,
            swallow_errors=True,
        )

    def _make_track(self, item: dict, playlist: Playlist | None = None) -> Track:
        return Track(id=item.get("uri"), name=item.get("name", ""), playlist=playlist,
                     play=self._play_track, description=_artists(item))

    async def _fetch_playlists(self) -> list[Playlist]:
        data = await self._get_json("/me/playlists", params={"limit": str(PLAYLIST_LIMIT)}) or {}
        return [self._make_playlist(i) for i in data.get("items") or [] if i and i.get("uri")]

    async def _fetch_tracks(self, playlist: Playlist) -> list[Track]:
        data = await self._get_json(
            f"/playlists/{_uri_id(playlist.id)}/tracks",
            params={"limit": str(TRACK_LIMIT), "offset": "0"},
        ) or {}
        tracks = []
        for entry in data.get("items") or []:
            item = (entry or {}).get("track")
            if item and item.get("uri"):
                tracks.append(self._make_track(item, playlist))
        return tracks

    # ── Search ──

    async def _search(self, expr, kind: str) -> list[dict]:
        parts = to_search_parts(expr)
        if not parts:
            return []
        try:
            data = await self._get_json("/search", params={
                "q": " ".join(parts),
                "type": kind,
                "limit": str(SEARCH_LIMIT),
                "offset": "0",
            }) or {}
        except PlayerError as e:
            log.warning("%s: %s search failed: %s", self.name, kind, e)
            return []
        return [i for i in (data.get(f"{kind}s") or {}).get("items") or [] if i and i.get("uri")]

    async def search_playlists(self, expr) -> list[Playlist]:
        return [self._make_playlist(i) for i in await self._search(expr, "playlist")]

    async def search_tracks(self, expr) -> list[Track]:
        return [self._make_track(i) for i in await self._search(expr, "track")]

    # ── Lifecycle ──

    async def on_dispose(self) -> None:
        self.local.reset()
