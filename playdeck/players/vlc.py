# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playdeck VLC driver.

Controls a running VLC through its Lua HTTP interface (``--extraintf http``).

VLC HTTP API (default port 8080, XML responses, Basic auth with empty user):
  GET /requests/status.xml                      — current state
  GET /requests/status.xml?command=pl_play&id=N — play (playlist item N)
  GET /requests/status.xml?command=pl_forcepause
  GET /requests/status.xml?command=pl_next / pl_previous
  GET /requests/status.xml?command=volume&val=N — N in 0..256 (256 = 100%)
  GET /requests/status.xml?command=volume&val=+5 / -5   — relative step
  GET /requests/status.xml?command=pl_loop / pl_repeat / pl_random — toggles
  GET /requests/playlist.xml                    — playlist tree

The endpoint answers only after the command has been applied, so there is no
retry logic here: 200 is success, anything else is an error.
"""

import logging
import math
import urllib.parse
from xml.etree import ElementTree

import aiohttp

from ..lib.entities import Playlist, Track
from ..lib.errors import ParseError, PlayerError, UnexpectedResponseError
from ..lib.player_base import PlayerBase
from ..lib.status import PlaybackState, RepeatMode, StatusSnapshot, clamp_volume

logger = logging.getLogger(__name__)

STATUS_PATH = "/requests/status.xml"
PLAYLIST_PATH = "/requests/playlist.xml"
VOLUME_SCALE = 256.0  # 256 => 100%
VOLUME_STEP = 5  # relative step, in VLC volume units


class VLCDriver(PlayerBase):
    """VLC player driver using the HTTP/XML interface."""

    type = "vlc"

    def __init__(self, config, uid=None, session: aiohttp.ClientSession | None = None):
        super().__init__(config, uid=uid, session=session)
        self.host = config.host
        self.port = config.port
        self.password = config.password or ""
        self._endpoint = f"http://{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        """``http://:<password>@host:port/``, without credentials if none are set."""
        if self.password:
            pw = urllib.parse.quote(self.password, safe="")
            return f"http://:{pw}@{self.host}:{self.port}/"
        return f"http://{self.host}:{self.port}/"

    # ── VLC HTTP helpers ──

    def _auth(self) -> aiohttp.BasicAuth | None:
        """Basic auth with an empty user name, as VLC expects."""
        if not self.password:
            return None
        return aiohttp.BasicAuth("", self.password)

    async def _vlc_get(self, path: str, **params) -> ElementTree.Element:
        """GET a VLC endpoint and parse the XML answer.

        Any failure marks the driver disconnected before it propagates.
        """
        url = f"{self._endpoint}{path}"
        try:
            status, body = await self._request(
                "GET", url, params=params or None, auth=self._auth())
            if status != 200:
                raise UnexpectedResponseError(status, path)
            try:
                root = ElementTree.fromstring(body)
            except ElementTree.ParseError as e:
                raise ParseError(f"Invalid XML from {path}: {e}") from e
        except PlayerError as e:
            self._set_connected(False, e)
            raise
        return root

    async def _command(self, command: str, **params) -> ElementTree.Element:
        root = await self._vlc_get(STATUS_PATH, command=command, **params)
        logger.debug("%s: %s %s", self.name, command, params or "")
        return root

    @staticmethod
    def _xml_text(root: ElementTree.Element, tag: str, default: str = "") -> str:
        el = root.find(tag)
        return el.text.strip() if el is not None and el.text else default

    @classmethod
    def _xml_bool(cls, root: ElementTree.Element, tag: str) -> bool:
        return cls._xml_text(root, tag).lower() in ("true", "1")

    # ── Connection ──

    async def connect(self) -> bool:
        if self.is_connected:
            return False
        await self._vlc_get(STATUS_PATH)
        self._set_connected(True)
        return True

    # ── Transport ──

    async def play(self) -> bool:
        await self._command("pl_play")
        return True

    async def play_track(self, track: Track) -> bool:
        await self._command("pl_play", id=track.id)
        logger.info("%s: playing '%s'", self.name, track.name)
        return True

    async def pause(self) -> bool:
        await self._command("pl_forcepause")
        return True

    async def next(self) -> bool:
        await self._command("pl_next")
        return True

    async def prev(self) -> bool:
        await self._command("pl_previous")
        return True

    async def set_volume(self, volume: float) -> bool:
        volume = clamp_volume(volume)
        await self._command("volume", val=str(int(math.floor(volume * VOLUME_SCALE))))
        return True

    async def volume_up(self) -> bool:
        await self._command("volume", val=f"+{VOLUME_STEP}")
        return True

    async def volume_down(self) -> bool:
        await self._command("volume", val=f"-{VOLUME_STEP}")
        return True

    async def toggle_repeat(self) -> bool:
        """Cycle none → loop all → repeat current → none."""
        root = await self._vlc_get(STATUS_PATH)
        mode = self._parse_repeat(root)
        if mode == RepeatMode.LOOP_ALL:
            await self._command("pl_loop")
            await self._command("pl_repeat")
        elif mode == RepeatMode.REPEAT_CURRENT:
            await self._command("pl_repeat")
        else:
            await self._command("pl_loop")
        return True

    async def toggle_shuffle(self) -> bool:
        await self._command("pl_random")
        return True

    # ── Status ──

    def _parse_repeat(self, root: ElementTree.Element) -> RepeatMode:
        if self._xml_bool(root, "repeat"):
            return RepeatMode.REPEAT_CURRENT
        if self._xml_bool(root, "loop"):
            return RepeatMode.LOOP_ALL
        return RepeatMode.NONE

    @staticmethod
    def _parse_state(raw: str) -> PlaybackState:
        raw = raw.lower()
        if raw == "playing":
            return PlaybackState.PLAYING
        if raw == "paused":
            return PlaybackState.PAUSED
        return PlaybackState.STOPPED

    @staticmethod
    def _parse_volume(raw: str) -> float:
        try:
            vol = float(raw)
        except ValueError:
            return 0.0
        return max(0.0, vol) / VOLUME_SCALE

    async def _find_track(self, plid: str) -> Track | None:
        for pl in await self.get_playlists():
            for track in await pl.get_tracks():
                if str(track.id).strip().lower() == plid:
                    return track
        return None

    def _meta_track(self, root: ElementTree.Element) -> Track | None:
        """Track built from <information><category name="meta">, if VLC sent one."""
        for category in root.findall("information/category"):
            if category.get("name") != "meta":
                continue
            info = {el.get("name"): (el.text or "").strip() for el in category.findall("info")}
            name = info.get("title") or info.get("filename")
            if name:
                return Track(id=None, name=name, description=info.get("artist", ""))
        return None

    async def get_status(self) -> StatusSnapshot:
        root = await self._vlc_get(STATUS_PATH)
        self._set_connected(True)

        track = None
        plid = self._xml_text(root, "currentplid").lower()
        if plid and plid != "-1":
            track = await self._find_track(plid)
        if track is None:
            track = self._meta_track(root)

        return StatusSnapshot(
            is_connected=True,
            state=self._parse_state(self._xml_text(root, "state", "stopped")),
            track=track,
            volume=clamp_volume(self._parse_volume(self._xml_text(root, "volume", "0"))),
            is_shuffle=self._xml_bool(root, "random"),
            repeat=self._parse_repeat(root),
            player_id=self.id,
        )

    # ── Playlists ──

    async def _playlist_root(self) -> ElementTree.Element:
        root = await self._vlc_get(PLAYLIST_PATH)
        if root.tag != "node":
            raise ParseError(f"Unexpected playlist document root <{root.tag}>")
        return root

    async def _fetch_playlists(self) -> list[Playlist]:
        """The first container under the root node is the only playlist."""
        root = await self._playlist_root()
        first = root.find("node")
        if first is None:
            return []
        playlist = Playlist(
            id=first.get("id"),
            name=first.get("name", ""),
            fetch_tracks=self._fetch_tracks,
            player=self,
            play=self._play_playlist,
        )
        return [playlist]

    async def _fetch_tracks(self, playlist: Playlist) -> list[Track]:
        root = await self._playlist_root()
        tracks = []
        for container in root.findall("node"):
            if container.get("id") != playlist.id:
                continue
            for leaf in container.iter("leaf"):
                tracks.append(Track(
                    id=leaf.get("id"),
                    name=leaf.get("name", ""),
                    playlist=playlist,
                    play=self.play_track,
                    description=leaf.get("uri", ""),
                ))
        return tracks

    async def _play_playlist(self, playlist: Playlist) -> bool:
        tracks = await playlist.get_tracks()
        if not tracks:
            return False
        return await self.play_track(tracks[0])
