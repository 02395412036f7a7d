# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Client for the Spotify desktop app's local web helper.

The desktop client listens on one port of 4380-4389 on 127.0.0.1.  Every
remote call needs two tokens: an anonymous OAuth token from open.spotify.com
and a CSRF token from the helper itself.  Requests must carry an Origin header
of https://open.spotify.com or the helper refuses them.

  GET /service/version.json?service=remote     — port probe
  GET /simplecsrf/token.json                   — {"token": ...}
  GET /remote/status.json?oauth=&csrf=         — playing / volume / track
  GET /remote/pause.json?pause=true|false      — pause or resume
  GET /remote/play.json?uri=&context=          — start a uri

Used by the Spotify driver for status and play/pause while the Web API is not
authorized.
"""

import json
import logging

from ...lib.errors import ParseError, PlayerConnectionError, PlayerError, UnexpectedResponseError

log = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"
LOCAL_PORTS = range(4380, 4390)
OAUTH_URL = "https://open.spotify.com/token"
ORIGIN = "https://open.spotify.com"


class LocalSpotifyClient:
    """Talks to the desktop helper through the owning driver's request seam.

    *request* is ``async request(method, url, params=..., headers=...)`` and
    returns ``(status, body_text)``.
    """

    def __init__(self, request, host=LOCAL_HOST, ports=LOCAL_PORTS):
        self._request = request
        self.host = host
        self.ports = ports
        self.base_url = None
        self.oauth = None
        self.csrf = None

    def reset(self):
        self.base_url = self.oauth = self.csrf = None

    @property
    def is_ready(self):
        return bool(self.base_url and self.oauth and self.csrf)

    async def _get_json(self, url, params=None):
        status, body = await self._request(
            "GET", url, params=params, headers={"Origin": ORIGIN})
        if status != 200:
            raise UnexpectedResponseError(status, url)
        try:
            return json.loads(body)
        except ValueError as e:
            raise ParseError(f"Invalid JSON from {url}: {e}") from e

    async def _find_port(self):
        for port in self.ports:
            url = f"http://{self.host}:{port}"
            try:
                await self._get_json(f"{url}/service/version.json", {"service": "remote"})
                return url
            except PlayerError:
                continue
        return None

    async def init(self):
        """Locate the helper and fetch both tokens.  Raises PlayerConnectionError."""
        base_url = await self._find_port()
        if base_url is None:
            raise PlayerConnectionError("Spotify desktop client not found on localhost")
        try:
            oauth = (await self._get_json(OAUTH_URL)).get("t")
            csrf = (await self._get_json(f"{base_url}/simplecsrf/token.json")).get("token")
        except (PlayerError, AttributeError) as e:
            raise PlayerConnectionError(f"Spotify desktop client handshake failed: {e}") from e
        if not oauth or not csrf:
            raise PlayerConnectionError("Spotify desktop client returned no tokens")
        self.base_url, self.oauth, self.csrf = base_url, oauth, csrf
        log.info("Spotify desktop client found at %s", base_url)
        return True

    async def _remote(self, action, **params):
        if not self.is_ready:
            await self.init()
        params.update({"oauth": self.oauth, "csrf": self.csrf})
        try:
            data = await self._get_json(f"{self.base_url}/remote/{action}.json", params)
        except PlayerError:
            # Tokens go stale when the desktop client restarts
            self.reset()
            raise
        if not isinstance(data, dict):
            raise ParseError(f"Unexpected {action} answer from Spotify desktop client")
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                error = error.get("message", error)
            raise PlayerConnectionError(f"Spotify desktop client: {error}")
        return data

    async def get_status(self):
        return await self._remote("status")

    async def pause(self, paused=True):
        await self._remote("pause", pause="true" if paused else "false")
        return True

    async def play(self, uri, context=None):
        await self._remote("play", uri=uri, context=context or uri)
        return True
