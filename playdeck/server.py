#!/usr/bin/env python3
# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playdeck control surface (playdeck-server)

Wraps ONE configured player driver in an HTTP + WebSocket API.  The driver's
StatusSynchronizer pushes every new snapshot to all WebSocket clients as

    {"type": "status_update", "data": {...StatusSnapshot.to_dict()...}}

Routes (port 8766 by default):
  GET  /ws                              — status push
  GET  /player/status                   — latest snapshot
  GET  /player/playlists                — cached playlists
  GET  /player/playlists/{id}/tracks
  POST /player/play|pause|next|prev|repeat|shuffle
  POST /player/volume                   — {"volume": 0.0..1.0}
  POST /player/volume/up|down           — one step
  POST /player/refresh                  — drop cached playlists
  POST /player/connect
  GET  /player/devices
  POST /player/devices/{id}/select
  GET  /player/search?q=...&type=track|playlist
  POST /player/tracks/play              — {"playlist_id": ..., "track_id": ...}
  GET  /authorize, /callback, POST /logout  — Spotify only
"""

import asyncio
import json
import logging
import signal

from aiohttp import web

from .lib.config import cfg, load_player_configs
from .lib.credentials import CredentialCache
from .lib.errors import AuthorizationError, PlayerError
from .lib.kvstore import ExpiringStore, JsonFileStore
from .players import CREDENTIALS_REPO, DriverFactory

log = logging.getLogger(__name__)

DEFAULT_PORT = 8766
DEFAULT_CACHE_PATH = "playdeck_cache.json"

# route suffix → driver method
_COMMANDS = {
    "play": "play",
    "pause": "pause",
    "next": "next",
    "prev": "prev",
    "repeat": "toggle_repeat",
    "volume/up": "volume_up",
    "volume/down": "volume_down",
    "shuffle": "toggle_shuffle",
}


class PlayerService:
    """HTTP + WebSocket server around a single driver."""

    def __init__(self, config, factory: DriverFactory, port: int = DEFAULT_PORT):
        self.config = config
        self.factory = factory
        self.port = port
        self.driver = factory.create(config)
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None

    # ── Driver ──

    async def ensure_connected(self):
        """Connect the driver if needed and make sure its status is polled."""
        if not self.driver.is_connected:
            await self.factory.connect(self.driver)
        self._start_monitor()
        return self.driver

    def _start_monitor(self):
        if self.driver.monitor is None:
            monitor = self.driver.start_monitor()
            monitor.subscribe(self.broadcast_status)

    # ── WebSocket broadcasting ──

    async def broadcast_status(self, snapshot):
        """Push a status_update to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps({"type": "status_update", "data": snapshot.to_dict()})

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)

        self._ws_clients -= disconnected

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            monitor = self.driver.monitor
            if monitor is not None and monitor.latest is not None:
                await ws.send_json({"type": "status_update", "data": monitor.latest.to_dict()})

            # Push-only, client messages are ignored
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    # ── HTTP helpers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _json(self, data, status=200):
        return web.json_response(data, status=status, headers=self._cors_headers())

    def _error(self, e: Exception):
        status = 401 if isinstance(e, AuthorizationError) else 502
        log.warning("Request failed: %s", e)
        return self._json({"status": "error", "message": str(e)}, status=status)

    @staticmethod
    async def _body(request: web.Request) -> dict:
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _playlist_dict(pl):
        return {"id": pl.id, "name": pl.name, "description": pl.description}

    @staticmethod
    def _track_dict(track):
        return {"id": track.id, "name": track.name, "description": track.description}

    async def _find_playlist(self, playlist_id):
        for pl in await self.driver.get_playlists():
            if str(pl.id) == playlist_id:
                return pl
        return None

    # ── Route handlers ──

    def _command_handler(self, method_name):
        async def handler(request: web.Request) -> web.Response:
            try:
                driver = await self.ensure_connected()
                ok = await getattr(driver, method_name)()
            except PlayerError as e:
                return self._error(e)
            return self._json({"status": "ok" if ok else "error"})
        return handler

    async def _handle_status(self, request: web.Request) -> web.Response:
        monitor = self.driver.monitor
        if monitor is not None and monitor.latest is not None:
            return self._json(monitor.latest.to_dict())
        self._start_monitor()
        try:
            snapshot = await self.driver.monitor.fetch_now()
        except PlayerError as e:
            return self._error(e)
        if snapshot is None:
            return self._json({"status": "error", "message": "status unavailable"}, status=503)
        return self._json(snapshot.to_dict())

    async def _handle_connect(self, request: web.Request) -> web.Response:
        was_connected = self.driver.is_connected
        try:
            await self.ensure_connected()
        except PlayerError as e:
            return self._error(e)
        return self._json({"status": "ok", "connected": not was_connected})

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        self.driver.refresh()
        return self._json({"status": "ok"})

    async def _handle_volume(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        if "volume" not in data:
            return self._json({"status": "error", "message": "volume is required"}, status=400)
        try:
            driver = await self.ensure_connected()
            ok = await driver.set_volume(data["volume"])
        except PlayerError as e:
            return self._error(e)
        return self._json({"status": "ok" if ok else "error"})

    async def _handle_playlists(self, request: web.Request) -> web.Response:
        try:
            await self.ensure_connected()
            playlists = await self.driver.get_playlists()
        except PlayerError as e:
            return self._error(e)
        return self._json([self._playlist_dict(pl) for pl in playlists])

    async def _handle_tracks(self, request: web.Request) -> web.Response:
        try:
            await self.ensure_connected()
            playlist = await self._find_playlist(request.match_info["id"])
            if playlist is None:
                return self._json({"status": "error", "message": "unknown playlist"}, status=404)
            tracks = await playlist.get_tracks()
        except PlayerError as e:
            return self._error(e)
        return self._json([self._track_dict(t) for t in tracks])

    async def _handle_play_track(self, request: web.Request) -> web.Response:
        data = await self._body(request)
        try:
            await self.ensure_connected()
            playlist = await self._find_playlist(str(data.get("playlist_id", "")))
            if playlist is None:
                return self._json({"status": "error", "message": "unknown playlist"}, status=404)
            track_id = data.get("track_id")
            if track_id is None:
                ok = await playlist.play()
            else:
                track = next((t for t in await playlist.get_tracks() if str(t.id) == str(track_id)), None)
                if track is None:
                    return self._json({"status": "error", "message": "unknown track"}, status=404)
                ok = await track.play()
        except PlayerError as e:
            return self._error(e)
        return self._json({"status": "ok" if ok else "error"})

    async def _handle_devices(self, request: web.Request) -> web.Response:
        devices = await self.driver.get_devices()
        return self._json([{
            "id": d.id,
            "name": d.name,
            "is_active": d.is_active,
            "is_restricted": d.is_restricted,
        } for d in devices])

    async def _handle_select_device(self, request: web.Request) -> web.Response:
        device_id = request.match_info["id"]
        try:
            device = next((d for d in await self.driver.get_devices() if str(d.id) == device_id), None)
            if device is None:
                return self._json({"status": "error", "message": "unknown device"}, status=404)
            ok = await device.select()
        except PlayerError as e:
            return self._error(e)
        return self._json({"status": "ok" if ok else "error"})

    async def _handle_search(self, request: web.Request) -> web.Response:
        query = request.query.get("q", "")
        kind = request.query.get("type", "track")
        try:
            if kind == "playlist":
                found = [self._playlist_dict(p) for p in await self.driver.search_playlists(query)]
            else:
                found = [self._track_dict(t) for t in await self.driver.search_tracks(query)]
        except PlayerError as e:
            return self._error(e)
        return self._json(found)

    # ── Spotify authorization ──

    async def _handle_authorize(self, request: web.Request) -> web.Response:
        log.info("OAuth: redirecting to Spotify")
        raise web.HTTPFound(self.driver.authorization_url())

    async def _handle_callback(self, request: web.Request) -> web.Response:
        error = request.query.get("error")
        if error:
            return web.Response(text=f"Spotify authorization failed: {error}", status=400)
        code = request.query.get("code", "")
        if not code:
            return web.Response(text="No authorization code received", status=400)
        try:
            await self.driver.authorize(code)
        except PlayerError as e:
            log.error("OAuth callback failed: %s", e)
            return web.Response(text=f"Authorization failed: {e}", status=500)
        self._start_monitor()
        return web.Response(
            text="<!DOCTYPE html><html><body><h1>Connected to Spotify</h1>"
                 "<p>You can close this page.</p></body></html>",
            content_type="text/html")

    async def _handle_logout(self, request: web.Request) -> web.Response:
        self.driver.logout()
        return self._json({"status": "ok", "message": "Logged out"})

    # ── HTTP + WebSocket server ──

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_get("/player/status", self._handle_status)
        app.router.add_get("/player/playlists", self._handle_playlists)
        app.router.add_get("/player/playlists/{id}/tracks", self._handle_tracks)
        for route, method_name in _COMMANDS.items():
            app.router.add_post(f"/player/{route}", self._command_handler(method_name))
        app.router.add_post("/player/volume", self._handle_volume)
        app.router.add_post("/player/refresh", self._handle_refresh)
        app.router.add_post("/player/connect", self._handle_connect)
        app.router.add_get("/player/devices", self._handle_devices)
        app.router.add_post("/player/devices/{id}/select", self._handle_select_device)
        app.router.add_get("/player/search", self._handle_search)
        app.router.add_post("/player/tracks/play", self._handle_play_track)
        if self.driver.type == "spotify":
            app.router.add_get("/authorize", self._handle_authorize)
            app.router.add_get("/callback", self._handle_callback)
            app.router.add_post("/logout", self._handle_logout)
        return app

    async def start(self):
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        log.info("Player %s: HTTP + WebSocket on port %d", self.driver.name, self.port)

        try:
            await self.ensure_connected()
        except PlayerError as e:
            log.warning("%s not reachable yet (%s) — connect via POST /player/connect",
                        self.driver.name, e)

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        await self.driver.dispose()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None


def build_service():
    """PlayerService for the configured player (``server.player`` id, else the first)."""
    players = load_player_configs()
    if not players:
        raise SystemExit("No players configured (see config/default.json)")
    wanted = cfg("server", "player")
    config = next((p for p in players if wanted is not None and p.id == str(wanted)), players[0])

    store = JsonFileStore(cfg("cache", "path", default=DEFAULT_CACHE_PATH))
    credentials = CredentialCache(ExpiringStore(store, CREDENTIALS_REPO))
    return PlayerService(config, DriverFactory(credentials),
                         port=int(cfg("server", "port", default=DEFAULT_PORT)))


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(build_service().run())


if __name__ == '__main__':
    main()
