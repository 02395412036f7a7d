# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for Playdeck.

Loads a single JSON config file.  Search order:
  1. /etc/playdeck/config.json   (system install)
  2. config.json                 (CWD — handy for local dev)
  3. ../../config/default.json   (repo fallback)

Secrets (SPOTIFY_CLIENT_SECRET) stay in environment variables.

Usage:
    from playdeck.lib.config import cfg, load_player_configs

    port     = cfg("server", "port", default=8766)
    players  = load_player_configs()   # list[PlayerConfig]
"""

import json
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/playdeck/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

PLAYER_TYPES = ("vlc", "spotify")

DEFAULT_VLC_HOST = "localhost"
DEFAULT_VLC_PORT = 8080


@dataclass(frozen=True)
class PlayerConfig:
    """One configured player.  Immutable once a driver is built from it."""

    type: str
    id: str
    name: str = ""
    description: str = ""
    # Local control endpoint
    host: str = DEFAULT_VLC_HOST
    port: int = DEFAULT_VLC_PORT
    password: str = ""
    # Cloud API
    client_id: str = ""
    client_secret: str = ""
    redirect_url: str = ""
    initial_output: str = ""

    @property
    def display_name(self) -> str:
        return self.name.strip() or f"Player #{self.id}"

    @classmethod
    def from_dict(cls, data: dict, default_id) -> "PlayerConfig":
        """Build a config from one entry of the ``players`` list.

        Missing values fall back to defaults; an empty port or one that is not
        a number falls back to 8080 like the VLC HTTP interface itself.
        """
        player_type = str(data.get("type") or "").strip().lower()
        try:
            port = int(str(data.get("port", DEFAULT_VLC_PORT)).strip())
        except ValueError:
            port = DEFAULT_VLC_PORT

        client_secret = str(data.get("client_secret") or "")
        if not client_secret and player_type == "spotify":
            client_secret = os.getenv("SPOTIFY_CLIENT_SECRET", "")

        return cls(
            type=player_type,
            id=str(data.get("id") if data.get("id") is not None else default_id),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            host=str(data.get("host") or "").strip() or DEFAULT_VLC_HOST,
            port=port,
            password=str(data.get("password") or ""),
            client_id=str(data.get("client_id") or data.get("clientID") or ""),
            client_secret=client_secret,
            redirect_url=str(data.get("redirect_url") or data.get("redirectURL") or ""),
            initial_output=str(data.get("initial_output") or data.get("initialOutput") or ""),
        )


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    players = config.get("players")
    if not players:
        logger.warning("Config %s: no 'players' configured — nothing to connect to", path)
        return
    if not isinstance(players, list):
        logger.warning("Config %s: 'players' must be a list", path)
        return
    for i, player in enumerate(players):
        if not isinstance(player, dict):
            logger.warning("Config %s: players[%d] is not an object", path, i)
            continue
        player_type = str(player.get("type") or "").lower()
        if player_type not in PLAYER_TYPES:
            logger.warning("Config %s: players[%d] has unknown type '%s'", path, i, player_type)
        if player_type == "spotify":
            if not player.get("client_id"):
                logger.warning("Config %s: players[%d] missing client_id — Spotify Web API disabled", path, i)
            if not player.get("redirect_url"):
                logger.warning("Config %s: players[%d] missing redirect_url", path, i)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _SEARCH_PATHS:
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("players")                → config["players"]
    cfg("server", "port")         → config["server"]["port"]
    cfg("server", "port", default=8766)  → config["server"]["port"] or 8766
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


def load_player_configs() -> list[PlayerConfig]:
    """Build PlayerConfig objects from the ``players`` section.

    Entries of unknown type are skipped (``_validate`` already warned).
    """
    result = []
    for i, entry in enumerate(cfg("players", default=[]) or []):
        if not isinstance(entry, dict):
            continue
        player = PlayerConfig.from_dict(entry, default_id=i)
        if player.type not in PLAYER_TYPES:
            continue
        result.append(player)
    return result
