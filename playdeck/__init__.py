# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playdeck — one control surface for several already-running media players.

Layout:
  lib/      — shared plumbing (config, caches, retry loop, driver base,
              status synchronizer)
  players/  — one driver per backend (VLC over HTTP/XML, Spotify Web API)
  server.py — optional HTTP + WebSocket surface around a single driver
"""

__version__ = "0.1.0"
