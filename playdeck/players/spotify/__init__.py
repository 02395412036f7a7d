"""
Spotify player — Web API driver with a desktop-client fallback.

  driver.py  — SpotifyDriver (status, transport, devices, playlists, search)
  auth.py    — SpotifyAuth, the token gatekeeper on top of CredentialCache
  oauth.py   — consent URL + authorization code exchange
  local.py   — LocalSpotifyClient for the desktop app's local web helper
"""

from .driver import SpotifyDriver

__all__ = ["SpotifyDriver"]
