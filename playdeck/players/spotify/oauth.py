# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Authorization Code helpers for the Spotify Web API.

Confidential-client flow: the app owns a client_id + client_secret and the
token endpoint is called with HTTP Basic client credentials.

Usage:
    from playdeck.players.spotify.oauth import build_auth_url, exchange_code

    url = build_auth_url(client_id, redirect_uri)
    # ... user completes the consent page, redirect brings back ?code=...
    tokens = await exchange_code(session, code, client_id, client_secret, redirect_uri)
"""

import asyncio
import json
import logging
import urllib.parse

import aiohttp

from ...lib.errors import AuthorizationError, ParseError, PlayerConnectionError, UnexpectedResponseError

log = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

SCOPES = " ".join([
    "user-library-read",
    "streaming",
    "playlist-read-collaborative",
    "playlist-read-private",
    "user-read-playback-state",
    "user-modify-playback-state",
])


def build_auth_url(client_id, redirect_uri, scopes=SCOPES, state=None, show_dialog=True):
    """Build the Spotify consent page URL."""
    query = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scopes,
    }
    if state:
        query["state"] = state
    if show_dialog:
        query["show_dialog"] = "true"
    return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


async def exchange_code(session: aiohttp.ClientSession, code, client_id, client_secret, redirect_uri):
    """Exchange an authorization code for an access token.

    Returns dict with 'access_token', 'expires_in', etc.
    Raises AuthorizationError when Spotify rejects the code or the client.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    try:
        async with session.post(
            TOKEN_URL,
            data=data,
            auth=aiohttp.BasicAuth(client_id, client_secret),
        ) as resp:
            body = await resp.text()
            status = resp.status
    except asyncio.TimeoutError as e:
        raise PlayerConnectionError("Token exchange timed out") from e
    except aiohttp.ClientError as e:
        raise PlayerConnectionError(f"Token exchange failed: {e}") from e

    if status in (400, 401):
        error = ""
        try:
            error = json.loads(body).get("error", "")
        except (ValueError, AttributeError):
            pass
        raise AuthorizationError(f"Token exchange rejected ({status}): {error or body[:100]}")
    if status != 200:
        raise UnexpectedResponseError(status, TOKEN_URL, body)

    try:
        result = json.loads(body)
    except ValueError as e:
        raise ParseError(f"Invalid token response: {e}") from e
    if not isinstance(result, dict) or not result.get("access_token"):
        raise AuthorizationError("Token response carries no access_token")
    return result
