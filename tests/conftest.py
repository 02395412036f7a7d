"""Shared fixtures for Playdeck tests."""

from datetime import datetime, timedelta, timezone

import pytest

from playdeck.lib.config import PlayerConfig
from playdeck.lib.credentials import CredentialCache, CredentialRecord
from playdeck.lib.kvstore import ExpiringStore, MemoryStore, utcnow
from playdeck.players.spotify import SpotifyDriver
from playdeck.players.vlc import VLCDriver


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vlc_config():
    return PlayerConfig(type="vlc", id="0", name="Kitchen VLC",
                        host="10.0.0.5", port=8080, password="secret")


@pytest.fixture
def spotify_config():
    return PlayerConfig(type="spotify", id="1", name="Spotify",
                        client_id="cid", client_secret="csecret",
                        redirect_url="http://localhost:8766/callback")


@pytest.fixture
def credentials():
    return CredentialCache(ExpiringStore(MemoryStore(), "credentials"))


@pytest.fixture
def vlc(vlc_config):
    return VLCDriver(vlc_config, uid=1)


@pytest.fixture
def spotify(spotify_config, credentials):
    return SpotifyDriver(spotify_config, credentials, uid=2, retry_delay=0)


@pytest.fixture
def authorized_spotify(spotify):
    """Spotify driver with a valid cached token ("token-1")."""
    fp = spotify.auth.fp
    spotify.auth.cache.set_code(fp, "code-1")
    spotify.auth.cache.store_record(fp, CredentialRecord(
        access_token="token-1",
        code="code-1",
        expires_at=utcnow() + timedelta(hours=1),
    ))
    return spotify
