"""
Players — drivers for external, already-running media players.

A player does NOT decode or play audio itself.  It controls a playback
application somewhere else (a VLC instance, a Spotify Connect device) and
reports what's happening — track, volume, playback state — as StatusSnapshots.

Each configured player gets ONE driver.  Drivers are built lazily, on the
first connect, by DriverFactory; the factory hands out the instance ids so no
driver keeps hidden global counters.

Current players:
  vlc.py      — VLC via its Lua HTTP/XML interface
  spotify/    — Spotify Web API (retry-until-applied writes, OAuth code flow)
"""

import itertools
import logging

from ..lib.credentials import CredentialCache
from ..lib.errors import PlayerError
from ..lib.kvstore import ExpiringStore, MemoryStore
from .spotify import SpotifyDriver
from .vlc import VLCDriver

logger = logging.getLogger(__name__)

CREDENTIALS_REPO = "playdeck.credentials"


def create_driver(config, credentials: CredentialCache | None = None, uid=None, session=None):
    """Build the driver for *config*.  Raises ValueError for unknown types."""
    if config.type == "vlc":
        return VLCDriver(config, uid=uid, session=session)
    if config.type == "spotify":
        if credentials is None:
            credentials = CredentialCache(ExpiringStore(MemoryStore(), CREDENTIALS_REPO))
        return SpotifyDriver(config, credentials, uid=uid, session=session)
    raise ValueError(f"Unknown player type '{config.type}'")


class DriverFactory:
    """Builds and connects drivers, numbering them from an injected sequence."""

    def __init__(self, credentials: CredentialCache | None = None, ids=None, session=None):
        self.credentials = credentials or CredentialCache(
            ExpiringStore(MemoryStore(), CREDENTIALS_REPO))
        self._ids = ids if ids is not None else itertools.count(1)
        self._session = session

    def create(self, config):
        return create_driver(config, self.credentials, uid=next(self._ids), session=self._session)

    async def connect(self, driver) -> bool:
        """Connect *driver*, then apply its ``initial_output`` on a fresh connection.

        Connection errors propagate; output selection is best-effort.
        """
        if not await driver.connect():
            return False
        logger.info("Connected to %s (%s)", driver.name, driver.type)
        config = driver.config

        if config.initial_output and hasattr(driver, "select_device_by_name"):
            try:
                selected = await driver.select_device_by_name(config.initial_output)
            except PlayerError as e:
                logger.warning("Could not select output '%s': %s", config.initial_output, e)
            else:
                if selected:
                    logger.info("Selected output '%s'", config.initial_output)
        return True

    async def open(self, config):
        """Build and connect a driver for *config*."""
        driver = self.create(config)
        try:
            await self.connect(driver)
        except Exception:
            await driver.dispose()
            raise
        return driver
