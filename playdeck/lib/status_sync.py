# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
StatusSynchronizer — keeps a live StatusSnapshot for one driver.

A timer fires every POLL_INTERVAL seconds.  Each tick starts one
``driver.get_status()`` call, unless the previous one is still running, in
which case the tick is dropped (no backlog).  Successful results are stored
in ``latest`` and pushed to every subscriber; failures are logged and the
previous snapshot stays up.

``fetch_now()`` serves on-demand reads through the same guard, so a driver
never has more than one status fetch in flight.

Usage:
    sync = StatusSynchronizer(driver)
    unsubscribe = sync.subscribe(lambda snapshot: print(snapshot.state))
    sync.start()
    ...
    sync.stop()
"""

import asyncio
import inspect
import logging

log = logging.getLogger(__name__)

POLL_INTERVAL = 1.0  # seconds


class StatusSynchronizer:
    def __init__(self, driver, interval: float = POLL_INTERVAL):
        self.driver = driver
        self.interval = interval
        self.latest = None
        self._subscribers: list = []
        self._timer_task: asyncio.Task | None = None
        self._fetch_task: asyncio.Task | None = None
        self._fetching = False
        self._stopped = False

    @property
    def is_fetching(self) -> bool:
        return self._fetching

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    # ── Subscriptions ──

    def subscribe(self, callback):
        """Register ``callback(snapshot)`` (sync or async).  Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _publish(self, snapshot) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error("Status subscriber failed: %s", e)

    # ── Timer ──

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._timer_task = asyncio.create_task(self._timer_loop())
        log.info("Status sync started for %s (every %.1fs)",
                 getattr(self.driver, "name", "player"), self.interval)

    def stop(self) -> None:
        """Stop the timer and drop subscribers.  An in-flight fetch is left to finish and discarded."""
        self._stopped = True
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        self._subscribers.clear()

    async def _timer_loop(self) -> None:
        try:
            while not self._stopped:
                await asyncio.sleep(self.interval)
                self.tick()
        except asyncio.CancelledError:
            return

    def tick(self) -> asyncio.Task | None:
        """Start one fetch unless one is already running.  Returns its task, or None if dropped."""
        if self._stopped:
            return None
        if self._fetching:
            log.debug("Status fetch still running — tick dropped")
            return None
        self._fetching = True
        self._fetch_task = asyncio.create_task(self._fetch())
        return self._fetch_task

    async def fetch_now(self):
        """Fetch status on demand, joining the fetch already in flight if there is one.

        Raises what the driver raised.  Returns None once stopped.
        """
        task = self._fetch_task if self._fetching else self.tick()
        if task is None:
            return None
        result = await asyncio.shield(task)
        if isinstance(result, Exception):
            raise result
        return result

    async def _fetch(self):
        """One get_status() round.  Returns the snapshot, or the error it failed with."""
        try:
            snapshot = await self.driver.get_status()
        except Exception as e:
            log.warning("Status update failed for %s: %s",
                        getattr(self.driver, "name", "player"), e)
            return e
        finally:
            self._fetching = False

        if self._stopped or getattr(self.driver, "is_disposed", False):
            log.debug("Discarding status that arrived after stop")
            return None
        self.latest = snapshot
        await self._publish(snapshot)
        return snapshot
