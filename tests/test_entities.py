"""Tests for playlists, tracks, devices and the playlist cache."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from playdeck.lib.entities import Device, EntityCache, Playlist, Track


def _playlists():
    return [Playlist("2", "beta"), Playlist("1", "Alpha"), Playlist("3", "Gamma")]


class TestEntityCache:
    """Memoized playlist list."""

    @pytest.mark.asyncio
    async def test_single_fetch_until_cleared(self):
        fetch = AsyncMock(return_value=_playlists())
        cache = EntityCache(fetch)

        for _ in range(5):
            await cache.get_playlists()
        assert fetch.await_count == 1

        cache.clear()
        assert cache.is_loaded is False
        await cache.get_playlists()
        await cache.get_playlists()
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_sorted_case_insensitively(self):
        cache = EntityCache(AsyncMock(return_value=_playlists()))
        names = [p.name for p in await cache.get_playlists()]
        assert names == ["Alpha", "beta", "Gamma"]

    @pytest.mark.asyncio
    async def test_errors_propagate_by_default(self):
        cache = EntityCache(AsyncMock(side_effect=RuntimeError("boom")))
        with pytest.raises(RuntimeError):
            await cache.get_playlists()

    @pytest.mark.asyncio
    async def test_swallowed_errors_are_not_memoized(self):
        fetch = AsyncMock(side_effect=[RuntimeError("boom"), _playlists()])
        cache = EntityCache(fetch, swallow_errors=True)
        assert await cache.get_playlists() == []
        assert cache.is_loaded is False
        assert len(await cache.get_playlists()) == 3
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_result_is_memoized(self):
        fetch = AsyncMock(return_value=[])
        cache = EntityCache(fetch)
        assert await cache.get_playlists() == []
        assert await cache.get_playlists() == []
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_one_fetch(self):
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await release.wait()
            return _playlists()

        cache = EntityCache(fetch)
        readers = [asyncio.ensure_future(cache.get_playlists()) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*readers)
        assert [len(r) for r in results] == [3, 3, 3]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_clear_during_fetch_drops_result(self):
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return _playlists()

        cache = EntityCache(fetch)
        reader = asyncio.ensure_future(cache.get_playlists())
        await asyncio.sleep(0)
        cache.clear()
        release.set()
        assert len(await reader) == 3
        assert cache.is_loaded is False


class TestPlaylist:
    """Per-playlist track cache."""

    @pytest.mark.asyncio
    async def test_tracks_memoized_in_document_order(self):
        fetch = AsyncMock(side_effect=lambda pl: [Track("9", "zulu", pl), Track("1", "alpha", pl)])
        playlist = Playlist("p", "Mix", fetch_tracks=fetch)
        assert [t.name for t in await playlist.get_tracks()] == ["zulu", "alpha"]
        await playlist.get_tracks()
        assert fetch.await_count == 1

        playlist.clear()
        await playlist.get_tracks()
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_without_provider(self):
        playlist = Playlist("p", "Mix")
        assert await playlist.get_tracks() == []
        assert playlist.tracks_loaded is True

    @pytest.mark.asyncio
    async def test_play_without_action(self):
        assert await Playlist("p", "Mix").play() is False
        assert await Track("t", "Song").play() is False

    @pytest.mark.asyncio
    async def test_track_play_passes_itself(self):
        play = AsyncMock(return_value=True)
        track = Track("t", "Song", play=play)
        assert await track.play() is True
        play.assert_awaited_once_with(track)


class TestDevice:
    """Output devices."""

    @pytest.mark.asyncio
    async def test_restricted_device_never_selects(self):
        select = AsyncMock(return_value=True)
        device = Device("d", "TV", is_restricted=True, select=select)
        assert await device.select() is False
        select.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_select(self):
        select = AsyncMock(return_value=True)
        device = Device("d", "Phone", select=select)
        assert await device.select() is True
        select.assert_awaited_once_with(device)
