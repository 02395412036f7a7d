"""Tests for configuration loading and the driver factory."""

import dataclasses
import itertools
import json
from unittest.mock import AsyncMock, patch

import pytest

from playdeck.lib import config as config_mod
from playdeck.lib.config import PlayerConfig, cfg, load_player_configs
from playdeck.players import DriverFactory, create_driver
from playdeck.players.spotify import SpotifyDriver
from playdeck.players.vlc import VLCDriver


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point the loader at a temporary config.json."""
    path = tmp_path / "config.json"

    def write(data):
        path.write_text(json.dumps(data))
        monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [str(path)])
        monkeypatch.setattr(config_mod, "_config", None)
        return path

    return write


class TestPlayerConfig:
    """Building PlayerConfig from JSON entries."""

    def test_defaults(self):
        player = PlayerConfig.from_dict({"type": "VLC"}, default_id=3)
        assert player.type == "vlc"
        assert player.id == "3"
        assert player.host == "localhost"
        assert player.port == 8080
        assert player.display_name == "Player #3"

    def test_bad_port_falls_back(self):
        assert PlayerConfig.from_dict({"type": "vlc", "port": "abc"}, 0).port == 8080
        assert PlayerConfig.from_dict({"type": "vlc", "port": ""}, 0).port == 8080

    def test_secret_from_environment(self, monkeypatch):
        monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "from-env")
        player = PlayerConfig.from_dict({"type": "spotify", "client_id": "cid"}, 0)
        assert player.client_secret == "from-env"

    def test_camel_case_keys(self):
        player = PlayerConfig.from_dict({
            "type": "spotify",
            "clientID": "cid",
            "redirectURL": "http://localhost/cb",
            "initialOutput": "Kitchen",
        }, 0)
        assert player.client_id == "cid"
        assert player.redirect_url == "http://localhost/cb"
        assert player.initial_output == "Kitchen"

    def test_frozen(self):
        player = PlayerConfig.from_dict({"type": "vlc"}, 0)
        with pytest.raises(AttributeError):
            player.host = "elsewhere"


class TestLoader:
    """JSON file loading."""

    def test_load_player_configs(self, config_file):
        config_file({"players": [
            {"type": "vlc", "name": "Den"},
            {"type": "winamp"},
            {"type": "spotify", "id": "main", "client_id": "x", "redirect_url": "y"},
        ]})
        players = load_player_configs()
        assert [(p.type, p.id) for p in players] == [("vlc", "0"), ("spotify", "main")]

    def test_cfg_sections(self, config_file):
        config_file({"server": {"port": 9000}})
        assert cfg("server", "port") == 9000
        assert cfg("server", "missing", default=1) == 1
        assert cfg("cache", "path", default="x.json") == "x.json"

    def test_missing_file_is_empty(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [str(tmp_path / "nope.json")])
        monkeypatch.setattr(config_mod, "_config", None)
        assert load_player_configs() == []


class TestFactory:
    """Driver construction."""

    def test_create_by_type(self, vlc_config, spotify_config):
        assert isinstance(create_driver(vlc_config), VLCDriver)
        assert isinstance(create_driver(spotify_config), SpotifyDriver)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            create_driver(PlayerConfig(type="winamp", id="0"))

    def test_ids_come_from_injected_sequence(self, vlc_config):
        factory = DriverFactory(ids=itertools.count(100))
        assert factory.create(vlc_config).uid == 100
        assert factory.create(vlc_config).uid == 101

    def test_separate_factories_do_not_share_ids(self, vlc_config):
        assert DriverFactory().create(vlc_config).uid == 1
        assert DriverFactory().create(vlc_config).uid == 1

    @pytest.mark.asyncio
    async def test_initial_output_selected_after_connect(self, spotify_config, credentials):
        config = dataclasses.replace(spotify_config, initial_output="Kitchen")
        factory = DriverFactory(credentials)
        driver = factory.create(config)
        with patch.object(driver, "connect", AsyncMock(return_value=True)), \
                patch.object(driver, "select_device_by_name", AsyncMock(return_value=True)) as select:
            assert await factory.connect(driver) is True
        select.assert_awaited_once_with("Kitchen")

    @pytest.mark.asyncio
    async def test_no_output_selection_when_already_connected(self, spotify_config, credentials):
        config = dataclasses.replace(spotify_config, initial_output="Kitchen")
        factory = DriverFactory(credentials)
        driver = factory.create(config)
        with patch.object(driver, "connect", AsyncMock(return_value=False)), \
                patch.object(driver, "select_device_by_name", AsyncMock()) as select:
            assert await factory.connect(driver) is False
        select.assert_not_awaited()
