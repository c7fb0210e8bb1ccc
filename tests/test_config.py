"""Tests for the config module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from devtimer.config import (
    RELAY_URL_ENV,
    get_db_path,
    get_relay_url,
    load_config,
    reset_db_path,
    save_config,
    set_autoplay,
    set_db_path,
    set_relay_url,
)
from devtimer.models import AppConfig


def _patch_config_paths(tmp_path: Path):
    """Return context managers that redirect config dir/file and db dir to tmp_path."""
    cfg_dir = tmp_path / "config"
    cfg_file = cfg_dir / "config.json"
    return (
        patch("devtimer.config._CONFIG_DIR", cfg_dir),
        patch("devtimer.config._CONFIG_FILE", cfg_file),
        patch("devtimer.config._DB_DIR", tmp_path / "data"),
    )


class TestLoadSaveConfig:
    def test_load_default_when_missing(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            config = load_config()
            assert config.db_path is None
            assert config.autoplay

    def test_save_and_load_roundtrip(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            cfg = AppConfig(db_path="/tmp/test.db", relay_url="http://relay:9000", autoplay=False)
            path = save_config(cfg)
            assert path.exists()

            loaded = load_config()
            assert loaded.db_path == "/tmp/test.db"
            assert loaded.relay_url == "http://relay:9000"
            assert not loaded.autoplay

    def test_load_handles_corrupt_file(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            cfg_dir = tmp_path / "config"
            cfg_dir.mkdir(parents=True, exist_ok=True)
            (cfg_dir / "config.json").write_text("not valid json{{{")
            config = load_config()
            assert config.db_path is None  # falls back to default

    def test_load_handles_invalid_values(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            cfg_dir = tmp_path / "config"
            cfg_dir.mkdir(parents=True, exist_ok=True)
            (cfg_dir / "config.json").write_text('{"relay_timeout": -5}')
            assert load_config().relay_timeout == 15.0


class TestDbPath:
    def test_default_path(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            path = get_db_path()
            assert path.name == "devtimer.db"
            assert path.parent.is_dir()

    def test_set_db_path(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            custom = tmp_path / "custom" / "my.db"
            cfg = set_db_path(str(custom))
            assert cfg.db_path == str(custom)
            assert get_db_path() == custom

    def test_set_db_path_directory(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            d = tmp_path / "somedir"
            d.mkdir()
            cfg = set_db_path(str(d))
            assert cfg.db_path is not None
            assert cfg.db_path.endswith("devtimer.db")

    def test_reset_db_path(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            set_db_path(str(tmp_path / "custom.db"))
            cfg = reset_db_path()
            assert cfg.db_path is None


class TestRelaySettings:
    def test_set_relay_url_strips_slash(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv(RELAY_URL_ENV, raising=False)
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            cfg = set_relay_url("http://example.test:8787/")
            assert cfg.relay_url == "http://example.test:8787"
            assert get_relay_url() == "http://example.test:8787"

    def test_env_overrides_config(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv(RELAY_URL_ENV, "http://from-env:1234/")
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            set_relay_url("http://from-file:8787")
            assert get_relay_url() == "http://from-env:1234"

    def test_set_autoplay(self, tmp_path: Path) -> None:
        p1, p2, p3 = _patch_config_paths(tmp_path)
        with p1, p2, p3:
            set_autoplay(False)
            assert not load_config().autoplay
            set_autoplay(True)
            assert load_config().autoplay
