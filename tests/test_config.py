"""Tests for configuration loading and saving."""

import pytest

from linklens.config import (
    CONFIG_FILENAME,
    DEFAULT_ANALYZE_TIMEOUT,
    DEFAULT_PREVIEW_DELAY,
    ClientConfig,
    get_store_path,
    load_config,
    load_or_create_config,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("LINKLENS_STORE_PATH", "LINKLENS_WORKER_URL", "LINKLENS_TOKEN"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = load_or_create_config(tmp_path)
    assert (tmp_path / CONFIG_FILENAME).exists()
    assert config.preview_delay == DEFAULT_PREVIEW_DELAY
    assert config.analyze_timeout == DEFAULT_ANALYZE_TIMEOUT
    assert config.database_path == tmp_path / "linklens.db"


def test_round_trip(tmp_path):
    config = ClientConfig(path=tmp_path, worker_url="https://worker.example", preview_delay=0.3)
    save_config(config)
    loaded = load_config(tmp_path)
    assert loaded.worker_url == "https://worker.example"
    assert loaded.preview_delay == 0.3
    assert loaded.created == config.created


def test_token_is_not_written(tmp_path):
    save_config(ClientConfig(path=tmp_path, token="secret"))
    assert "secret" not in (tmp_path / CONFIG_FILENAME).read_text()


def test_env_overrides(tmp_path, monkeypatch):
    save_config(ClientConfig(path=tmp_path))
    monkeypatch.setenv("LINKLENS_WORKER_URL", "https://env.example")
    monkeypatch.setenv("LINKLENS_TOKEN", "env-token")
    config = load_config(tmp_path)
    assert config.worker_url == "https://env.example"
    assert config.token == "env-token"


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path)


def test_newer_version_rejected(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
    with pytest.raises(ValueError, match="newer"):
        load_config(tmp_path)


def test_invalid_timing_rejected(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("[timing]\nanalyze_timeout = 0\n")
    with pytest.raises(ValueError, match="positive"):
        load_config(tmp_path)


def test_store_path_resolution(tmp_path, monkeypatch):
    assert get_store_path(tmp_path) == tmp_path
    monkeypatch.setenv("LINKLENS_STORE_PATH", str(tmp_path / "env"))
    assert get_store_path() == tmp_path / "env"
