"""Tests for configuration and logging helpers."""
from __future__ import annotations

import logging

import pytest

from techpack_portal.techpack_lib.config import DATA_ENV, URL_ENV, load_config
from techpack_portal.techpack_lib.log import parse_level


def test_load_config_creates_directories(tmp_path, monkeypatch):
    monkeypatch.delenv(URL_ENV, raising=False)
    config = load_config(tmp_path / "data", port=9001)
    assert config.uploads_dir.is_dir()
    assert config.specs_path == config.data_dir / "specs.json"
    assert config.base_url == "http://127.0.0.1:9001"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv(DATA_ENV, str(tmp_path / "env-data"))
    monkeypatch.setenv(URL_ENV, "http://portal.example/")
    config = load_config()
    assert config.data_dir == (tmp_path / "env-data").resolve()
    assert config.base_url == "http://portal.example"


def test_refresh_interval_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        load_config(tmp_path, refresh_interval=0)


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    with pytest.raises(ValueError):
        parse_level("chatty")
