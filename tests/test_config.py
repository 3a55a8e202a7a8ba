"""Tests for target configuration and variable sources."""

import tempfile
from pathlib import Path

import pytest
import yaml

from unitflow.config import DEFAULT_API_VERSION, load_target_config, parse_vars


def test_parse_vars_precedence():
    with tempfile.TemporaryDirectory() as tmp:
        vars_file = Path(tmp) / "vars.yaml"
        vars_file.write_text(yaml.dump({"a": "file", "b": "file", "c": "file"}))

        result = parse_vars(vars_file, '{"b": "json", "c": "json"}', ["c=pair"])
        assert result == {"a": "file", "b": "json", "c": "pair"}


def test_parse_vars_json_file():
    with tempfile.TemporaryDirectory() as tmp:
        vars_file = Path(tmp) / "vars.json"
        vars_file.write_text('{"nested": {"enabled": true}}')
        assert parse_vars(vars_file) == {"nested": {"enabled": True}}


def test_parse_vars_pair_keeps_equals_in_value():
    assert parse_vars(pairs=["url=https://x?a=b"]) == {"url": "https://x?a=b"}


def test_parse_vars_invalid_pair():
    with pytest.raises(ValueError):
        parse_vars(pairs=["novalue"])


def test_parse_vars_empty():
    assert parse_vars() == {}


def test_load_target_config_layers(monkeypatch):
    with tempfile.TemporaryDirectory() as tmp:
        config_file = Path(tmp) / "unitflow.yaml"
        config_file.write_text(
            yaml.dump({"hostname": "file.example.com", "client_id": "file-client", "code_version": "v1"})
        )
        monkeypatch.delenv("UNITFLOW_HOSTNAME", raising=False)
        monkeypatch.delenv("UNITFLOW_CLIENT_SECRET", raising=False)
        monkeypatch.setenv("UNITFLOW_CLIENT_ID", "env-client")
        monkeypatch.setenv("UNITFLOW_CODE_VERSION", "v2")

        config = load_target_config(config_file, code_version="v3", client_secret=None)
        assert config.hostname == "file.example.com"
        assert config.client_id == "env-client"
        assert config.code_version == "v3"
        assert config.client_secret == ""
        assert config.api_version == DEFAULT_API_VERSION
        assert config.data_api_url == f"https://file.example.com/s/-/dw/data/{DEFAULT_API_VERSION}"
        assert config.webdav_url == "https://file.example.com/on/demandware.servlet/webdav/Sites"


def test_load_target_config_missing_explicit_file():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(FileNotFoundError):
            load_target_config(Path(tmp) / "missing.yaml")


def test_load_target_config_default_file_optional(monkeypatch):
    with tempfile.TemporaryDirectory() as tmp:
        monkeypatch.chdir(tmp)
        monkeypatch.delenv("UNITFLOW_HOSTNAME", raising=False)
        config = load_target_config(hostname="cli.example.com")
        assert config.hostname == "cli.example.com"
