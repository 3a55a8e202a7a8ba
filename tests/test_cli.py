"""Tests for the unitflow CLI."""

import json
from pathlib import Path

from click.testing import CliRunner

from unitflow.cli import main

TARGET_ARGS = ["--server", "test.example.com", "--client-id", "test-client", "--access-token", "token"]


def _use_fake_remote(monkeypatch, remote):
    monkeypatch.setattr("unitflow.remote.client.RemoteTarget", lambda config: remote.target())


def test_feature_list(tmp_path):
    (tmp_path / "hello").mkdir()
    (tmp_path / "hello" / "feature.py").write_text('requires = ["base"]\n')

    result = CliRunner().invoke(main, ["feature", "list", "--features-dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "hello" in result.output


def test_feature_list_missing_directory(tmp_path):
    result = CliRunner().invoke(main, ["feature", "list", "-f", str(tmp_path / "missing")])
    assert result.exit_code != 0
    assert "does not exist" in result.output


def test_run_missing_directory(tmp_path):
    result = CliRunner().invoke(main, TARGET_ARGS + ["run", "--dir", str(tmp_path / "missing")])
    assert result.exit_code != 0
    assert "does not exist" in result.output


def test_run_requires_client_id(tmp_path, monkeypatch):
    monkeypatch.delenv("UNITFLOW_CLIENT_ID", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "migrations").mkdir()
    result = CliRunner().invoke(main, ["--server", "test.example.com", "run"])
    assert result.exit_code != 0
    assert "client ID" in result.output


def test_run_applies_units(tmp_path, monkeypatch, remote):
    _use_fake_remote(monkeypatch, remote)
    remote.provision()
    directory = tmp_path / "migrations"
    directory.mkdir()
    (directory / "0001-a.py").write_text("def migrate(args):\n    pass\n")

    result = CliRunner().invoke(main, TARGET_ARGS + ["run", "--dir", str(directory)])
    assert result.exit_code == 0, result.output
    assert "Migration Result" in result.output
    assert remote.applied == ["0001-a.py"]


def test_run_reports_unit_failure(tmp_path, monkeypatch, remote):
    _use_fake_remote(monkeypatch, remote)
    remote.provision()
    directory = tmp_path / "migrations"
    directory.mkdir()
    (directory / "0001-a.py").write_text("def migrate(args):\n    raise ValueError('boom')\n")

    result = CliRunner().invoke(main, TARGET_ARGS + ["run", "--dir", str(directory)])
    assert result.exit_code == 1
    assert "[0001-a.py] boom" in result.output


def test_run_invalid_var(tmp_path):
    directory = tmp_path / "migrations"
    directory.mkdir()
    result = CliRunner().invoke(main, TARGET_ARGS + ["run", "--dir", str(directory), "-D", "novalue"])
    assert result.exit_code != 0
    assert "key=value" in result.output


def test_feature_deploy_and_get(tmp_path, monkeypatch, remote):
    _use_fake_remote(monkeypatch, remote)
    remote.provision_features()
    (tmp_path / "hello").mkdir()
    Path(tmp_path / "hello" / "feature.py").write_text('default_vars = {"x": 1}\n')

    runner = CliRunner()
    result = runner.invoke(
        main, TARGET_ARGS + ["feature", "deploy", "hello", "-f", str(tmp_path), "-D", "y=2"]
    )
    assert result.exit_code == 0, result.output
    assert "Deployed" in result.output

    result = runner.invoke(main, TARGET_ARGS + ["feature", "get", "hello"])
    assert result.exit_code == 0, result.output
    assert "\"y\": \"2\"" in result.output
    assert json.loads(remote.objects["hello"]["c_vars"]) == {"x": 1, "y": "2"}
