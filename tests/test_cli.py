"""Tests for the command line interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from convex_sync import __version__
from convex_sync.cli import app
from convex_sync.core.state import DeltaUpdates, State, StateStore


VALID_DEPLOY_URL = "https://aware-llama-900.convex.cloud"
VALID_DEPLOY_KEY = "prod:aware-llama-900|0123456789abcdef"

runner = CliRunner()


@pytest.fixture
def patched_source(monkeypatch: pytest.MonkeyPatch, source):
    monkeypatch.setattr("convex_sync.cli.create_client", lambda settings: source)
    return source


def update_args(tmp_path: Path, *extra: str) -> list[str]:
    return [
        "update",
        "--url", VALID_DEPLOY_URL,
        "--key", VALID_DEPLOY_KEY,
        "--state-file", str(tmp_path / "state.json"),
        "--output", str(tmp_path / "updates.jsonl"),
        "--quiet",
        *extra,
    ]


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestStatus:
    """Tests for the status command."""

    def test_no_state(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["status", "--state-file", str(tmp_path / "missing.json")])
        assert result.exit_code == 0
        assert "No sync state found" in result.output

    def test_saved_state(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        StateStore(path).save(State.create(DeltaUpdates(cursor=75), frozenset({"users"})))

        result = runner.invoke(app, ["status", "--state-file", str(path)])

        assert result.exit_code == 0
        assert "delta updates" in result.output
        assert "cursor 75" in result.output
        assert "users" in result.output

    def test_state_file_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "custom.json"
        StateStore(path).save(State.create(DeltaUpdates(cursor=5)))
        monkeypatch.setenv("CONVEX_SYNC_SYNC__STATE_FILE", str(path))

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "cursor 5" in result.output

    def test_state_file_from_config(self, tmp_path: Path) -> None:
        path = tmp_path / "configured.json"
        StateStore(path).save(State.create(DeltaUpdates(cursor=9)))
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"sync": {"state_file": str(path)}}))

        result = runner.invoke(app, ["status", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "cursor 9" in result.output

    def test_invalid_state(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text('{"checkpoint": {"Unknown": {}}}')

        result = runner.invoke(app, ["status", "--state-file", str(path)])

        assert result.exit_code == 1


class TestUpdate:
    """Tests for the update command."""

    def test_refuses_invalid_url(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["update", "--url", "https://localhost", "--key", VALID_DEPLOY_KEY,
             "--state-file", str(tmp_path / "state.json")],
        )
        assert result.exit_code == 1
        assert "Convex deployment URL" in result.output

    def test_refuses_missing_key(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CONVEX_SYNC_DEPLOY_KEY", raising=False)
        result = runner.invoke(app, ["update", "--url", VALID_DEPLOY_URL])
        assert result.exit_code == 1
        assert "deploy_key is required" in result.output

    def test_initial_then_delta(self, tmp_path: Path, patched_source) -> None:
        result = runner.invoke(app, update_args(tmp_path))
        assert result.exit_code == 0, result.output

        store = StateStore(tmp_path / "state.json")
        assert store.load().checkpoint == DeltaUpdates(cursor=75)

        patched_source.insert("table3", {"name": "new"})
        result = runner.invoke(app, update_args(tmp_path))
        assert result.exit_code == 0, result.output

        lines = [json.loads(line) for line in (tmp_path / "updates.jsonl").read_text().splitlines()]
        messages = [line["log_entry"]["message"] for line in lines if "log_entry" in line]
        assert messages == [
            "Starting an initial sync from fake_source",
            "Initial sync successful",
            "Starting to apply changes from fake_source (cursor 75)",
            "Changes applied",
        ]
        assert store.load().checkpoint == DeltaUpdates(cursor=76)

    def test_reset_starts_fresh_sync(self, tmp_path: Path, patched_source) -> None:
        StateStore(tmp_path / "state.json").save(State.create(DeltaUpdates(cursor=75)))

        result = runner.invoke(app, update_args(tmp_path, "--reset"))

        assert result.exit_code == 0, result.output
        first = json.loads((tmp_path / "updates.jsonl").read_text().splitlines()[0])
        assert first["log_entry"]["message"] == "Starting an initial sync from fake_source"

    def test_failure_exits_with_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, scripted_source) -> None:
        from convex_sync.errors import SourceUnavailable

        source = scripted_source([SourceUnavailable("deployment unreachable")])
        monkeypatch.setattr("convex_sync.cli.create_client", lambda settings: source)

        result = runner.invoke(app, update_args(tmp_path))

        assert result.exit_code == 1
        assert "deployment unreachable" in result.output
        assert not (tmp_path / "state.json").exists()


class TestSchema:
    def test_lists_tables(self, patched_source) -> None:
        result = runner.invoke(app, ["schema", "--url", VALID_DEPLOY_URL, "--key", VALID_DEPLOY_KEY])
        assert result.exit_code == 0, result.output
        for table_name in ("table1", "table2", "table3"):
            assert table_name in result.output
        assert "utc_datetime" in result.output.lower()


class TestConnection:
    def test_connects(self, patched_source) -> None:
        result = runner.invoke(app, ["test", "--url", VALID_DEPLOY_URL, "--key", VALID_DEPLOY_KEY])
        assert result.exit_code == 0, result.output
        assert "Connected to" in result.output


class TestConfig:
    def test_init_writes_redacted_config(self, tmp_path: Path) -> None:
        output = tmp_path / "config.toml"
        result = runner.invoke(app, ["config", "--init", "--output", str(output)])
        assert result.exit_code == 0, result.output
        assert "REDACTED" in output.read_text()
