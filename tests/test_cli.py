"""CLI tests using typer's CliRunner against a temporary data directory."""

import json
import logging
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from surveycam.cli import app
from surveycam.cli_commands.queue import manifest_drafts
from surveycam.config import get_settings
from surveycam.sync import ProjectApiClient

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a throwaway data dir and keep logs quiet."""
    monkeypatch.setenv("SURVEYCAM_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SURVEYCAM_LOG_LEVEL", "CRITICAL")
    monkeypatch.delenv("SURVEYCAM_LOG_FILE", raising=False)
    get_settings.cache_clear()

    # The CLI callback reconfigures the root logger; put it back afterwards
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    get_settings.cache_clear()


@pytest.fixture
def photo(tmp_path):
    path = tmp_path / "kitchen.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0")
    return path


def _queue_photo(photo, *extra):
    result = runner.invoke(
        app,
        ["queue", "add", str(photo), "--project", "proj_1",
         "--project-name", "Smith Residence", "--json", *extra],
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)["ids"][0]


class TestQueueCommands:
    def test_add_and_list(self, photo):
        entry_id = _queue_photo(photo, "--room-name", "Kitchen", "--tag", "before")

        result = runner.invoke(app, ["queue", "list", "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.stdout)
        assert [e["id"] for e in entries] == [entry_id]
        assert entries[0]["status"] == "pending"
        assert entries[0]["roomName"] == "Kitchen"
        assert entries[0]["tags"] == ["before"]

    def test_add_looks_up_room_name(self, photo, monkeypatch):
        rooms = AsyncMock(return_value=[{"id": "r1", "name": "Kitchen"}])
        monkeypatch.setattr(ProjectApiClient, "get_project_rooms", rooms)

        _queue_photo(photo, "--room", "r1")
        result = runner.invoke(app, ["queue", "list", "--json"])

        assert json.loads(result.stdout)[0]["roomName"] == "Kitchen"
        rooms.assert_awaited_once_with("proj_1")

    def test_add_unknown_room_fails(self, photo, monkeypatch):
        monkeypatch.setattr(ProjectApiClient, "get_project_rooms", AsyncMock(return_value=[]))
        result = runner.invoke(
            app,
            ["queue", "add", str(photo), "--project", "proj_1",
             "--project-name", "Smith Residence", "--room", "r9"],
        )
        assert result.exit_code == 1
        assert "Room r9 not found" in result.output

    def test_add_missing_file_fails(self, tmp_path):
        result = runner.invoke(
            app,
            ["queue", "add", str(tmp_path / "nope.jpg"), "--project", "p",
             "--project-name", "P"],
        )
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_update_and_remove(self, photo):
        entry_id = _queue_photo(photo)

        result = runner.invoke(app, ["queue", "update", entry_id, "--caption", "North wall", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["caption"] == "North wall"

        result = runner.invoke(app, ["queue", "remove", entry_id])
        assert result.exit_code == 0

        result = runner.invoke(app, ["queue", "remove", entry_id])
        assert result.exit_code == 1

    def test_clear_with_nothing_uploaded(self, photo):
        _queue_photo(photo)
        result = runner.invoke(app, ["queue", "clear", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["removed"] == 0

    def test_upload_with_empty_queue(self):
        result = runner.invoke(app, ["queue", "upload"])
        assert result.exit_code == 0
        assert "No pending photos." in result.output

    def test_retry_unknown_entry(self):
        result = runner.invoke(app, ["queue", "retry", "missing"])
        assert result.exit_code == 1


class TestStatusAndConfig:
    def test_status_json_counts(self, photo):
        _queue_photo(photo)
        result = runner.invoke(app, ["status", "--json"])
        assert result.exit_code == 0
        status = json.loads(result.stdout)
        assert status["queue"]["pending"] == 1
        assert status["queue"]["total"] == 1

    def test_config_show(self, tmp_path):
        result = runner.invoke(app, ["config", "show", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["data_dir"] == str(tmp_path / "data")
        assert data["api_token_set"] is False

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "surveycam-agent" in result.output


class TestManifest:
    def test_manifest_defaults_apply_to_every_photo(self, tmp_path, photo):
        data = {
            "project": {"id": "proj_1", "name": "Smith Residence"},
            "room": {"id": "r1", "name": "Kitchen"},
            "tags": ["survey"],
            "trade_category": "general",
            "photos": [
                "kitchen.jpg",
                {"path": str(photo), "caption": "Sink", "tags": ["plumbing"],
                 "gps": {"latitude": 1.0, "longitude": 2.0}},
            ],
        }
        drafts = manifest_drafts(data, base_dir=tmp_path)

        assert [d.tags for d in drafts] == [["survey"], ["plumbing"]]
        assert all(d.room_name == "Kitchen" for d in drafts)
        assert drafts[1].caption == "Sink"
        assert drafts[1].gps_coordinates.longitude == 2.0

    def test_manifest_requires_project(self, tmp_path):
        with pytest.raises(ValueError, match="project.id"):
            manifest_drafts({"photos": []}, base_dir=tmp_path)

    def test_import_command(self, tmp_path, photo):
        manifest = tmp_path / "survey.yaml"
        manifest.write_text(
            "project:\n  id: proj_1\n  name: Smith Residence\nphotos:\n  - kitchen.jpg\n"
        )
        result = runner.invoke(app, ["queue", "import", str(manifest), "--json"])
        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)["ids"]) == 1
