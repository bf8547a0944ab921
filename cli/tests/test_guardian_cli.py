"""End-to-end tests for the guardian CLI.

Every command runs against a throwaway workspace: a file-backed SQLite
state database plus YAML active and sync directories under ``tmp_path``,
wired through ``GUARDIAN_*`` environment variables.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import yaml
from guardian_cli.app import app
from typer.testing import CliRunner

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class Workspace:
    root: Path
    active: Path
    sync: Path

    def write(self, directory: Path, name: str, document: dict[str, Any]) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / f"{name}.yml").write_text(yaml.safe_dump(document), encoding="utf-8")

    def read(self, directory: Path, name: str) -> dict[str, Any] | None:
        path = directory / f"{name}.yml"
        if not path.exists():
            return None
        return yaml.safe_load(path.read_text(encoding="utf-8"))


@pytest.fixture
def workspace(tmp_path, monkeypatch) -> Workspace:
    monkeypatch.chdir(tmp_path)
    active = tmp_path / "active"
    sync = tmp_path / "sync"
    active.mkdir()
    sync.mkdir()
    monkeypatch.setenv("GUARDIAN_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    monkeypatch.setenv("GUARDIAN_ACTIVE_DIR", str(active))
    monkeypatch.setenv("GUARDIAN_SYNC_DIR", str(sync))
    monkeypatch.delenv("GUARDIAN_ACTOR", raising=False)
    monkeypatch.delenv("GUARDIAN_EXCLUDE_PATTERNS", raising=False)
    monkeypatch.delenv("GUARDIAN_AUTO_SNAPSHOT_ENABLED", raising=False)
    return Workspace(root=tmp_path, active=active, sync=sync)


def _invoke(*args: str, input: str | None = None):
    return runner.invoke(app, list(args), input=input)


def _json(result) -> Any:
    """Parse the JSON document on stdout, skipping any Rich output mixed in."""
    assert result.exit_code == 0, f"Output: {result.output}\n{result.exception}"
    raw = result.output
    starts = [i for i in (raw.find("{"), raw.find("[")) if i >= 0]
    value, _ = json.JSONDecoder().raw_decode(raw[min(starts) :])
    return value


def _create_snapshot(name: str = "Baseline", *extra: str) -> int:
    return _json(_invoke("--json", "snapshot", "create", name, *extra))["id"]


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


class TestSnapshotCommands:
    def test_create_and_list(self, workspace) -> None:
        workspace.write(workspace.active, "system.site", {"name": "Site"})
        workspace.write(workspace.sync, "system.site", {"name": "Site"})

        created = _json(_invoke("--json", "--actor", "alice", "snapshot", "create", "Baseline", "-d", "first"))
        assert created["name"] == "Baseline"
        assert created["type"] == "manual"
        assert created["config_count"] == 1
        assert created["created_by"] == "alice"
        assert created["description"] == "first"

        listed = _json(_invoke("--json", "snapshot", "list"))
        assert [s["id"] for s in listed] == [created["id"]]

    def test_list_filters_by_type(self, workspace) -> None:
        _create_snapshot("Manual")
        _create_snapshot("Auto", "--type", "auto")

        listed = _json(_invoke("--json", "snapshot", "list", "--type", "auto"))
        assert [s["name"] for s in listed] == ["Auto"]

    def test_invalid_type(self, workspace) -> None:
        result = _invoke("snapshot", "create", "Bad", "--type", "nightly")
        assert result.exit_code == 2
        assert "Invalid snapshot type" in result.output

    def test_human_list(self, workspace) -> None:
        result = _invoke("snapshot", "list")
        assert result.exit_code == 0
        assert "No snapshots found." in result.output

    def test_verify(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        snapshot_id = _create_snapshot()

        assert _json(_invoke("--json", "snapshot", "verify", str(snapshot_id))) == {"id": snapshot_id, "valid": True}

    def test_verify_missing(self, workspace) -> None:
        result = _invoke("snapshot", "verify", "99")
        assert result.exit_code == 1
        assert "Snapshot not found: 99" in result.output

    def test_export_and_import(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        snapshot_id = _create_snapshot("Exported")
        path = workspace.root / "out" / "snapshot.json"

        exported = _json(_invoke("--json", "snapshot", "export", str(snapshot_id), str(path)))
        assert exported["configCount"] == 1
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["meta"]["name"] == "Exported"
        assert data["config"]["active"] == {"a.config": {"v": 1}}

        imported = _json(_invoke("--json", "snapshot", "import", str(path)))
        assert imported["name"] == "Exported"
        assert imported["id"] != snapshot_id
        assert imported["config_hash"] == data["meta"]["hash"]

    def test_import_tampered_file(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        snapshot_id = _create_snapshot()
        path = workspace.root / "snapshot.json"
        _invoke("snapshot", "export", str(snapshot_id), str(path))
        data = json.loads(path.read_text(encoding="utf-8"))
        data["config"]["active"]["a.config"]["v"] = 2
        path.write_text(json.dumps(data), encoding="utf-8")

        result = _invoke("snapshot", "import", str(path))
        assert result.exit_code == 1
        assert "does not match its recorded hash" in result.output

    def test_delete(self, workspace) -> None:
        snapshot_id = _create_snapshot()

        result = _invoke("snapshot", "delete", str(snapshot_id), "--force")
        assert result.exit_code == 0
        assert f"Snapshot #{snapshot_id} deleted." in result.output
        assert _json(_invoke("--json", "snapshot", "list")) == []

    def test_delete_cancelled(self, workspace) -> None:
        snapshot_id = _create_snapshot()

        result = _invoke("snapshot", "delete", str(snapshot_id), input="n\n")
        assert result.exit_code == 1
        assert len(_json(_invoke("--json", "snapshot", "list"))) == 1

    def test_delete_missing(self, workspace) -> None:
        result = _invoke("snapshot", "delete", "12", "--force")
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# diff / rollback / restore
# ---------------------------------------------------------------------------


class TestDiffCommand:
    def test_diff(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        workspace.write(workspace.active, "b.config", {"v": 1})
        first = _create_snapshot("First")
        workspace.write(workspace.active, "a.config", {"v": 2})
        (workspace.active / "b.config.yml").unlink()
        workspace.write(workspace.active, "c.config", {"v": 1})
        second = _create_snapshot("Second")

        diff = _json(_invoke("--json", "diff", str(first), str(second)))
        assert diff == {"added": ["c.config"], "removed": ["b.config"], "modified": ["a.config"]}

    def test_missing_snapshot(self, workspace) -> None:
        first = _create_snapshot()
        result = _invoke("diff", str(first), "404")
        assert result.exit_code == 1
        assert "Snapshot not found: 404" in result.output


class TestRollbackCommand:
    def _drift(self, workspace) -> int:
        workspace.write(workspace.active, "a.config", {"v": 1})
        workspace.write(workspace.sync, "a.config", {"v": 1})
        snapshot_id = _create_snapshot()
        workspace.write(workspace.active, "a.config", {"v": 2})
        workspace.write(workspace.active, "c.config", {"v": 3})
        (workspace.sync / "a.config.yml").unlink()
        return snapshot_id

    def test_dry_run_changes_nothing(self, workspace) -> None:
        snapshot_id = self._drift(workspace)

        simulation = _json(_invoke("--json", "rollback", str(snapshot_id), "--dry-run"))

        assert simulation["active"]["update"] == ["a.config"]
        assert simulation["active"]["delete"] == ["c.config"]
        assert simulation["sync"]["create"] == ["a.config"]
        assert workspace.read(workspace.active, "a.config") == {"v": 2}
        assert workspace.read(workspace.sync, "a.config") is None
        assert len(_json(_invoke("--json", "snapshot", "list"))) == 1

    def test_human_dry_run(self, workspace) -> None:
        snapshot_id = self._drift(workspace)
        result = _invoke("rollback", str(snapshot_id), "--dry-run")
        assert result.exit_code == 0
        assert f"Rollback preview for snapshot #{snapshot_id}" in result.output

    def test_forced_rollback(self, workspace) -> None:
        snapshot_id = self._drift(workspace)

        outcome = _json(_invoke("--json", "rollback", str(snapshot_id), "--force"))

        assert outcome["success"] is True
        assert outcome["changes_applied"]["active"]["update"] == ["a.config"]
        assert outcome["backup_created"] is True
        assert workspace.read(workspace.active, "a.config") == {"v": 1}
        assert workspace.read(workspace.active, "c.config") == {"v": 3}
        assert workspace.read(workspace.sync, "a.config") == {"v": 1}

        types = {s["type"] for s in _json(_invoke("--json", "snapshot", "list"))}
        assert types == {"manual", "pre_rollback"}

    def test_delete_new_without_backup(self, workspace) -> None:
        snapshot_id = self._drift(workspace)

        outcome = _json(_invoke("--json", "rollback", str(snapshot_id), "--force", "--no-backup", "--delete-new"))

        assert outcome["changes_applied"]["active"]["delete"] == ["c.config"]
        assert outcome["pre_rollback_snapshot_id"] is None
        assert workspace.read(workspace.active, "c.config") is None

    def test_confirmation_declined(self, workspace) -> None:
        snapshot_id = self._drift(workspace)

        result = _invoke("rollback", str(snapshot_id), input="n\n")

        assert result.exit_code == 1
        assert workspace.read(workspace.active, "a.config") == {"v": 2}

    def test_confirmation_accepted(self, workspace) -> None:
        snapshot_id = self._drift(workspace)

        result = _invoke("rollback", str(snapshot_id), input="y\n")

        assert result.exit_code == 0, result.output
        assert "Rollback completed successfully" in result.output
        assert workspace.read(workspace.active, "a.config") == {"v": 1}

    def test_no_changes(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        snapshot_id = _create_snapshot()

        outcome = _json(_invoke("--json", "rollback", str(snapshot_id)))
        assert outcome == {"snapshot_id": snapshot_id, "success": True, "changes": 0}

    def test_only_new_active_config_is_a_no_op_without_delete_new(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        snapshot_id = _create_snapshot()
        workspace.write(workspace.active, "c.config", {"v": 3})

        outcome = _json(_invoke("--json", "rollback", str(snapshot_id)))

        assert outcome == {"snapshot_id": snapshot_id, "success": True, "changes": 0}
        assert len(_json(_invoke("--json", "snapshot", "list"))) == 1

        removed = _json(_invoke("--json", "rollback", str(snapshot_id), "--force", "--delete-new"))
        assert removed["changes_applied"]["active"]["delete"] == ["c.config"]
        assert workspace.read(workspace.active, "c.config") is None

    def test_malformed_yaml_is_a_storage_error(self, workspace) -> None:
        (workspace.active / "bad.yml").write_text("a: [1, 2\n", encoding="utf-8")

        result = _invoke("snapshot", "create", "Broken")

        assert result.exit_code == 1
        assert "Cannot parse" in result.output

    def test_blocked_by_conflicts(self, workspace) -> None:
        workspace.write(workspace.active, "webform.settings", {"dependencies": {"module": ["webform"]}})
        snapshot_id = _create_snapshot()
        workspace.write(workspace.active, "webform.settings", {"v": 2})

        result = _invoke("rollback", str(snapshot_id))

        assert result.exit_code == 1
        assert "Rollback blocked by conflicts" in result.output
        assert workspace.read(workspace.active, "webform.settings") == {"v": 2}

        forced = _invoke("rollback", str(snapshot_id), "--force")
        assert forced.exit_code == 0, forced.output
        assert workspace.read(workspace.active, "webform.settings") == {"dependencies": {"module": ["webform"]}}

    def test_missing_snapshot(self, workspace) -> None:
        result = _invoke("rollback", "77", "--force")
        assert result.exit_code == 1
        assert "Snapshot not found: 77" in result.output


class TestRestoreCommand:
    def test_restore_selected(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        workspace.write(workspace.active, "b.config", {"v": 1})
        snapshot_id = _create_snapshot()
        workspace.write(workspace.active, "a.config", {"v": 2})
        workspace.write(workspace.active, "b.config", {"v": 2})

        restored = _json(_invoke("--json", "restore", str(snapshot_id), "a.config"))

        assert restored["restored"] == ["a.config"]
        assert workspace.read(workspace.active, "a.config") == {"v": 1}
        assert workspace.read(workspace.active, "b.config") == {"v": 2}

    def test_unknown_name_fails(self, workspace) -> None:
        snapshot_id = _create_snapshot()

        result = _invoke("restore", str(snapshot_id), "nope.config")

        assert result.exit_code == 1
        assert "Config 'nope.config' not found in snapshot" in result.output


# ---------------------------------------------------------------------------
# analysis / status / activity / cron
# ---------------------------------------------------------------------------


class TestAnalysisCommands:
    def test_analyze_impact(self, workspace) -> None:
        workspace.write(workspace.active, "field.field.node.article.body", {"v": 1})
        workspace.write(workspace.sync, "field.field.node.article.body", {"v": 1})
        workspace.write(workspace.sync, "field.storage.node.body", {"type": "text"})

        report = _json(_invoke("--json", "analyze-impact"))

        assert [item["name"] for item in report["create"]] == ["field.storage.node.body"]
        assert report["risk_assessment"]["level"] == "high"
        assert report["graph"]["nodes"][0]["name"] == "field.storage.node.body"

    def test_analyze_impact_nothing_pending(self, workspace) -> None:
        result = _invoke("analyze-impact")
        assert result.exit_code == 0
        assert "No pending configuration changes." in result.output

    def test_status(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})

        status = _json(_invoke("--json", "status"))

        assert status["status"] == "needs_export"
        assert status["recommendation"] == "export"
        assert status["active_count"] == 1
        assert status["sync_count"] == 0

    def test_activity(self, workspace) -> None:
        _create_snapshot("One")
        _create_snapshot("Two")

        entries = _json(_invoke("--json", "activity", "--action", "snapshot_created"))
        assert len(entries) == 2
        assert all(e["action"] == "snapshot_created" for e in entries)

    def test_activity_empty(self, workspace) -> None:
        result = _invoke("activity")
        assert "No activity recorded." in result.output

    def test_cron_disabled(self, workspace) -> None:
        report = _json(_invoke("--json", "cron"))
        assert report["auto_snapshot_id"] is None
        assert report["deleted"] == 0
        assert report["activity_purged"] == 0

    def test_cron_enabled(self, workspace, monkeypatch) -> None:
        monkeypatch.setenv("GUARDIAN_AUTO_SNAPSHOT_ENABLED", "true")
        workspace.write(workspace.active, "a.config", {"v": 1})

        first = _json(_invoke("--json", "cron"))
        second = _json(_invoke("--json", "cron"))

        assert first["auto_snapshot_id"] is not None
        assert first["next_due"] is not None
        assert second["auto_snapshot_id"] is None
        listed = _json(_invoke("--json", "snapshot", "list", "--type", "auto"))
        assert len(listed) == 1


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSyncCommands:
    def test_export(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        workspace.write(workspace.sync, "stale.config", {"v": 0})

        result = _json(_invoke("--json", "sync", "export"))

        assert result["written"] == ["a.config"]
        assert result["deleted"] == ["stale.config"]
        assert workspace.read(workspace.sync, "a.config") == {"v": 1}
        assert workspace.read(workspace.sync, "stale.config") is None

    def test_import_takes_backup(self, workspace) -> None:
        workspace.write(workspace.active, "a.config", {"v": 1})
        workspace.write(workspace.sync, "a.config", {"v": 2})

        result = _json(_invoke("--json", "sync", "import"))

        assert result["written"] == ["a.config"]
        assert result["backup_snapshot_id"] is not None
        assert workspace.read(workspace.active, "a.config") == {"v": 2}

    def test_import_blocked_by_conflicts(self, workspace) -> None:
        workspace.write(workspace.active, "webform.settings", {"v": 1})
        workspace.write(workspace.sync, "webform.settings", {"dependencies": {"module": ["webform"]}})

        result = _invoke("sync", "import")

        assert result.exit_code == 1
        assert "Requires module 'webform' which is not installed" in result.output
        assert workspace.read(workspace.active, "webform.settings") == {"v": 1}

        forced = _invoke("sync", "import", "--force")
        assert forced.exit_code == 0, forced.output
        assert workspace.read(workspace.active, "webform.settings") == {"dependencies": {"module": ["webform"]}}
