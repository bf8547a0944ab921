"""Guardian CLI application -- Typer-based operator interface.

Provides commands for taking, inspecting, exporting and deleting
configuration snapshots, previewing and executing rollbacks, and syncing
the active configuration with its on-disk mirror.  Human-readable output
goes to *stderr* via Rich; ``--json`` puts machine-readable output on
*stdout* so that pipelines can compose cleanly.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncEngine

from guardian_cli.display import (
    display_activity,
    display_diff,
    display_impact,
    display_restore_result,
    display_rollback_result,
    display_simulation,
    display_snapshot,
    display_snapshot_list,
    display_status,
    display_transfer,
)
from guardian_engine.analysis.risk_scorer import RiskScorer
from guardian_engine.config import Settings, load_settings
from guardian_engine.exceptions import ConflictDetectedError, GuardianError
from guardian_engine.graph import DependencyIndex, build_impact_graph, graph_to_dict
from guardian_engine.models import SnapshotType
from guardian_engine.rollback import RollbackEngine
from guardian_engine.snapshot import SnapshotManager, SnapshotScheduler
from guardian_engine.state.database import create_tables, engine_from_settings
from guardian_engine.storage import ExtensionModuleRegistry, FileConfigStore
from guardian_engine.sync import ConfigSyncService, ImportContext
from guardian_engine.telemetry import configure_logging

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="guardian",
    help="Config Guardian - configuration snapshots, risk analysis and rollback",
    no_args_is_help=True,
)
console = Console(stderr=True)

snapshot_app = typer.Typer(
    name="snapshot",
    help="Create, list, export and delete configuration snapshots.",
    no_args_is_help=True,
)
app.add_typer(snapshot_app, name="snapshot")

sync_app = typer.Typer(
    name="sync",
    help="Move configuration between the active store and the sync directory.",
    no_args_is_help=True,
)
app.add_typer(sync_app, name="sync")

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_actor: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Write log records as JSON lines on stderr.",
    ),
    actor: str | None = typer.Option(
        None,
        "--actor",
        help="Name recorded as snapshot creator and activity actor.",
        envvar="GUARDIAN_ACTOR",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _actor  # noqa: PLW0603
    _json_output = json_mode
    _actor = actor
    configure_logging(structured=log_json, level=logging.WARNING)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Everything one command invocation needs, wired over one engine."""

    settings: Settings
    engine: AsyncEngine
    snapshots: SnapshotManager
    rollback: RollbackEngine
    sync: ConfigSyncService

    def scorer(self) -> RiskScorer:
        active = self.snapshots.active_store
        return RiskScorer(DependencyIndex(active, memoize=True), ExtensionModuleRegistry(active))


async def _open_services() -> Services:
    overrides: dict[str, Any] = {"actor": _actor} if _actor else {}
    settings = load_settings(**overrides)
    if settings.structured_logging:
        configure_logging(structured=True, level=logging.WARNING)

    engine = engine_from_settings(settings)
    await create_tables(engine)

    snapshots = SnapshotManager(
        engine,
        FileConfigStore(settings.active_dir),
        FileConfigStore(settings.sync_dir),
        settings,
    )
    return Services(
        settings=settings,
        engine=engine,
        snapshots=snapshots,
        rollback=RollbackEngine(snapshots),
        sync=ConfigSyncService(snapshots),
    )


def _run(func: Callable[[Services], Awaitable[T]]) -> T:
    """Run *func* against freshly wired services and map failures to exit codes.

    Guardian errors exit with code 1; anything unexpected exits with code 3.
    """

    async def _main() -> T:
        services = await _open_services()
        try:
            return await func(services)
        finally:
            await services.engine.dispose()

    try:
        return asyncio.run(_main())
    except typer.Exit:
        raise
    except GuardianError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        console.print(f"[red]Unexpected error: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _emit_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


def _parse_type(value: str | None) -> SnapshotType | None:
    if value is None:
        return None
    try:
        return SnapshotType(value)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in SnapshotType)
        console.print(f"[red]Invalid snapshot type '{value}'. Use one of: {allowed}[/red]")
        raise typer.Exit(code=2) from exc


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


@snapshot_app.command("create")
def snapshot_create(
    name: str = typer.Argument(..., help="Snapshot name."),
    snapshot_type: str = typer.Option("manual", "--type", help="Snapshot type (manual, auto, ...)."),
    description: str = typer.Option("", "--description", "-d", help="Free-text description."),
) -> None:
    """Capture the active and sync configuration as a new snapshot."""
    kind = _parse_type(snapshot_type)
    record = _run(lambda s: s.snapshots.create_snapshot(name, kind or SnapshotType.MANUAL, description=description))

    if _json_output:
        _emit_json(record.model_dump(mode="json"))
    else:
        display_snapshot(console, record, title="Snapshot created")


@snapshot_app.command("list")
def snapshot_list(
    snapshot_type: str | None = typer.Option(None, "--type", help="Only list snapshots of this type."),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum number of snapshots to show."),
) -> None:
    """List stored snapshots, newest first."""
    kind = _parse_type(snapshot_type)
    records = _run(lambda s: s.snapshots.list_snapshots(snapshot_type=kind, limit=limit))

    if _json_output:
        _emit_json([r.model_dump(mode="json") for r in records])
    else:
        display_snapshot_list(console, records)


@snapshot_app.command("delete")
def snapshot_delete(
    snapshot_id: int = typer.Argument(..., help="Snapshot ID."),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation."),
) -> None:
    """Delete a snapshot."""
    record = _run(lambda s: s.snapshots.load_snapshot(snapshot_id))
    if record is None:
        console.print(f"[red]Snapshot not found: {snapshot_id}[/red]")
        raise typer.Exit(code=1)

    if not force and not typer.confirm(f"Delete snapshot #{record.id} '{record.name}'?"):
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(code=1)

    deleted = _run(lambda s: s.snapshots.delete_snapshot(snapshot_id))
    if _json_output:
        _emit_json({"id": snapshot_id, "deleted": deleted})
    else:
        console.print(f"[green]Snapshot #{snapshot_id} deleted.[/green]")


@snapshot_app.command("export")
def snapshot_export(
    snapshot_id: int = typer.Argument(..., help="Snapshot ID."),
    path: Path = typer.Argument(..., help="Destination JSON file."),
) -> None:
    """Write a snapshot and its metadata to a JSON file."""
    data = _run(lambda s: s.snapshots.export_snapshot(snapshot_id))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Could not write {path}: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    if _json_output:
        _emit_json({"id": snapshot_id, "path": str(path), "configCount": data["meta"]["configCount"]})
    else:
        console.print(f"Snapshot #{snapshot_id} exported to [bold]{path}[/bold]")


@snapshot_app.command("import")
def snapshot_import(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file written by 'snapshot export'."),
) -> None:
    """Store an exported snapshot file as a new manual snapshot."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Could not read {path}: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    if not isinstance(data, dict):
        console.print(f"[red]{path} does not contain an exported snapshot[/red]")
        raise typer.Exit(code=1)

    record = _run(lambda s: s.snapshots.import_snapshot(data))
    if _json_output:
        _emit_json(record.model_dump(mode="json"))
    else:
        display_snapshot(console, record, title="Snapshot imported")


@snapshot_app.command("verify")
def snapshot_verify(
    snapshot_id: int = typer.Argument(..., help="Snapshot ID."),
) -> None:
    """Check that a snapshot's payload still matches its stored hash."""

    async def _verify(s: Services) -> tuple[bool, bool]:
        exists = await s.snapshots.load_snapshot(snapshot_id) is not None
        return exists, await s.snapshots.verify_snapshot_integrity(snapshot_id)

    exists, valid = _run(_verify)
    if not exists:
        console.print(f"[red]Snapshot not found: {snapshot_id}[/red]")
        raise typer.Exit(code=1)

    if _json_output:
        _emit_json({"id": snapshot_id, "valid": valid})
    elif valid:
        console.print(f"[green]Snapshot #{snapshot_id} integrity verified.[/green]")
    else:
        console.print(f"[red]Snapshot #{snapshot_id} failed its integrity check.[/red]")
    if not valid:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# diff / rollback / restore
# ---------------------------------------------------------------------------


@app.command("diff")
def diff_command(
    first_id: int = typer.Argument(..., help="Older snapshot ID."),
    second_id: int = typer.Argument(..., help="Newer snapshot ID."),
) -> None:
    """Show the differences between two snapshots' active configuration."""
    diff = _run(lambda s: s.snapshots.compare_snapshots(first_id, second_id))

    if _json_output:
        _emit_json(
            {
                "added": sorted(diff.added),
                "removed": sorted(diff.removed),
                "modified": sorted(diff.modified),
            }
        )
    else:
        display_diff(console, first_id, second_id, diff)


@app.command("rollback")
def rollback_command(
    snapshot_id: int = typer.Argument(..., help="Snapshot to restore."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without applying it."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation and ignore blocking conflicts."),
    no_backup: bool = typer.Option(False, "--no-backup", help="Do not take a pre-rollback snapshot."),
    delete_new: bool = typer.Option(
        False, "--delete-new", help="Also delete active configuration created after the snapshot."
    ),
) -> None:
    """Restore the active and sync configuration to a snapshot."""
    simulation = _run(lambda s: s.rollback.simulate_rollback(snapshot_id))

    if dry_run:
        if _json_output:
            _emit_json(simulation.model_dump(mode="json"))
        else:
            display_simulation(console, simulation)
        return

    if not _json_output:
        display_simulation(console, simulation)

    if not simulation.has_applicable_changes(delete_new_configs=delete_new):
        if _json_output:
            _emit_json({"snapshot_id": snapshot_id, "success": True, "changes": 0})
        return

    if simulation.has_blocking_conflicts() and not force:
        console.print("[red]Rollback blocked by conflicts. Re-run with --force to apply anyway.[/red]")
        raise typer.Exit(code=1)

    if not force and not typer.confirm(f"Roll back to snapshot #{snapshot_id}?"):
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(code=1)

    result = _run(
        lambda s: s.rollback.rollback_to_snapshot(
            snapshot_id,
            create_backup=not no_backup,
            delete_new_configs=delete_new,
        )
    )

    if _json_output:
        _emit_json(result.model_dump(mode="json"))
    else:
        display_rollback_result(console, result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("restore")
def restore_command(
    snapshot_id: int = typer.Argument(..., help="Snapshot to restore from."),
    names: list[str] = typer.Argument(..., help="Configuration names to restore."),
) -> None:
    """Restore selected configuration documents from a snapshot."""
    result = _run(lambda s: s.rollback.rollback_configs(names, snapshot_id))

    if _json_output:
        _emit_json(result.model_dump(mode="json"))
    else:
        display_restore_result(console, result)
    if not result.success:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# analysis / status
# ---------------------------------------------------------------------------


@app.command("analyze-impact")
def analyze_impact_command() -> None:
    """Score the risk of importing the pending sync changes."""

    async def _analyze(s: Services) -> tuple[Any, dict[str, Any]]:
        preview = s.sync.import_preview()
        changed = [item.name for bucket in (preview.create, preview.update, preview.delete) for item in bucket]
        graph = graph_to_dict(build_impact_graph(changed, s.scorer()))
        return preview, graph

    preview, graph = _run(_analyze)

    if _json_output:
        _emit_json({**preview.model_dump(mode="json"), "graph": graph})
        return
    if not preview.has_changes():
        console.print("[dim]No pending configuration changes.[/dim]")
        return
    display_impact(console, preview)


@app.command("status")
def status_command() -> None:
    """Compare the active configuration with the sync directory."""

    async def _status(s: Services) -> Any:
        return s.sync.environment_status()

    status = _run(_status)
    if _json_output:
        _emit_json(status.model_dump(mode="json"))
    else:
        display_status(console, status)


@app.command("activity")
def activity_command(
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum number of entries."),
    action: str | None = typer.Option(None, "--action", help="Only show this action."),
) -> None:
    """Show the most recent activity log entries."""
    entries = _run(lambda s: s.snapshots.activity.get_activities(action=action, limit=limit))

    if _json_output:
        _emit_json([e.model_dump(mode="json") for e in entries])
    else:
        display_activity(console, entries)


@app.command("cron")
def cron_command() -> None:
    """Run scheduled maintenance: automatic snapshot and retention cleanup."""

    async def _maintain(s: Services) -> tuple[Any, int]:
        now = datetime.now(UTC)
        report = await SnapshotScheduler(s.snapshots).run(now)
        purged = await s.snapshots.activity.cleanup(s.settings.retention_days, now=now)
        return report, purged

    report, purged = _run(_maintain)

    if _json_output:
        _emit_json({**report.model_dump(mode="json"), "activity_purged": purged})
        return
    if report.auto_snapshot_id is not None:
        console.print(f"[green]Automatic snapshot #{report.auto_snapshot_id} created.[/green]")
    if report.auto_snapshot_error:
        console.print(f"[yellow]Automatic snapshot failed: {report.auto_snapshot_error}[/yellow]")
    console.print(f"Removed {report.deleted} old snapshot(s) and {purged} activity entr(ies).")
    if report.next_due is not None:
        console.print(f"[dim]Next automatic snapshot due {report.next_due.isoformat()}[/dim]")


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@sync_app.command("export")
def sync_export() -> None:
    """Make the sync directory mirror the active configuration."""
    result = _run(lambda s: s.sync.export_all())

    if _json_output:
        _emit_json(result.model_dump(mode="json"))
    else:
        display_transfer(console, "Exported", result)
    if not result.success:
        raise typer.Exit(code=1)


@sync_app.command("import")
def sync_import(
    force: bool = typer.Option(False, "--force", "-f", help="Import even when blocking conflicts are found."),
) -> None:
    """Make the active configuration mirror the sync directory."""

    async def _import(s: Services) -> Any:
        try:
            return await s.sync.import_all(ImportContext(), force=force)
        except ConflictDetectedError as exc:
            for conflict in exc.conflicts:
                console.print(f"[red]{conflict.config}: {conflict.details}[/red]")
            raise

    result = _run(_import)

    if _json_output:
        _emit_json(result.model_dump(mode="json"))
    else:
        display_transfer(console, "Imported", result)
    if not result.success:
        raise typer.Exit(code=1)
