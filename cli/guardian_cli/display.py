"""Rich output formatting for the guardian CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from guardian_engine.models import (
        ActivityEntry,
        Changelist,
        Conflict,
        RiskAssessment,
        RollbackResult,
        RollbackSimulation,
        SelectiveRestoreResult,
        SnapshotDiff,
        SnapshotRecord,
    )
    from guardian_engine.models.sync import EnvironmentStatus, ImportPreview, TransferResult


# ---------------------------------------------------------------------------
# Colour mapping
# ---------------------------------------------------------------------------

_RISK_COLOURS: dict[str, str] = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

_STATUS_COLOURS: dict[str, str] = {
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "synced": "green",
    "needs_export": "cyan",
    "needs_import": "cyan",
    "diverged": "yellow",
}


def _coloured(value: str, colours: dict[str, str]) -> str:
    colour = colours.get(value, "white")
    return f"[{colour}]{value}[/{colour}]"


def _risk(level: str) -> str:
    """Return a Rich markup string with the risk level colour-coded."""
    return _coloured(level.upper(), {k.upper(): v for k, v in _RISK_COLOURS.items()})


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def display_snapshot_list(console: Console, snapshots: list[SnapshotRecord]) -> None:
    """Render stored snapshots, newest first."""
    if not snapshots:
        console.print("[dim]No snapshots found.[/dim]")
        return

    table = Table(title="Snapshots", show_lines=False, pad_edge=True, expand=False)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Configs", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    table.add_column("By")

    for record in snapshots:
        table.add_row(
            str(record.id),
            record.name,
            record.type.value,
            str(record.config_count),
            _human_size(record.size_bytes),
            record.created.strftime("%Y-%m-%d %H:%M:%S"),
            record.created_by,
        )
    console.print(table)


def display_snapshot(console: Console, record: SnapshotRecord, *, title: str = "Snapshot") -> None:
    lines = [
        f"[bold]ID:[/bold]       {record.id}",
        f"[bold]Name:[/bold]     {record.name}",
        f"[bold]Type:[/bold]     {record.type.value}",
        f"[bold]Configs:[/bold]  {record.config_count}",
        f"[bold]Hash:[/bold]     {record.config_hash[:16]}...",
        f"[bold]Created:[/bold]  {record.created.isoformat()}",
    ]
    if record.description:
        lines.append(f"[bold]Notes:[/bold]    {record.description}")
    console.print(Panel("\n".join(lines), title=title, border_style="blue"))


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def display_diff(console: Console, first_id: int, second_id: int, diff: SnapshotDiff) -> None:
    """Render added, removed and modified names between two snapshots."""
    console.print(f"[bold]Diff: Snapshot #{first_id} -> Snapshot #{second_id}[/bold]")
    if not diff.has_differences():
        console.print("[dim]No differences found.[/dim]")
        return

    table = Table(show_lines=False, pad_edge=True, expand=False)
    table.add_column("Change")
    table.add_column("Config", style="bold")
    for name in sorted(diff.added):
        table.add_row("[green]added[/green]", name)
    for name in sorted(diff.removed):
        table.add_row("[red]removed[/red]", name)
    for name in sorted(diff.modified):
        table.add_row("[yellow]modified[/yellow]", name)
    console.print(table)
    console.print(
        f"[dim]{len(diff.added)} added, {len(diff.removed)} removed, {len(diff.modified)} modified[/dim]"
    )


# ---------------------------------------------------------------------------
# Risk and conflicts
# ---------------------------------------------------------------------------


def display_risk(console: Console, risk: RiskAssessment) -> None:
    lines = [
        f"[bold]Risk score:[/bold] {risk.score}/100",
        f"[bold]Risk level:[/bold] {_risk(risk.level.value)}",
        f"[dim]{risk.description}[/dim]",
    ]
    console.print(Panel("\n".join(lines), title="Risk Assessment", border_style="magenta"))
    if risk.risk_factors:
        console.print("[bold]Risk factors:[/bold]")
        for factor in risk.risk_factors:
            console.print(f"  - {factor}")


def display_conflicts(console: Console, conflicts: list[Conflict]) -> None:
    if not conflicts:
        return
    table = Table(title="Conflicts Detected", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Config", style="bold")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Details")
    for conflict in conflicts:
        severity = "[red]error[/red]" if conflict.severity.value == "error" else "[yellow]warning[/yellow]"
        table.add_row(conflict.config, conflict.type.value, severity, conflict.details)
    console.print(table)


def _changelist_table(title: str, changes: Changelist) -> Table:
    table = Table(title=title, show_lines=False, pad_edge=True, expand=False)
    table.add_column("Action")
    table.add_column("Config", style="bold")
    for name in changes.create:
        table.add_row("[green]create[/green]", name)
    for name in changes.update:
        table.add_row("[yellow]update[/yellow]", name)
    for name in changes.delete:
        table.add_row("[red]delete[/red]", name)
    return table


def display_simulation(console: Console, simulation: RollbackSimulation) -> None:
    """Render a rollback dry-run: both changelists, risk and conflicts."""
    console.print(f"[bold]Rollback preview for snapshot #{simulation.snapshot_id}[/bold]")
    if not simulation.has_changes():
        console.print("[dim]No changes needed - already at snapshot state.[/dim]")
        return
    if simulation.active.has_changes():
        console.print(_changelist_table("Active configuration", simulation.active))
    if simulation.sync.has_changes():
        console.print(_changelist_table("Sync directory", simulation.sync))
    display_risk(console, simulation.risk_assessment)
    display_conflicts(console, simulation.conflicts)


def display_impact(console: Console, preview: ImportPreview) -> None:
    """Render per-item risk for the pending sync -> active changes."""
    table = Table(title="Impact Analysis", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Action")
    table.add_column("Config", style="bold")
    table.add_column("Type")
    table.add_column("Risk")
    table.add_column("Dependents", justify="right")
    for action in ("create", "update", "delete"):
        for item in getattr(preview, action):
            table.add_row(action, item.name, item.type, _risk(item.risk.value), str(item.dependents_count))
    console.print(table)
    console.print(
        f"Total changes: {preview.total_changes} "
        f"(new {len(preview.create)}, modified {len(preview.update)}, deleted {len(preview.delete)})"
    )
    if preview.risk_assessment is not None:
        display_risk(console, preview.risk_assessment)
    display_conflicts(console, preview.conflicts)


# ---------------------------------------------------------------------------
# Rollback results
# ---------------------------------------------------------------------------


def display_rollback_result(console: Console, result: RollbackResult) -> None:
    colour = "green" if result.success else "red"
    lines = [f"[{colour}]{result.message}[/{colour}]"]
    for storage, applied in result.changes_applied.items():
        lines.append(
            f"[bold]{storage.title()}:[/bold] {len(applied.create)} created, "
            f"{len(applied.update)} updated, {len(applied.delete)} deleted"
        )
    if result.pre_rollback_snapshot_id is not None:
        lines.append(f"[bold]Backup snapshot:[/bold] #{result.pre_rollback_snapshot_id}")
    lines.append(f"[dim]{result.duration_ms:.1f} ms[/dim]")
    console.print(Panel("\n".join(lines), title=f"Rollback to #{result.snapshot_id}", border_style=colour))
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    for error in result.errors:
        console.print(f"[red]{error}[/red]")


def display_restore_result(console: Console, result: SelectiveRestoreResult) -> None:
    if result.restored:
        console.print(f"[green]Restored {len(result.restored)} configuration(s):[/green] {', '.join(result.restored)}")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    for error in result.errors:
        console.print(f"[red]{error}[/red]")


def display_transfer(console: Console, label: str, result: TransferResult) -> None:
    colour = "green" if result.success else "yellow"
    console.print(
        f"[{colour}]{label}: {len(result.written)} written, {len(result.deleted)} deleted[/{colour}]"
        f" [dim]({result.duration_ms:.1f} ms)[/dim]"
    )
    if result.backup_snapshot_id is not None:
        console.print(f"[dim]Backup snapshot #{result.backup_snapshot_id}[/dim]")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    for error in result.errors:
        console.print(f"[red]{error}[/red]")


# ---------------------------------------------------------------------------
# Environment and activity
# ---------------------------------------------------------------------------


def display_status(console: Console, status: EnvironmentStatus) -> None:
    lines = [
        f"[bold]Status:[/bold]          {_coloured(status.status.value, _STATUS_COLOURS)}",
        f"[bold]Recommendation:[/bold]  {status.recommendation.value}",
        f"[bold]Active configs:[/bold]  {status.active_count}",
        f"[bold]Sync files:[/bold]      {status.sync_count}",
        f"[bold]Import changes:[/bold]  {status.import_changes.total}",
        f"[bold]Export changes:[/bold]  {status.export_changes.total}",
    ]
    console.print(Panel("\n".join(lines), title="Environment", border_style="blue"))
    colours = {"info": "cyan", "warning": "yellow", "danger": "red"}
    for warning in status.warnings:
        colour = colours.get(warning.type, "white")
        console.print(f"[{colour}]{warning.message}[/{colour}]")


def display_activity(console: Console, entries: list[ActivityEntry]) -> None:
    if not entries:
        console.print("[dim]No activity recorded.[/dim]")
        return
    table = Table(title="Activity", show_lines=False, pad_edge=True, expand=False)
    table.add_column("When")
    table.add_column("Action", style="bold")
    table.add_column("Status")
    table.add_column("Snapshot", justify="right")
    table.add_column("Actor")
    table.add_column("Configs", justify="right")
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.action,
            _coloured(entry.status.value, _STATUS_COLOURS),
            str(entry.snapshot_id) if entry.snapshot_id is not None else "-",
            entry.actor,
            str(len(entry.config_names)),
        )
    console.print(table)
