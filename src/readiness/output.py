"""Rich-based output formatting for CLI."""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.table import Table

import readiness.orchestrator as orchestrator
import readiness.report as report
from readiness.field_types import Severity
from readiness.models import FieldDef, FieldResult

# Global console instance
console = Console()

_AVAIL_STYLE = {
    report.AvailabilityCategory.AVAILABLE: "green",
    report.AvailabilityCategory.PARTIAL: "yellow",
    report.AvailabilityCategory.MISSING: "red",
}

_SEVERITY_STYLE = {
    Severity.ERROR: "red",
    Severity.WARN: "yellow",
    Severity.INFO: "dim",
}

_STAGE_STYLE = {
    orchestrator.StageStatus.SUCCESS: "green",
    orchestrator.StageStatus.DEGRADED: "yellow",
    orchestrator.StageStatus.FAILED: "red",
}


def render_field_defs(field_defs: Iterable[FieldDef]) -> None:
    """Render registered field definitions as a table."""
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Field")
    table.add_column("Category", style="dim")
    table.add_column("Whitelist")
    table.add_column("Depends on")
    table.add_column("Description", style="dim")

    for field_def in sorted(field_defs, key=lambda d: d.key):
        table.add_row(
            field_def.key,
            field_def.category.value,
            field_def.whitelist_source or "",
            ", ".join(field_def.dependencies),
            field_def.description,
        )
    console.print(table)


def render_field_result(result: FieldResult) -> None:
    """Render a single validation result with its issues."""
    if result.ok:
        console.print(f"[green]✓[/green] {result.key}: {result.normalized_value!r}")
    else:
        console.print(f"[red]✗[/red] {result.key}: {result.raw_value!r}")

    for issue in result.issues:
        color = _SEVERITY_STYLE[issue.severity]
        console.print(f"  [{color}]{issue.severity.value}[/{color}] {issue.message}")
        if issue.hint:
            console.print(f"    [dim]{issue.hint}[/dim]")


def render_stages(stages: Iterable[orchestrator.StageOutcome]) -> None:
    for stage in stages:
        color = _STAGE_STYLE[stage.status]
        console.print(f"  [{color}]{stage.status.value}[/{color}] {stage.name}")
        for error in stage.errors:
            console.print(f"    [dim]{error}[/dim]")


def render_report(built: report.Report) -> None:
    """Render general result lines, the BOM tree and the summary."""
    if built.results:
        table = Table(show_header=True, header_style="bold", box=None)
        table.add_column("Category", style="dim")
        table.add_column("Entity set")
        table.add_column("Field")
        table.add_column("Availability")
        table.add_column("Quality")
        table.add_column("Activity", style="dim")
        table.add_column("Gap", style="dim")
        for line in built.results:
            color = _AVAIL_STYLE[line.avail_cat]
            table.add_row(
                line.category,
                line.object_id,
                line.object_name,
                f"[{color}]{line.avail_cat.value}[/{color}]",
                line.data_quality.value,
                line.activity_status,
                line.gap_desc,
            )
        console.print(table)
        console.print()

    if built.bom_results:
        console.print("[bold]BOM results:[/bold]")
        for node in built.bom_results:
            color = _AVAIL_STYLE[node.avail_cat]
            indent = "  " if node.is_root else "    "
            gap = f" [dim]{node.gap_desc}[/dim]" if node.gap_desc else ""
            console.print(
                f"{indent}[{color}]{node.avail_cat.value}[/{color}] "
                f"#{node.node_id} {node.parent_matnr} ({node.data_quality.value}){gap}"
            )
        console.print()

    console.print(f"[bold]Summary:[/bold] {built.summary}")
    console.print(f"[bold]Degree of fulfillment:[/bold] {built.degree_of_fulfillment}%")
