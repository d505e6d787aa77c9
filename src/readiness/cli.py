"""Readiness CLI: field validation and compliance readiness checks."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Annotated, Literal

import cyclopts
from loguru import logger
from rich.console import Console

import readiness.errors as errors
import readiness.orchestrator as orchestrator
import readiness.output as output
import readiness.processor as processor_mod
import readiness.settings as settings

# Version is defined here and in pyproject.toml
__version__ = "0.1.0"

console = Console()

app = cyclopts.App(
    name="readiness",
    help="Validate non-standard field values and run compliance readiness checks.",
    version=__version__,
)


def _handle_error(e: errors.ReadinessError) -> None:
    """Display a structured error message."""
    console.print(f"[bold red]Error:[/bold red] {e.context}\n")
    console.print(f"[yellow]Cause:[/yellow] {e.cause}\n")
    console.print(f"[green]Fix:[/green] {e.fix}")


def _build_processor(config: Path | None) -> processor_mod.FieldProcessor:
    """Processor from readiness.yaml, or an offline one with defaults."""
    if config is None:
        return processor_mod.FieldProcessor()
    readiness_settings = settings.load_readiness_settings(config)
    return orchestrator.build_orchestrator(readiness_settings).processor


@app.command
def fields(
    config: Annotated[
        Path | None,
        cyclopts.Parameter(name="--config", help="readiness.yaml with extra field definitions"),
    ] = None,
):
    """List registered field definitions."""
    try:
        processor = _build_processor(config)
        output.render_field_defs(processor.field_defs.values())
    except errors.ReadinessError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def validate(
    field: Annotated[str, cyclopts.Parameter(help="Field key, e.g. MEINS or BaseUnitOfMeasure")],
    value: Annotated[str, cyclopts.Parameter(help="Raw value to validate")],
    config: Annotated[
        Path | None,
        cyclopts.Parameter(name="--config", help="readiness.yaml with extra fields and whitelists"),
    ] = None,
    slash_order: Annotated[
        Literal["dmy", "mdy"] | None,
        cyclopts.Parameter(name="--slash-order", help="How to read DD/MM/YYYY vs MM/DD/YYYY dates"),
    ] = None,
):
    """Validate a single value. Exits 1 when the value has errors.

    Examples:
        readiness validate MEINS kg
        readiness validate ERDAT 31.12.2024
        readiness validate TIMBER_CODES "QURO, FASY"
    """
    try:
        processor = _build_processor(config)
        if slash_order is not None:
            processor.slash_order = slash_order

        result = asyncio.run(processor.validate_value(field, value))
        output.render_field_result(result)

        if not result.ok:
            raise SystemExit(1)
    except errors.ReadinessError as e:
        _handle_error(e)
        raise SystemExit(1)


@app.command
def check(
    config: Annotated[
        Path,
        cyclopts.Parameter(name="--config", help="Path to readiness.yaml"),
    ] = Path("readiness.yaml"),
):
    """Run every configured rule and submit the readiness report.

    Checks each rule against the record source, evaluates BOMs, and
    stores the report in the configured sink.
    """
    try:
        readiness_settings = settings.load_readiness_settings(config)
        if not readiness_settings.rules:
            console.print("[dim]No rules configured[/dim]")
            return

        console.print(
            f"[bold]Checking {readiness_settings.regulation}[/bold] "
            f"({len(readiness_settings.rules)} rules)"
        )
        runner = orchestrator.build_orchestrator(readiness_settings)

        t0 = time.perf_counter()
        result = asyncio.run(runner.run(readiness_settings.rules, readiness_settings.regulation))
        elapsed = time.perf_counter() - t0
        logger.debug(f"Check run: {elapsed * 1000:.1f}ms ({len(result.report.results)} lines)")

        output.render_stages(result.stages)
        console.print()
        output.render_report(result.report)
        console.print(f"[bold green]Report created:[/bold green] {result.report_id}")

    except errors.ReadinessError as e:
        _handle_error(e)
        raise SystemExit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
