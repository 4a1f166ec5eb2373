"""Command line interface for the release registry.

Example:
    $ gdvm-registry update --workers 8
    $ gdvm-registry update --rebuild
    $ gdvm-registry validate --registry-dir ./registry
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .errors import ConfigError, RegistryError
from .logging_utils import setup_logging
from .network import close_http_client
from .pipeline import RunSummary, update_registry
from .settings import RegistrySettings
from .validation import Severity, ValidationReport, validate_registry

__all__ = ["app", "main"]

console = Console()

app = typer.Typer(
    name="gdvm-registry",
    help="Synchronize and validate the Godot binary release registry",
    no_args_is_help=True,
)


def _load_settings(**overrides: Any) -> RegistrySettings:
    """Build settings from the environment with CLI overrides applied."""

    values: Dict[str, Any] = {key: value for key, value in overrides.items() if value is not None}
    try:
        return RegistrySettings(**values)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def _render_summary(summary: RunSummary) -> None:
    if not summary.selected:
        console.print("[green]✓ Registry is up to date[/green]")
        return

    table = Table(title="Processed releases")
    table.add_column("Release")
    table.add_column("ID", justify="right")
    table.add_column("Reason")
    table.add_column("Binaries", justify="right")
    for item in summary.processed:
        table.add_row(
            escape(item.record.name),
            str(item.record.id),
            item.selected.reason.value,
            str(len(item.record.binaries)),
        )
    console.print(table)

    for failure in summary.failures:
        console.print(f"[red]✗ {escape(failure.tag)} ({failure.release_id}): {escape(failure.error)}[/red]")
    for path in summary.removed_files:
        console.print(f"[yellow]- removed {escape(str(path))}[/yellow]")

    style = "green" if summary.ok else "red"
    console.print(
        Panel(
            f"[bold {style}]{len(summary.processed)} saved, {len(summary.failures)} failed[/bold {style}]\n"
            f"Index entries: {len(summary.index)}\n"
            f"Workers: {summary.workers}\n"
            f"Run: {summary.correlation_id}",
            title="gdvm-registry update",
        )
    )


def _render_validation(report: ValidationReport) -> None:
    if not report.findings:
        console.print("[green]✓ Registry validation passed.[/green]")
        return

    console.print("\n──────── Summary ────────")
    if report.warnings:
        console.print(f"[yellow]⚠  {len(report.warnings)} warning(s)[/yellow]")
    if report.errors:
        console.print(f"[red]✗ {len(report.errors)} error(s)[/red]")
    for context, messages in report.grouped(Severity.ERROR).items():
        console.print(f"\n{escape(context)}")
        for message in messages:
            console.print(f"  [red]✗ {escape(message)}[/red]")
    for context, messages in report.grouped(Severity.WARNING).items():
        console.print(f"\n{escape(context)}")
        for message in messages:
            console.print(f"  [yellow]⚠  {escape(message)}[/yellow]")
    console.print("\n───────── End ───────────")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gdvm-registry {__version__}")
        raise typer.Exit(0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Godot binary release registry tooling."""


@app.command()
def update(
    rebuild: bool = typer.Option(
        False,
        "--rebuild",
        "-r",
        help="Ignore the existing index and reprocess every release",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        min=1,
        help="Number of parallel workers (default: CPU count)",
    ),
    refresh_window: Optional[int] = typer.Option(
        None,
        "--refresh-window",
        min=0,
        help="Most recent indexed releases to reprocess every run",
    ),
    registry_dir: Optional[Path] = typer.Option(
        None,
        "--registry-dir",
        help="Directory holding index.json and releases/",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Fetch new and refreshed releases and rewrite the index."""

    try:
        settings = _load_settings(
            workers=workers,
            refresh_window=refresh_window,
            registry_dir=registry_dir,
            log_level=log_level,
        )
    except ConfigError as exc:
        console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(2) from exc

    try:
        summary = update_registry(settings, rebuild=rebuild)
    except RegistryError as exc:
        console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc
    finally:
        close_http_client()

    _render_summary(summary)
    if not summary.ok:
        raise typer.Exit(1)


@app.command()
def validate(
    registry_dir: Optional[Path] = typer.Option(
        None,
        "--registry-dir",
        help="Directory holding index.json and releases/",
    ),
) -> None:
    """Check the index and every release record; exit 1 on any error."""

    try:
        settings = _load_settings(registry_dir=registry_dir)
    except ConfigError as exc:
        console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(2) from exc

    setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    report = validate_registry(
        settings.index_path,
        settings.releases_dir,
        settings.release_url_prefix,
        settings.download_url_prefix,
    )
    _render_validation(report)
    raise typer.Exit(report.exit_code)


def main() -> None:
    """Console script entry point."""

    app()


if __name__ == "__main__":
    main()
