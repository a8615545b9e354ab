"""Validate command for the gutsafe CLI.

Exit codes:
    0: configuration is valid
    1: schema validation failed
    2: file unreadable or YAML unparseable
"""

from __future__ import annotations

from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.markup import escape

from gutsafe.core.config import AppConfig

from ..output import console, create_key_value_table


def load_config_or_exit(config_file: Path) -> AppConfig:
    """Read, parse and validate ``config_file``, exiting with 1 or 2 on failure."""
    try:
        raw_yaml = config_file.read_text()
    except OSError as e:
        console.print(f"[red]Cannot read config file:[/red] {escape(str(e))}")
        raise typer.Exit(2) from None

    try:
        data = yaml.safe_load(raw_yaml)
    except yaml.YAMLError as e:
        console.print(f"[red]YAML syntax error:[/red] {escape(str(e))}")
        raise typer.Exit(2) from None

    if data is not None and not isinstance(data, dict):
        console.print("[red]Schema validation failed:[/red] top level must be a mapping")
        raise typer.Exit(1)

    try:
        return AppConfig.model_validate(data or {})
    except ValidationError as e:
        console.print(f"[red]Schema validation failed:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def validate(
    config_file: Path = typer.Argument(
        ...,
        help="Path to YAML configuration file",
    ),
) -> None:
    """Validate an error pipeline configuration file."""
    config = load_config_or_exit(config_file)
    reporting = config.reporting

    console.print("[green]✓[/green] Configuration valid")
    table = create_key_value_table()
    table.add_row("Reporting", "enabled" if reporting.enabled else "[dim]disabled[/dim]")
    table.add_row(
        "Endpoint",
        "configured" if reporting.resolved_endpoint() else "[yellow]none (local only)[/yellow]",
    )
    table.add_row("Batch size", str(reporting.batch_size))
    table.add_row("Flush interval", f"{reporting.flush_interval_seconds}s")
    table.add_row("Max retries", str(reporting.max_retries))
    table.add_row("Queue cap", f"{reporting.max_queue_size} ({reporting.overflow_policy})")
    table.add_row("Log level", config.logging.level)
    table.add_row(
        "Retry policies",
        ", ".join(sorted(config.retry_policies)) or "[dim]presets only[/dim]",
    )
    console.print(table)
