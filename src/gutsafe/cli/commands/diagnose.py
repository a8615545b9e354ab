"""Diagnostic commands: classify a code, push a synthetic error end to end."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.markup import escape

from gutsafe.core.errors import AppError, CanonicalError, ErrorClassifier
from gutsafe.core.logging import configure_logging_from_config
from gutsafe.handler import ErrorHandler
from gutsafe.reporting import ReportingStats
from gutsafe.utils.time import utc_now

from ..output import classification_table, console, stats_table
from .validate import load_config_or_exit


def classify(
    code: str = typer.Argument(..., help="Error code, e.g. NETWORK_TIMEOUT_ERROR"),
    message: str | None = typer.Option(
        None,
        "--message",
        "-m",
        help="Error message (defaults to the code)",
    ),
) -> None:
    """Show the category, severity and user message for an error code."""
    classifier = ErrorClassifier()
    classified = classifier.classify(
        CanonicalError(code=code, message=message or code, timestamp=utc_now())
    )
    console.print(classification_table(classified, classifier.get_user_friendly_error(classified)))


async def _send_test(handler: ErrorHandler, error: AppError, service: str) -> tuple[bool, ReportingStats]:
    async with handler:
        handler.handle_error(error, {"operation": "send_test"}, service=service)
        delivered = await handler.dispatcher.flush()
        stats = handler.get_stats()
    return delivered, stats


def send_test(
    config_file: Path = typer.Argument(..., help="Path to YAML configuration file"),
    code: str = typer.Option("NETWORK_ERROR", "--code", "-c", help="Code of the synthetic error"),
    message: str = typer.Option(
        "Synthetic error from gutsafe send-test",
        "--message",
        "-m",
        help="Message of the synthetic error",
    ),
    service: str = typer.Option("cli", "--service", "-s", help="Service the error is attributed to"),
) -> None:
    """Push a synthetic error through classification and reporting.

    A `logging` section in the config replaces the global --log-level.
    Exits 1 if the report could not be delivered.
    """
    config = load_config_or_exit(config_file)
    if "logging" in config.model_fields_set:
        try:
            configure_logging_from_config(config.logging)
        except (ValueError, OSError) as e:
            console.print(f"[red]Logging configuration error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from None
    handler = ErrorHandler.from_config(config)
    error = AppError(message, code=code)

    classified = handler.classifier.classify(error)
    console.print(classification_table(classified, handler.get_user_friendly_error(classified)))

    delivered, stats = asyncio.run(_send_test(handler, error, service))
    console.print(stats_table(stats))

    if not config.reporting.enabled:
        console.print("[yellow]Reporting is disabled; nothing was queued[/yellow]")
    elif delivered:
        console.print("[green]✓[/green] Report delivered")
    else:
        console.print("[red]Report delivery failed[/red]")
        raise typer.Exit(1)
