"""gutsafe CLI.

Package structure:
    cli/
    ├── __init__.py       # app assembly and global options
    ├── output.py         # rich tables and colors
    └── commands/
        ├── validate.py   # validate
        └── diagnose.py   # classify, send-test
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape

from gutsafe import __version__
from gutsafe.core.logging import configure_logging

from .commands import classify, send_test, validate
from .output import console

app = typer.Typer(
    name="gutsafe-errors",
    help="Inspect and exercise the gutsafe error pipeline",
    add_completion=False,
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"gutsafe v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            "-L",
            help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            envvar="GUTSAFE_LOG_LEVEL",
        ),
    ] = "WARNING",
) -> None:
    """gutsafe - error classification, retry and reporting."""
    level = log_level.upper()
    if level not in _LOG_LEVELS:
        console.print(f"[red]Invalid log level:[/red] {escape(log_level)}")
        raise typer.Exit(2)
    configure_logging(level=level, format="console")  # type: ignore[arg-type]


app.command()(validate)
app.command(name="send-test")(send_test)
app.command()(classify)

__all__ = ["app", "main", "console"]
