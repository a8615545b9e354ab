"""Rich output helpers for the gutsafe CLI."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from gutsafe.core.errors import ClassifiedError, Severity, UserFriendlyError
from gutsafe.reporting import ReportingStats

console = Console()

SEVERITY_COLORS: dict[Severity, str] = {
    Severity.LOW: "dim",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}


def format_severity(severity: Severity) -> str:
    color = SEVERITY_COLORS.get(severity, "white")
    return f"[{color}]{severity.name}[/{color}]"


def create_key_value_table(title: str | None = None) -> Table:
    """Two-column table used by every command summary."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    return table


def classification_table(
    classified: ClassifiedError,
    friendly: UserFriendlyError,
) -> Table:
    table = create_key_value_table("Classification")
    table.add_row("Code", classified.code)
    table.add_row("Category", classified.category.value)
    table.add_row("Severity", format_severity(classified.severity))
    table.add_row("Title", friendly.title)
    table.add_row("Message", friendly.message)
    table.add_row("Can retry", "yes" if friendly.can_retry else "no")
    if friendly.action:
        table.add_row("Action", friendly.action)
    return table


def stats_table(stats: ReportingStats) -> Table:
    table = create_key_value_table("Reporting")
    table.add_row("Total errors", str(stats.total_errors))
    table.add_row("Pending reports", str(stats.pending_reports))
    table.add_row("Dropped reports", str(stats.dropped_reports))
    table.add_row(
        "Last flush",
        stats.last_flush.isoformat() if stats.last_flush else "[dim]never[/dim]",
    )
    return table
