"""Live console rendering of the metrics snapshot and recent activity."""

from __future__ import annotations

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from chatload.metrics.activity import ActivityEntry, Severity
from chatload.metrics.aggregator import MetricsSnapshot

TITLE = "=== Chat Load Test - Real-time Metrics ==="

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.INFO: "blue",
    Severity.SUCCESS: "green",
    Severity.WARN: "yellow",
    Severity.ERROR: "red",
}


def build_metrics_table(snapshot: MetricsSnapshot) -> Table:
    table = Table(show_header=True, header_style="cyan")
    table.add_column("Metric", width=30)
    table.add_column("Value", width=20)

    rows: list[tuple[str, str, str | None]] = [
        ("Elapsed Time", f"{snapshot.elapsed_seconds:.1f}s", None),
        ("---", "---", None),
        ("Users Created", str(snapshot.users_created), "green"),
        ("Connected", str(snapshot.connected), "green"),
        ("Disconnected", str(snapshot.disconnected), "yellow"),
        ("---", "---", None),
        ("Messages Sent", str(snapshot.messages_sent), "green"),
        ("Messages Received", str(snapshot.messages_received), "green"),
        ("Messages Marked Read", str(snapshot.messages_read), "cyan"),
        ("Read Acks Received", str(snapshot.read_acks_received), "cyan"),
        ("Messages/sec", f"{snapshot.messages_per_sec:.2f}", None),
        ("---", "---", None),
        ("Avg Message Latency", f"{snapshot.avg_latency_ms:.2f}ms", None),
        ("P95 Message Latency", f"{snapshot.p95_latency_ms:.2f}ms", None),
        ("P99 Message Latency", f"{snapshot.p99_latency_ms:.2f}ms", None),
        ("Avg Connection Time", f"{snapshot.avg_connection_time_ms:.2f}ms", None),
        ("---", "---", None),
        ("Auth Errors", str(snapshot.errors_auth), "red"),
        ("Connection Errors", str(snapshot.errors_connection), "red"),
        ("Message Errors", str(snapshot.errors_message), "red"),
        ("Total Errors", str(snapshot.total_errors), "red"),
    ]
    for label, value, style in rows:
        table.add_row(f"[{style}]{label}[/{style}]" if style else label, value)
    return table


class ConsoleReporter:
    """Redraws the metrics table and the recent activity block on every report."""

    def __init__(self, console: Console | None = None, *, clear: bool = True) -> None:
        self.console = console or Console()
        self.clear = clear

    def report(self, snapshot: MetricsSnapshot, activity: list[ActivityEntry]) -> None:
        if self.clear:
            self.console.clear()
        self.console.print(f"\n[bold cyan]{TITLE}[/bold cyan]\n")
        self.console.print(build_metrics_table(snapshot))

        if activity:
            self.console.print("\n[bold white]Recent Activity:[/bold white]")
            self.console.print(Rule(style="grey50"))
            for entry in activity:
                self.console.print(
                    entry.message, style=_SEVERITY_STYLES.get(entry.level), markup=False
                )
            self.console.print(Rule(style="grey50"))
