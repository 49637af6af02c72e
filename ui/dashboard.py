"""
Rich-based terminal dashboard for capability test results.

All formatting helpers live in ``netcap.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from netcap.orchestrator import PHASE_DOWNLOAD, PHASE_LATENCY, PHASE_UPLOAD, LogEntry, RunResults
from netcap.rating import Profile, ProfileVerdict, Verdict, describe_missing, join_list
from netcap.stats import format_latency, format_speed

console = Console()

_VERDICT_STYLE = {
    Verdict.PASS: ("green", "PASS"),
    Verdict.FAIL: ("red", "FAIL"),
    Verdict.UNKNOWN: ("yellow", "?"),
}

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: Sequence[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(_BARS[int((v - lo) / span * (len(_BARS) - 1))] for v in values)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Network Capability Test[/bold cyan]\n"
            "[dim]Download, upload, latency and what your connection can handle[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def _metric(value: Optional[str], error: Optional[str]) -> str:
    if error:
        return "[red]Not accessible[/red]"
    if value is None:
        return "[dim]—[/dim]"
    return value


def print_results(results: RunResults) -> None:
    """Print the measurement summary panel."""
    errors = results.errors
    dl = results.download
    ul = results.upload
    lat = results.latency

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")
    table.add_column(style="dim")

    table.add_row(
        "Download",
        _metric(f"[bold green]{format_speed(dl.mbps)}[/bold green]" if dl else None, errors.get(PHASE_DOWNLOAD)),
        f"{dl.count} requests" if dl else "",
    )
    table.add_row(
        "Upload",
        _metric(f"[bold blue]{format_speed(ul.mbps)}[/bold blue]" if ul else None, errors.get(PHASE_UPLOAD)),
        f"{ul.count} requests" if ul else "",
    )
    lat_error = errors.get(PHASE_LATENCY)
    table.add_row(
        "Latency",
        _metric(f"[bold yellow]{format_latency(lat.average_ms)}[/bold yellow]" if lat else None, lat_error),
        f"{lat.count} samples" if lat else "",
    )
    table.add_row("Jitter", _metric(f"{lat.jitter_ms:.2f} ms" if lat else None, lat_error), "")
    table.add_row("Packet loss", _metric(f"{lat.loss_percent:.1f}%" if lat else None, lat_error), "")

    console.print(Panel(table, title="[bold]Results[/bold]", border_style="cyan"))

    if lat and lat.samples:
        console.print(
            Panel(
                f"[yellow]{create_histogram(lat.samples)}[/yellow]\n"
                f"[dim]Min: {min(lat.samples):.1f} ms  Max: {max(lat.samples):.1f} ms[/dim]",
                title="Round Trips",
            )
        )

    for phase, message in errors.items():
        console.print(f"[red]{phase.capitalize()} error:[/red] {message}")


def print_capabilities(verdicts: List[ProfileVerdict]) -> None:
    """Print one row per profile with its tier breakdown."""
    if not verdicts:
        return

    table = Table(title="Capabilities", box=box.ROUNDED)
    table.add_column("Service", style="bold")
    table.add_column("Verdict", justify="center")
    table.add_column("Tiers")
    table.add_column("Details")

    for v in verdicts:
        color, text = _VERDICT_STYLE[v.verdict]
        tiers = "  ".join(
            f"[{_VERDICT_STYLE[t.verdict][0]}]{t.label}[/{_VERDICT_STYLE[t.verdict][0]}]"
            for t in v.tiers
        )
        details = v.why
        if v.verdict is Verdict.UNKNOWN and v.missing:
            details += f" Missing {describe_missing(list(v.missing))}."
        elif v.verdict is Verdict.FAIL and v.limiting:
            details += f" Limited by {join_list(list(v.limiting))}."
        table.add_row(v.service, f"[bold {color}]{text}[/bold {color}]", tiers, details)

    console.print(table)


def print_profiles(profiles: Sequence[Profile]) -> None:
    table = Table(title="Usage Profiles", box=box.ROUNDED)
    table.add_column("Service", style="bold")
    table.add_column("Tier")
    table.add_column("Requirement", style="dim")
    for profile in profiles:
        for i, quality in enumerate(profile.qualities):
            table.add_row(profile.service if i == 0 else "", quality.label, quality.detail)
    console.print(table)


def print_log(entries: List[LogEntry]) -> None:
    for entry in entries:
        console.print(f"[dim]{entry.timestamp:6.1f}s[/dim]  {entry.message}")


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar during one phase."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[detail]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None

    def start(self, description: str) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(description, total=100, detail="")

    def update(self, fraction: float, detail: str = "") -> None:
        if self._task_id is None:
            return
        self.progress.update(self._task_id, completed=min(fraction, 1.0) * 100, detail=detail)

    def note(self, message: str) -> None:
        self.progress.console.print(f"  [dim]{message}[/dim]")

    def stop(self) -> None:
        if self._task_id is not None:
            self.progress.stop()
            self._task_id = None


PHASE_TITLES = {
    PHASE_DOWNLOAD: "Downloading",
    PHASE_UPLOAD: "Uploading",
    PHASE_LATENCY: "Probing latency",
}
