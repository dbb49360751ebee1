"""Rich terminal output for nat64perf."""

from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from nat64perf.config import FAST_THRESHOLD_MS, MEDIUM_THRESHOLD_MS
from nat64perf.directory import Directory, directory_stats
from nat64perf.models import BatchSummary, ProbeResult

console = Console()

DASH = "\u2014"


def _color_for_ms(value: float) -> str:
    """Return a Rich color name based on latency thresholds."""
    if value <= FAST_THRESHOLD_MS:
        return "green"
    elif value <= MEDIUM_THRESHOLD_MS:
        return "yellow"
    return "red"


def _fmt_ms(value: Optional[float], colorize: bool = True) -> Text:
    """Format a millisecond value; ``None`` renders as a dash."""
    if value is None:
        return Text(DASH, style="dim")
    text = f"{value:.0f}ms"
    if colorize:
        return Text(text, style=_color_for_ms(value))
    return Text(text)


# ── Progress tracking ─────────────────────────────────────────────────


class ProgressTracker:
    """Live progress bar for a batch, fed from the batch progress callback."""

    def __init__(self, total: int):
        self.total = total
        self.ok = 0
        self.failed = 0
        self.progress: Optional[Progress] = None
        self._task_id = None

    def _description(self) -> str:
        return f"[green]{self.ok} ok[/green] [red]{self.failed} failed[/red]"

    def start(self) -> None:
        self.progress = Progress(
            TextColumn("[bold]Testing"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._task_id = self.progress.add_task(self._description(), total=self.total)
        self.progress.start()

    def update(self, completed: int, total: int, result: ProbeResult) -> None:
        if result.ok:
            self.ok += 1
        else:
            self.failed += 1
        if self.progress is not None and self._task_id is not None:
            self.progress.update(
                self._task_id,
                completed=completed,
                total=total,
                description=self._description(),
            )

    def finish(self) -> None:
        if self.progress is not None:
            self.progress.stop()


# ── Directory rendering ───────────────────────────────────────────────


def render_directory(directory: Directory) -> None:
    """Print every provider, region and prefix of the directory."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        header_style="bold",
        title="[bold]NAT64 Providers[/bold]",
        title_style="",
    )
    table.add_column("Provider", style="bold", overflow="ellipsis", max_width=20)
    table.add_column("Region", overflow="ellipsis", max_width=16)
    table.add_column("Prefixes", no_wrap=True)

    for provider, regions in directory.items():
        for i, (region, prefixes) in enumerate(regions.items()):
            table.add_row(
                provider if i == 0 else "",
                region,
                "\n".join(prefixes),
                end_section=i == len(regions) - 1,
            )

    stats = directory_stats(directory)
    console.print(table)
    console.print(
        f"[dim]{stats.provider_count} providers, {stats.region_count} regions, "
        f"{stats.prefix_count} prefixes[/dim]"
    )


# ── Result rendering ──────────────────────────────────────────────────


def _sort_key(result: ProbeResult) -> tuple[int, float]:
    avg = result.stats.average_ms
    if not result.ok or avg is None:
        return (1, float("inf"))
    return (0, float(avg))


def build_results_table(results: Sequence[ProbeResult], verbose: bool = False) -> Table:
    """Build the per-prefix results table, fastest first, failures last."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
        title="[bold]NAT64 Latency[/bold] [dim](sorted by average latency)[/dim]",
        title_style="",
    )
    table.add_column("#", justify="right", width=3, style="dim")
    table.add_column("Provider", style="bold", overflow="ellipsis", max_width=20)
    table.add_column("Region", overflow="ellipsis", max_width=16)
    table.add_column("Prefix", no_wrap=True, min_width=12)
    table.add_column("Avg", justify="right", no_wrap=True)
    table.add_column("OK", justify="right", no_wrap=True)
    table.add_column("Status")

    for rank, r in enumerate(sorted(results, key=_sort_key), 1):
        reliability = f"{r.stats.success_count}/{r.stats.total_count}"
        if r.ok:
            status = Text("ok", style="green")
        else:
            detail = r.error or "failed"
            if not verbose and len(detail) > 60:
                detail = detail[:57] + "..."
            status = Text(detail, style="red")
        table.add_row(
            str(rank),
            r.provider or DASH,
            r.region or DASH,
            r.prefix,
            _fmt_ms(r.stats.average_ms),
            Text(reliability, style="" if r.stats.success_count == r.stats.total_count else "yellow"),
            status,
        )

    return table


def render_summary(summary: BatchSummary) -> None:
    """Print the one-line batch summary."""
    parts = [
        f"[bold]{summary.total}[/bold] tested",
        f"[green]{summary.successful} ok[/green]",
        f"[red]{summary.failed} failed[/red]",
        f"{summary.success_rate_percent}% success",
    ]
    if summary.avg_latency_ms is not None:
        parts.append(
            f"avg {summary.avg_latency_ms}ms "
            f"[dim](min {summary.min_latency_ms}ms, max {summary.max_latency_ms}ms)[/dim]"
        )
    console.print(" │ ".join(parts))


def render_full(results: Sequence[ProbeResult], summary: BatchSummary, verbose: bool = False) -> None:
    """Render the complete batch results."""
    if not results:
        console.print("[dim]No prefixes tested.[/dim]")
        return
    console.print()
    console.print(build_results_table(results, verbose=verbose))
    console.print()
    render_summary(summary)


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
