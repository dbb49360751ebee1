"""CLI entry point and orchestration for nat64perf."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.logging import RichHandler

from nat64perf import __version__
from nat64perf.config import (
    DEFAULT_ATTEMPTS,
    DEFAULT_BEACON_IPV4,
    DEFAULT_CONCURRENCY,
    DEFAULT_HOST_HEADER,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DIRECTORY_URL,
)
from nat64perf.errors import Nat64PerfError
from nat64perf.models import FullResult, ProbeConfig, ProbeTarget

LOCAL_PROVIDER = "Local DNS64"
CUSTOM_PROVIDER = "Custom"


def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _configure_logging(verbose: bool, quiet: bool) -> None:
    """Send log records to stderr through Rich so stdout stays clean for exports."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.command()
@click.option("-p", "--prefix", "prefixes", multiple=True, help="NAT64 prefix to test, repeatable [default: whole directory]")
@click.option("--provider", "providers", default="", help="Comma-separated provider filter (substring match)")
@click.option("--region", "regions", default="", help="Comma-separated region filter (substring match)")
@click.option("--local", "include_local", is_flag=True, help="Also test this network's DNS64 prefix (RFC 7050)")
@click.option("--list", "list_only", is_flag=True, help="Show the provider directory and exit")
@click.option("--directory-url", default=DIRECTORY_URL, help="Directory page to scrape", show_default=True)
@click.option("-n", "--attempts", default=DEFAULT_ATTEMPTS, type=click.IntRange(min=1), help="Attempts per prefix", show_default=True)
@click.option("-c", "--concurrency", default=DEFAULT_CONCURRENCY, type=click.IntRange(min=1), help="Prefixes tested at once", show_default=True)
@click.option("-t", "--timeout", default=DEFAULT_TIMEOUT, type=click.FloatRange(min=0, min_open=True), help="Per-step timeout in seconds", show_default=True)
@click.option("--beacon", default=DEFAULT_BEACON_IPV4, help="IPv4 address reached through each gateway", show_default=True)
@click.option("--port", default=DEFAULT_PORT, type=click.IntRange(1, 65535), help="TLS port on the beacon", show_default=True)
@click.option("--host-header", default=DEFAULT_HOST_HEADER, help="SNI and Host header sent to the beacon", show_default=True)
@click.option("--min-successes", default=1, type=click.IntRange(min=1), help="Successful attempts needed to count a prefix as OK", show_default=True)
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--dns-server", default=None, help="Resolver used for --local discovery")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("--csv", "csv_output", is_flag=True, help="Output CSV to stdout")
@click.option("-o", "--output", default=None, help="Write results to file")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress, show only results")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and full error details")
@click.version_option(version=__version__)
def main(
    prefixes: tuple[str, ...],
    providers: str,
    regions: str,
    include_local: bool,
    list_only: bool,
    directory_url: str,
    attempts: int,
    concurrency: int,
    timeout: float,
    beacon: str,
    port: int,
    host_header: str,
    min_successes: int,
    insecure: bool,
    dns_server: str | None,
    json_output: bool,
    csv_output: bool,
    output: str | None,
    quiet: bool,
    verbose: bool,
) -> None:
    """nat64perf — NAT64 Gateway Latency Tester.

    Fetches the public NAT64 gateway directory and measures, for every
    prefix, the TLS round trip to a beacon IPv4 address reached through
    that gateway.
    """
    _configure_logging(verbose, quiet)

    if min_successes > attempts:
        raise click.UsageError("--min-successes cannot exceed --attempts")

    from nat64perf.address import synthesize
    from nat64perf.display import render_error

    try:
        synthesize("64:ff9b::/96", beacon)
    except Nat64PerfError as exc:
        raise click.BadParameter(str(exc), param_hint="--beacon") from exc

    config = ProbeConfig(
        beacon_ipv4=beacon,
        port=port,
        host_header=host_header,
        attempts=attempts,
        concurrency=concurrency,
        timeout=timeout,
        verify_tls=not insecure,
        min_successes=min_successes,
        prefixes=[p.strip() for p in prefixes if p.strip()],
        providers=_split_csv(providers),
        regions=_split_csv(regions),
        include_local=include_local,
        verbose=verbose,
        quiet=quiet,
        json_output=json_output,
        csv_output=csv_output,
        output_file=output,
    )

    try:
        if list_only:
            asyncio.run(_list(directory_url, config))
            return
        result = asyncio.run(_run(config, directory_url, dns_server))
    except KeyboardInterrupt:
        if not quiet and not json_output and not csv_output:
            from nat64perf.display import console
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except Nat64PerfError as exc:
        render_error(str(exc))
        sys.exit(1)

    # Output
    _handle_output(result, config)


async def _list(directory_url: str, config: ProbeConfig) -> None:
    """Print the directory instead of testing it."""
    import json

    from nat64perf.directory import fetch_directory
    from nat64perf.display import render_directory

    directory = await fetch_directory(directory_url)
    if config.json_output:
        click.echo(json.dumps(directory, indent=2, ensure_ascii=False))
    else:
        render_directory(directory)


async def _collect_targets(
    config: ProbeConfig,
    directory_url: str,
    dns_server: str | None,
) -> list[ProbeTarget]:
    """Build the ordered target list from explicit prefixes, discovery and the directory."""
    from nat64perf.directory import fetch_directory, filter_targets, flatten_directory
    from nat64perf.discovery import discover_local_prefixes

    targets: list[ProbeTarget] = []

    if config.include_local:
        local = await discover_local_prefixes(timeout=config.timeout, nameserver=dns_server)
        if not local and not config.quiet:
            from nat64perf.display import render_warning
            render_warning("No DNS64 prefix discovered on this network")
        targets.extend(ProbeTarget(prefix=str(p), provider=LOCAL_PROVIDER) for p in local)

    if config.prefixes:
        targets.extend(ProbeTarget(prefix=p, provider=CUSTOM_PROVIDER) for p in config.prefixes)
    elif not config.include_local or config.providers or config.regions:
        # --local on its own tests only the local gateway.
        directory = await fetch_directory(directory_url)
        targets.extend(filter_targets(flatten_directory(directory), config.providers, config.regions))

    return targets


async def _run(config: ProbeConfig, directory_url: str, dns_server: str | None) -> FullResult:
    """Main async orchestration."""
    from nat64perf.display import ProgressTracker, console
    from nat64perf.engine import run_batch
    from nat64perf.stats import summarize

    targets = await _collect_targets(config, directory_url, dns_server)
    if not targets:
        raise Nat64PerfError("No prefixes to test")

    show_progress = not config.quiet and not config.json_output and not config.csv_output
    progress = ProgressTracker(len(targets)) if show_progress else None

    if progress:
        console.print(
            f"[bold]Testing {len(targets)} NAT64 prefixes, "
            f"{config.attempts} attempts each, via {config.beacon_ipv4}...[/bold]"
        )
        progress.start()

    try:
        results = await run_batch(
            targets,
            config.concurrency,
            progress.update if progress else None,
            config=config,
        )
    finally:
        if progress:
            progress.finish()

    return FullResult(
        results=results,
        summary=summarize(results),
        config=config,
        timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )


def _handle_output(result: FullResult, config: ProbeConfig) -> None:
    """Handle output rendering and export."""
    from nat64perf.display import console, render_full
    from nat64perf.export import export_csv, export_json, write_to_file

    # JSON output
    if config.json_output:
        json_str = export_json(result)
        if config.output_file:
            write_to_file(json_str, config.output_file)
            if not config.quiet:
                console.print(f"[dim]Results written to {config.output_file}[/dim]")
        else:
            click.echo(json_str)
        return

    # CSV output
    if config.csv_output:
        csv_str = export_csv(result)
        if config.output_file:
            write_to_file(csv_str, config.output_file)
            if not config.quiet:
                console.print(f"[dim]Results written to {config.output_file}[/dim]")
        else:
            click.echo(csv_str)
        return

    # Rich terminal output
    render_full(result.results, result.summary, verbose=config.verbose)

    # Also write to file if -o specified (non-json/csv mode writes JSON)
    if config.output_file:
        write_to_file(export_json(result), config.output_file)
        console.print(f"\n[dim]Results written to {config.output_file}[/dim]")


if __name__ == "__main__":
    main()
