"""Core probing engine for nat64perf.

Every probe opens a fresh TLS connection to the beacon address as seen
through a NAT64 gateway, sends a HEAD request and waits for the first
chunk of the response.  Elapsed time is taken with time.perf_counter()
from just before connect until the status line has arrived, so it
covers TCP, TLS and one HTTP round trip through the gateway.

Public API:
    probe_once      -- one timed TLS round trip to a synthesized address
    sample_latency  -- sequential probes for one prefix, folded into stats
    measure_target  -- one batch job: sample a target and classify it
    run_batch       -- bounded-concurrency batch over many targets
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from typing import Awaitable, Callable, Iterable, Optional, cast

from nat64perf.address import PrefixLike, strip_brackets, synthesize
from nat64perf.config import HEAD_REQUEST_TEMPLATE, HTTP_RESPONSE_MARKER, READ_CHUNK_SIZE
from nat64perf.errors import (
    EmptyResponse,
    ImplausibleLatency,
    InvalidPrefixFormat,
    MalformedResponse,
    ProbeFailure,
    TransportFailure,
)
from nat64perf.models import (
    LatencyStats,
    ProbeConfig,
    ProbeResult,
    ProbeStatus,
    ProbeTarget,
    Sample,
)
from nat64perf.stats import fold_samples

logger = logging.getLogger(__name__)

# Type alias for the progress callback.
# Signature: (completed, total, latest_result)
ProgressCallback = Callable[[int, int, ProbeResult], None]

# Pluggable single-attempt probe and per-target job (tests swap these out).
ProbeFunc = Callable[..., Awaitable[float]]
MeasureFunc = Callable[[ProbeTarget, ProbeConfig], Awaitable[ProbeResult]]


# ---------------------------------------------------------------------------
# TLS connection
# ---------------------------------------------------------------------------

def _build_ssl_context(verify: bool) -> ssl.SSLContext:
    """Build the client SSL context; *verify* toggles certificate checks."""
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    ctx.set_alpn_protocols(["http/1.1"])
    return ctx


async def _open_tls_connection(
    host: str,
    port: int,
    server_hostname: str,
    config: ProbeConfig,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a TCP+TLS connection to *host*:*port*.

    The caller is responsible for closing the writer when done.
    """
    ctx = _build_ssl_context(config.verify_tls)
    return await asyncio.open_connection(host, port, ssl=ctx, server_hostname=server_hostname)


def _safe_close_writer(writer: asyncio.StreamWriter | None) -> None:
    """Close a stream writer without raising on already-closed transports."""
    if writer is None:
        return
    try:
        writer.close()
    except Exception as exc:
        logger.debug("Ignoring error while closing connection: %s", exc)


# ---------------------------------------------------------------------------
# Single probe
# ---------------------------------------------------------------------------

async def probe_once(
    address: str,
    port: Optional[int] = None,
    host_header: Optional[str] = None,
    config: Optional[ProbeConfig] = None,
) -> float:
    """Time one TLS + HEAD round trip to *address* and return milliseconds.

    *address* may be bracketed (``[64:ff9b::0101:0101]``).  *port* and
    *host_header* default to the values in *config*.  ``config.timeout``
    bounds the whole attempt, connect through first chunk.

    Raises
    ------
    ProbeFailure
        ``TransportFailure``, ``EmptyResponse``, ``MalformedResponse`` or
        ``ImplausibleLatency``.  No other exception escapes for network
        problems.
    """
    config = config or ProbeConfig()
    port = config.port if port is None else port
    host_header = host_header or config.host_header
    host = strip_brackets(address)
    request = HEAD_REQUEST_TEMPLATE.format(host=host_header).encode()

    # Filled in by _exchange as soon as the connection is up.
    opened: list[asyncio.StreamWriter] = []

    async def _exchange() -> bytes:
        reader, writer = await _open_tls_connection(host, port, host_header, config)
        opened.append(writer)
        writer.write(request)
        await writer.drain()
        return await reader.read(READ_CHUNK_SIZE)

    t0 = time.perf_counter()
    try:
        # One deadline for connect, send and first read together.
        chunk = await asyncio.wait_for(_exchange(), timeout=config.timeout)
        t_done = time.perf_counter()
    except asyncio.TimeoutError as exc:
        raise TransportFailure(
            f"Timed out after {config.timeout:g}s talking to {address}:{port}"
        ) from exc
    except OSError as exc:
        raise TransportFailure(f"Connection to {address}:{port} failed: {exc}") from exc
    finally:
        # Always release the socket, whatever happened above.
        _safe_close_writer(opened[0] if opened else None)

    if not chunk:
        raise EmptyResponse(f"No response received from {address}:{port}")
    if HTTP_RESPONSE_MARKER not in chunk:
        raise MalformedResponse(f"Invalid HTTP response from {address}:{port}: {chunk[:32]!r}")

    latency_ms = (t_done - t0) * 1000.0
    if not config.min_latency_ms <= latency_ms <= config.max_latency_ms:
        raise ImplausibleLatency(latency_ms, config.min_latency_ms, config.max_latency_ms)
    return round(latency_ms, 3)


# ---------------------------------------------------------------------------
# Per-prefix sampling
# ---------------------------------------------------------------------------

async def _run_attempt(
    address: str,
    attempt: int,
    config: ProbeConfig,
    probe: ProbeFunc,
) -> Sample:
    """Run one probe and turn its outcome into a :class:`Sample`."""
    try:
        latency_ms = await probe(address, config=config)
    except ProbeFailure as exc:
        logger.debug("Attempt %d to %s failed: %s", attempt + 1, address, exc)
        return Sample.failed(str(exc))
    return Sample.measured(latency_ms)


async def sample_latency(
    prefix: PrefixLike,
    attempts: Optional[int] = None,
    *,
    config: Optional[ProbeConfig] = None,
    probe: ProbeFunc = probe_once,
) -> LatencyStats:
    """Probe the beacon through *prefix* several times and fold the samples.

    Attempts run one after another on purpose; a failed attempt does not
    stop the remaining ones.

    Raises
    ------
    InvalidPrefixFormat, InvalidAddressInput
        When the prefix or the configured beacon cannot be synthesized.
    """
    config = config or ProbeConfig()
    attempts = config.attempts if attempts is None else attempts
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    address = synthesize(prefix, config.beacon_ipv4)
    samples = [await _run_attempt(address, i, config, probe) for i in range(attempts)]
    return fold_samples(samples)


def _failure_summary(stats: LatencyStats, required: int) -> str:
    if not stats.is_reachable:
        last = stats.errors[-1] if stats.errors else "no response"
        return f"All {stats.total_count} attempts failed: {last}"
    return (
        f"Only {stats.success_count}/{stats.total_count} attempts succeeded "
        f"({required} required)"
    )


async def measure_target(
    target: ProbeTarget,
    config: Optional[ProbeConfig] = None,
    *,
    probe: ProbeFunc = probe_once,
) -> ProbeResult:
    """Sample one target and classify it Ok or Failed.

    A target is Ok once at least ``config.min_successes`` attempts
    succeeded (one by default).
    """
    config = config or ProbeConfig()
    stats = await sample_latency(target.prefix, config=config, probe=probe)

    required = max(config.min_successes, 1)
    if stats.success_count >= required:
        return ProbeResult(target=target, stats=stats, status=ProbeStatus.OK)
    return ProbeResult(
        target=target,
        stats=stats,
        status=ProbeStatus.FAILED,
        error=_failure_summary(stats, required),
    )


# ---------------------------------------------------------------------------
# Batch orchestration
# ---------------------------------------------------------------------------

async def _safe_measure(
    target: ProbeTarget,
    config: ProbeConfig,
    measure: MeasureFunc,
) -> ProbeResult:
    """Wrapper that turns any job error into a Failed result."""
    try:
        return await measure(target, config)
    except InvalidPrefixFormat as exc:
        logger.warning("Skipping %s: %s", target.prefix, exc)
        error = str(exc)
    except Exception as exc:
        logger.exception("Fatal error measuring %s", target.prefix)
        error = f"Fatal measurement error: {exc}"

    return ProbeResult(
        target=target,
        stats=LatencyStats.failed(max(config.attempts, 1), (error,)),
        status=ProbeStatus.FAILED,
        error=error,
    )


def _notify(
    callback: ProgressCallback,
    completed: int,
    total: int,
    result: ProbeResult,
) -> None:
    try:
        callback(completed, total, result)
    except Exception:
        logger.exception("Progress callback failed for %s", result.prefix)


async def run_batch(
    targets: Iterable[ProbeTarget],
    concurrency_limit: Optional[int] = None,
    on_progress: ProgressCallback | None = None,
    *,
    config: Optional[ProbeConfig] = None,
    measure: MeasureFunc = measure_target,
) -> list[ProbeResult]:
    """Measure every target with at most *concurrency_limit* jobs in flight.

    A fixed pool of worker tasks pulls ``(index, target)`` pairs from a
    queue in input order, so jobs are admitted first-in first-out as
    earlier ones finish.  Each result is written to the slot of its input
    position; the returned list lines up with *targets* regardless of
    completion order.

    Parameters
    ----------
    targets:
        Targets to measure, in the order results should be returned.
    concurrency_limit:
        Maximum simultaneous jobs; defaults to ``config.concurrency``.
    on_progress:
        Optional callable invoked once per finished job, in completion order.
        Signature: ``(completed, total, result)``
    config:
        Probe settings shared by every job.
    measure:
        The per-target job; defaults to :func:`measure_target`.

    Returns
    -------
    list[ProbeResult]
        One result per target, in input order.  Job failures become
        Failed results and never abort the batch.
    """
    config = config or ProbeConfig()
    limit = config.concurrency if concurrency_limit is None else concurrency_limit
    if limit < 1:
        raise ValueError(f"concurrency_limit must be at least 1, got {limit}")

    items = list(targets)
    total = len(items)
    if total == 0:
        return []

    queue: asyncio.Queue[tuple[int, ProbeTarget]] = asyncio.Queue()
    for item in enumerate(items):
        queue.put_nowait(item)

    results: list[Optional[ProbeResult]] = [None] * total
    completed = 0

    async def _worker() -> None:
        nonlocal completed
        while True:
            try:
                index, target = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await _safe_measure(target, config, measure)
            # Workers share one event loop: the slot write and the counter
            # update below run without an intervening await.
            results[index] = result
            completed += 1
            if on_progress is not None:
                _notify(on_progress, completed, total, result)

    workers = min(limit, total)
    logger.info("Testing %d prefixes with %d concurrent jobs", total, workers)
    t0 = time.perf_counter()
    await asyncio.gather(*(_worker() for _ in range(workers)))
    logger.info("Batch of %d finished in %.1fs", total, time.perf_counter() - t0)

    return cast(list[ProbeResult], results)
