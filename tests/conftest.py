"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Sequence

import pytest

from nat64perf import engine
from nat64perf.models import LatencyStats, ProbeResult, ProbeStatus, ProbeTarget


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that records traffic."""

    def __init__(self) -> None:
        self.written = b""
        self.drain_delay = 0.0
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written += data

    async def drain(self) -> None:
        if self.drain_delay:
            await asyncio.sleep(self.drain_delay)
        return None

    def close(self) -> None:
        self.closed = True


class FakeReader:
    """Stand-in for asyncio.StreamReader returning one scripted chunk."""

    def __init__(self, payload: bytes = b"", delay: float = 0.0, error: Exception | None = None) -> None:
        self.payload = payload
        self.delay = delay
        self.error = error

    async def read(self, n: int = -1) -> bytes:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class FakeConnection:
    """Replaces the TLS connector used by ``probe_once``."""

    def __init__(self) -> None:
        self.reader = FakeReader(b"HTTP/1.1 301 Moved Permanently\r\n\r\n", delay=0.02)
        self.writer = FakeWriter()
        self.connect_error: Exception | None = None
        self.connect_delay = 0.0
        self.calls: list[tuple[str, int, str]] = []

    async def open(self, host: str, port: int, server_hostname: str, config: Any):
        self.calls.append((host, port, server_hostname))
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        return self.reader, self.writer


@pytest.fixture
def fake_connection(monkeypatch: pytest.MonkeyPatch) -> FakeConnection:
    """Route ``probe_once`` through an in-memory connection."""
    conn = FakeConnection()
    monkeypatch.setattr(engine, "_open_tls_connection", conn.open)
    return conn


def scripted_probe(outcomes: Sequence[float | Exception]) -> Callable[..., Any]:
    """Build a probe that returns/raises the given outcomes in order."""
    calls: list[str] = []

    async def probe(address: str, config: Any = None) -> float:
        outcome = outcomes[len(calls)]
        calls.append(address)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    probe.calls = calls  # type: ignore[attr-defined]
    return probe


def make_result(
    average_ms: int | None,
    *,
    prefix: str = "64:ff9b::/96",
    provider: str = "Example",
    region: str = "Nowhere",
) -> ProbeResult:
    """Build a ProbeResult; ``None`` average means a failed target."""
    target = ProbeTarget(prefix=prefix, provider=provider, region=region)
    if average_ms is None:
        return ProbeResult(
            target=target,
            stats=LatencyStats.failed(3, ("No response received",)),
            status=ProbeStatus.FAILED,
            error="All 3 attempts failed: No response received",
        )
    return ProbeResult(
        target=target,
        stats=LatencyStats(
            average_ms=average_ms,
            total_ms=average_ms * 3,
            success_count=3,
            total_count=3,
        ),
        status=ProbeStatus.OK,
    )
