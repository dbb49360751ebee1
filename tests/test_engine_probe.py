"""Tests for the single connection probe."""

from __future__ import annotations

import asyncio

import pytest

from nat64perf.engine import probe_once
from nat64perf.errors import (
    EmptyResponse,
    ImplausibleLatency,
    MalformedResponse,
    ProbeFailure,
    TransportFailure,
)
from nat64perf.models import ProbeConfig

from .conftest import FakeConnection, FakeReader

pytestmark = pytest.mark.asyncio

ADDRESS = "[64:ff9b::0101:0101]"


async def test_successful_probe_returns_latency(fake_connection: FakeConnection) -> None:
    latency = await probe_once(ADDRESS)

    assert 10 <= latency <= 5000
    assert fake_connection.calls == [("64:ff9b::0101:0101", 443, "one.one.one.one")]
    assert fake_connection.writer.written == (
        b"HEAD / HTTP/1.1\r\nHost: one.one.one.one\r\nConnection: close\r\n\r\n"
    )
    assert fake_connection.writer.closed


async def test_port_and_host_override(fake_connection: FakeConnection) -> None:
    await probe_once(ADDRESS, 8443, "example.net")

    assert fake_connection.calls == [("64:ff9b::0101:0101", 8443, "example.net")]
    assert b"Host: example.net\r\n" in fake_connection.writer.written


async def test_empty_response(fake_connection: FakeConnection) -> None:
    fake_connection.reader = FakeReader(b"", delay=0.02)

    with pytest.raises(EmptyResponse):
        await probe_once(ADDRESS)
    assert fake_connection.writer.closed


async def test_malformed_response(fake_connection: FakeConnection) -> None:
    fake_connection.reader = FakeReader(b"SSH-2.0-OpenSSH_9.6\r\n", delay=0.02)

    with pytest.raises(MalformedResponse):
        await probe_once(ADDRESS)
    assert fake_connection.writer.closed


async def test_connect_refused_is_transport_failure(fake_connection: FakeConnection) -> None:
    fake_connection.connect_error = ConnectionRefusedError(111, "Connection refused")

    with pytest.raises(TransportFailure, match="Connection refused"):
        await probe_once(ADDRESS)


async def test_reset_during_read_closes_connection(fake_connection: FakeConnection) -> None:
    fake_connection.reader = FakeReader(error=ConnectionResetError("reset by peer"))

    with pytest.raises(TransportFailure):
        await probe_once(ADDRESS)
    assert fake_connection.writer.closed


async def test_read_timeout(fake_connection: FakeConnection) -> None:
    fake_connection.reader = FakeReader(b"HTTP/1.1 200 OK\r\n", delay=1.0)

    with pytest.raises(TransportFailure, match="Timed out"):
        await probe_once(ADDRESS, config=ProbeConfig(timeout=0.05))
    assert fake_connection.writer.closed


async def test_timeout_covers_whole_attempt(fake_connection: FakeConnection) -> None:
    # Each step stays under the timeout; together they exceed it.
    fake_connection.connect_delay = 0.08
    fake_connection.writer.drain_delay = 0.08
    fake_connection.reader = FakeReader(b"HTTP/1.1 200 OK\r\n", delay=0.08)

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(TransportFailure, match="Timed out"):
        await probe_once(ADDRESS, config=ProbeConfig(timeout=0.15))
    assert loop.time() - started < 0.22
    assert fake_connection.writer.closed


async def test_slow_connect_times_out(fake_connection: FakeConnection) -> None:
    fake_connection.connect_delay = 1.0

    with pytest.raises(TransportFailure, match="Timed out"):
        await probe_once(ADDRESS, config=ProbeConfig(timeout=0.05))
    assert not fake_connection.writer.closed


async def test_too_fast_is_implausible(fake_connection: FakeConnection) -> None:
    config = ProbeConfig(min_latency_ms=10_000, max_latency_ms=20_000)

    with pytest.raises(ImplausibleLatency) as excinfo:
        await probe_once(ADDRESS, config=config)
    assert excinfo.value.latency_ms < 10_000
    assert fake_connection.writer.closed


async def test_too_slow_is_implausible(fake_connection: FakeConnection) -> None:
    config = ProbeConfig(min_latency_ms=0, max_latency_ms=1)

    with pytest.raises(ImplausibleLatency):
        await probe_once(ADDRESS, config=config)


async def test_every_failure_is_a_probe_failure(fake_connection: FakeConnection) -> None:
    fake_connection.connect_error = asyncio.TimeoutError()

    with pytest.raises(ProbeFailure):
        await probe_once(ADDRESS)


async def test_close_error_does_not_mask_result(fake_connection: FakeConnection) -> None:
    def broken_close() -> None:
        raise OSError("already closed")

    fake_connection.writer.close = broken_close  # type: ignore[method-assign]

    latency = await probe_once(ADDRESS)
    assert latency >= 10
