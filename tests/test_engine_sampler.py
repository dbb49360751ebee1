"""Tests for per-prefix sampling and job classification."""

from __future__ import annotations

import pytest

from nat64perf.engine import measure_target, sample_latency
from nat64perf.errors import (
    EmptyResponse,
    ImplausibleLatency,
    InvalidAddressInput,
    InvalidPrefixFormat,
    TransportFailure,
)
from nat64perf.models import ProbeConfig, ProbeStatus, ProbeTarget

from .conftest import scripted_probe

pytestmark = pytest.mark.asyncio


async def test_partial_success_excludes_failures_from_sum() -> None:
    probe = scripted_probe([50.0, EmptyResponse("No response received"), 60.0])

    stats = await sample_latency("64:ff9b::/96", 3, probe=probe)

    assert stats.success_count == 2
    assert stats.total_count == 3
    assert stats.total_ms == 110
    assert stats.average_ms == 55
    assert stats.errors == ("No response received",)


async def test_all_failures_report_missing_latency() -> None:
    probe = scripted_probe([
        TransportFailure("refused"),
        ImplausibleLatency(7.0, 10, 5000),
        EmptyResponse("nothing"),
    ])

    stats = await sample_latency("64:ff9b::/96", 3, probe=probe)

    assert stats.average_ms is None
    assert stats.total_ms is None
    assert stats.success_count == 0
    assert stats.total_count == 3
    assert not stats.is_reachable


async def test_synthesizes_once_and_probes_sequentially() -> None:
    probe = scripted_probe([20.0, 30.0, 40.0, 50.0])

    stats = await sample_latency("64:ff9b::/96", 4, probe=probe)

    assert probe.calls == ["[64:ff9b::0101:0101]"] * 4
    assert stats.total_count == 4
    assert stats.average_ms == 35


async def test_attempts_default_from_config() -> None:
    probe = scripted_probe([20.0] * 5)

    stats = await sample_latency("64:ff9b::/96", config=ProbeConfig(attempts=5), probe=probe)

    assert stats.total_count == 5
    assert len(probe.calls) == 5


async def test_custom_beacon() -> None:
    probe = scripted_probe([20.0])

    await sample_latency("64:ff9b::/96", 1, config=ProbeConfig(beacon_ipv4="8.8.8.8"), probe=probe)

    assert probe.calls == ["[64:ff9b::0808:0808]"]


async def test_rounds_half_up() -> None:
    probe = scripted_probe([20.25, 20.25])

    stats = await sample_latency("64:ff9b::/96", 2, probe=probe)

    assert stats.total_ms == 41
    assert stats.average_ms == 20


async def test_invalid_prefix_raises_before_probing() -> None:
    probe = scripted_probe([20.0])

    with pytest.raises(InvalidPrefixFormat):
        await sample_latency("64:ff9b::/64", 1, probe=probe)
    assert probe.calls == []


async def test_invalid_beacon_raises() -> None:
    with pytest.raises(InvalidAddressInput):
        await sample_latency("64:ff9b::/96", 1, config=ProbeConfig(beacon_ipv4="1.1.1.256"))


async def test_zero_attempts_rejected() -> None:
    with pytest.raises(ValueError):
        await sample_latency("64:ff9b::/96", 0, probe=scripted_probe([]))


class TestMeasureTarget:
    async def test_partial_success_is_ok(self) -> None:
        target = ProbeTarget("64:ff9b::/96", "Example", "DE")
        probe = scripted_probe([TransportFailure("x"), TransportFailure("y"), 80.0])

        result = await measure_target(target, probe=probe)

        assert result.status is ProbeStatus.OK
        assert result.target is target
        assert result.stats.average_ms == 80
        assert result.stats.success_count == 1
        assert result.error is None

    async def test_total_failure_carries_summary(self) -> None:
        target = ProbeTarget("64:ff9b::/96", "Example", "DE")
        probe = scripted_probe([TransportFailure("a"), TransportFailure("b"), EmptyResponse("No response received")])

        result = await measure_target(target, probe=probe)

        assert result.status is ProbeStatus.FAILED
        assert result.error == "All 3 attempts failed: No response received"
        assert result.stats.success_count == 0
        assert result.stats.total_count == 3

    async def test_min_successes_policy(self) -> None:
        target = ProbeTarget("64:ff9b::/96")
        probe = scripted_probe([50.0, TransportFailure("x"), 60.0])

        result = await measure_target(target, ProbeConfig(min_successes=3), probe=probe)

        assert result.status is ProbeStatus.FAILED
        assert result.stats.average_ms == 55
        assert result.error == "Only 2/3 attempts succeeded (3 required)"
