"""Statistical aggregation for latency measurements."""

from __future__ import annotations

import math
from typing import Sequence

from nat64perf.models import BatchSummary, LatencyStats, ProbeResult, Sample


def round_ms(value: float) -> int:
    """Round to the nearest whole millisecond, halves away from zero."""
    return int(math.floor(value + 0.5))


def fold_samples(samples: Sequence[Sample]) -> LatencyStats:
    """Fold the samples of one prefix into :class:`LatencyStats`.

    Failed samples count towards ``total_count`` only; they never enter
    the sum.
    """
    values = [s.latency_ms for s in samples if s.ok]
    errors = tuple(s.error for s in samples if s.error is not None)

    if not values:
        return LatencyStats.failed(len(samples), errors)

    total = sum(values)
    return LatencyStats(
        average_ms=round_ms(total / len(values)),
        total_ms=round_ms(total),
        success_count=len(values),
        total_count=len(samples),
        errors=errors,
    )


def summarize(results: Sequence[ProbeResult]) -> BatchSummary:
    """Compute cross-job statistics over a (possibly partial) result list.

    Pure: safe to call repeatedly on snapshots of a growing batch.
    """
    total = len(results)
    ok = [r for r in results if r.ok]
    successful = len(ok)
    rate = round_ms(100 * successful / total) if total else 0

    latencies = [r.stats.average_ms for r in ok if r.stats.average_ms is not None]
    if not latencies:
        return BatchSummary(
            total=total,
            successful=successful,
            failed=total - successful,
            success_rate_percent=rate,
        )

    return BatchSummary(
        total=total,
        successful=successful,
        failed=total - successful,
        success_rate_percent=rate,
        avg_latency_ms=round_ms(sum(latencies) / len(latencies)),
        min_latency_ms=min(latencies),
        max_latency_ms=max(latencies),
    )
