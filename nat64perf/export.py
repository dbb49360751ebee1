"""JSON and CSV export for batch results.

Failed latencies are written as ``null`` (JSON) or an empty cell (CSV),
never as zero.
"""

from __future__ import annotations

import csv
import io
import json

from nat64perf.models import BatchSummary, FullResult, ProbeResult

CSV_COLUMNS = [
    "timestamp",
    "provider",
    "region",
    "prefix",
    "status",
    "average_ms",
    "total_ms",
    "success_count",
    "total_count",
    "reliability_percent",
    "error",
]


def export_json(result: FullResult, indent: int = 2) -> str:
    """Export full results as JSON string."""
    data = _build_export_dict(result)
    return json.dumps(data, indent=indent, default=str)


def export_csv(result: FullResult) -> str:
    """Export results as CSV string (one row per prefix)."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)

    for r in result.results:
        writer.writerow([
            result.timestamp or "",
            r.provider,
            r.region,
            r.prefix,
            r.status.value,
            "" if r.stats.average_ms is None else r.stats.average_ms,
            "" if r.stats.total_ms is None else r.stats.total_ms,
            r.stats.success_count,
            r.stats.total_count,
            r.stats.reliability_percent,
            r.error or "",
        ])

    return output.getvalue()


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w") as f:
        f.write(content)


def _build_export_dict(result: FullResult) -> dict:
    """Build a serializable dictionary from FullResult."""
    data: dict = {}

    if result.timestamp:
        data["timestamp"] = result.timestamp

    if result.config:
        data["config"] = {
            "beacon": result.config.beacon_ipv4,
            "port": result.config.port,
            "host_header": result.config.host_header,
            "attempts": result.config.attempts,
            "concurrency": result.config.concurrency,
            "timeout": result.config.timeout,
            "min_latency_ms": result.config.min_latency_ms,
            "max_latency_ms": result.config.max_latency_ms,
            "min_successes": result.config.min_successes,
        }

    data["summary"] = summary_to_dict(result.summary)
    data["results"] = [result_to_dict(r) for r in result.results]
    return data


def summary_to_dict(summary: BatchSummary) -> dict:
    return {
        "total": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
        "success_rate_percent": summary.success_rate_percent,
        "avg_latency_ms": summary.avg_latency_ms,
        "min_latency_ms": summary.min_latency_ms,
        "max_latency_ms": summary.max_latency_ms,
    }


def result_to_dict(r: ProbeResult) -> dict:
    """Convert a ProbeResult to a serializable dict."""
    return {
        "provider": r.provider,
        "region": r.region,
        "prefix": r.prefix,
        "status": r.status.value,
        "average_ms": r.stats.average_ms,
        "total_ms": r.stats.total_ms,
        "success_count": r.stats.success_count,
        "total_count": r.stats.total_count,
        "reliability_percent": r.stats.reliability_percent,
        "error": r.error,
    }
