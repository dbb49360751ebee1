"""Data models for nat64perf."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, field
from typing import Optional

from nat64perf.config import (
    DEFAULT_ATTEMPTS,
    DEFAULT_BEACON_IPV4,
    DEFAULT_CONCURRENCY,
    DEFAULT_HOST_HEADER,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    MAX_LATENCY_MS,
    MIN_LATENCY_MS,
    NAT64_PREFIX_SUFFIX,
)
from nat64perf.errors import InvalidPrefixFormat


@dataclass(frozen=True)
class Nat64Prefix:
    """A validated NAT64 /96 prefix such as ``64:ff9b::/96``."""

    value: str

    def __post_init__(self) -> None:
        text = self.value.strip() if isinstance(self.value, str) else ""
        if not text.endswith(NAT64_PREFIX_SUFFIX):
            raise InvalidPrefixFormat(
                f"Invalid NAT64 prefix {self.value!r}: expected a {NAT64_PREFIX_SUFFIX} network"
            )
        try:
            ipaddress.IPv6Network(text, strict=True)
        except ValueError as exc:
            raise InvalidPrefixFormat(f"Invalid NAT64 prefix {self.value!r}: {exc}") from exc
        object.__setattr__(self, "value", text)

    @property
    def network(self) -> str:
        """The prefix with the ``/96`` length removed, ending in ``::``."""
        return self.value[: -len("/96")]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProbeTarget:
    """One prefix to test plus the directory labels it came from.

    ``prefix`` is kept as the raw string from the directory; it is
    validated when the job runs so a bad entry only fails its own slot.
    """

    prefix: str
    provider: str = ""
    region: str = ""


@dataclass(frozen=True)
class Sample:
    """Outcome of a single connection attempt.

    Exactly one of ``latency_ms`` and ``error`` is set.
    """

    latency_ms: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def measured(cls, latency_ms: float) -> Sample:
        return cls(latency_ms=latency_ms)

    @classmethod
    def failed(cls, error: str) -> Sample:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.latency_ms is not None


@dataclass(frozen=True)
class LatencyStats:
    """Summary of all attempts made against one prefix.

    ``average_ms`` and ``total_ms`` are ``None`` when no attempt succeeded;
    a missing latency is never reported as zero.
    """

    average_ms: Optional[int] = None
    total_ms: Optional[int] = None
    success_count: int = 0
    total_count: int = 0
    errors: tuple[str, ...] = ()

    @classmethod
    def failed(cls, total_count: int, errors: tuple[str, ...] = ()) -> LatencyStats:
        return cls(total_count=total_count, errors=errors)

    @property
    def is_reachable(self) -> bool:
        return self.success_count > 0

    @property
    def reliability_percent(self) -> int:
        if self.total_count <= 0:
            return 0
        return (self.success_count * 100 + self.total_count // 2) // self.total_count


class ProbeStatus(str, enum.Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class ProbeResult:
    """Result of one batch job, aligned 1:1 with its input target."""

    target: ProbeTarget
    stats: LatencyStats
    status: ProbeStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ProbeStatus.OK

    @property
    def prefix(self) -> str:
        return self.target.prefix

    @property
    def provider(self) -> str:
        return self.target.provider

    @property
    def region(self) -> str:
        return self.target.region


@dataclass(frozen=True)
class BatchSummary:
    """Cross-job statistics for a (possibly partial) batch.

    Latency fields only consider Ok results and are ``None`` when there
    are none.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate_percent: int = 0
    avg_latency_ms: Optional[int] = None
    min_latency_ms: Optional[int] = None
    max_latency_ms: Optional[int] = None


@dataclass(frozen=True)
class DirectoryStats:
    """Counts over a parsed gateway directory."""

    provider_count: int = 0
    region_count: int = 0
    prefix_count: int = 0


@dataclass
class ProbeConfig:
    """Configuration for a probing run."""

    beacon_ipv4: str = DEFAULT_BEACON_IPV4
    port: int = DEFAULT_PORT
    host_header: str = DEFAULT_HOST_HEADER
    attempts: int = DEFAULT_ATTEMPTS
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    min_latency_ms: float = MIN_LATENCY_MS
    max_latency_ms: float = MAX_LATENCY_MS
    verify_tls: bool = True
    min_successes: int = 1  # attempts needed for a prefix to count as Ok
    prefixes: list[str] = field(default_factory=list)  # empty = use directory
    providers: list[str] = field(default_factory=list)
    regions: list[str] = field(default_factory=list)
    include_local: bool = False
    verbose: bool = False
    quiet: bool = False
    json_output: bool = False
    csv_output: bool = False
    output_file: Optional[str] = None


@dataclass
class FullResult:
    """Complete batch run results."""

    results: list[ProbeResult] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)
    config: Optional[ProbeConfig] = None
    timestamp: Optional[str] = None
