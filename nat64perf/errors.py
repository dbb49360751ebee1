"""Exception types for nat64perf."""

from __future__ import annotations


class Nat64PerfError(Exception):
    """Base class for all nat64perf errors."""


class InvalidAddressInput(Nat64PerfError, ValueError):
    """An IPv4 literal handed to the synthesizer is malformed."""


class InvalidPrefixFormat(Nat64PerfError, ValueError):
    """A prefix does not follow the ``<network>::/96`` NAT64 grammar."""


class DirectoryError(Nat64PerfError):
    """The gateway directory could not be fetched or parsed."""


class ProbeFailure(Nat64PerfError):
    """One connection attempt did not yield a usable latency sample."""


class TransportFailure(ProbeFailure):
    """Connect, TLS handshake, write or read failed."""


class EmptyResponse(ProbeFailure):
    """The peer closed the connection without sending anything."""


class MalformedResponse(ProbeFailure):
    """The peer answered with something that is not an HTTP response."""


class ImplausibleLatency(ProbeFailure):
    """The measured round trip fell outside the plausibility window."""

    def __init__(self, latency_ms: float, low: float, high: float) -> None:
        self.latency_ms = latency_ms
        self.low = low
        self.high = high
        super().__init__(
            f"Unrealistic latency: {latency_ms:.0f}ms (accepted {low:g}-{high:g}ms)"
        )
