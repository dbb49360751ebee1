"""nat64perf — NAT64 gateway latency tester."""

__version__ = "0.1.0"
