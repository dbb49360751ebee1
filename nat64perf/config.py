"""Constants and configuration for nat64perf."""

# Beacon used for every probe: a well-known IPv4 address reached through
# the NAT64 gateway under test.
DEFAULT_BEACON_IPV4 = "1.1.1.1"
DEFAULT_PORT = 443
DEFAULT_HOST_HEADER = "one.one.one.one"

# Minimal exchange that forces the peer to answer with a status line.
HEAD_REQUEST_TEMPLATE = "HEAD / HTTP/1.1\r\nHost: {host}\r\nConnection: close\r\n\r\n"
HTTP_RESPONSE_MARKER = b"HTTP/"
READ_CHUNK_SIZE = 4096

# Default measurement settings
DEFAULT_ATTEMPTS = 3
DEFAULT_CONCURRENCY = 16
DEFAULT_TIMEOUT = 5.0  # seconds, per connect/read step

# Plausibility window (milliseconds, inclusive)
MIN_LATENCY_MS = 10
MAX_LATENCY_MS = 5000

# NAT64 prefix grammar: only /96 prefixes embed a full IPv4 address.
NAT64_PREFIX_SUFFIX = "::/96"

# Directory of public NAT64 gateways
DIRECTORY_URL = "https://nat64.xyz/"
DIRECTORY_TIMEOUT = 10.0
DIRECTORY_PROVIDER_COLUMN = 1
DIRECTORY_REGION_COLUMN = 2
DIRECTORY_PREFIX_COLUMN = 4

# RFC 7050 discovery
DNS64_DISCOVERY_NAME = "ipv4only.arpa"
DNS64_WELL_KNOWN_IPV4 = ("192.0.0.170", "192.0.0.171")

# User agent for HTTP requests
USER_AGENT = "nat64perf/0.1.0"

# Latency color thresholds (milliseconds)
FAST_THRESHOLD_MS = 100.0    # Green: <= 100ms
MEDIUM_THRESHOLD_MS = 300.0  # Yellow: <= 300ms
# Red: > 300ms
