"""Discover the NAT64 prefix of the local network (RFC 7050).

On an IPv6-only network with DNS64, the AAAA answer for
``ipv4only.arpa`` is one of the well-known IPv4 addresses embedded in the
network's NAT64 prefix.  Stripping the low 32 bits recovers the prefix,
which can then be tested like any directory entry.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Optional

import dns.asyncresolver
import dns.exception
import dns.rdatatype

from nat64perf.address import prefix_from_address
from nat64perf.config import DNS64_DISCOVERY_NAME, DNS64_WELL_KNOWN_IPV4
from nat64perf.models import Nat64Prefix

logger = logging.getLogger(__name__)

_WELL_KNOWN = {int(ipaddress.IPv4Address(a)) for a in DNS64_WELL_KNOWN_IPV4}


def prefixes_from_answers(addresses: Iterable[str]) -> list[Nat64Prefix]:
    """Extract /96 prefixes from ``ipv4only.arpa`` AAAA answers.

    Answers whose low 32 bits are not a well-known address are ignored.
    """
    found: list[Nat64Prefix] = []
    for address in addresses:
        try:
            ip = ipaddress.IPv6Address(address)
        except ValueError:
            logger.debug("Ignoring non-IPv6 answer %r", address)
            continue
        if (int(ip) & 0xFFFFFFFF) not in _WELL_KNOWN:
            logger.debug("Ignoring answer %s without a well-known IPv4 suffix", ip)
            continue
        prefix = prefix_from_address(str(ip))
        if prefix not in found:
            found.append(prefix)
    return found


async def discover_local_prefixes(
    timeout: float = 5.0,
    nameserver: Optional[str] = None,
) -> list[Nat64Prefix]:
    """Return the DNS64 prefixes advertised to this host, if any.

    An empty list means the resolver does not synthesize AAAA records
    (no DNS64 on this network) or the lookup failed.
    """
    resolver = dns.asyncresolver.Resolver()
    resolver.lifetime = timeout
    if nameserver:
        resolver.nameservers = [nameserver]

    try:
        answer = await resolver.resolve(DNS64_DISCOVERY_NAME, dns.rdatatype.AAAA)
    except dns.exception.DNSException as exc:
        logger.debug("DNS64 discovery failed: %s", exc)
        return []

    prefixes = prefixes_from_answers(str(rdata) for rdata in answer)
    if prefixes:
        logger.info("Discovered local NAT64 prefix(es): %s", ", ".join(map(str, prefixes)))
    return prefixes
