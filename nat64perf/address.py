"""NAT64 address synthesis.

A /96 NAT64 prefix carries the IPv4 destination in its low 32 bits::

    64:ff9b::/96 + 1.1.1.1  ->  [64:ff9b::0101:0101]
"""

from __future__ import annotations

import ipaddress
import re
from typing import Union

from nat64perf.errors import InvalidAddressInput, InvalidPrefixFormat
from nat64perf.models import Nat64Prefix

_IPV4_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")

PrefixLike = Union[str, Nat64Prefix]


def is_valid_nat64_prefix(prefix: object) -> bool:
    """Return True if *prefix* follows the ``<network>::/96`` grammar."""
    if not isinstance(prefix, (str, Nat64Prefix)):
        return False
    try:
        as_prefix(prefix)
    except InvalidPrefixFormat:
        return False
    return True


def as_prefix(prefix: PrefixLike) -> Nat64Prefix:
    """Coerce *prefix* to a :class:`Nat64Prefix`, raising InvalidPrefixFormat."""
    if isinstance(prefix, Nat64Prefix):
        return prefix
    return Nat64Prefix(prefix)


def _ipv4_octets(ipv4: str) -> list[int]:
    match = _IPV4_RE.match(ipv4.strip()) if isinstance(ipv4, str) else None
    if match is None:
        raise InvalidAddressInput(f"Invalid IPv4 address: {ipv4!r}")
    octets = [int(part, 10) for part in match.groups()]
    for octet in octets:
        if octet > 255:
            raise InvalidAddressInput(f"IPv4 octet out of range in {ipv4!r}: {octet}")
    return octets


def synthesize(prefix: PrefixLike, ipv4: str) -> str:
    """Embed *ipv4* into the NAT64 *prefix* and return a bracketed IPv6 literal."""
    octets = _ipv4_octets(ipv4)
    network = as_prefix(prefix).network
    h = [f"{octet:02x}" for octet in octets]
    head = network[:-2]
    if head and len(head.split(":")) == 6:
        # All six network hextets are spelled out; "::" would stand for nothing.
        return f"[{head}:{h[0]}{h[1]}:{h[2]}{h[3]}]"
    return f"[{network}{h[0]}{h[1]}:{h[2]}{h[3]}]"


def strip_brackets(address: str) -> str:
    """``[2001:db8::1]`` -> ``2001:db8::1``; other strings are returned as-is."""
    if address.startswith("[") and address.endswith("]"):
        return address[1:-1]
    return address


def prefix_from_address(address: str) -> Nat64Prefix:
    """Return the /96 prefix of a synthesized IPv6 address.

    The low 32 bits are dropped.  The result always ends in ``::/96`` so it
    satisfies the prefix grammar, even when the shortest textual form of
    the network would compress a different run of zeros.
    """
    network = ipaddress.IPv6Network(f"{address}/96", strict=False)
    text = network.compressed
    if not text.endswith("::/96"):
        hextets = network.network_address.exploded.split(":")[:6]
        text = ":".join(format(int(h, 16), "x") for h in hextets) + "::/96"
    return Nat64Prefix(text)
