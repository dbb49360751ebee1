"""Public NAT64 gateway directory (nat64.xyz).

The directory page is a single HTML table; each body row lists a
provider, a country/region, and one or more prefixes separated by
``<br>`` in the fourth column.  This module turns it into::

    {provider: {region: [prefix, ...]}}

and flattens that into :class:`ProbeTarget` objects for the engine.
"""

from __future__ import annotations

import logging
import re
from html.parser import HTMLParser
from typing import Iterable, Optional, Sequence

import httpx

from nat64perf.address import is_valid_nat64_prefix
from nat64perf.config import (
    DIRECTORY_PREFIX_COLUMN,
    DIRECTORY_PROVIDER_COLUMN,
    DIRECTORY_REGION_COLUMN,
    DIRECTORY_TIMEOUT,
    DIRECTORY_URL,
    USER_AGENT,
)
from nat64perf.errors import DirectoryError
from nat64perf.models import DirectoryStats, ProbeTarget

logger = logging.getLogger(__name__)

Directory = dict[str, dict[str, list[str]]]

_WS_RE = re.compile(r"\s+")


class _TableParser(HTMLParser):
    """Collect provider/region/prefix cells from ``<tbody>`` rows."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.rows: list[tuple[str, str, list[str]]] = []
        self._in_tbody = False
        self._row: Optional[dict[int, list[str]]] = None
        self._cell = 0
        self._in_cell = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag == "tbody":
            self._in_tbody = True
        elif not self._in_tbody:
            return
        elif tag == "tr":
            self._finish_row()
            self._row = {}
            self._cell = 0
        elif tag == "td" and self._row is not None:
            self._cell += 1
            self._in_cell = True
            self._row.setdefault(self._cell, [""])
        elif tag == "br" and self._in_cell and self._row is not None:
            # Line breaks separate prefixes within one cell.
            self._row[self._cell].append("")

    def handle_endtag(self, tag: str) -> None:
        if tag == "td":
            self._in_cell = False
        elif tag == "tr":
            self._finish_row()
        elif tag == "tbody":
            self._finish_row()
            self._in_tbody = False

    def handle_data(self, data: str) -> None:
        if self._in_cell and self._row is not None:
            self._row[self._cell][-1] += data

    def _finish_row(self) -> None:
        row, self._row = self._row, None
        self._in_cell = False
        if not row:
            return
        provider = _clean(" ".join(row.get(DIRECTORY_PROVIDER_COLUMN, [])))
        region = _clean(" ".join(row.get(DIRECTORY_REGION_COLUMN, [])))
        prefixes = [_clean(p) for p in row.get(DIRECTORY_PREFIX_COLUMN, [])]
        prefixes = [p for p in prefixes if p]
        if provider and region and prefixes:
            self.rows.append((provider, region, prefixes))


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def parse_directory(html: str) -> Directory:
    """Parse the directory page into ``{provider: {region: [prefix]}}``.

    Only prefixes following the NAT64 /96 grammar are kept; rows left
    without any prefix are dropped.  Document order is preserved.
    """
    parser = _TableParser()
    parser.feed(html)
    parser.close()

    directory: Directory = {}
    for provider, region, candidates in parser.rows:
        prefixes = [p for p in candidates if is_valid_nat64_prefix(p)]
        skipped = len(candidates) - len(prefixes)
        if skipped:
            logger.debug("Ignoring %d non-/96 prefixes for %s (%s)", skipped, provider, region)
        if not prefixes:
            continue
        # Repeated provider/region rows are merged.
        bucket = directory.setdefault(provider, {}).setdefault(region, [])
        for prefix in prefixes:
            if prefix not in bucket:
                bucket.append(prefix)
    return directory


async def fetch_directory(
    url: str = DIRECTORY_URL,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DIRECTORY_TIMEOUT,
) -> Directory:
    """Download and parse the gateway directory.

    Raises
    ------
    DirectoryError
        On transport errors, non-2xx responses, or a page without any
        usable provider rows.
    """
    headers = {"User-Agent": USER_AGENT}
    try:
        if client is not None:
            response = await client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(
                http2=True,
                follow_redirects=True,
                timeout=httpx.Timeout(timeout),
            ) as own_client:
                response = await own_client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DirectoryError(
            f"Failed to fetch {url}: HTTP {exc.response.status_code} {exc.response.reason_phrase}"
        ) from exc
    except httpx.HTTPError as exc:
        raise DirectoryError(f"Failed to fetch {url}: {exc}") from exc

    directory = parse_directory(response.text)
    if not directory:
        raise DirectoryError(f"No NAT64 providers found at {url}")

    stats = directory_stats(directory)
    logger.info(
        "Directory: %d providers, %d regions, %d prefixes",
        stats.provider_count,
        stats.region_count,
        stats.prefix_count,
    )
    return directory


def flatten_directory(directory: Directory) -> list[ProbeTarget]:
    """Return one :class:`ProbeTarget` per prefix, in directory order."""
    return [
        ProbeTarget(prefix=prefix, provider=provider, region=region)
        for provider, regions in directory.items()
        for region, prefixes in regions.items()
        for prefix in prefixes
    ]


def directory_stats(directory: Directory) -> DirectoryStats:
    """Count providers, regions and prefixes in *directory*."""
    return DirectoryStats(
        provider_count=len(directory),
        region_count=sum(len(regions) for regions in directory.values()),
        prefix_count=sum(
            len(prefixes) for regions in directory.values() for prefixes in regions.values()
        ),
    )


def filter_targets(
    targets: Iterable[ProbeTarget],
    providers: Sequence[str] = (),
    regions: Sequence[str] = (),
) -> list[ProbeTarget]:
    """Keep targets whose provider/region match (case-insensitive substring).

    An empty filter matches everything.
    """
    wanted_providers = [p.lower() for p in providers if p]
    wanted_regions = [r.lower() for r in regions if r]

    def _matches(value: str, wanted: list[str]) -> bool:
        return not wanted or any(w in value.lower() for w in wanted)

    return [
        t
        for t in targets
        if _matches(t.provider, wanted_providers) and _matches(t.region, wanted_regions)
    ]
