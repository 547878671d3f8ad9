"""Find the table that follows a text marker in a rendered page.

The dashboards have no stable ids or classes on their tables, so every table
is found by the heading text printed just above it. Lookups never raise for
missing content: a marker, opening tag or closing tag that cannot be found
yields ``None`` and the caller produces zero records for that table.
"""
from __future__ import annotations

import logging
import re
from re import Pattern

from bdx_exporter.models import TableRegion

logger = logging.getLogger(__name__)


def _find_marker(html: str, marker: str | Pattern[str], start: int) -> tuple[int, int, tuple[str, ...]] | None:
    if isinstance(marker, str):
        index = html.find(marker, start)
        if index == -1:
            return None
        return index, index + len(marker), ()
    match = marker.search(html, start)
    if match is None:
        return None
    return match.start(), match.end(), match.groups()


def region_after(
    html: str,
    position: int,
    open_tag: str = "<table",
    close_tag: str = "</table>",
    groups: tuple[str, ...] = (),
) -> TableRegion | None:
    """Return the first ``open_tag``..``close_tag`` span at or after ``position``."""
    start = html.find(open_tag, position)
    if start == -1:
        return None
    end = html.find(close_tag, start)
    if end == -1:
        logger.debug("Found %s at %d without a closing %s", open_tag, start, close_tag)
        return None
    end += len(close_tag)
    return TableRegion(html=html[start:end], start=start, end=end, groups=groups)


def locate(
    html: str,
    marker: str | Pattern[str],
    open_tag: str = "<table",
    close_tag: str = "</table>",
    start: int = 0,
) -> TableRegion | None:
    found = _find_marker(html, marker, start)
    if found is None:
        logger.debug("Marker %r not found", getattr(marker, "pattern", marker))
        return None
    _, marker_end, groups = found
    return region_after(html, marker_end, open_tag, close_tag, groups)


def within(region: TableRegion, open_tag: str, close_tag: str) -> TableRegion | None:
    """Narrow ``region`` to its first ``open_tag``..``close_tag`` span.

    The search never leaves ``region``, so a table without the inner tag
    yields ``None`` rather than the next table on the page. Offsets stay
    relative to the page.
    """
    inner = region_after(region.html, 0, open_tag, close_tag, region.groups)
    if inner is None:
        return None
    return TableRegion(
        html=inner.html,
        start=region.start + inner.start,
        end=region.start + inner.end,
        groups=region.groups,
    )


def locate_all(
    html: str,
    pattern: str | Pattern[str],
    open_tag: str = "<table",
    close_tag: str = "</table>",
) -> list[TableRegion]:
    """One region per match of ``pattern``, each searched from its own match.

    Matches are not deduplicated; two headings that resolve to the same table
    yield two identical regions.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    regions: list[TableRegion] = []
    for match in regex.finditer(html):
        region = region_after(html, match.end(), open_tag, close_tag, match.groups())
        if region is None:
            continue
        regions.append(region)
    return regions
