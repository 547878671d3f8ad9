"""Parsers for the TRH sensor feed and the CDU / liquid-cooling dashboards.

Every parser is a pure function of its input. Bad cells and rows are dropped
and logged at debug level; only a payload that cannot be read at all raises
``ParseError``.
"""
from __future__ import annotations

import json
import logging
import math
import re
from re import Pattern
from typing import Iterable, Union
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup, Tag

from bdx_exporter.errors import ParseError
from bdx_exporter.locator import locate, locate_all, within
from bdx_exporter.logging_utils import TRACE_LEVEL
from bdx_exporter.models import (
    AlarmRecord,
    CduDashboard,
    LiquidOverview,
    ParameterRecord,
    RackFieldRecord,
    RawPage,
    SensorReading,
    StatusFieldRecord,
    TableRegion,
)
from bdx_exporter.schema import validate_payload
from bdx_exporter.text import canonical_unit, extract_text, normalize_item, normalize_name, split_value

logger = logging.getLogger(__name__)

# Values in the TRH feed arrive either as JSON numbers or as numeric strings.
RawNumber = Union[int, float, str]

DETAIL_CLASS = "td-detail"
ALARM_MARKER = "ALARM"
PARAMETER_MARKER = "PARAMETER"
DEFAULT_CDU_NAME = "CDU_1.1"
CDU_STATUS_PATTERN = r"CGK3A-CL-1\.04-CDU-(\d+\.\d+) STATUS"
RACK_TABLE_PATTERN = r"ENERGY VALVE STATUS COMPARTMENT ([A-Z]+)"
RACK_PREFIX = "RACK "

_CARD_TITLE = re.compile(
    r"<h5[^>]*class=\"[^\"]*\bcard-title\b[^\"]*\"[^>]*>(.*?)</h5>",
    re.DOTALL | re.IGNORECASE,
)

STATUS_LABELS: dict[str, str] = {
    "cdu_cooling": "status",
    "cdu_status": "status",
    "status": "status",
    "fws_flow": "fws_flow",
    "fws_temp_sup": "fws_temp_sup",
    "fws_temp_ret": "fws_temp_ret",
    "tcs_flow": "tcs_flow",
    "tcs_temp_sup": "tcs_temp_sup",
    "tcs_temp_ret": "tcs_temp_ret",
}

RACK_LABELS: dict[str, str] = {
    "rack_liquid_cooling": "rack_liquid_cooling",
    "tcs_flow": "tcs_flow",
    "tcs_delta_temp": "tcs_delta_temp",
    "tcs_temp_supply": "tcs_temp_supply",
}


def coerce_number(value: RawNumber) -> float:
    """Convert a feed value to float, raising ValueError for anything else."""
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a reading: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        number, _ = split_value(value)
    else:
        raise ValueError(f"unsupported reading type {type(value).__name__}")
    if not math.isfinite(number):
        raise ValueError(f"non-finite reading: {value!r}")
    return number


def parse_sensor_array(payload: bytes | str) -> list[SensorReading]:
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"sensor payload is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ParseError(f"sensor payload is a {type(data).__name__}, expected an array")

    errors = validate_payload(data)
    readings: list[SensorReading] = []
    for index, entry in enumerate(data):
        if index in errors:
            logger.debug("Skipping sensor #%d: %s", index, "; ".join(errors[index]))
            continue
        try:
            temperature = coerce_number(entry["temp"])
            humidity = coerce_number(entry["rh"])
        except ValueError as exc:
            logger.debug("Skipping sensor %r: %s", entry.get("label"), exc)
            continue
        readings.append(
            SensorReading(label=entry["label"].strip(), temperature=temperature, humidity=humidity)
        )
    return readings


def _soup(region: TableRegion) -> BeautifulSoup:
    soup = BeautifulSoup(region.html, "html.parser")
    if logger.isEnabledFor(TRACE_LEVEL):
        logger.log(TRACE_LEVEL, "Region %d-%d: %s", region.start, region.end, region.html)
    return soup


def _cells(row: Tag) -> list[Tag]:
    return row.find_all("td", recursive=False)


def _detail_rows(region: TableRegion) -> Iterable[list[Tag]]:
    for row in _soup(region).find_all("tr"):
        if row.find(class_=DETAIL_CLASS) is None:
            continue
        cells = _cells(row)
        if cells:
            yield cells


def parse_alarms(region: TableRegion, source_name: str) -> list[AlarmRecord]:
    alarms: list[AlarmRecord] = []
    for cells in _detail_rows(region):
        if len(cells) < 2:
            continue
        item = normalize_item(extract_text(cells[0]))
        status = extract_text(cells[1]).lower()
        if not item or not status:
            continue
        alarms.append(AlarmRecord(item=item, status=status, source_name=source_name))
    return alarms


def parse_parameters(region: TableRegion, source_name: str) -> list[ParameterRecord]:
    parameters: list[ParameterRecord] = []
    for cells in _detail_rows(region):
        if len(cells) < 3:
            continue
        item = normalize_item(extract_text(cells[0]))
        if not item:
            continue
        value_text = extract_text(cells[1])
        try:
            value, trailing_unit = split_value(value_text)
        except ValueError:
            logger.debug("Skipping parameter %s with value %r", item, value_text)
            continue
        unit = canonical_unit(extract_text(cells[2])) or trailing_unit
        parameters.append(
            ParameterRecord(item=item, value=value, unit=unit, source_name=source_name)
        )
    return parameters


def parse_cdu_status(region: TableRegion, source_name: str) -> list[StatusFieldRecord]:
    """Read label/value cell pairs from a CDU status table."""
    records: dict[str, StatusFieldRecord] = {}
    for row in _soup(region).find_all("tr"):
        cells = _cells(row)
        for index in range(0, len(cells) - 1, 2):
            label = normalize_item(extract_text(cells[index]))
            field = STATUS_LABELS.get(label)
            if field is None:
                continue
            value_text = extract_text(cells[index + 1])
            try:
                value, unit = split_value(value_text)
            except ValueError:
                logger.debug("Skipping %s %s with value %r", source_name, label, value_text)
                continue
            records[field] = StatusFieldRecord(
                source_name=source_name, field=field, value=value, unit=unit
            )
    return list(records.values())


def _rack_numbers(soup: BeautifulSoup) -> list[str]:
    header = soup.find("thead")
    if header is not None:
        cells = header.find_all(["th", "td"])
    else:
        first_row = soup.find("tr")
        cells = first_row.find_all(["th", "td"], recursive=False) if first_row else []
    racks: list[str] = []
    for cell in cells:
        text = extract_text(cell)
        if RACK_PREFIX not in text:
            continue
        rack = text.replace(RACK_PREFIX, "").strip()
        if rack:
            racks.append(rack)
    return racks


def _body_rows(soup: BeautifulSoup) -> list[Tag]:
    body = soup.find("tbody")
    if body is not None:
        return body.find_all("tr")
    return [row for row in soup.find_all("tr") if row.find_parent("thead") is None and _cells(row)]


def parse_rack_matrix(region: TableRegion) -> list[RackFieldRecord]:
    """Read a table with one column per rack and one row per measurement.

    The first body cell holds the row label; the value for the i-th rack in
    the header sits at cell ``i + 1``. Records are grouped by rack number.
    """
    soup = _soup(region)
    rack_numbers = _rack_numbers(soup)
    if not rack_numbers:
        logger.debug("Rack table at %d has no RACK headers", region.start)
        return []

    racks: dict[str, dict[str, RackFieldRecord]] = {}
    for row in _body_rows(soup):
        cells = _cells(row)
        if not cells:
            continue
        label = normalize_item(extract_text(cells[0]))
        field = RACK_LABELS.get(label)
        if field is None:
            continue
        for position, rack in enumerate(rack_numbers):
            if position + 1 >= len(cells):
                break
            value_text = extract_text(cells[position + 1])
            try:
                value, unit = split_value(value_text)
            except ValueError:
                logger.debug("Skipping rack %s %s with value %r", rack, field, value_text)
                continue
            racks.setdefault(rack, {})[field] = RackFieldRecord(
                rack_number=rack, field=field, value=value, unit=unit
            )
    return [record for fields in racks.values() for record in fields.values()]


def _fallback_cdu_name(url: str) -> str:
    cabinet = parse_qs(urlparse(url).query).get("cabinetid")
    if cabinet and cabinet[0]:
        return f"cabinet_{cabinet[0]}"
    return DEFAULT_CDU_NAME


def cdu_name(page: RawPage) -> str:
    match = _CARD_TITLE.search(page.html)
    if match:
        name = normalize_name(extract_text(match.group(1)))
        if name:
            return name
    name = _fallback_cdu_name(page.url)
    logger.warning("No CDU title on %s, using %s", page.url, name)
    return name


def _detail_body(html: str, marker: str) -> TableRegion | None:
    """The ``<tbody>`` of the table right after ``marker``, if it has one."""
    table = locate(html, marker)
    if table is None:
        return None
    return within(table, "<tbody", "</tbody>")


def parse_cdu_dashboard(page: RawPage) -> CduDashboard:
    name = cdu_name(page)
    alarms: list[AlarmRecord] = []
    parameters: list[ParameterRecord] = []

    alarm_region = _detail_body(page.html, ALARM_MARKER)
    if alarm_region is None:
        logger.debug("No alarm table on %s", page.url)
    else:
        alarms = parse_alarms(alarm_region, name)

    parameter_region = _detail_body(page.html, PARAMETER_MARKER)
    if parameter_region is None:
        logger.debug("No parameter table on %s", page.url)
    else:
        parameters = parse_parameters(parameter_region, name)

    return CduDashboard(name=name, alarms=tuple(alarms), parameters=tuple(parameters))


def parse_liquid_overview(
    page: RawPage,
    cdu_pattern: str | Pattern[str] = CDU_STATUS_PATTERN,
    rack_pattern: str | Pattern[str] = RACK_TABLE_PATTERN,
) -> LiquidOverview:
    cdus: list[StatusFieldRecord] = []
    for region in locate_all(page.html, cdu_pattern):
        name = f"CDU_{region.groups[0]}" if region.groups else DEFAULT_CDU_NAME
        cdus.extend(parse_cdu_status(region, name))

    racks: list[RackFieldRecord] = []
    for region in locate_all(page.html, rack_pattern):
        compartment = region.groups[0] if region.groups else "?"
        records = parse_rack_matrix(region)
        logger.debug("Compartment %s: %d rack values", compartment, len(records))
        racks.extend(records)

    return LiquidOverview(cdus=tuple(cdus), racks=tuple(racks))
