"""Turn parsed records into metric samples with the exporter's fixed label sets."""
from __future__ import annotations

from typing import Iterable

from bdx_exporter.metrics import CDU, HUMIDITY, LIQUID, LIQUID_RACK, SOURCE_UP, TEMPERATURE
from bdx_exporter.models import (
    RACK_FIELDS,
    STATUS_FIELDS,
    AlarmRecord,
    MetricSample,
    ParameterRecord,
    RackFieldRecord,
    SensorReading,
    StatusFieldRecord,
)
from bdx_exporter.text import canonical_unit, normalize_item

ALARM_VALUE = 1.0
PARAMETER_STATUS = "normal"


def synthesize_sensors(readings: Iterable[SensorReading]) -> dict[str, list[MetricSample]]:
    samples: dict[str, list[MetricSample]] = {TEMPERATURE: [], HUMIDITY: []}
    for reading in readings:
        labels = {"name": reading.label}
        samples[TEMPERATURE].append(MetricSample(TEMPERATURE, labels, reading.temperature))
        samples[HUMIDITY].append(MetricSample(HUMIDITY, labels, reading.humidity))
    return samples


def synthesize_cdu(
    alarms: Iterable[AlarmRecord],
    parameters: Iterable[ParameterRecord],
) -> dict[str, list[MetricSample]]:
    samples: list[MetricSample] = []
    for alarm in alarms:
        labels = {
            "name": alarm.source_name,
            "type": "alarm",
            "item": normalize_item(alarm.item),
            "status": alarm.status.lower(),
            "metrix_type": "",
        }
        samples.append(MetricSample(CDU, labels, ALARM_VALUE))
    for parameter in parameters:
        labels = {
            "name": parameter.source_name,
            "type": "parameter",
            "item": normalize_item(parameter.item),
            "status": PARAMETER_STATUS,
            "metrix_type": canonical_unit(parameter.unit),
        }
        samples.append(MetricSample(CDU, labels, parameter.value))
    return {CDU: samples}


def synthesize_liquid(records: Iterable[StatusFieldRecord]) -> dict[str, list[MetricSample]]:
    samples: list[MetricSample] = []
    for record in records:
        if record.field not in STATUS_FIELDS:
            raise ValueError(f"unknown CDU status field {record.field!r}")
        labels = {
            "name": record.source_name,
            "type": record.field,
            "metrix_type": canonical_unit(record.unit),
        }
        samples.append(MetricSample(LIQUID, labels, record.value))
    return {LIQUID: samples}


def synthesize_racks(records: Iterable[RackFieldRecord]) -> dict[str, list[MetricSample]]:
    samples: list[MetricSample] = []
    for record in records:
        if record.field not in RACK_FIELDS:
            raise ValueError(f"unknown rack field {record.field!r}")
        labels = {
            "name": record.rack_number,
            "type": record.field,
            "metrix_type": canonical_unit(record.unit),
        }
        samples.append(MetricSample(LIQUID_RACK, labels, record.value))
    return {LIQUID_RACK: samples}


def synthesize_source_status(sources: dict[str, bool]) -> dict[str, list[MetricSample]]:
    return {
        SOURCE_UP: [
            MetricSample(SOURCE_UP, {"subsystem": name}, 1.0 if ok else 0.0)
            for name, ok in sorted(sources.items())
        ]
    }
