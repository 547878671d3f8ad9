"""Tests for mapping parsed records to metric samples."""
from __future__ import annotations

import pytest

from bdx_exporter.metrics import CDU, HUMIDITY, LIQUID, LIQUID_RACK, SOURCE_UP, TEMPERATURE
from bdx_exporter.models import (
    AlarmRecord,
    ParameterRecord,
    RackFieldRecord,
    SensorReading,
    StatusFieldRecord,
)
from bdx_exporter.parsers import parse_sensor_array
from bdx_exporter.synthesizer import (
    synthesize_cdu,
    synthesize_liquid,
    synthesize_racks,
    synthesize_sensors,
    synthesize_source_status,
)


def test_sensor_samples_match_coerced_values():
    readings = parse_sensor_array(b'[{"label":"S1","temp":"23.5","rh":70.2}]')
    samples = synthesize_sensors(readings)
    assert [(s.labels, s.value) for s in samples[TEMPERATURE]] == [({"name": "S1"}, 23.5)]
    assert [(s.labels, s.value) for s in samples[HUMIDITY]] == [({"name": "S1"}, 70.2)]


def test_sensor_samples_keyed_by_label():
    readings = [SensorReading("Hall A", 20.0, 40.0), SensorReading("Hall B", 21.5, 42.5)]
    samples = synthesize_sensors(readings)
    assert {s.labels["name"]: s.value for s in samples[TEMPERATURE]} == {"Hall A": 20.0, "Hall B": 21.5}
    assert {s.labels["name"]: s.value for s in samples[HUMIDITY]} == {"Hall A": 40.0, "Hall B": 42.5}


class TestCduSamples:
    def test_alarm_is_published_as_one(self):
        alarm = AlarmRecord(item="cdu_1.1_data_hall", status="active", source_name="CDU_1.1")
        [sample] = synthesize_cdu([alarm], [])[CDU]
        assert sample.family == CDU
        assert dict(sample.labels) == {
            "name": "CDU_1.1",
            "type": "alarm",
            "item": "cdu_1.1_data_hall",
            "status": "active",
            "metrix_type": "",
        }
        assert sample.value == 1.0

    def test_alarm_value_does_not_depend_on_status_text(self):
        alarms = [
            AlarmRecord("a", "normal", "CDU"),
            AlarmRecord("b", "triggered", "CDU"),
        ]
        assert {s.value for s in synthesize_cdu(alarms, [])[CDU]} == {1.0}

    def test_parameter_sample(self):
        parameter = ParameterRecord(item="flow_rate", value=120.4, unit="I/min", source_name="CDU_1.2")
        [sample] = synthesize_cdu([], [parameter])[CDU]
        assert dict(sample.labels) == {
            "name": "CDU_1.2",
            "type": "parameter",
            "item": "flow_rate",
            "status": "normal",
            "metrix_type": "l/min",
        }
        assert sample.value == 120.4


class TestLiquidSamples:
    def test_one_sample_per_status_field(self):
        records = [
            StatusFieldRecord("CDU_1.1", "status", 1.0),
            StatusFieldRecord("CDU_1.1", "fws_flow", 250.5, "l/min"),
            StatusFieldRecord("CDU_1.2", "fws_flow", 0.0, "I/min"),
        ]
        samples = synthesize_liquid(records)[LIQUID]
        assert [(dict(s.labels), s.value) for s in samples] == [
            ({"name": "CDU_1.1", "type": "status", "metrix_type": ""}, 1.0),
            ({"name": "CDU_1.1", "type": "fws_flow", "metrix_type": "l/min"}, 250.5),
            ({"name": "CDU_1.2", "type": "fws_flow", "metrix_type": "l/min"}, 0.0),
        ]

    def test_rack_samples_named_by_rack(self):
        records = [
            RackFieldRecord("7", "rack_liquid_cooling", 12.5, "kW"),
            RackFieldRecord("8", "tcs_delta_temp", 7.9, "°C"),
        ]
        samples = synthesize_racks(records)[LIQUID_RACK]
        assert [(dict(s.labels), s.value) for s in samples] == [
            ({"name": "7", "type": "rack_liquid_cooling", "metrix_type": "kW"}, 12.5),
            ({"name": "8", "type": "tcs_delta_temp", "metrix_type": "C"}, 7.9),
        ]

    def test_unknown_fields_are_programmer_errors(self):
        with pytest.raises(ValueError):
            synthesize_liquid([StatusFieldRecord("CDU", "pump_mode", 1.0)])
        with pytest.raises(ValueError):
            synthesize_racks([RackFieldRecord("7", "fws_flow", 1.0)])


def test_source_status_samples():
    samples = synthesize_source_status({"trh": True, "cdu": False})[SOURCE_UP]
    assert [(dict(s.labels), s.value) for s in samples] == [
        ({"subsystem": "cdu"}, 0.0),
        ({"subsystem": "trh"}, 1.0),
    ]
