from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

STATUS_FIELDS = (
    "status",
    "fws_flow",
    "fws_temp_sup",
    "fws_temp_ret",
    "tcs_flow",
    "tcs_temp_sup",
    "tcs_temp_ret",
)

RACK_FIELDS = (
    "rack_liquid_cooling",
    "tcs_flow",
    "tcs_delta_temp",
    "tcs_temp_supply",
)


@dataclass(frozen=True)
class RawPage:
    url: str
    html: str


@dataclass(frozen=True)
class TableRegion:
    """A slice of a page starting at an opening tag and ending after its closing tag."""

    html: str
    start: int
    end: int
    groups: tuple[str, ...] = ()


@dataclass(frozen=True)
class SensorReading:
    label: str
    temperature: float
    humidity: float


@dataclass(frozen=True)
class AlarmRecord:
    item: str
    status: str
    source_name: str


@dataclass(frozen=True)
class ParameterRecord:
    item: str
    value: float
    unit: str
    source_name: str


@dataclass(frozen=True)
class StatusFieldRecord:
    source_name: str
    field: str
    value: float
    unit: str = ""


@dataclass(frozen=True)
class RackFieldRecord:
    rack_number: str
    field: str
    value: float
    unit: str = ""


@dataclass(frozen=True)
class CduDashboard:
    name: str
    alarms: tuple[AlarmRecord, ...]
    parameters: tuple[ParameterRecord, ...]


@dataclass(frozen=True)
class LiquidOverview:
    cdus: tuple[StatusFieldRecord, ...]
    racks: tuple[RackFieldRecord, ...]


@dataclass(frozen=True)
class MetricSample:
    family: str
    labels: Mapping[str, str]
    value: float

    def label_key(self, labelnames: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(self.labels[name] for name in labelnames)


@dataclass(frozen=True)
class HealthSnapshot:
    last_collect: datetime | None = None
    last_success: bool = False
    sources: Mapping[str, bool] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        return {
            "status": "healthy" if self.last_success else "unhealthy",
            "last_collect": (
                self.last_collect.isoformat() if self.last_collect else None
            ),
            "last_success": self.last_success,
            "sources": dict(self.sources),
        }
