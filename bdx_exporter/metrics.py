"""Metric families and the store that exposes them to Prometheus.

The store keeps one immutable snapshot of every family. A collection cycle
builds its samples off to the side and hands them to ``replace``, which swaps
the snapshot reference under a lock; an exposition request reads one snapshot
reference, so it sees either the previous cycle or the new one, never a mix.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from bdx_exporter.models import MetricSample

TEMPERATURE = "bdx_temperature"
HUMIDITY = "bdx_humidity"
CDU = "bdx_cdu"
LIQUID = "bdx_liquid"
LIQUID_RACK = "bdx_liquid_rack"
SOURCE_UP = "bdx_source_up"


@dataclass(frozen=True)
class MetricFamily:
    name: str
    documentation: str
    labelnames: tuple[str, ...]


FAMILIES: dict[str, MetricFamily] = {
    family.name: family
    for family in (
        MetricFamily(TEMPERATURE, "Temperature reading per TRH sensor", ("name",)),
        MetricFamily(HUMIDITY, "Relative humidity reading per TRH sensor", ("name",)),
        MetricFamily(
            CDU,
            "CDU alarms (value 1) and parameters",
            ("name", "type", "item", "status", "metrix_type"),
        ),
        MetricFamily(LIQUID, "CDU liquid cooling status fields", ("name", "type", "metrix_type")),
        MetricFamily(LIQUID_RACK, "Rack liquid cooling fields", ("name", "type", "metrix_type")),
        MetricFamily(SOURCE_UP, "Whether the last collection of a subsystem succeeded", ("subsystem",)),
    )
}

Snapshot = Mapping[str, tuple[MetricSample, ...]]


class MetricStore:
    def __init__(
        self,
        families: Mapping[str, MetricFamily] | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.families = dict(families if families is not None else FAMILIES)
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._snapshot: Snapshot = MappingProxyType({name: () for name in self.families})
        self.registry = registry if registry is not None else CollectorRegistry()
        self.registry.register(self)

    def _build(self, name: str, samples: Iterable[MetricSample]) -> tuple[MetricSample, ...]:
        family = self.families[name]
        expected = set(family.labelnames)
        by_labels: dict[tuple[str, ...], MetricSample] = {}
        for sample in samples:
            if sample.family != name:
                raise ValueError(f"sample for {sample.family} published under {name}")
            if set(sample.labels) != expected:
                raise ValueError(
                    f"{name} expects labels {sorted(expected)}, got {sorted(sample.labels)}"
                )
            key = sample.label_key(family.labelnames)
            if key in by_labels:
                self.logger.debug("Duplicate %s sample %s, keeping the latest", name, key)
            by_labels[key] = sample
        return tuple(by_labels.values())

    def replace(self, samples_by_family: Mapping[str, Iterable[MetricSample]]) -> None:
        """Swap in a new sample set for each family given; other families are untouched."""
        built = {name: self._build(name, samples) for name, samples in samples_by_family.items()}
        with self._lock:
            merged = dict(self._snapshot)
            merged.update(built)
            self._snapshot = MappingProxyType(merged)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def samples(self, name: str) -> tuple[MetricSample, ...]:
        return self.snapshot()[name]

    def value(self, name: str, /, **labels: str) -> float | None:
        for sample in self.samples(name):
            if dict(sample.labels) == labels:
                return sample.value
        return None

    def describe(self) -> Iterator[GaugeMetricFamily]:
        for family in self.families.values():
            yield GaugeMetricFamily(family.name, family.documentation, labels=family.labelnames)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        snapshot = self.snapshot()
        for family in self.families.values():
            gauge = GaugeMetricFamily(family.name, family.documentation, labels=family.labelnames)
            for sample in snapshot.get(family.name, ()):
                gauge.add_metric(list(sample.label_key(family.labelnames)), sample.value)
            yield gauge

    def exposition(self) -> bytes:
        return generate_latest(self.registry)
