from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
import logging
import re
import threading
import time
from typing import Callable

from bdx_exporter.config import AppConfig
from bdx_exporter.errors import ParseError, TransportError
from bdx_exporter.fetch import (
    TRH_BODY,
    HttpJsonFetcher,
    JsonFetcher,
    PageFetcher,
    PlaywrightPageFetcher,
    session_cookies,
    trh_headers,
)
from bdx_exporter.metrics import MetricStore
from bdx_exporter.models import HealthSnapshot, MetricSample
from bdx_exporter.parsers import parse_cdu_dashboard, parse_liquid_overview, parse_sensor_array
from bdx_exporter.synthesizer import (
    synthesize_cdu,
    synthesize_liquid,
    synthesize_racks,
    synthesize_sensors,
    synthesize_source_status,
)

TRH = "trh"
LIQUID = "liquid"
CDU = "cdu"

Samples = dict[str, list[MetricSample]]


@dataclass(frozen=True)
class Source:
    name: str
    subsystem: str
    scrape: Callable[[], Samples]


@dataclass(frozen=True)
class SourceResult:
    source: Source
    samples: Samples = field(default_factory=dict)
    error: str | None = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CycleResult:
    results: tuple[SourceResult, ...]
    health: HealthSnapshot


class HealthState:
    """Holds the latest HealthSnapshot; readers always get a whole snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = HealthSnapshot()

    def get(self) -> HealthSnapshot:
        with self._lock:
            return self._snapshot

    def set(self, snapshot: HealthSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot


class MetricsCollector:
    def __init__(
        self,
        config: AppConfig,
        page_fetcher: PageFetcher | None = None,
        json_fetcher: JsonFetcher | None = None,
        store: MetricStore | None = None,
    ) -> None:
        self.config = config
        self.page_fetcher = page_fetcher or PlaywrightPageFetcher(
            cookie_domain=config.sources.cookie_domain,
            settle_s=config.collect.settle_s,
        )
        self.json_fetcher = json_fetcher or HttpJsonFetcher()
        self.store = store if store is not None else MetricStore()
        self.health = HealthState()
        self.logger = logging.getLogger(self.__class__.__name__)
        self._cycle_lock = threading.Lock()
        self._cdu_pattern = re.compile(config.parsing.cdu_status_pattern)
        self._rack_pattern = re.compile(config.parsing.rack_table_pattern)
        self.sources = self._build_sources()

    def _build_sources(self) -> list[Source]:
        sources: list[Source] = []
        trh_url = self.config.sources.trh_url
        if trh_url:
            sources.append(Source(TRH, TRH, partial(self._scrape_trh, trh_url)))
        liquid_url = self.config.sources.liquid_url
        if liquid_url:
            sources.append(Source(LIQUID, LIQUID, partial(self._scrape_liquid, liquid_url)))
        for url in self.config.sources.cdu_urls:
            sources.append(Source(f"{CDU}:{url}", CDU, partial(self._scrape_cdu, url)))
        return sources

    def _scrape_trh(self, url: str) -> Samples:
        payload = self.json_fetcher.fetch_json(
            url,
            trh_headers(self.config.session, self.config.sources.referer),
            TRH_BODY,
            self.config.collect.http_timeout_s,
        )
        readings = parse_sensor_array(payload)
        self.logger.debug("TRH feed returned %d sensors", len(readings))
        return synthesize_sensors(readings)

    def _scrape_liquid(self, url: str) -> Samples:
        page = self.page_fetcher.fetch(
            url, session_cookies(self.config.session), self.config.collect.scrape_timeout_s
        )
        overview = parse_liquid_overview(page, self._cdu_pattern, self._rack_pattern)
        if not overview.cdus and not overview.racks:
            self.logger.warning(
                "No CDU or rack tables found on %s; the session may have expired", url
            )
        self.logger.debug(
            "Liquid overview: %d CDU fields, %d rack fields",
            len(overview.cdus),
            len(overview.racks),
        )
        samples = synthesize_liquid(overview.cdus)
        samples.update(synthesize_racks(overview.racks))
        return samples

    def _scrape_cdu(self, url: str) -> Samples:
        page = self.page_fetcher.fetch(
            url, session_cookies(self.config.session), self.config.collect.scrape_timeout_s
        )
        dashboard = parse_cdu_dashboard(page)
        self.logger.debug(
            "CDU %s: %d alarms, %d parameters",
            dashboard.name,
            len(dashboard.alarms),
            len(dashboard.parameters),
        )
        return synthesize_cdu(dashboard.alarms, dashboard.parameters)

    def _run_source(self, source: Source) -> SourceResult:
        started = time.monotonic()
        try:
            samples = source.scrape()
        except (TransportError, ParseError) as exc:
            self.logger.warning("Source %s failed: %s", source.name, exc)
            return SourceResult(source, error=str(exc), duration_s=time.monotonic() - started)
        except Exception as exc:
            self.logger.exception("Source %s failed unexpectedly", source.name)
            return SourceResult(
                source,
                error=f"{exc.__class__.__name__}: {exc}",
                duration_s=time.monotonic() - started,
            )
        return SourceResult(source, samples=samples, duration_s=time.monotonic() - started)

    def _run_sources(self) -> list[SourceResult]:
        workers = min(self.config.collect.max_workers, len(self.sources))
        if workers <= 1:
            return [self._run_source(source) for source in self.sources]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="BdxSource") as executor:
            return list(executor.map(self._run_source, self.sources))

    @staticmethod
    def subsystem_status(results: list[SourceResult]) -> dict[str, bool]:
        """A subsystem is up when at least one of its sources succeeded."""
        status: dict[str, bool] = {}
        for result in results:
            subsystem = result.source.subsystem
            status[subsystem] = status.get(subsystem, False) or result.ok
        return status

    def collect(self) -> CycleResult | None:
        """Run one collection cycle; returns None if another cycle is still running."""
        if not self._cycle_lock.acquire(blocking=False):
            self.logger.warning("Previous collection still running; skipping this cycle.")
            return None
        try:
            return self._collect()
        finally:
            self._cycle_lock.release()

    def _collect(self) -> CycleResult:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        self.logger.debug("Collecting from %d sources.", len(self.sources))

        results = self._run_sources()

        subsystems = self.subsystem_status(results)
        pending: dict[str, list[MetricSample]] = {name: [] for name in self.store.families}
        for result in results:
            if not result.ok:
                continue
            for family, samples in result.samples.items():
                pending.setdefault(family, []).extend(samples)
        pending.update(synthesize_source_status(subsystems))
        self.store.replace(pending)

        snapshot = HealthSnapshot(
            last_collect=started_at,
            last_success=bool(subsystems) and all(subsystems.values()),
            sources=subsystems,
        )
        self.health.set(snapshot)

        succeeded = sum(1 for result in results if result.ok)
        self.logger.info(
            "Collected %d/%d sources in %.1fs (%s).",
            succeeded,
            len(results),
            time.monotonic() - started,
            ", ".join(f"{name}={'ok' if ok else 'failed'}" for name, ok in sorted(subsystems.items())),
        )
        return CycleResult(results=tuple(results), health=snapshot)

    def run_forever(self, stop_event: threading.Event) -> None:
        interval = self.config.collect.interval_s
        self.logger.info("Collecting every %s seconds.", interval)
        while not stop_event.wait(interval):
            self.collect()
        self.logger.info("Stopping periodic collection.")
