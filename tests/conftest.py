"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from typing import Mapping

import pytest

from bdx_exporter.config import (
    AppConfig,
    CollectConfig,
    ParsingConfig,
    ServerConfig,
    SessionConfig,
    SourcesConfig,
)
from bdx_exporter.errors import TransportError
from bdx_exporter.models import RawPage
from bdx_exporter.parsers import CDU_STATUS_PATTERN, RACK_TABLE_PATTERN

TRH_URL = "https://bdx.example.com/360view/trh_monitoring_dashboard.php"
LIQUID_URL = "https://bdx.example.com/360view/liquid_cooling_overview.php"
CDU_URL_1 = "https://bdx.example.com/360view/cdu_dashboard.php?cabinetid=38329"
CDU_URL_2 = "https://bdx.example.com/360view/cdu_dashboard.php?cabinetid=38337"

CDU_DASHBOARD_HTML = """<html><body>
<nav><a href="/360view/">Home</a></nav>
<div class="card">
  <div class="card-header"><h5 class="card-title mb-0"> CDU-1.1 </h5></div>
  <div class="card-body">
    <h6 class="section-title">ALARM</h6>
    <table class="table table-sm">
      <thead><tr><th>Item</th><th>Status</th></tr></thead>
      <tbody>
        <tr><td class="td-detail">CDU 1.1 - Data Hall</td><td class="td-detail"><span class="badge bg-danger">Active</span></td></tr>
        <tr><td class="td-detail">Leak  Detection</td><td class="td-detail">Normal</td></tr>
        <tr><td colspan="2">Last update 10:15</td></tr>
      </tbody>
    </table>
    <h6 class="section-title">PARAMETER</h6>
    <table class="table table-sm">
      <tbody>
        <tr><td class="td-detail">Supply Temp</td><td class="td-detail">23.5</td><td class="td-detail">&#176;C</td></tr>
        <tr><td class="td-detail">Flow Rate</td><td class="td-detail">120.4 I/min</td><td class="td-detail"></td></tr>
        <tr><td class="td-detail">Pump Speed</td><td class="td-detail">--</td><td class="td-detail">%</td></tr>
        <tr><td class="td-detail">Return RH</td><td class="td-detail">45</td><td class="td-detail">%RH</td></tr>
      </tbody>
    </table>
  </div>
</div>
</body></html>
"""

LIQUID_OVERVIEW_HTML = """<html><body>
<div class="col">
  <h5>CGK3A-CL-1.04-CDU-1.1 STATUS</h5>
  <table class="table">
    <tbody>
      <tr><td>CDU Cooling</td><td>1</td><td>FWS Flow</td><td>250.5 I/min</td></tr>
      <tr><td>FWS Temp Sup</td><td>18.2 &#176;C</td><td>FWS Temp Ret</td><td>24.1 &#176;C</td></tr>
      <tr><td>TCS Flow</td><td>240.0 I/min</td><td>TCS Temp Sup</td><td>20.0 &#176;C</td></tr>
      <tr><td>TCS Temp Ret</td><td>30.5 &#176;C</td><td>Pump Mode</td><td>Auto</td></tr>
    </tbody>
  </table>
</div>
<div class="col">
  <h5>CGK3A-CL-1.04-CDU-1.2 STATUS</h5>
  <table class="table">
    <tbody>
      <tr><td>CDU Cooling</td><td>0</td><td>FWS Flow</td><td>0.0 I/min</td></tr>
    </tbody>
  </table>
</div>
<div class="col">
  <h5>ENERGY VALVE STATUS COMPARTMENT A</h5>
  <table class="table">
    <thead><tr><th>PARAMETER</th><th>RACK 7</th><th>RACK 8</th></tr></thead>
    <tbody>
      <tr><td>Rack Liquid Cooling</td><td>12.5 kW</td><td>11.0 kW</td></tr>
      <tr><td>TCS Flow</td><td>40.1 I/min</td><td>38.9 I/min</td></tr>
      <tr><td>TCS Delta Temp</td><td>8.2 &#176;C</td><td>7.9 &#176;C</td></tr>
      <tr><td>TCS Temp Supply</td><td>20.1 &#176;C</td><td>20.3 &#176;C</td></tr>
    </tbody>
  </table>
</div>
</body></html>
"""

TRH_PAYLOAD = b'[{"label": "S1", "temp": "23.5", "rh": 70.2}, {"label": "S2", "temp": 21, "rh": "55.0"}]'


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakePageFetcher:
    """Serves canned pages by URL; an exception value is raised instead."""

    def __init__(self, pages: Mapping[str, str | Exception]) -> None:
        self.pages = dict(pages)
        self.calls: list[tuple[str, dict[str, str], float]] = []

    def fetch(self, url: str, cookies: Mapping[str, str], timeout: float) -> RawPage:
        self.calls.append((url, dict(cookies), timeout))
        page = self.pages.get(url)
        if page is None:
            raise TransportError(url, "no such page")
        if isinstance(page, Exception):
            raise page
        return RawPage(url=url, html=page)


class FakeJsonFetcher:
    def __init__(self, payload: bytes | Exception) -> None:
        self.payload = payload
        self.calls: list[tuple[str, dict[str, str], bytes, float]] = []

    def fetch_json(self, url: str, headers: Mapping[str, str], body: bytes, timeout: float) -> bytes:
        self.calls.append((url, dict(headers), body, timeout))
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@pytest.fixture
def make_config():
    """Factory for an AppConfig pointing at the example.com test URLs."""

    def factory(
        trh_url: str | None = TRH_URL,
        liquid_url: str | None = LIQUID_URL,
        cdu_urls: list[str] | None = None,
        max_workers: int = 1,
    ) -> AppConfig:
        return AppConfig(
            server=ServerConfig(host="127.0.0.1", port=8080),
            collect=CollectConfig(
                interval_s=30.0,
                http_timeout_s=10.0,
                scrape_timeout_s=30.0,
                max_workers=max_workers,
                settle_s=0.1,
            ),
            sources=SourcesConfig(
                trh_url=trh_url,
                liquid_url=liquid_url,
                cdu_urls=list(cdu_urls) if cdu_urls is not None else [CDU_URL_1, CDU_URL_2],
                referer=TRH_URL,
                cookie_domain=None,
            ),
            session=SessionConfig(sess_map="map-token", phpsessid="php-token"),
            parsing=ParsingConfig(
                cdu_status_pattern=CDU_STATUS_PATTERN,
                rack_table_pattern=RACK_TABLE_PATTERN,
            ),
        )

    return factory


@pytest.fixture
def app_config(make_config):
    return make_config()


@pytest.fixture
def pages():
    """Canned dashboard pages for every configured URL."""
    return {
        LIQUID_URL: LIQUID_OVERVIEW_HTML,
        CDU_URL_1: CDU_DASHBOARD_HTML,
        CDU_URL_2: CDU_DASHBOARD_HTML.replace("CDU-1.1 </h5>", "CDU-1.2 </h5>"),
    }
