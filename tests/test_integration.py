"""Live collection against the real 360view dashboards.

Runs only when BDX_LIVE=1 and a session (SESS_MAP, PHPSESSID) is exported.
"""
from __future__ import annotations

import os

import pytest

from bdx_exporter.collector import MetricsCollector
from bdx_exporter.config import load_config

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(os.environ.get("BDX_LIVE") != "1", reason="set BDX_LIVE=1 to hit the dashboards"),
]


def test_live_cycle():
    config = load_config(os.environ.get("BDX_CONFIG"))
    if not config.session.complete:
        pytest.skip("SESS_MAP and PHPSESSID are required")

    collector = MetricsCollector(config)
    result = collector.collect()

    assert result is not None
    failed = {r.source.name: r.error for r in result.results if not r.ok}
    assert failed == {}
    assert b"bdx_source_up" in collector.store.exposition()
