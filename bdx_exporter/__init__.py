"""BDX 360view Prometheus exporter."""

from bdx_exporter.config import AppConfig, load_config
from bdx_exporter.collector import MetricsCollector
from bdx_exporter.metrics import MetricStore
from bdx_exporter.server import create_app

__all__ = [
    "AppConfig",
    "MetricStore",
    "MetricsCollector",
    "create_app",
    "load_config",
]
