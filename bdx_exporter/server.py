from __future__ import annotations

from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST

from bdx_exporter.collector import MetricsCollector


def create_app(collector: MetricsCollector) -> Flask:
    app = Flask("bdx_exporter")

    @app.route("/metrics")
    def metrics() -> Response:
        return Response(collector.store.exposition(), content_type=CONTENT_TYPE_LATEST)

    @app.route("/health")
    def health() -> Response:
        return jsonify(collector.health.get().as_dict())

    return app
