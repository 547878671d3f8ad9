from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading

from bdx_exporter.collector import MetricsCollector
from bdx_exporter.config import load_config
from bdx_exporter.errors import ConfigurationError
from bdx_exporter.logging_utils import configure_logging, resolve_log_level
from bdx_exporter.server import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="BDX 360view Prometheus exporter")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CFG configuration file (environment variables override it)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single collection, print the metrics and health, then exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Collect periodically without starting the HTTP server",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("bdx_exporter")
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error("Failed to load config: %s", exc)
        return 2

    if not config.session.complete:
        logger.warning("SESS_MAP or PHPSESSID is not set; the dashboards will reject requests.")

    collector = MetricsCollector(config)
    if not collector.sources:
        logger.warning("No sources configured; nothing will be collected.")

    initial = collector.collect()

    if args.once:
        sys.stdout.write(collector.store.exposition().decode("utf-8"))
        sys.stdout.write(json.dumps(collector.health.get().as_dict(), indent=2) + "\n")
        return 0 if initial is not None and initial.health.last_success else 1

    stop_event = threading.Event()

    def _stop(signum: int, frame: object) -> None:
        logger.info("Received signal %s, shutting down.", signum)
        stop_event.set()
        if args.dry_run:
            return
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _stop)

    if args.dry_run:
        logger.info("Dry run enabled; not starting the HTTP server.")
        signal.signal(signal.SIGINT, _stop)
        collector.run_forever(stop_event)
        return 0

    worker = threading.Thread(
        target=collector.run_forever,
        args=(stop_event,),
        name="BdxCollector",
        daemon=True,
    )
    worker.start()

    app = create_app(collector)
    logger.info(
        "Serving /metrics and /health on %s:%s", config.server.host, config.server.port
    )
    try:
        app.run(host=config.server.host, port=config.server.port, threaded=True)
    except KeyboardInterrupt:
        pass
    finally:
        stop_event.set()
        worker.join(timeout=config.collect.scrape_timeout_s)
        logger.info("BDX exporter stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
