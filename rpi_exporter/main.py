from __future__ import annotations

import argparse
import logging
import sys
import time

from prometheus_client import CollectorRegistry, generate_latest, start_http_server

from rpi_exporter.collector import ExporterCollector
from rpi_exporter.config import AppConfig, load_config
from rpi_exporter.logging_utils import configure_logging, resolve_log_level
from rpi_exporter.sources import CacheStatusSource, HardwareStatusSource


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Raspberry Pi throttling and memcached Prometheus exporter"
    )
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
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
        "--listen-address",
        help="Address to serve metrics on (overrides [web] listen_address)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to serve metrics on (overrides [web] port)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect a single scrape, print it in exposition format, then exit",
    )
    return parser


def build_collector(config: AppConfig) -> ExporterCollector:
    hardware = HardwareStatusSource(
        config.hardware.vcgencmd_path, timeout=config.hardware.timeout_s
    )
    cache = CacheStatusSource(
        config.memcached.address, timeout=config.memcached.timeout_s
    )
    return ExporterCollector(
        hardware, cache, export_time=config.memcached.export_time
    )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("rpi_exporter")
    config = load_config(args.config)

    registry = CollectorRegistry()
    registry.register(build_collector(config))

    if args.once:
        sys.stdout.write(generate_latest(registry).decode("utf-8"))
        return

    address = args.listen_address or config.web.listen_address
    port = args.port or config.web.port
    start_http_server(port, addr=address, registry=registry)
    logger.info("Serving metrics on %s:%s", address, port)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Exporter stopped.")


if __name__ == "__main__":
    main()
