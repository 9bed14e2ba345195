"""Raspberry Pi throttling and memcached Prometheus exporter."""

from rpi_exporter.collector import ExporterCollector
from rpi_exporter.config import AppConfig, load_config
from rpi_exporter.errors import FetchError, ParseError, PartialDecodeError
from rpi_exporter.sources import CacheStatusSource, HardwareStatusSource

__all__ = [
    "AppConfig",
    "CacheStatusSource",
    "ExporterCollector",
    "FetchError",
    "HardwareStatusSource",
    "ParseError",
    "PartialDecodeError",
    "load_config",
]
