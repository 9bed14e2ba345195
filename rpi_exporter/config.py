from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser


@dataclass(frozen=True)
class WebConfig:
    listen_address: str
    port: int


@dataclass(frozen=True)
class HardwareConfig:
    vcgencmd_path: str
    timeout_s: float


@dataclass(frozen=True)
class MemcachedConfig:
    address: str
    timeout_s: float
    export_time: bool


@dataclass(frozen=True)
class AppConfig:
    web: WebConfig
    hardware: HardwareConfig
    memcached: MemcachedConfig


def _get_positive(value: float, name: str) -> float:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    # Every section is optional; parser.get with fallback covers missing ones
    web = WebConfig(
        listen_address=parser.get("web", "listen_address", fallback="0.0.0.0"),
        port=parser.getint("web", "port", fallback=9150),
    )

    hardware = HardwareConfig(
        vcgencmd_path=parser.get("hardware", "vcgencmd_path", fallback="vcgencmd"),
        timeout_s=_get_positive(
            parser.getfloat("hardware", "timeout_s", fallback=5.0),
            "hardware.timeout_s",
        ),
    )

    memcached = MemcachedConfig(
        address=parser.get("memcached", "address", fallback="localhost:11211"),
        timeout_s=_get_positive(
            parser.getfloat("memcached", "timeout_s", fallback=1.0),
            "memcached.timeout_s",
        ),
        export_time=parser.getboolean("memcached", "export_time", fallback=True),
    )

    return AppConfig(web=web, hardware=hardware, memcached=memcached)
