from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from typing import Any

from pymemcache.client.base import Client
from pymemcache.exceptions import MemcacheError

from rpi_exporter.errors import FetchError
from rpi_exporter.logging_utils import TRACE_LEVEL

HARDWARE_SOURCE = "vcgencmd"
CACHE_SOURCE = "memcached"

DEFAULT_MEMCACHED_PORT = 11211

CommandRunner = Callable[..., subprocess.CompletedProcess]
ClientFactory = Callable[..., Any]


def _decode_output(data: bytes | str | None) -> str:
    # Firmware output is not guaranteed to be valid UTF-8
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class HardwareStatusSource:
    """Reads the throttled-status word from ``vcgencmd get_throttled``."""

    source = HARDWARE_SOURCE

    def __init__(
        self,
        vcgencmd_path: str = "vcgencmd",
        timeout: float = 5.0,
        runner: CommandRunner | None = None,
    ) -> None:
        self.command = [vcgencmd_path, "get_throttled"]
        self.timeout = timeout
        self.runner = runner or subprocess.run
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch(self) -> str:
        try:
            result = self.runner(
                self.command,
                check=False,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            output = _decode_output(exc.stdout)
            raise FetchError(
                self.source,
                f"{' '.join(self.command)} timed out after {self.timeout}s",
                output=output or None,
            ) from exc
        except OSError as exc:
            raise FetchError(
                self.source, f"Failed to start {self.command[0]}: {exc}"
            ) from exc

        stdout = _decode_output(result.stdout)
        if stdout:
            self.logger.log(TRACE_LEVEL, "stdout: %s", stdout.strip())
        if result.returncode != 0:
            stderr = _decode_output(result.stderr)
            if stderr:
                self.logger.log(TRACE_LEVEL, "stderr: %s", stderr.strip())
            raise FetchError(
                self.source,
                f"Command failed ({result.returncode}): {' '.join(self.command)}",
                output=stdout or None,
            )
        return stdout


def parse_address(address: str) -> tuple[str, int] | str:
    """Turn a configured address into a pymemcache server spec.

    ``host:port`` and ``[v6addr]:port`` give a tuple, a bare host uses the
    default port, and anything starting with ``/`` is a unix socket path.
    """
    address = address.strip()
    if not address:
        raise ValueError("memcached address must not be empty")
    if address.startswith("/"):
        return address
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep:
            raise ValueError(f"Unterminated IPv6 address: {address}")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, port = address.split(":")
    else:
        # Bare hostname or an unbracketed IPv6 literal
        host, port = address, ""
    return host, int(port) if port else DEFAULT_MEMCACHED_PORT


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


class CacheStatusSource:
    """Fetches ``stats`` and ``stats settings`` from a memcached server."""

    source = CACHE_SOURCE

    def __init__(
        self,
        address: str = "localhost:11211",
        timeout: float = 1.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.address = address
        self.server = parse_address(address)
        self.timeout = timeout
        self.client_factory = client_factory or Client
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch_stats(self) -> dict[str, str]:
        return self._fetch()

    def fetch_stats_settings(self) -> dict[str, str]:
        return self._fetch("settings")

    def _fetch(self, *args: str) -> dict[str, str]:
        command = " ".join(("stats",) + args)
        client = self.client_factory(
            self.server, connect_timeout=self.timeout, timeout=self.timeout
        )
        try:
            raw = client.stats(*args)
        except (MemcacheError, OSError) as exc:
            raise FetchError(
                self.source, f"'{command}' failed against {self.address}: {exc}"
            ) from exc
        finally:
            client.close()

        values = {_to_text(key): _to_text(value) for key, value in raw.items()}
        self.logger.log(TRACE_LEVEL, "%s returned %s values", command, len(values))
        return values
