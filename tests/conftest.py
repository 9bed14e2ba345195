"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import subprocess
from unittest.mock import Mock

import pytest

from rpi_exporter.sources import CacheStatusSource, HardwareStatusSource


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


def completed(stdout: str = "", returncode: int = 0, stderr: str = ""):
    """Build the result a real ``subprocess.run`` call would return."""
    return subprocess.CompletedProcess(
        args=["vcgencmd", "get_throttled"],
        returncode=returncode,
        stdout=stdout.encode("utf-8"),
        stderr=stderr.encode("utf-8"),
    )


def memcache_client(stats=None, settings=None, error=None):
    """Build a client factory whose clients answer ``stats`` calls from dicts."""
    client = Mock()

    def fake_stats(*args):
        if error is not None:
            raise error
        if args == ("settings",):
            return dict(settings or {})
        return dict(stats or {})

    client.stats.side_effect = fake_stats
    factory = Mock(return_value=client)
    return factory, client


@pytest.fixture
def hardware_source():
    """Create a hardware source backed by a mocked command runner."""
    def build(stdout: str = "throttled=0x0", returncode: int = 0, side_effect=None):
        runner = Mock(return_value=completed(stdout, returncode))
        if side_effect is not None:
            runner.side_effect = side_effect
        return HardwareStatusSource("vcgencmd", timeout=2.0, runner=runner)

    return build


@pytest.fixture
def cache_source():
    """Create a cache source backed by a mocked memcache client."""
    def build(stats=None, settings=None, error=None):
        factory, _ = memcache_client(stats, settings, error)
        return CacheStatusSource("localhost:11211", timeout=0.5, client_factory=factory)

    return build


@pytest.fixture
def vcgencmd_script(tmp_path):
    """Write an executable stand-in for vcgencmd that prints raw bytes."""
    def build(output: bytes, returncode: int = 0):
        escaped = "".join(f"\\{byte:03o}" for byte in output)
        script = tmp_path / "vcgencmd"
        script.write_text(f"#!/bin/sh\nprintf '{escaped}'\nexit {returncode}\n")
        script.chmod(0o755)
        return str(script)

    return build
