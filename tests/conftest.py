"""Shared pytest fixtures."""

import os
import tempfile
from typing import Generator

import pytest
import yaml

from app.errors import DeliveryError, ReadError


@pytest.fixture
def temp_config_file(tmp_path) -> Generator[str, None, None]:
    """Create a temporary config file for testing."""
    config = {
        "monitor": {"path": "/", "threshold": 0.10, "interval": 60},
        "notifier": {"service": "pushbullet", "token": "o.test-token"},
        "logging": {"level": "debug", "file": "stdout"},
        "paths": {
            "log_file": str(tmp_path / "log" / "disk-warn.log"),
            "pid_file": str(tmp_path / "run" / "disk-warn.pid"),
        },
    }

    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        config_path = f.name

    yield config_path

    # Cleanup
    os.unlink(config_path)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep tests away from real configuration files."""
    monkeypatch.delenv("DISK_WARN_CONFIG", raising=False)
    monkeypatch.setattr("app.config.DEFAULT_CONFIG_LOCATIONS", [])


class FakeUsageSource:
    """Usage source replaying a scripted sequence of readings.

    Entries that are exceptions are raised instead of returned.
    """

    def __init__(self, readings):
        self.readings = list(readings)
        self.calls = 0

    def read(self) -> float:
        self.calls += 1
        reading = self.readings.pop(0)
        if isinstance(reading, Exception):
            raise reading
        return reading


class FakeNotifier:
    """Notifier recording every ratio it is asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, ratio: float) -> None:
        self.sent.append(ratio)
        if self.fail:
            raise DeliveryError("Got error from pushbullet", "401 Unauthorized")


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def failing_notifier() -> FakeNotifier:
    return FakeNotifier(fail=True)


@pytest.fixture
def read_error() -> ReadError:
    return ReadError("Unable to find root mount")
