"""Test the disk monitoring loop."""

import pytest

from app.core.monitor import INITIAL_RATIO, DiskMonitor, MonitorState
from app.errors import ConfigError, ReadError
from app.notifiers import FileTokenProvider, PushNotifier
from tests.conftest import FakeNotifier, FakeUsageSource


class StopLoop(Exception):
    """Raised by the fake sleep to break out of the endless loop."""


def make_monitor(readings, notifier, threshold=0.10):
    return DiskMonitor(
        source=FakeUsageSource(readings),
        notifier=notifier,
        threshold=threshold,
        interval=300,
    )


def test_initial_state():
    state = MonitorState()
    assert state.previous == INITIAL_RATIO == 1.0
    assert state.iteration == 0


def test_first_low_reading_sends_alert(notifier):
    monitor = make_monitor([0.0923], notifier)

    result = monitor.run_cycle()

    assert result.ok
    assert result.alerted
    assert notifier.sent == [0.0923]
    assert monitor.state.previous == 0.0923
    assert monitor.state.alerts_sent == 1


def test_adequate_space_updates_state_without_alert(notifier):
    monitor = make_monitor([0.5], notifier)

    result = monitor.run_cycle()

    assert result.ratio == 0.5
    assert not result.alerted
    assert notifier.sent == []
    assert monitor.state.previous == 0.5


def test_sustained_low_space_alerts_once_per_point(notifier):
    """Test that a sustained condition only alerts on whole-point drops."""
    readings = [0.095, 0.094, 0.091, 0.089, 0.089, 0.093, 0.079]
    monitor = make_monitor(readings, notifier)

    for _ in readings:
        monitor.run_cycle()

    assert notifier.sent == [0.095, 0.089, 0.079]
    assert monitor.state.previous == 0.079


def test_read_failure_keeps_previous(notifier, read_error):
    monitor = make_monitor([0.2, read_error, 0.09], notifier)

    monitor.run_cycle()
    result = monitor.run_cycle()

    assert not result.ok
    assert isinstance(result.error, ReadError)
    assert result.ratio is None
    assert monitor.state.previous == 0.2
    assert monitor.state.read_failures == 1
    assert notifier.sent == []

    monitor.run_cycle()
    assert notifier.sent == [0.09]


def test_os_error_from_source_is_treated_as_read_failure(notifier):
    monitor = make_monitor([PermissionError("denied")], notifier)

    result = monitor.run_cycle()

    assert isinstance(result.error, PermissionError)
    assert monitor.state.previous == INITIAL_RATIO


def test_failed_delivery_still_records_ratio(failing_notifier):
    """Test that a failed send does not cause the same value to be resent."""
    monitor = make_monitor([0.09, 0.09], failing_notifier)

    result = monitor.run_cycle()

    assert not result.alerted
    assert result.error is not None
    assert monitor.state.previous == 0.09
    assert monitor.state.delivery_failures == 1

    monitor.run_cycle()
    assert failing_notifier.sent == [0.09]


def test_missing_token_is_not_fatal():
    class NoTokenNotifier(FakeNotifier):
        def send(self, ratio):
            raise ConfigError("Unable to get token: PUSHBULLET_TOKEN is not set")

    monitor = make_monitor([0.05], NoTokenNotifier())

    result = monitor.run_cycle()

    assert isinstance(result.error, ConfigError)
    assert monitor.state.previous == 0.05


def test_iteration_and_timestamp_are_tracked(notifier, read_error):
    monitor = make_monitor([0.5, read_error], notifier)

    monitor.run_cycle()
    monitor.run_cycle()

    assert monitor.state.iteration == 2
    assert monitor.state.last_checked is not None


def test_run_sleeps_between_cycles(notifier, read_error):
    """Test that run keeps cycling through failures at the configured interval."""
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            raise StopLoop

    monitor = DiskMonitor(
        source=FakeUsageSource([0.09, read_error, 0.08]),
        notifier=notifier,
        threshold=0.10,
        interval=120,
        sleep=fake_sleep,
    )

    with pytest.raises(StopLoop):
        monitor.run()

    assert sleeps == [120, 120, 120]
    assert notifier.sent == [0.09, 0.08]
    assert monitor.state.previous == 0.08


def test_run_survives_unexpected_errors(notifier):
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise StopLoop

    monitor = DiskMonitor(
        source=FakeUsageSource([ValueError("boom"), 0.05]),
        notifier=notifier,
        sleep=fake_sleep,
    )

    with pytest.raises(StopLoop):
        monitor.run()

    assert notifier.sent == [0.05]


def test_unexpected_notifier_error_still_records_ratio():
    """Test that any send failure counts as a delivery failure."""

    class CrashingNotifier(FakeNotifier):
        def send(self, ratio):
            self.sent.append(ratio)
            raise RuntimeError("transport exploded")

    notifier = CrashingNotifier()
    monitor = make_monitor([0.05, 0.05], notifier)

    result = monitor.run_cycle()

    assert isinstance(result.error, RuntimeError)
    assert not result.alerted
    assert monitor.state.previous == 0.05
    assert monitor.state.delivery_failures == 1

    monitor.run_cycle()
    assert notifier.sent == [0.05]


def test_undecodable_token_file_does_not_repeat_alert(tmp_path):
    token_file = tmp_path / "token"
    token_file.write_bytes(b"\xff\xfe\x00bad")
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise StopLoop

    monitor = DiskMonitor(
        source=FakeUsageSource([0.05, 0.05]),
        notifier=PushNotifier(FileTokenProvider(str(token_file))),
        sleep=fake_sleep,
    )

    with pytest.raises(StopLoop):
        monitor.run()

    assert monitor.state.previous == 0.05
    assert monitor.state.iteration == 2
    assert monitor.state.delivery_failures == 1
