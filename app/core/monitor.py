"""Disk space monitoring loop for disk-warn."""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import structlog

from app.core.throttle import percentage_points, should_alert
from app.errors import ConfigError, DeliveryError, ReadError

logger = structlog.get_logger()

INITIAL_RATIO = 1.0


class UsageSource(Protocol):
    """Anything that can report the free-space ratio of a path."""

    def read(self) -> float: ...


class Notifier(Protocol):
    """Anything that can deliver a low disk space alert."""

    def send(self, ratio: float) -> None: ...


@dataclass
class MonitorState:
    """State carried from one monitoring cycle to the next."""

    previous: float = INITIAL_RATIO
    iteration: int = 0
    last_checked: Optional[float] = None
    alerts_sent: int = 0
    read_failures: int = 0
    delivery_failures: int = 0


@dataclass(frozen=True)
class CycleResult:
    """Outcome of a single monitoring cycle."""

    ratio: Optional[float] = None
    alerted: bool = False
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DiskMonitor:
    """Samples free space on a fixed interval and alerts when it runs low."""

    def __init__(
        self,
        source: UsageSource,
        notifier: Notifier,
        threshold: float = 0.10,
        interval: float = 300,
        sleep: Callable[[float], None] = time.sleep,
        state: Optional[MonitorState] = None,
    ):
        """Initialize the monitor.

        Args:
            source: Reports the current free-space ratio
            notifier: Delivers alerts
            threshold: Ratio below which free space is considered low
            interval: Seconds to wait between cycles
            sleep: Function used to wait between cycles
            state: Initial state, a fresh MonitorState if omitted
        """
        self.source = source
        self.notifier = notifier
        self.threshold = threshold
        self.interval = interval
        self._sleep = sleep
        self.state = state or MonitorState()
        self.logger = logger.bind(
            component="DiskMonitor", threshold=threshold, interval=interval
        )

    def run_cycle(self) -> CycleResult:
        """Sample, decide and notify once, updating the carried state."""
        self.state.iteration += 1
        cycle_time = time.time()
        self.state.last_checked = cycle_time
        log = self.logger.bind(
            iteration=self.state.iteration,
            previous=f"{self.state.previous:.4f}",
            cycle_time=datetime.fromtimestamp(cycle_time, timezone.utc).isoformat(),
        )

        log.debug("Checking disk usage")
        try:
            current = self.source.read()
        except (ReadError, OSError) as e:
            self.state.read_failures += 1
            log.error("Got error while checking disk usage", error=str(e))
            return CycleResult(error=e)

        log = log.bind(ratio=f"{current:.4f}")
        alerted = False
        error = None
        if should_alert(current, self.threshold, self.state.previous):
            log.info(
                "Low disk space threshold met, sending alert",
                percentage=percentage_points(current),
            )
            try:
                self.notifier.send(current)
                alerted = True
                self.state.alerts_sent += 1
                log.info("Successfully sent push message")
            except (DeliveryError, ConfigError) as e:
                error = e
                self.state.delivery_failures += 1
                log.error("Failed to send push message", error=str(e))
            except Exception as e:
                error = e
                self.state.delivery_failures += 1
                log.error(
                    "Unexpected error sending push message",
                    error=str(e),
                    exc_info=True,
                )
        elif current < self.threshold:
            log.info("Low disk space threshold met, alert already sent")
        else:
            log.debug("Low disk space threshold not met")

        self.state.previous = current
        return CycleResult(ratio=current, alerted=alerted, error=error)

    def run(self) -> None:
        """Run monitoring cycles forever."""
        self.logger.info("Starting disk monitor")
        while True:
            try:
                self.run_cycle()
            except Exception as e:
                self.logger.error(
                    "Error in monitoring cycle", error=str(e), exc_info=True
                )
            self.logger.debug("Cycle complete, sleeping", seconds=self.interval)
            self._sleep(self.interval)
