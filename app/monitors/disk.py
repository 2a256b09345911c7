"""Disk usage source."""

import os
from typing import Optional

import psutil
import structlog

from app.errors import ReadError

logger = structlog.get_logger()


class DiskUsageSource:
    """Report the free-space ratio of the filesystem holding a path."""

    def __init__(self, path: str = "/"):
        """Initialize disk usage source.

        Args:
            path: Path whose filesystem should be measured
        """
        self.path = path
        self.logger = logger.bind(component="DiskUsageSource", path=path)

    def read(self) -> float:
        """Return available space as a fraction of total capacity.

        Raises:
            ReadError: If the path cannot be queried
        """
        try:
            usage = psutil.disk_usage(self.path)
        except OSError as e:
            raise ReadError(f"Unable to read disk usage for {self.path}: {e}") from e

        if usage.total <= 0:
            raise ReadError(f"Filesystem at {self.path} reports no capacity")

        ratio = usage.free / usage.total
        self.logger.debug(
            "Disk usage collected", free=usage.free, total=usage.total, ratio=ratio
        )
        return min(max(ratio, 0.0), 1.0)

    def mounted_on(self) -> Optional[str]:
        """Return the mountpoint backing the path, or None if it is not found."""
        try:
            partitions = psutil.disk_partitions(all=True)
        except OSError as e:
            raise ReadError(f"Sys mount error: {e}") from e

        target = os.path.realpath(self.path)
        best = None
        for partition in partitions:
            mountpoint = partition.mountpoint
            if target == mountpoint or target.startswith(
                mountpoint.rstrip(os.sep) + os.sep
            ):
                if best is None or len(mountpoint) > len(best):
                    best = mountpoint
        return best
