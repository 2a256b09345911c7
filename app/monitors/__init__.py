"""Free-space sources."""

from .disk import DiskUsageSource

__all__ = ["DiskUsageSource"]
