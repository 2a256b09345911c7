"""Exception types for disk-warn."""


class DiskWarnError(Exception):
    """Base class for all disk-warn errors."""


class ReadError(DiskWarnError):
    """Raised when the free-space ratio of a path cannot be determined."""


class ConfigError(DiskWarnError):
    """Raised when a required setting or credential is missing or invalid."""


class DeliveryError(DiskWarnError):
    """Raised when a notification could not be delivered."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        message = super().__str__()
        if self.detail:
            return f"{message}: {self.detail}"
        return message
