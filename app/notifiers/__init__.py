"""Notification delivery."""

from .credentials import EnvTokenProvider, FileTokenProvider, StaticTokenProvider
from .push import PushNotifier, format_message, notifier_from_config

__all__ = [
    "EnvTokenProvider",
    "FileTokenProvider",
    "StaticTokenProvider",
    "PushNotifier",
    "format_message",
    "notifier_from_config",
]
