"""Push notifications for low disk space."""

import logging
from typing import Optional

import apprise
import structlog

from app.errors import ConfigError, DeliveryError
from app.notifiers.credentials import (
    EnvTokenProvider,
    TokenProvider,
    token_provider_from_config,
)

logger = structlog.get_logger()

ALERT_TITLE = "Low disk space"
SUPPORTED_SERVICES = ("pushbullet", "telegram")


def format_message(ratio: float) -> str:
    """Format the alert body for a free-space ratio."""
    return f"Only {ratio * 100:.2f}% left!"


class PushNotifier:
    """Deliver low disk space alerts through Apprise."""

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        service: str = "pushbullet",
        chat_id: Optional[str] = None,
        connect_timeout: float = 4,
        read_timeout: float = 10,
    ):
        """Initialize the notifier.

        Args:
            token_provider: Supplies the service access token
            service: Notification service, "pushbullet" or "telegram"
            chat_id: Telegram chat to post to
            connect_timeout: Seconds to wait for the connection
            read_timeout: Seconds to wait for the response
        """
        if service not in SUPPORTED_SERVICES:
            raise ConfigError(f"Unsupported notification service: {service}")
        self.token_provider = token_provider or EnvTokenProvider()
        self.service = service
        self.chat_id = chat_id
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.logger = logger.bind(component="PushNotifier", service=service)

    def _build_notification_url(self, token: str) -> str:
        """Build the Apprise URL for the configured service."""
        timeouts = f"?cto={self.connect_timeout}&rto={self.read_timeout}"
        if self.service == "telegram":
            if not self.chat_id:
                raise ConfigError("Telegram notifications require chat_id")
            return f"tgram://{token}/{self.chat_id}/{timeouts}"
        return f"pbul://{token}/{timeouts}"

    def send(self, ratio: float) -> None:
        """Send one alert for the given free-space ratio.

        Raises:
            ConfigError: If no token is available or the URL is rejected
            DeliveryError: If the service did not accept the notification
        """
        self.logger.info("Sending push message", percentage=f"{ratio * 100:.2f}")
        token = self.token_provider.get_token()

        apobj = apprise.Apprise()
        if not apobj.add(self._build_notification_url(token)):
            raise ConfigError(f"Invalid {self.service} notification settings")

        with apprise.LogCapture(level=logging.INFO) as output:
            try:
                result = apobj.notify(title=ALERT_TITLE, body=format_message(ratio))
            except Exception as e:
                raise DeliveryError("Unable to send push message", str(e)) from e
            detail = output.getvalue().strip()

        if not result:
            raise DeliveryError(f"Got error from {self.service}", detail)


def notifier_from_config(notifier_config: dict) -> PushNotifier:
    """Build a notifier from the "notifier" section of the configuration."""
    return PushNotifier(
        token_provider=token_provider_from_config(notifier_config),
        service=notifier_config.get("service", "pushbullet"),
        chat_id=notifier_config.get("chat_id"),
        connect_timeout=notifier_config.get("connect_timeout", 4),
        read_timeout=notifier_config.get("read_timeout", 10),
    )
