"""Token providers for notification services."""

import os
from typing import Optional, Protocol

from app.errors import ConfigError

DEFAULT_TOKEN_ENV = "PUSHBULLET_TOKEN"


class TokenProvider(Protocol):
    """Supplies the access token of a notification service."""

    def get_token(self) -> str: ...


class EnvTokenProvider:
    """Read the token from a process environment variable."""

    def __init__(self, variable: str = DEFAULT_TOKEN_ENV):
        self.variable = variable

    def get_token(self) -> str:
        token = os.environ.get(self.variable, "").strip()
        if not token:
            raise ConfigError(f"Unable to get token: {self.variable} is not set")
        return token


class StaticTokenProvider:
    """Token given explicitly in the configuration file."""

    def __init__(self, token: Optional[str]):
        self.token = token

    def get_token(self) -> str:
        if not self.token:
            raise ConfigError("Unable to get token: no token configured")
        return self.token


class FileTokenProvider:
    """Read the token from a secret file, e.g. a mounted Docker secret."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def get_token(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                token = f.read().strip()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Unable to read token file {self.path}: {e}") from e
        if not token:
            raise ConfigError(f"Token file {self.path} is empty")
        return token


def token_provider_from_config(notifier_config: dict) -> TokenProvider:
    """Pick a token provider from the notifier configuration.

    An explicit token wins over a token file, which wins over the environment.
    """
    if notifier_config.get("token"):
        return StaticTokenProvider(notifier_config["token"])
    if notifier_config.get("token_file"):
        return FileTokenProvider(notifier_config["token_file"])
    return EnvTokenProvider(notifier_config.get("token_env") or DEFAULT_TOKEN_ENV)
