import os
import pathlib
from typing import Any, Dict, Optional

import yaml
from appdirs import user_config_dir

from .api import ApiClient
from .exceptions import ConfigError
from .utils.dates import DISPLAY_TIMEZONE, get_timezone


DEFAULT_API_URL = "http://localhost:3001/api"
DEFAULT_SIGNUP_URL = "http://localhost:5173/signup"

API_URL_ENV = "RECRUIT_SCHEDULER_API_URL"
TOKEN_ENV = "RECRUIT_SCHEDULER_TOKEN"


def get_api_client(config: Optional["ConfigManager"] = None) -> ApiClient:
    """Get an API client for the configured backend."""
    config = config or ConfigManager()
    return ApiClient(config.get_api_url(), token=config.get_token())


class ConfigManager:
    """Manages configuration and the API token for the recruit scheduler."""

    CONFIG_PATH = pathlib.Path(user_config_dir("recruit-scheduler")) / "config.yml"

    def __init__(self, config_path: Optional[pathlib.Path] = None):
        self.config_path = pathlib.Path(config_path) if config_path else self.CONFIG_PATH
        self._data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    self._data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load config: {e}")

    def save(self) -> None:
        """Save configuration to file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                yaml.safe_dump(self._data, f, default_flow_style=False)
            os.chmod(self.config_path, 0o600)
        except OSError as e:
            raise ConfigError(f"Failed to save config: {e}")

    def get_api_url(self) -> str:
        """Get the backend base URL; the environment wins over the file."""
        return os.getenv(API_URL_ENV) or self._data.get('api_url', DEFAULT_API_URL)

    def set_api_url(self, url: str) -> None:
        if not url.startswith(("http://", "https://")):
            raise ConfigError(f"API URL must start with http:// or https://: {url}")
        self._data['api_url'] = url.rstrip("/")
        self.save()

    def get_token(self) -> Optional[str]:
        """Get the bearer token used for member and admin requests."""
        return os.getenv(TOKEN_ENV) or self._data.get('token')

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self._data['token'] = token
        else:
            self._data.pop('token', None)
        self.save()

    def get_timezone(self) -> str:
        """Get the timezone slot times are displayed in."""
        return self._data.get('timezone', DISPLAY_TIMEZONE)

    def set_timezone(self, tz_name: str) -> None:
        """Set display timezone."""
        try:
            get_timezone(tz_name)
        except ValueError as e:
            raise ConfigError(str(e))
        self._data['timezone'] = tz_name
        self.save()

    def get_signup_url(self) -> str:
        """Get the page where registrants create an account."""
        return self._data.get('signup_url', DEFAULT_SIGNUP_URL)

    def set_signup_url(self, url: str) -> None:
        self._data['signup_url'] = url
        self.save()

    def is_configured(self) -> bool:
        """Check if basic configuration is complete."""
        return self.config_path.exists() and 'api_url' in self._data
