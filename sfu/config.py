"""
Configuration Module

Handles .env loading, Bulk API timing settings and the last-used username.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError


DEFAULT_API_VERSION = '60.0'
DEFAULT_STATE_FILE = 'last_username.txt'

AUTH_SF_CLI = 'sf-cli'
AUTH_PASSWORD = 'password'


def _env_number(key: str, default: float, cast=float):
    """Read a positive number from the environment."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be greater than zero, got {raw!r}")
    return value


@dataclass(frozen=True)
class BulkSettings:
    """Timing settings for Bulk API ingestion jobs."""

    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 60
    upload_timeout_seconds: float = 300.0
    close_timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> 'BulkSettings':
        """
        Build settings from SFU_* environment variables.

        Returns:
            BulkSettings with defaults for unset variables

        Raises:
            ConfigError: If a variable is set to a non-positive or non-numeric value
        """
        return cls(
            poll_interval_seconds=_env_number('SFU_POLL_INTERVAL', cls.poll_interval_seconds),
            max_poll_attempts=_env_number('SFU_MAX_POLL_ATTEMPTS', cls.max_poll_attempts, int),
            upload_timeout_seconds=_env_number('SFU_UPLOAD_TIMEOUT', cls.upload_timeout_seconds),
            close_timeout_seconds=_env_number('SFU_CLOSE_TIMEOUT', cls.close_timeout_seconds),
        )


class UsernameStore:
    """Remembers the last Salesforce username used on this machine."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.getenv('SFU_STATE_FILE') or DEFAULT_STATE_FILE)

    def load(self) -> Optional[str]:
        """Return the stored username, or None if nothing usable is stored."""
        try:
            username = self.path.read_text(encoding='utf-8').strip()
        except FileNotFoundError:
            return None
        return username or None

    def save(self, username: str):
        """Store the username for the next invocation."""
        self.path.write_text(username.strip(), encoding='utf-8')


class Config:
    """Configuration manager for the Salesforce utility CLI."""

    def __init__(self, env_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            env_path: Optional path to .env file
        """
        if env_path:
            self.env_path = Path(env_path)
        else:
            # Look for .env in current directory, then next to the package
            current = Path.cwd()
            if (current / '.env').exists():
                self.env_path = current / '.env'
            else:
                self.env_path = Path(__file__).parent.parent / '.env'

    @property
    def exists(self) -> bool:
        """Check if .env file exists."""
        return self.env_path.exists()

    def load(self) -> bool:
        """
        Load the .env file into the process environment.

        Existing environment variables win over values in the file.

        Returns:
            True if a file was found and loaded
        """
        if not self.exists:
            return False
        return load_dotenv(self.env_path, override=False)

    @property
    def auth_method(self) -> str:
        """Credential provider to use ('sf-cli' or 'password')."""
        method = os.getenv('SFU_AUTH', AUTH_SF_CLI).strip().lower()
        if method not in (AUTH_SF_CLI, AUTH_PASSWORD):
            raise ConfigError(f"SFU_AUTH must be '{AUTH_SF_CLI}' or '{AUTH_PASSWORD}', got {method!r}")
        return method

    @property
    def default_api_version(self) -> str:
        return os.getenv('SFU_DEFAULT_API_VERSION', DEFAULT_API_VERSION)

    def bulk_settings(self) -> BulkSettings:
        return BulkSettings.from_env()

    def username_store(self) -> UsernameStore:
        return UsernameStore()

    def validate(self, username: Optional[str] = None) -> tuple[bool, list[str]]:
        """
        Validate password-flow configuration.

        Args:
            username: Username given on the command line, replaces SF_USERNAME

        Returns:
            Tuple of (is_valid, missing_keys)
        """
        required_keys = [
            'SF_USERNAME',
            'SF_PASSWORD',
            'SF_SECURITY_TOKEN',
        ]

        if username:
            required_keys.remove('SF_USERNAME')

        missing = [key for key in required_keys if not os.getenv(key)]
        return len(missing) == 0, missing

    def create_template(self) -> Path:
        """Create a template .env file."""
        template = """# Credential provider: 'sf-cli' (uses `sf org display`) or 'password'
SFU_AUTH=sf-cli

# Only needed for SFU_AUTH=password
SF_USERNAME=your.email@company.com
SF_PASSWORD=your_password
SF_SECURITY_TOKEN=your_security_token
SF_DOMAIN=login  # Use 'test' for sandbox, 'login' for production

# Optional Settings
# SFU_DEFAULT_API_VERSION=60.0
# SFU_POLL_INTERVAL=5
# SFU_MAX_POLL_ATTEMPTS=60
# SFU_UPLOAD_TIMEOUT=300
# SFU_CLOSE_TIMEOUT=60
"""
        with open(self.env_path, 'w') as f:
            f.write(template)

        return self.env_path
