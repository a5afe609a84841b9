"""
Process-wide configuration.

Settings are read from the environment exactly once at startup and passed
explicitly into the components that need them. Nothing in the fetch pipeline
reads environment variables on its own.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from core.exceptions import ConfigurationError, MissingCredentialError

DEFAULT_API_BASE = "https://discord.com/api/v10/users"
DEFAULT_CDN_BASE = "https://cdn.discordapp.com"
DEFAULT_REQUEST_TIMEOUT = 10.0


def default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "magnify"


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the service configuration"""

    token: Optional[str]
    api_base: str = DEFAULT_API_BASE
    cdn_base: str = DEFAULT_CDN_BASE
    cache_dir: Optional[Path] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    environment: str = "development"

    def __post_init__(self):
        if self.cache_dir is None:
            object.__setattr__(self, "cache_dir", default_cache_dir())

    def require_token(self) -> str:
        """Return the credential or fail with MissingCredentialError"""
        if not self.token:
            raise MissingCredentialError()
        return self.token


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Read settings from environment variables.

    Values from a `.env` file (the given one, or the nearest one found) fill in
    variables the process environment does not already set.
    """
    load_dotenv(env_file)

    raw_timeout = os.getenv("MAGNIFY_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
    try:
        request_timeout = float(raw_timeout)
    except ValueError:
        raise ConfigurationError("MAGNIFY_REQUEST_TIMEOUT", f"not a number: {raw_timeout!r}")
    if request_timeout <= 0:
        raise ConfigurationError("MAGNIFY_REQUEST_TIMEOUT", "must be positive")

    cache_dir = os.getenv("MAGNIFY_CACHE_DIR")

    return Settings(
        token=os.getenv("DISCORD_BOT_TOKEN") or None,
        api_base=os.getenv("MAGNIFY_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        cdn_base=os.getenv("MAGNIFY_CDN_BASE", DEFAULT_CDN_BASE).rstrip("/"),
        cache_dir=Path(cache_dir) if cache_dir else default_cache_dir(),
        request_timeout=request_timeout,
        environment=os.getenv("ENVIRONMENT", "development").lower(),
    )
