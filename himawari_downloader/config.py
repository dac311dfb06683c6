"""
Downloader settings.

Defaults can be overridden from the environment; command line options
override both.
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .datasources import HimawariDataSource
from .errors import InvalidArgumentError
from .retry import RetryPolicy


ENV_PREFIX = "HIMAWARI_"


@dataclass(frozen=True)
class DownloaderConfig:
    """
    Settings for a TileDownloader.

    Attributes:
        base_url: Service root URL
        timeout: Per-request connect/read timeout in seconds
        user_agent: User-Agent header sent with every request
        max_workers: Concurrent tile downloads (1 is sequential)
        max_retries: Attempts per request on timeout, None for unlimited
        retry_backoff: Linear backoff in seconds between attempts
    """

    base_url: str = HimawariDataSource.BASE_URL
    timeout: float = 30.0
    user_agent: str = HimawariDataSource.USER_AGENT
    max_workers: int = 1
    max_retries: Optional[int] = None
    retry_backoff: float = 0.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise InvalidArgumentError(f"timeout must be positive, got {self.timeout}")
        if self.max_workers < 1:
            raise InvalidArgumentError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.max_retries is not None and self.max_retries < 1:
            raise InvalidArgumentError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.retry_backoff < 0:
            raise InvalidArgumentError(f"retry_backoff must not be negative, got {self.retry_backoff}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DownloaderConfig":
        """
        Build a config from HIMAWARI_* environment variables.

        Recognised: HIMAWARI_BASE_URL, HIMAWARI_TIMEOUT, HIMAWARI_WORKERS,
        HIMAWARI_MAX_RETRIES, HIMAWARI_RETRY_BACKOFF. Unset variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        values = {}

        if env.get(ENV_PREFIX + "BASE_URL"):
            values["base_url"] = env[ENV_PREFIX + "BASE_URL"]
        if env.get(ENV_PREFIX + "TIMEOUT"):
            values["timeout"] = _parse_number(env, "TIMEOUT", float)
        if env.get(ENV_PREFIX + "WORKERS"):
            values["max_workers"] = _parse_number(env, "WORKERS", int)
        if env.get(ENV_PREFIX + "MAX_RETRIES"):
            values["max_retries"] = _parse_number(env, "MAX_RETRIES", int)
        if env.get(ENV_PREFIX + "RETRY_BACKOFF"):
            values["retry_backoff"] = _parse_number(env, "RETRY_BACKOFF", float)

        return cls(**values)

    def with_overrides(self, **overrides) -> "DownloaderConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def retry_policy(self) -> RetryPolicy:
        if self.max_retries is None:
            return RetryPolicy.unbounded(backoff=self.retry_backoff)
        return RetryPolicy.bounded(self.max_retries, backoff=self.retry_backoff)


def _parse_number(env: Mapping[str, str], name: str, kind):
    raw = env[ENV_PREFIX + name]
    try:
        return kind(raw)
    except ValueError:
        raise InvalidArgumentError(f"Invalid {ENV_PREFIX}{name}: {raw!r}")
