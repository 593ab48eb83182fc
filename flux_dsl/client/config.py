# Copyright 2020-present Kensho Technologies, LLC.
"""Connection settings of the Flux query client."""
from dataclasses import dataclass
import os
from typing import Mapping, Optional

from ..exceptions import FluxValidationError


DEFAULT_ENV_PREFIX = "INFLUX_"
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ClientConfig:
    """Where and how to reach the database's HTTP API."""

    url: str  # Base URL of the server, e.g. "http://localhost:8086".
    token: Optional[str] = None  # API token, sent as "Authorization: Token <token>".
    org: Optional[str] = None  # Default organization of queries that do not name their own.
    timeout: float = DEFAULT_TIMEOUT_SECONDS  # Seconds, for each HTTP request.
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Validate the configuration."""
        if not isinstance(self.url, str) or not self.url:
            raise FluxValidationError(
                "A non-empty server URL is required, got: {}".format(self.url)
            )
        if self.timeout <= 0:
            raise FluxValidationError(
                "The request timeout must be positive, got: {}".format(self.timeout)
            )

    @property
    def base_url(self) -> str:
        """Return the server URL without any trailing slashes."""
        return self.url.rstrip("/")

    @classmethod
    def from_env(
        cls, prefix: str = DEFAULT_ENV_PREFIX, environ: Optional[Mapping[str, str]] = None
    ) -> "ClientConfig":
        """Read the configuration from the environment, e.g. INFLUX_URL and INFLUX_TOKEN.

        Args:
            prefix: prefix of the variable names. The URL, TOKEN, ORG and TIMEOUT variables are
                    read, and only the URL is required.
            environ: mapping to read instead of os.environ

        Returns:
            new ClientConfig
        """
        if environ is None:
            environ = os.environ

        url = environ.get(prefix + "URL")
        if not url:
            raise FluxValidationError(
                "The {}URL environment variable is required to configure the client.".format(
                    prefix
                )
            )

        raw_timeout = environ.get(prefix + "TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise FluxValidationError(
                    "Expected a number of seconds in {}TIMEOUT, got: {}".format(prefix, raw_timeout)
                )
        else:
            timeout = DEFAULT_TIMEOUT_SECONDS

        return cls(
            url=url,
            token=environ.get(prefix + "TOKEN") or None,
            org=environ.get(prefix + "ORG") or None,
            timeout=timeout,
        )
