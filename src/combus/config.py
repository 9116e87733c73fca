"""Bus configuration.

Values come from the environment:

    COMBUS_DISPATCH_TIMEOUT   Seconds a dispatch waits for a reply.
                              Unset, empty, "0" or "none" waits forever.
    COMBUS_LOG_LEVEL          Logging level used by the CLI (default WARNING).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_DISPATCH_TIMEOUT = "COMBUS_DISPATCH_TIMEOUT"
ENV_LOG_LEVEL = "COMBUS_LOG_LEVEL"

_NO_TIMEOUT = {"", "0", "none", "off"}


@dataclass
class BusConfig:
    """Configuration for a ComBus instance."""

    dispatch_timeout: float | None = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.dispatch_timeout is not None and self.dispatch_timeout <= 0:
            raise ValueError(f"dispatch_timeout must be positive, got {self.dispatch_timeout}")
        level = self.log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        self.log_level = level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BusConfig:
        """Build a config from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ

        raw_timeout = env.get(ENV_DISPATCH_TIMEOUT, "").strip()
        timeout: float | None = None
        if raw_timeout.lower() not in _NO_TIMEOUT:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ValueError(
                    f"{ENV_DISPATCH_TIMEOUT} must be a number of seconds, got {raw_timeout!r}"
                ) from None

        return cls(
            dispatch_timeout=timeout,
            log_level=env.get(ENV_LOG_LEVEL, "WARNING").strip() or "WARNING",
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "dispatch_timeout": self.dispatch_timeout,
            "log_level": self.log_level,
        }
