import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

LOG_LEVELS = ("error", "warning", "info", "debug")

LOG_LEVEL_ENV = "PAYMENTS_LOG_LEVEL"
MAX_INPUT_MB_ENV = "PAYMENTS_MAX_INPUT_MB"

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime settings for a batch run.
    Defaults are overridden by environment variables, which are overridden by CLI flags.
    """

    log_level: str = "warning"
    # None means no limit on the input file size.
    max_input_bytes: Optional[int] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        config = cls()

        log_level = environ.get(LOG_LEVEL_ENV)
        if log_level:
            config = config.with_overrides(log_level=log_level)

        max_input_mb = environ.get(MAX_INPUT_MB_ENV)
        if max_input_mb:
            try:
                megabytes = int(max_input_mb)
            except ValueError as e:
                raise ValueError(f"{MAX_INPUT_MB_ENV} must be an integer, got {max_input_mb!r}") from e
            config = config.with_overrides(max_input_mb=megabytes)

        return config

    def with_overrides(self, log_level: Optional[str] = None, max_input_mb: Optional[int] = None) -> "EngineConfig":
        config = self
        if log_level is not None:
            log_level = log_level.lower()
            if log_level not in LOG_LEVELS:
                raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")
            config = replace(config, log_level=log_level)
        if max_input_mb is not None:
            if max_input_mb <= 0:
                raise ValueError(f"max input size must be a positive number of megabytes, got {max_input_mb}")
            config = replace(config, max_input_bytes=max_input_mb * BYTES_PER_MB)
        return config
