"""Runtime configuration for satchel.

Environment variables are parsed and validated here; the CLI and service
layer consume the typed config object instead of reading the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_COMPRESS_LEVEL
from .errors import ConfigError


@dataclass(frozen=True)
class SatchelConfig:
    """Validated runtime configuration.

    Attributes:
        compress_level: bzip2 level (1-9) used when writing archives.
        chunk_size: Read/copy buffer size in bytes for the stream filters.
        log_level: Level name applied to the ``satchel`` logger by the CLI.
    """

    compress_level: int = DEFAULT_COMPRESS_LEVEL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SatchelConfig":
        """Build config from environment variables.

        Raises:
            ConfigError: If a value is present but invalid.
        """
        env = os.environ if environ is None else environ
        compress_level = _parse_int(env, "SATCHEL_COMPRESS_LEVEL", DEFAULT_COMPRESS_LEVEL)
        if not 1 <= compress_level <= 9:
            raise ConfigError(f"SATCHEL_COMPRESS_LEVEL must be between 1 and 9, got {compress_level}")
        chunk_size = _parse_int(env, "SATCHEL_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)
        if chunk_size <= 0:
            raise ConfigError(f"SATCHEL_CHUNK_SIZE must be positive, got {chunk_size}")
        log_level = env.get("SATCHEL_LOG_LEVEL", "WARNING").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"SATCHEL_LOG_LEVEL is not a logging level: {log_level}")
        return cls(compress_level=compress_level, chunk_size=chunk_size, log_level=log_level)


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
