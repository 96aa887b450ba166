"""
Server configuration loaded from the environment
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .constants import (
    CLEANUP_INTERVAL_SECONDS,
    CORS_ORIGINS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    LOG_LEVEL,
    STREAM_BUFFER_SIZE,
)


@dataclass
class ServerConfig:
    """Server configuration; durable storage is enabled by database_path"""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = LOG_LEVEL
    database_path: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: list(CORS_ORIGINS))
    stream_buffer_size: int = STREAM_BUFFER_SIZE
    cleanup_interval_seconds: int = CLEANUP_INTERVAL_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a config from environment variables

        HOST, PORT, LOG_LEVEL, DATABASE_PATH, CORS_ORIGINS (comma separated),
        STREAM_BUFFER_SIZE and CLEANUP_INTERVAL_SECONDS; unset ones keep
        their defaults.
        """
        env = os.environ if environ is None else environ

        origins = env.get("CORS_ORIGINS")
        return cls(
            host=env.get("HOST", DEFAULT_HOST),
            port=int(env.get("PORT", DEFAULT_PORT)),
            log_level=env.get("LOG_LEVEL", LOG_LEVEL).upper(),
            database_path=env.get("DATABASE_PATH") or None,
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(CORS_ORIGINS),
            stream_buffer_size=int(env.get("STREAM_BUFFER_SIZE", STREAM_BUFFER_SIZE)),
            cleanup_interval_seconds=int(env.get("CLEANUP_INTERVAL_SECONDS", CLEANUP_INTERVAL_SECONDS)),
        )

    @property
    def persistence_enabled(self) -> bool:
        return self.database_path is not None
