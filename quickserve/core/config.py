"""
Server configuration.

A single immutable ``ServerConfig`` is built at start-up and passed by
reference to the router, body decoder and dispatcher. Values can come from
code, from ``QUICKSERVE_*`` environment variables or from the command line.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from quickserve.features.security import CORSConfig


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerConfig:
    """Process-wide settings read by the request pipeline.

    Attributes:
        host: Host address to bind to
        port: Port number to listen on (0 picks a free port)
        public_dir: Directory static files are served from
        upload_dir: Directory multipart file parts are written to
        cors_enabled: Register OPTIONS preflight routes and add CORS headers
        cors: CORS header settings
        index_path: Location the default INDEX behavior redirects to
        read_timeout: Seconds to wait for each chunk of the request
        max_body_size: Maximum accepted request body in bytes
        max_header_size: Maximum size of a single header value in bytes
        log_level: Logging level name
        json_logs: Emit JSON log records instead of plain text
    """
    host: str = "127.0.0.1"
    port: int = 8000
    public_dir: str = os.path.join("assets", "public")
    upload_dir: str = "uploads"
    cors_enabled: bool = False
    cors: CORSConfig = field(default_factory=CORSConfig)
    index_path: str = "/index.html"
    read_timeout: Optional[float] = 30.0
    max_body_size: int = 10 * 1024 * 1024  # 10MB limit
    max_header_size: int = 8192
    log_level: str = "INFO"
    json_logs: bool = True

    def __post_init__(self):
        if not isinstance(self.port, int):
            raise ValueError("Port must be an integer")
        if self.port < 0 or self.port > 65535:
            raise ValueError("Port number must be between 0 and 65535")
        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("Read timeout must be positive")
        if self.max_body_size < 0:
            raise ValueError("Max body size must not be negative")
        if self.max_header_size < 1:
            raise ValueError("Max header size must be at least 1")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables.

        QUICKSERVE_HOST, QUICKSERVE_PORT, QUICKSERVE_PUBLIC_DIR,
        QUICKSERVE_UPLOAD_DIR, QUICKSERVE_CORS, QUICKSERVE_READ_TIMEOUT,
        QUICKSERVE_MAX_BODY_SIZE, QUICKSERVE_LOG_LEVEL, QUICKSERVE_JSON_LOGS.

        Returns:
            ServerConfig populated from the environment with defaults for
            anything unset
        """
        defaults = cls()
        return cls(
            host=os.getenv("QUICKSERVE_HOST", defaults.host),
            port=int(os.getenv("QUICKSERVE_PORT", str(defaults.port))),
            public_dir=os.getenv("QUICKSERVE_PUBLIC_DIR", defaults.public_dir),
            upload_dir=os.getenv("QUICKSERVE_UPLOAD_DIR", defaults.upload_dir),
            cors_enabled=_env_flag("QUICKSERVE_CORS", defaults.cors_enabled),
            read_timeout=float(os.getenv("QUICKSERVE_READ_TIMEOUT", str(defaults.read_timeout))),
            max_body_size=int(os.getenv("QUICKSERVE_MAX_BODY_SIZE", str(defaults.max_body_size))),
            log_level=os.getenv("QUICKSERVE_LOG_LEVEL", defaults.log_level),
            json_logs=_env_flag("QUICKSERVE_JSON_LOGS", defaults.json_logs),
        )
