"""Configuration management for the loader.

Provides typed configuration classes that load values from environment
variables, with defaults suitable for a local PostgreSQL instance.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

WRITE_MODES = ("bulk", "row")
LOAD_MODES = ("append", "replace")


@dataclass
class DatabaseConfig:
    """Destination database connection configuration."""

    url: str = ""
    host: str = ""
    port: int = 5432
    user: str = ""
    password: str = ""
    database: str = ""
    driver: str = "postgresql+psycopg2"

    def __post_init__(self):
        self.url = self.url or os.environ.get("DATALOAD_DATABASE_URL", "")
        self.host = self.host or os.environ.get("POSTGRES_HOST", "localhost")
        self.port = int(os.environ.get("POSTGRES_PORT", str(self.port)))
        self.user = self.user or os.environ.get("POSTGRES_USER", "postgres")
        self.password = self.password or os.environ.get("POSTGRES_PASSWORD", "postgres")
        self.database = self.database or os.environ.get("POSTGRES_DB", "postgres")

    @property
    def connection_string(self) -> str:
        if self.url:
            return self.url
        return f"{self.driver}://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class LoadConfig:
    """Defaults applied to every load run."""

    batch_size: int = 1000
    write_mode: str = "bulk"
    load_mode: str = "append"
    max_errors: Optional[int] = None
    metadata_schema: Optional[str] = None

    def __post_init__(self):
        self.batch_size = int(os.environ.get("DATALOAD_BATCH_SIZE", str(self.batch_size)))
        self.write_mode = os.environ.get("DATALOAD_WRITE_MODE", self.write_mode).lower()
        self.load_mode = os.environ.get("DATALOAD_LOAD_MODE", self.load_mode).lower()
        max_errors = os.environ.get("DATALOAD_MAX_ERRORS")
        if max_errors:
            self.max_errors = int(max_errors)
        self.metadata_schema = self.metadata_schema or os.environ.get("DATALOAD_METADATA_SCHEMA") or None


@dataclass
class HttpConfig:
    """Settings for API sources."""

    timeout: float = 30.0

    def __post_init__(self):
        self.timeout = float(os.environ.get("DATALOAD_HTTP_TIMEOUT", str(self.timeout)))


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    json_format: bool = False

    def __post_init__(self):
        self.level = os.environ.get("DATALOAD_LOG_LEVEL", self.level)
        self.json_format = os.environ.get("DATALOAD_LOG_FORMAT", "text").lower() == "json" or self.json_format


@dataclass
class AppConfig:
    """Top-level configuration combining all sub-configs."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    load: LoadConfig = field(default_factory=LoadConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> list:
        """Validate configuration values.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.database.url and not self.database.host:
            errors.append("Database URL or PostgreSQL host is required")
        if self.load.batch_size <= 0:
            errors.append("Batch size must be positive")
        if self.load.write_mode not in WRITE_MODES:
            errors.append(f"Write mode must be one of {', '.join(WRITE_MODES)}")
        if self.load.load_mode not in LOAD_MODES:
            errors.append(f"Load mode must be one of {', '.join(LOAD_MODES)}")
        if self.load.max_errors is not None and self.load.max_errors < 0:
            errors.append("Max errors must not be negative")
        if self.http.timeout <= 0:
            errors.append("HTTP timeout must be positive")

        return errors


def get_config() -> AppConfig:
    """Create and validate the configuration.

    Returns:
        Validated AppConfig instance.

    Raises:
        ValueError: If a configuration value is invalid.
    """
    config = AppConfig()
    errors = config.validate()
    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
    return config
