"""Runtime configuration for the loader."""

from dataload.config.load_config import AppConfig, DatabaseConfig, LoadConfig, get_config

__all__ = ["AppConfig", "DatabaseConfig", "LoadConfig", "get_config"]
