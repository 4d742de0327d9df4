"""
Configuration management for the content analytics backend.
Handles loading, validating, and providing access to application settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool
    admin_user_ids: list[str]


@dataclass
class PathsConfig:
    """Path configuration settings."""
    log_dir: str
    data_dir: str


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    url: str
    echo: bool


@dataclass
class AnalyticsConfig:
    """Behavior analytics configuration settings."""
    timezone: str
    session_cookie: str
    log_retention_days: int
    analytics_retention_days: int
    batch_size: int
    top_n: int
    scheduler_enabled: bool


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "analytics_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with default config
        self._config = self._get_default_config()

        # Load base config from file
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "app": {
                "host": "0.0.0.0",
                "port": 3001,
                "debug": False,
                "admin_user_ids": []
            },
            "paths": {
                "log_dir": "logs",
                "data_dir": "data"
            },
            "database": {
                "url": "sqlite:///analytics.db",
                "echo": False
            },
            "analytics": {
                "timezone": "Asia/Shanghai",
                "session_cookie": "session_id",
                "log_retention_days": 30,
                "analytics_retention_days": 90,
                "batch_size": 1000,
                "top_n": 10,
                "scheduler_enabled": True
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config:
                if isinstance(values, dict):
                    self._config[section].update(values)
                else:
                    self._config[section] = values
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        # App settings
        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        if os.getenv("ADMIN_USER_IDS"):
            self._config["app"]["admin_user_ids"] = [
                uid.strip() for uid in os.getenv("ADMIN_USER_IDS").split(",") if uid.strip()
            ]

        # Paths
        if os.getenv("LOG_DIR"):
            self._config["paths"]["log_dir"] = os.getenv("LOG_DIR")

        if os.getenv("DATA_DIR"):
            self._config["paths"]["data_dir"] = os.getenv("DATA_DIR")

        # Database
        if os.getenv("DATABASE_URL"):
            self._config["database"]["url"] = os.getenv("DATABASE_URL")

        # Analytics settings
        if os.getenv("ANALYTICS_TIMEZONE"):
            self._config["analytics"]["timezone"] = os.getenv("ANALYTICS_TIMEZONE")

        if os.getenv("LOG_RETENTION_DAYS"):
            self._config["analytics"]["log_retention_days"] = int(os.getenv("LOG_RETENTION_DAYS"))

        if os.getenv("ANALYTICS_RETENTION_DAYS"):
            self._config["analytics"]["analytics_retention_days"] = int(os.getenv("ANALYTICS_RETENTION_DAYS"))

        if os.getenv("ANALYTICS_BATCH_SIZE"):
            self._config["analytics"]["batch_size"] = int(os.getenv("ANALYTICS_BATCH_SIZE"))

        if os.getenv("SCHEDULER_ENABLED"):
            self._config["analytics"]["scheduler_enabled"] = os.getenv("SCHEDULER_ENABLED").lower() == "true"

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=app_config["port"],
            debug=app_config["debug"],
            admin_user_ids=app_config["admin_user_ids"]
        )

    def get_paths_config(self) -> PathsConfig:
        """Get paths configuration."""
        paths_config = self._config["paths"]
        return PathsConfig(
            log_dir=paths_config["log_dir"],
            data_dir=paths_config["data_dir"]
        )

    def get_database_config(self) -> DatabaseConfig:
        """Get database configuration."""
        db_config = self._config["database"]
        return DatabaseConfig(
            url=db_config["url"],
            echo=db_config["echo"]
        )

    def get_analytics_config(self) -> AnalyticsConfig:
        """Get behavior analytics configuration."""
        an_config = self._config["analytics"]
        return AnalyticsConfig(
            timezone=an_config["timezone"],
            session_cookie=an_config["session_cookie"],
            log_retention_days=an_config["log_retention_days"],
            analytics_retention_days=an_config["analytics_retention_days"],
            batch_size=an_config["batch_size"],
            top_n=an_config["top_n"],
            scheduler_enabled=an_config["scheduler_enabled"]
        )

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
