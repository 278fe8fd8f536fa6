# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - MongoConfig (dataclass)
#     uri: str | None    (default None, wins over host/port when set)
#     host: str          (default "localhost")
#     port: int          (default 27017)
#     user: str | None   (default None)
#     password: str | None (default None)
#     database: str      (default "docsync")
#
# - MySQLConfig (dataclass)
#     host: str          (default "localhost")
#     port: int          (default 3306)
#     user: str          (default "root")
#     password: str      (default "root")
#     database: str      (default "docsync")
#
# - SyncConfig (dataclass)
#     interval_seconds: float    (default 5.0)
#     id_field: str              (default "_id")
#     widen_policy: str          ("widen" | "reject", default "widen")
#     collections: list[str]     (default [] = every collection)
#
# - RetryConfig (dataclass)
#     max_attempts: int          (default 3)
#     min_backoff_seconds: float (default 0.5)
#     max_backoff_seconds: float (default 8.0)
#
# - AppConfig (dataclass)
#     mongo, mysql, sync, retry
#     log_level: str             (default "INFO")
#     log_file: str | None       (default None)
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# USAGE:
# ------
#   from docsync.config import get_config
#   config = get_config()
#   print(config.mysql.host)
#   print(config.sync.interval_seconds)
#
# ==============================================

import os
from dataclasses import dataclass, field
from typing import List, Optional
from pathlib import Path

from dotenv import load_dotenv

from docsync.errors import ConfigError


WIDEN_POLICIES = ("widen", "reject")


@dataclass
class MongoConfig:
    """MongoDB (source) configuration."""
    uri: Optional[str] = None
    host: str = "localhost"
    port: int = 27017
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "docsync"


@dataclass
class MySQLConfig:
    """MySQL (sink) configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "docsync"


@dataclass
class SyncConfig:
    """Sync loop configuration."""
    interval_seconds: float = 5.0
    id_field: str = "_id"
    widen_policy: str = "widen"
    collections: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ConfigError(f"interval_seconds must be positive, got {self.interval_seconds}")
        if self.widen_policy not in WIDEN_POLICIES:
            raise ConfigError(
                f"widen_policy must be one of {', '.join(WIDEN_POLICIES)}, got {self.widen_policy!r}"
            )
        if not self.id_field:
            raise ConfigError("id_field must not be empty")


@dataclass
class RetryConfig:
    """Bounded retry for transient connectivity errors."""
    max_attempts: int = 3
    min_backoff_seconds: float = 0.5
    max_backoff_seconds: float = 8.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.min_backoff_seconds < 0 or self.max_backoff_seconds < self.min_backoff_seconds:
            raise ConfigError("backoff bounds must satisfy 0 <= min <= max")


@dataclass
class AppConfig:
    """Main application configuration."""
    mongo: MongoConfig
    mysql: MySQLConfig
    sync: SyncConfig
    retry: RetryConfig
    log_level: str = "INFO"
    log_file: Optional[str] = None


# Singleton instance
_config_instance: Optional[AppConfig] = None


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config() -> AppConfig:
    """
    Build a fresh AppConfig from the current environment.

    Unlike get_config(), nothing is cached and no .env file is read.
    """
    mongo_config = MongoConfig(
        uri=os.getenv("MONGO_URI") or None,
        host=os.getenv("MONGO_HOST", "localhost"),
        port=_env_int("MONGO_PORT", "27017"),
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        database=os.getenv("MONGO_DATABASE", "docsync")
    )

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=_env_int("MYSQL_PORT", "3306"),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "docsync")
    )

    sync_config = SyncConfig(
        interval_seconds=_env_float("SYNC_INTERVAL_SECONDS", "5.0"),
        id_field=os.getenv("SYNC_ID_FIELD", "_id"),
        widen_policy=os.getenv("SYNC_WIDEN_POLICY", "widen").strip().lower(),
        collections=_env_list("SYNC_COLLECTIONS")
    )

    retry_config = RetryConfig(
        max_attempts=_env_int("RETRY_MAX_ATTEMPTS", "3"),
        min_backoff_seconds=_env_float("RETRY_MIN_BACKOFF_SECONDS", "0.5"),
        max_backoff_seconds=_env_float("RETRY_MAX_BACKOFF_SECONDS", "8.0")
    )

    return AppConfig(
        mongo=mongo_config,
        mysql=mysql_config,
        sync=sync_config,
        retry=retry_config,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE") or None
    )


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached singleton (used by tests and the CLI)."""
    global _config_instance
    _config_instance = None
