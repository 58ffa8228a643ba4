"""
Configuration manager for the order engine.

Loads engine settings (queue limits, retry budget, venue timeouts, server
ports, storage paths) from environment variables or INI files and exposes
them as grouped dictionaries to the components that need them.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv


class ConfigurationError(Exception):
    """Custom exception for configuration-related errors."""


# key -> (environment variable, INI section, default, coercion)
_SETTINGS: Dict[str, tuple] = {
    "log_level": ("LOG_LEVEL", "logging", "INFO", str),
    "log_dir": ("LOG_DIR", "logging", "logs", str),
    "host": ("HOST", "server", "0.0.0.0", str),
    "port": ("PORT", "server", 3000, int),
    "ws_port": ("WS_PORT", "server", 3001, int),
    "max_concurrent_orders": ("MAX_CONCURRENT_ORDERS", "queue", 10, int),
    "orders_per_minute": ("ORDERS_PER_MINUTE", "queue", 100, int),
    "job_retention_hours": ("JOB_RETENTION_HOURS", "queue", 24.0, float),
    "max_retries": ("MAX_RETRIES", "execution", 3, int),
    "retry_base_delay": ("RETRY_BASE_DELAY", "execution", 1.0, float),
    "retry_business_failures": (
        "RETRY_BUSINESS_FAILURES",
        "execution",
        True,
        "bool",
    ),
    "mock_execution_delay": ("MOCK_EXECUTION_DELAY", "execution", 2.5, float),
    "mock_build_delay": ("MOCK_BUILD_DELAY", "execution", 0.5, float),
    "submission_failure_rate": (
        "SUBMISSION_FAILURE_RATE",
        "execution",
        0.05,
        float,
    ),
    "dex_quote_timeout": ("DEX_QUOTE_TIMEOUT", "routing", 5.0, float),
    "connection_close_delay": ("CONNECTION_CLOSE_DELAY", "broadcast", 5.0, float),
    "database_path": ("DATABASE_PATH", "storage", "orders.db", str),
    "order_cache_ttl": ("ORDER_CACHE_TTL", "storage", 60.0, float),
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _coerce(key: str, raw: Any, coercion: Any) -> Any:
    """Convert a raw string setting to its declared type."""
    converter: Callable[[Any], Any] = _parse_bool if coercion == "bool" else coercion
    try:
        return converter(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for '{key}': {raw!r} ({e})")


class IConfigLoader:
    """Interface for configuration loading strategies."""

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from source.

        Returns:
            Dict[str, Any]: Configuration dictionary

        Raises:
            ConfigurationError: If configuration loading fails
        """
        raise NotImplementedError


class EnvConfigLoader(IConfigLoader):
    """Loads configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Optional[str] = None) -> None:
        """
        Initialize environment configuration loader.

        Args:
            env_file_path: Optional path to .env file
        """
        self._env_file_path = env_file_path

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Returns:
            Dict[str, Any]: Configuration from environment, with defaults
                applied for unset variables

        Raises:
            ConfigurationError: If a variable cannot be converted
        """
        if self._env_file_path:
            load_dotenv(self._env_file_path)
        else:
            load_dotenv()

        config: Dict[str, Any] = {}
        for key, (env_name, _section, default, coercion) in _SETTINGS.items():
            raw = os.getenv(env_name)
            config[key] = default if raw is None else _coerce(key, raw, coercion)
        return config


class IniConfigLoader(IConfigLoader):
    """Loads configuration from INI configuration files."""

    def __init__(self, config_file_path: str) -> None:
        """
        Initialize INI configuration loader.

        Args:
            config_file_path: Path to configuration INI file
        """
        self._config_file_path = Path(config_file_path)

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from INI file.

        Returns:
            Dict[str, Any]: Configuration from INI file

        Raises:
            ConfigurationError: If config file is missing or invalid
        """
        if not self._config_file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_file_path}"
            )

        parser = configparser.ConfigParser()
        parser.read(self._config_file_path)

        config: Dict[str, Any] = {}
        for key, (_env_name, section, default, coercion) in _SETTINGS.items():
            raw = parser.get(section, key, fallback=None)
            config[key] = default if raw is None else _coerce(key, raw, coercion)
        return config


class ConfigManager:
    """
    Central configuration manager for the order engine.

    Manages application settings loaded from an injected loader and hands
    out per-component groups so no component reads the environment itself.
    """

    def __init__(self, config_loader: IConfigLoader) -> None:
        """
        Initialize configuration manager with a config loader.

        Args:
            config_loader: Implementation of IConfigLoader interface
        """
        self._config_loader = config_loader
        self._config: Dict[str, Any] = {}
        self._is_loaded = False

    def load_configuration(self) -> None:
        """
        Load configuration using the injected config loader.

        Raises:
            ConfigurationError: If configuration loading fails
        """
        try:
            self._config = self._config_loader.load_config()
            self._is_loaded = True
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Any: Configuration value

        Raises:
            ConfigurationError: If configuration not loaded
        """
        if not self._is_loaded:
            raise ConfigurationError(
                "Configuration not loaded. Call load_configuration() first."
            )

        return self._config.get(key, default)

    def get_server_config(self) -> Dict[str, Any]:
        """Get bind address and ports for the HTTP API and order stream."""
        return {
            "host": self.get_config_value("host", "0.0.0.0"),
            "port": self.get_config_value("port", 3000),
            "ws_port": self.get_config_value("ws_port", 3001),
        }

    def get_queue_config(self) -> Dict[str, Any]:
        """
        Get admission controller settings.

        Returns:
            Dict[str, Any]: Concurrency, rate and retention settings
        """
        return {
            "max_concurrent_orders": self.get_config_value(
                "max_concurrent_orders", 10
            ),
            "orders_per_minute": self.get_config_value("orders_per_minute", 100),
            "job_retention_hours": self.get_config_value("job_retention_hours", 24.0),
        }

    def get_execution_config(self) -> Dict[str, Any]:
        """
        Get execution orchestrator settings.

        Returns:
            Dict[str, Any]: Retry budget, backoff and simulation settings
        """
        return {
            "max_retries": self.get_config_value("max_retries", 3),
            "retry_base_delay": self.get_config_value("retry_base_delay", 1.0),
            "retry_business_failures": self.get_config_value(
                "retry_business_failures", True
            ),
            "mock_execution_delay": self.get_config_value(
                "mock_execution_delay", 2.5
            ),
            "mock_build_delay": self.get_config_value("mock_build_delay", 0.5),
            "submission_failure_rate": self.get_config_value(
                "submission_failure_rate", 0.05
            ),
        }

    def get_routing_config(self) -> Dict[str, Any]:
        """Get quote routing settings."""
        return {"quote_timeout": self.get_config_value("dex_quote_timeout", 5.0)}

    def get_broadcast_config(self) -> Dict[str, Any]:
        """Get status broadcaster settings."""
        return {"close_delay": self.get_config_value("connection_close_delay", 5.0)}

    def get_storage_config(self) -> Dict[str, Any]:
        """Get order store settings."""
        return {
            "database_path": self.get_config_value("database_path", "orders.db"),
            "cache_ttl": self.get_config_value("order_cache_ttl", 60.0),
        }


def create_config_manager(
    config_source: str = "env", config_path: Optional[str] = None
) -> ConfigManager:
    """
    Factory function to create ConfigManager with appropriate loader.

    Args:
        config_source: Configuration source type ('env' or 'ini')
        config_path: Optional .env or INI file path

    Returns:
        ConfigManager: Configured instance

    Raises:
        ValueError: If config_source is invalid
    """
    if config_source == "env":
        loader: IConfigLoader = EnvConfigLoader(config_path)
    elif config_source == "ini":
        loader = IniConfigLoader(config_path or "config.ini")
    else:
        raise ValueError(f"Unsupported config source: {config_source}")

    return ConfigManager(loader)
