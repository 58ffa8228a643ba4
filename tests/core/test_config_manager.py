"""
Unit tests for ConfigManager functionality.

Tests configuration loading from environment variables and INI files,
type coercion, grouped getters and error handling.
"""

import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from order_engine.core.config_manager import (
    ConfigManager,
    ConfigurationError,
    EnvConfigLoader,
    IniConfigLoader,
    create_config_manager,
)


@patch("order_engine.core.config_manager.load_dotenv")
class TestEnvConfigLoader(unittest.TestCase):
    """Test cases for EnvConfigLoader."""

    @patch.dict(
        os.environ,
        {
            "LOG_LEVEL": "DEBUG",
            "PORT": "8080",
            "MAX_CONCURRENT_ORDERS": "4",
            "ORDERS_PER_MINUTE": "20",
            "RETRY_BASE_DELAY": "0.25",
            "RETRY_BUSINESS_FAILURES": "false",
            "DATABASE_PATH": "/tmp/orders-test.db",
        },
        clear=True,
    )
    def test_load_config_from_env(self, mock_load_dotenv):
        """Test loading and coercing environment variables."""
        config = EnvConfigLoader().load_config()

        mock_load_dotenv.assert_called_once_with()
        self.assertEqual(config["log_level"], "DEBUG")
        self.assertEqual(config["port"], 8080)
        self.assertEqual(config["max_concurrent_orders"], 4)
        self.assertEqual(config["orders_per_minute"], 20)
        self.assertEqual(config["retry_base_delay"], 0.25)
        self.assertIs(config["retry_business_failures"], False)
        self.assertEqual(config["database_path"], "/tmp/orders-test.db")

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults_when_unset(self, _mock_load_dotenv):
        """Test that unset variables fall back to documented defaults."""
        config = EnvConfigLoader().load_config()

        self.assertEqual(config["port"], 3000)
        self.assertEqual(config["ws_port"], 3001)
        self.assertEqual(config["max_concurrent_orders"], 10)
        self.assertEqual(config["orders_per_minute"], 100)
        self.assertEqual(config["max_retries"], 3)
        self.assertEqual(config["dex_quote_timeout"], 5.0)
        self.assertEqual(config["connection_close_delay"], 5.0)
        self.assertIs(config["retry_business_failures"], True)

    @patch.dict(os.environ, {"PORT": "not-a-port"}, clear=True)
    def test_invalid_value_raises(self, _mock_load_dotenv):
        """Test that unconvertible values raise ConfigurationError."""
        with self.assertRaises(ConfigurationError):
            EnvConfigLoader().load_config()

    @patch.dict(os.environ, {}, clear=True)
    def test_explicit_env_file(self, mock_load_dotenv):
        """Test that an explicit .env path is passed to python-dotenv."""
        EnvConfigLoader("custom.env").load_config()

        mock_load_dotenv.assert_called_once_with("custom.env")


class TestIniConfigLoader(unittest.TestCase):
    """Test cases for IniConfigLoader."""

    def test_load_config_from_ini_file(self):
        """Test loading configuration from INI file sections."""
        ini_content = """
[server]
port = 9000
ws_port = 9001

[queue]
max_concurrent_orders = 2

[execution]
max_retries = 5
retry_business_failures = no
"""
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".ini", delete=False
        ) as handle:
            handle.write(ini_content)
            path = handle.name

        try:
            config = IniConfigLoader(path).load_config()
        finally:
            os.unlink(path)

        self.assertEqual(config["port"], 9000)
        self.assertEqual(config["ws_port"], 9001)
        self.assertEqual(config["max_concurrent_orders"], 2)
        self.assertEqual(config["max_retries"], 5)
        self.assertIs(config["retry_business_failures"], False)
        self.assertEqual(config["orders_per_minute"], 100)

    def test_missing_file_raises(self):
        """Test that a missing INI file raises ConfigurationError."""
        loader = IniConfigLoader("/nonexistent/engine.ini")

        with self.assertRaises(ConfigurationError):
            loader.load_config()


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager."""

    def setUp(self):
        """Set up test fixtures."""
        self.mock_loader = MagicMock()
        self.mock_loader.load_config.return_value = {
            "host": "127.0.0.1",
            "port": 3000,
            "ws_port": 3001,
            "max_concurrent_orders": 10,
            "orders_per_minute": 100,
            "job_retention_hours": 24.0,
            "max_retries": 3,
            "retry_base_delay": 1.0,
            "retry_business_failures": True,
            "mock_execution_delay": 2.5,
            "mock_build_delay": 0.5,
            "submission_failure_rate": 0.05,
            "dex_quote_timeout": 5.0,
            "connection_close_delay": 5.0,
            "database_path": "orders.db",
            "order_cache_ttl": 60.0,
        }
        self.config_manager = ConfigManager(self.mock_loader)

    def test_access_before_load_raises(self):
        """Test that reading before load_configuration raises."""
        with self.assertRaises(ConfigurationError):
            self.config_manager.get_config_value("port")

    def test_loader_failure_is_wrapped(self):
        """Test that unexpected loader errors become ConfigurationError."""
        self.mock_loader.load_config.side_effect = OSError("disk")

        with self.assertRaises(ConfigurationError):
            self.config_manager.load_configuration()

    def test_grouped_getters(self):
        """Test the per-component configuration groups."""
        self.config_manager.load_configuration()

        self.assertEqual(
            self.config_manager.get_server_config(),
            {"host": "127.0.0.1", "port": 3000, "ws_port": 3001},
        )
        self.assertEqual(
            self.config_manager.get_queue_config(),
            {
                "max_concurrent_orders": 10,
                "orders_per_minute": 100,
                "job_retention_hours": 24.0,
            },
        )
        execution = self.config_manager.get_execution_config()
        self.assertEqual(execution["max_retries"], 3)
        self.assertEqual(execution["submission_failure_rate"], 0.05)
        self.assertEqual(
            self.config_manager.get_routing_config(), {"quote_timeout": 5.0}
        )
        self.assertEqual(
            self.config_manager.get_broadcast_config(), {"close_delay": 5.0}
        )
        self.assertEqual(
            self.config_manager.get_storage_config(),
            {"database_path": "orders.db", "cache_ttl": 60.0},
        )

    def test_get_config_value_default(self):
        """Test default for unknown keys."""
        self.config_manager.load_configuration()

        self.assertEqual(self.config_manager.get_config_value("missing", 7), 7)


class TestCreateConfigManager(unittest.TestCase):
    """Test cases for the factory function."""

    def test_env_source(self):
        """Test env source selects EnvConfigLoader."""
        manager = create_config_manager("env")
        self.assertIsInstance(manager._config_loader, EnvConfigLoader)

    def test_ini_source(self):
        """Test ini source selects IniConfigLoader."""
        manager = create_config_manager("ini", "engine.ini")
        self.assertIsInstance(manager._config_loader, IniConfigLoader)

    def test_invalid_source(self):
        """Test unsupported sources are rejected."""
        with self.assertRaises(ValueError):
            create_config_manager("yaml")


if __name__ == "__main__":
    unittest.main()
