"""
Unit tests for Logger functionality.

Tests formatter and handler strategies, logger manager configuration and
the engine logger factory.
"""

import logging
import logging.handlers
import tempfile
import unittest
from pathlib import Path

from order_engine.core.logger import (
    ROOT_LOGGER_NAME,
    ConsoleLogHandler,
    FileLogHandler,
    LoggerManager,
    PipelineLogFormatter,
    StandardLogFormatter,
    create_engine_logger,
    get_module_logger,
)


class TestFormatters(unittest.TestCase):
    """Test cases for formatter strategies."""

    def test_standard_formatter(self):
        """Test standard format includes logger name and level."""
        formatter = StandardLogFormatter().get_formatter()

        self.assertIn("%(name)s", formatter._fmt)
        self.assertIn("%(levelname)s", formatter._fmt)

    def test_pipeline_formatter_fills_task_name(self):
        """Test pipeline formatter renders records without a task name."""
        formatter = PipelineLogFormatter().get_formatter()
        record = logging.LogRecord(
            "order_engine.test", logging.INFO, __file__, 1, "hello", None, None
        )
        record.taskName = None

        output = formatter.format(record)

        self.assertIn("hello", output)
        self.assertIn("| - |", output)


class TestHandlers(unittest.TestCase):
    """Test cases for handler strategies."""

    def test_console_handler(self):
        """Test console handler creation."""
        formatter = StandardLogFormatter().get_formatter()
        handler = ConsoleLogHandler(level=logging.WARNING).create_handler(formatter)

        self.assertIsInstance(handler, logging.StreamHandler)
        self.assertEqual(handler.level, logging.WARNING)
        self.assertIs(handler.formatter, formatter)

    def test_file_handler_creates_directory(self):
        """Test rotating file handler creates its parent directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "nested" / "engine.log"
            handler = FileLogHandler(str(log_path)).create_handler(
                StandardLogFormatter().get_formatter()
            )
            try:
                self.assertIsInstance(
                    handler, logging.handlers.RotatingFileHandler
                )
                self.assertTrue(log_path.parent.exists())
            finally:
                handler.close()


class TestLoggerManager(unittest.TestCase):
    """Test cases for LoggerManager."""

    def setUp(self):
        """Use a dedicated logger per test."""
        self.name = f"order_engine_test_{id(self)}"
        self.manager = LoggerManager(self.name)

    def tearDown(self):
        """Detach handlers added by the test."""
        logger = logging.getLogger(self.name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_get_logger_before_configure_raises(self):
        """Test that an unconfigured manager refuses to hand out a logger."""
        with self.assertRaises(RuntimeError):
            self.manager.get_logger()

    def test_reconfigure_replaces_handlers(self):
        """Test that configuring twice does not duplicate handlers."""
        self.manager.configure_logger(level=logging.DEBUG)
        self.manager.configure_logger(level=logging.DEBUG)

        logger = self.manager.get_logger()
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.DEBUG)

    def test_update_log_level(self):
        """Test updating level on logger and handlers."""
        self.manager.configure_logger(level=logging.INFO)

        self.manager.update_log_level(logging.ERROR)

        self.assertEqual(self.manager.get_logger().level, logging.ERROR)
        self.assertEqual(self.manager.get_handler("console").level, logging.ERROR)


class TestEngineLoggerFactory(unittest.TestCase):
    """Test cases for create_engine_logger and get_module_logger."""

    def tearDown(self):
        """Detach handlers from the engine logger."""
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_console_only_without_log_dir(self):
        """Test that log_dir=None disables file output."""
        logger = create_engine_logger(log_level="debug", log_dir=None)

        self.assertEqual(logger.name, ROOT_LOGGER_NAME)
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)

    def test_file_output_with_log_dir(self):
        """Test that a log directory adds a rotating file handler."""
        with tempfile.TemporaryDirectory() as temp_dir:
            logger = create_engine_logger(log_level="INFO", log_dir=temp_dir)
            logger.info("written to file")
            for handler in logger.handlers:
                handler.flush()

            files = list(Path(temp_dir).glob("*.log"))
            self.assertEqual(len(files), 1)
            self.assertIn("written to file", files[0].read_text())
            self.tearDown()

    def test_invalid_level_falls_back_to_info(self):
        """Test unknown level names fall back to INFO."""
        logger = create_engine_logger(log_level="chatty", log_dir=None)

        self.assertEqual(logger.level, logging.INFO)

    def test_module_logger_is_child(self):
        """Test module loggers propagate to the engine logger."""
        logger = get_module_logger("routing.quote_router")

        self.assertEqual(logger.name, "order_engine.routing.quote_router")
        self.assertTrue(logger.name.startswith(ROOT_LOGGER_NAME + "."))


if __name__ == "__main__":
    unittest.main()
