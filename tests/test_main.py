"""
Tests for application wiring and lifecycle.
"""

import asyncio
import signal
from typing import Any, Dict

import pytest

from order_engine.core.config_manager import ConfigManager, IConfigLoader
from order_engine.core.event_hub import EventType
from order_engine.main import ComponentInitializationError, OrderEngineApplication


class DictConfigLoader(IConfigLoader):
    """Loader returning a fixed dictionary."""

    def __init__(self, values: Dict[str, Any]) -> None:
        self._values = values

    def load_config(self) -> Dict[str, Any]:
        return dict(self._values)


def make_app(tmp_path, **overrides) -> OrderEngineApplication:
    values = {
        "log_level": "WARNING",
        "log_dir": str(tmp_path / "logs"),
        "host": "127.0.0.1",
        "port": 0,
        "ws_port": 0,
        "database_path": "",
        "mock_execution_delay": 0.0,
        "mock_build_delay": 0.0,
        "submission_failure_rate": 0.0,
    }
    values.update(overrides)
    return OrderEngineApplication(ConfigManager(DictConfigLoader(values)))


@pytest.fixture
def restore_signals():
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


class TestInitialization:
    """Component construction."""

    def test_pipeline_requires_core(self, tmp_path) -> None:
        app = make_app(tmp_path)

        with pytest.raises(RuntimeError):
            app.initialize_pipeline()

    def test_full_initialization(self, tmp_path) -> None:
        app = make_app(tmp_path, max_concurrent_orders=4)

        app.initialize_core_components()
        app.initialize_pipeline()

        assert app.is_initialized()
        assert app.get_config_manager().get_queue_config()["max_concurrent_orders"] == 4
        assert app.get_broadcaster().get_active_connections() == 0
        assert app.get_admission_controller().get_queue_stats()["total"] == 0
        assert app.get_event_hub().get_subscriber_count(EventType.JOB_FAILED) == 1

    def test_invalid_pipeline_config(self, tmp_path) -> None:
        app = make_app(tmp_path, max_concurrent_orders=0)
        app.initialize_core_components()

        with pytest.raises(ComponentInitializationError):
            app.initialize_pipeline()

    def test_getters_before_initialization(self, tmp_path) -> None:
        app = make_app(tmp_path)

        with pytest.raises(RuntimeError):
            app.get_event_hub()
        with pytest.raises(RuntimeError):
            app.get_admission_controller()


class TestLifecycle:
    """Start and graceful shutdown."""

    @pytest.mark.asyncio
    async def test_run_until_shutdown_requested(self, tmp_path, restore_signals) -> None:
        app = make_app(tmp_path)
        app.initialize_core_components()
        app.initialize_pipeline()
        events = []
        app.get_event_hub().subscribe(EventType.SYSTEM_STARTUP, events.append)
        app.get_event_hub().subscribe(EventType.SYSTEM_SHUTDOWN, events.append)

        run_task = asyncio.create_task(app.run_async())
        await asyncio.sleep(0.3)
        assert app.get_admission_controller().is_running

        app.request_shutdown()
        await asyncio.wait_for(run_task, timeout=5)

        assert not app.get_admission_controller().is_running
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_run_requires_initialization(self, tmp_path) -> None:
        app = make_app(tmp_path)

        with pytest.raises(RuntimeError):
            await app.run_async()
