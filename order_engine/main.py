"""
Main application entry point for the order execution engine.

Builds components in dependency order (configuration, logging, event hub,
order store, quote router, broadcaster, executor, admission controller,
servers), runs them on one event loop and shuts them down on SIGINT or
SIGTERM.
"""

import asyncio
import logging
import signal
import sys
import time
from typing import Any, Dict, List, Optional

import uvicorn

from order_engine.admission.admission_controller import (
    AdmissionConfig,
    AdmissionController,
)
from order_engine.broadcast.status_broadcaster import StatusBroadcaster
from order_engine.core.config_manager import (
    ConfigManager,
    ConfigurationError,
    create_config_manager,
)
from order_engine.core.event_hub import EventHub, EventType
from order_engine.core.logger import create_engine_logger
from order_engine.execution.order_executor import ExecutionConfig, OrderExecutor
from order_engine.execution.settlement import SimulatedSettlementClient
from order_engine.gateway.http_api import create_http_app, create_http_server
from order_engine.gateway.websocket_gateway import OrderStreamServer
from order_engine.persistence.order_store import IOrderStore, create_order_store
from order_engine.routing.quote_router import QuoteRouter, create_simulated_router


class ComponentInitializationError(Exception):
    """Raised when a component fails to initialize."""


class OrderEngineApplication:
    """
    Owns the lifecycle of every engine component.

    Components are created by ``initialize_core_components`` and
    ``initialize_pipeline``, started by ``run_async`` and released by
    ``async_shutdown``.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None) -> None:
        """
        Initialize application shell.

        Args:
            config_manager: Preloaded configuration; built from the
                environment when None
        """
        self._config_manager = config_manager
        self._event_hub: Optional[EventHub] = None
        self._logger: Optional[logging.Logger] = None

        self._order_store: Optional[IOrderStore] = None
        self._quote_router: Optional[QuoteRouter] = None
        self._broadcaster: Optional[StatusBroadcaster] = None
        self._executor: Optional[OrderExecutor] = None
        self._admission: Optional[AdmissionController] = None
        self._stream_server: Optional[OrderStreamServer] = None
        self._http_server: Optional[uvicorn.Server] = None
        self._http_task: Optional[asyncio.Task] = None

        self._is_initialized = False
        self._pipeline_initialized = False
        self._shutdown_event = asyncio.Event()
        self._start_time: Optional[float] = None

    def initialize_core_components(self) -> None:
        """
        Initialize configuration, logging and the event hub.

        Raises:
            ComponentInitializationError: If any component fails to initialize
        """
        try:
            if self._config_manager is None:
                self._config_manager = create_config_manager(config_source="env")
            self._config_manager.load_configuration()

            log_level = self._config_manager.get_config_value("log_level", "INFO")
            self._logger = create_engine_logger(
                log_level=str(log_level),
                log_dir=self._config_manager.get_config_value("log_dir", "logs"),
            )
            self._event_hub = EventHub()
            self._is_initialized = True

        except ConfigurationError as e:
            raise ComponentInitializationError(
                f"ConfigManager initialization failed: {e}"
            ) from e
        except Exception as e:
            raise ComponentInitializationError(
                f"Failed to initialize core components: {e}"
            ) from e

    def initialize_pipeline(self) -> None:
        """
        Build the order pipeline from configuration.

        Raises:
            RuntimeError: If core components are not initialized
            ComponentInitializationError: If a pipeline component fails
        """
        if not self._is_initialized:
            raise RuntimeError("Call initialize_core_components() first")

        config = self._config_manager
        try:
            storage = config.get_storage_config()
            self._order_store = create_order_store(
                storage["database_path"], cache_ttl=storage["cache_ttl"]
            )

            self._quote_router = create_simulated_router(
                quote_timeout=config.get_routing_config()["quote_timeout"]
            )
            self._broadcaster = StatusBroadcaster(
                close_delay=config.get_broadcast_config()["close_delay"]
            )

            execution = config.get_execution_config()
            self._executor = OrderExecutor(
                quote_router=self._quote_router,
                order_store=self._order_store,
                status_sink=self._broadcaster,
                settlement_client=SimulatedSettlementClient(
                    execution_delay=execution["mock_execution_delay"],
                    build_delay=execution["mock_build_delay"],
                    failure_probability=execution["submission_failure_rate"],
                ),
                config=ExecutionConfig(
                    max_retries=execution["max_retries"],
                    retry_base_delay=execution["retry_base_delay"],
                    retry_business_failures=execution["retry_business_failures"],
                ),
            )

            queue = config.get_queue_config()
            self._admission = AdmissionController(
                self._executor,
                AdmissionConfig(
                    max_concurrent_orders=queue["max_concurrent_orders"],
                    orders_per_minute=queue["orders_per_minute"],
                    job_retention_hours=queue["job_retention_hours"],
                ),
                connection_counter=self._broadcaster.get_active_connections,
                event_hub=self._event_hub,
            )

            server = config.get_server_config()
            self._stream_server = OrderStreamServer(
                self._order_store,
                self._broadcaster,
                self._admission,
                host=server["host"],
                port=server["ws_port"],
            )
            self._http_server = create_http_server(
                create_http_app(self._order_store, self._admission),
                host=server["host"],
                port=server["port"],
            )

            self._setup_event_subscriptions()
            self._pipeline_initialized = True
            self._logger.info("Order pipeline initialized")

        except Exception as e:
            self._logger.error(f"Pipeline initialization failed: {e}")
            raise ComponentInitializationError(
                f"Pipeline initialization failed: {e}"
            ) from e

    def _setup_event_subscriptions(self) -> None:
        def log_job_event(data: Dict[str, Any]) -> None:
            self._logger.debug(f"Job event: {data}")

        def log_job_failure(data: Dict[str, Any]) -> None:
            self._logger.warning(
                f"Order {data.get('order_id')}: job failed: {data.get('error')}"
            )

        for event_type in (
            EventType.ORDER_ADMITTED,
            EventType.JOB_STARTED,
            EventType.JOB_COMPLETED,
        ):
            self._event_hub.subscribe(event_type, log_job_event)
        self._event_hub.subscribe(EventType.JOB_FAILED, log_job_failure)

    def get_config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            raise RuntimeError("ConfigManager not initialized")
        return self._config_manager

    def get_event_hub(self) -> EventHub:
        if self._event_hub is None:
            raise RuntimeError("EventHub not initialized")
        return self._event_hub

    def get_admission_controller(self) -> AdmissionController:
        if self._admission is None:
            raise RuntimeError("Pipeline not initialized")
        return self._admission

    def get_broadcaster(self) -> StatusBroadcaster:
        if self._broadcaster is None:
            raise RuntimeError("Pipeline not initialized")
        return self._broadcaster

    def is_initialized(self) -> bool:
        return self._is_initialized and self._pipeline_initialized

    async def run_async(self) -> None:
        """
        Start workers and servers, then wait for a shutdown signal.

        Raises:
            RuntimeError: If components are not initialized
        """
        if not self.is_initialized():
            raise RuntimeError(
                "Call initialize_core_components() and initialize_pipeline() first"
            )

        self._start_time = time.time()
        self._setup_signal_handlers()

        try:
            self._admission.start()
            await self._stream_server.start()
            self._http_task = asyncio.create_task(self._http_server.serve())

            self._event_hub.publish(
                EventType.SYSTEM_STARTUP, {"timestamp": self._start_time}
            )
            self._logger.info("=== Order Engine Running ===")

            shutdown_wait = asyncio.create_task(self._shutdown_event.wait())
            done, _ = await asyncio.wait(
                [shutdown_wait, self._http_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._http_task in done and not shutdown_wait.done():
                self._logger.warning("HTTP server exited - initiating shutdown")
                shutdown_wait.cancel()

        except asyncio.CancelledError:
            self._logger.info("Run cancelled - initiating shutdown")
        finally:
            await self.async_shutdown()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(signum: int, _frame) -> None:
            signal_name = signal.Signals(signum).name
            self._logger.info(
                f"Received {signal_name} signal - initiating graceful shutdown"
            )
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def async_shutdown(self) -> None:
        """Stop servers, workers and connections, then release the store."""
        self._logger.info("=== Shutdown Initiated ===")
        self._shutdown_event.set()

        if self._event_hub is not None:
            self._event_hub.publish(
                EventType.SYSTEM_SHUTDOWN, {"timestamp": time.time()}
            )

        steps: List[Any] = []
        if self._http_server is not None and self._http_task is not None:
            self._http_server.should_exit = True
            steps.append(("HTTP server", self._http_task))
        if self._stream_server is not None:
            steps.append(("order stream", self._stream_server.stop()))
        if self._admission is not None:
            steps.append(("admission controller", self._admission.stop()))
        if self._broadcaster is not None:
            steps.append(("broadcaster", self._broadcaster.shutdown()))

        for name, step in steps:
            try:
                await step
                self._logger.info(f"✓ Stopped {name}")
            except Exception as e:
                self._logger.warning(f"{name} shutdown warning: {e}")

        if self._order_store is not None:
            self._order_store.close()
        self._http_task = None
        self._logger.info("=== Shutdown Complete ===")


async def async_main() -> int:
    """
    Async entry point.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    try:
        app = OrderEngineApplication()
        app.initialize_core_components()
        app.initialize_pipeline()
        await app.run_async()
        return 0
    except ComponentInitializationError as e:
        print(f"FATAL: Component initialization failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"FATAL: Unexpected error: {e}", file=sys.stderr)
        return 1


def main() -> int:
    """Console entry point."""
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
