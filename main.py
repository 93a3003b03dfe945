"""
Main Application Entry Point

Wires the Cliptomic components together, runs the asyncio loop with Qt
events pumped from a task, and shuts everything down on Exit or a signal.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtWidgets import QApplication

from cliptomic.controllers.event_bus import EventBus, get_event_bus
from cliptomic.controllers.hotkey_handler import HotkeyHandler
from cliptomic.controllers.main_controller import MainController
from cliptomic.models.clipboard_manager import ClipboardManager
from cliptomic.models.database_manager import DatabaseManager
from cliptomic.models.openrouter_client import OpenRouterClient
from cliptomic.models.settings_manager import SettingsManager
from cliptomic.utils.logging_config import setup_logging
from cliptomic.views.notification_manager import NotificationManager, create_default_backends
from cliptomic.views.tray_manager import TrayManager
from cliptomic.views.ui_manager import UIManager
from cliptomic import APP_NAME, APP_VERSION, AppState, EventTypes

logger = logging.getLogger(__name__)

# Seconds shutdown listeners get to finish their work
SHUTDOWN_LISTENER_TIMEOUT = 3.0


class Application:
    """
    Main application class that orchestrates all components.

    Handles initialization, lifecycle management, and graceful shutdown.
    """

    def __init__(self, use_tray: bool = True, start_minimized: bool = False):
        """
        Initialize the application.

        Args:
            use_tray: Show the system tray icon
            start_minimized: Never open the settings window on startup
        """
        self.app_name = APP_NAME
        self.version = APP_VERSION
        self.state = AppState.STARTING
        self.use_tray = use_tray
        self.start_minimized = start_minimized

        self.event_bus: Optional[EventBus] = None
        self.database_manager: Optional[DatabaseManager] = None
        self.settings_manager: Optional[SettingsManager] = None
        self.tray_manager: Optional[TrayManager] = None
        self.notification_manager: Optional[NotificationManager] = None
        self.ui_manager: Optional[UIManager] = None
        self.main_controller: Optional[MainController] = None

        self.qt_app: Optional[QApplication] = None

        self._shutdown_event = asyncio.Event()
        self.initialization_complete = False

    async def initialize(self) -> bool:
        """
        Initialize all application components.

        Returns:
            True if initialization was successful
        """
        try:
            logger.info("Initializing %s v%s", self.app_name, self.version)

            self.event_bus = get_event_bus()
            await self._subscribe_to_events()

            self.database_manager = DatabaseManager()
            await self.database_manager.initialize_database()

            self.settings_manager = SettingsManager(
                database_manager=self.database_manager,
                event_bus=self.event_bus
            )
            settings = await self.settings_manager.load_settings()

            if self.use_tray:
                self.tray_manager = TrayManager(
                    app_name=self.app_name,
                    shutdown_event=self._shutdown_event,
                    event_bus=self.event_bus
                )
                if not self.tray_manager.initialize():
                    logger.warning("Tray manager initialization failed - continuing without tray")
                    self.tray_manager = None

            self.notification_manager = NotificationManager(
                create_default_backends(tray_manager=self.tray_manager)
            )

            existing_app = QApplication.instance()
            if existing_app is None:
                self.qt_app = QApplication(sys.argv)
                logger.info("Created new QApplication instance")
            else:
                self.qt_app = existing_app  # type: ignore
            # The app lives in the tray; closing settings must not quit it
            self.qt_app.setQuitOnLastWindowClosed(False)

            self.ui_manager = UIManager(
                event_bus=self.event_bus,
                settings_manager=self.settings_manager
            )
            if not await self.ui_manager.initialize():
                logger.warning("UI manager initialization failed - settings window unavailable")

            self.main_controller = MainController(
                event_bus=self.event_bus,
                settings_manager=self.settings_manager,
                clipboard_manager=ClipboardManager(),
                rewrite_client=OpenRouterClient(),
                notification_manager=self.notification_manager,
                tray_manager=self.tray_manager,
                hotkey_handler=HotkeyHandler(event_bus=self.event_bus)
            )

            if not await self.main_controller.initialize():
                logger.error("Main controller initialization failed")
                return False

            self._setup_signal_handlers()

            self.initialization_complete = True
            self.state = AppState.READY

            if not settings.is_valid() and not self.start_minimized:
                await self.event_bus.emit(
                    EventTypes.UI_SETTINGS_SHOW,
                    {'trigger_source': 'startup'},
                    source="application"
                )

            logger.info("Application initialization complete")
            return True

        except Exception as e:
            logger.error("Application initialization failed: %s", e)
            self.state = AppState.ERROR
            return False

    async def _subscribe_to_events(self) -> None:
        """Subscribe to application-level events."""
        await self.event_bus.subscribe(
            EventTypes.APP_SHUTDOWN_REQUESTED,
            self._handle_shutdown_request
        )

        await self.event_bus.subscribe(
            EventTypes.SETTINGS_UPDATED,
            self._handle_settings_updated
        )

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        if sys.platform != "win32":
            signal.signal(signal.SIGHUP, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info("Received signal %d, initiating shutdown", signum)
        self._shutdown_event.set()

    async def _handle_shutdown_request(self, event_data) -> None:
        logger.info("Shutdown requested by %s", event_data.source)
        self._shutdown_event.set()

    async def _handle_settings_updated(self, event_data) -> None:
        if event_data.data and 'key' in event_data.data:
            logger.debug("Settings updated notification: %s", event_data.data['key'])

    async def run(self) -> int:
        """
        Run the main application loop.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        try:
            if not await self.initialize():
                return 1

            logger.info("Application started successfully")

            qt_event_task = asyncio.create_task(self._process_qt_events())

            await self._shutdown_event.wait()

            logger.info("Application shutting down")

            qt_event_task.cancel()
            try:
                await qt_event_task
            except asyncio.CancelledError:
                pass

            return 0

        except Exception as e:
            logger.error("Unexpected error in main loop: %s", e)
            return 1

        finally:
            await self._shutdown()

    async def _process_qt_events(self) -> None:
        """Process Qt events in asyncio loop."""
        try:
            while not self._shutdown_event.is_set():
                if self.qt_app:
                    self.qt_app.processEvents()
                # Short sleep keeps the idle loop off 100% CPU
                await asyncio.sleep(0.01)

        except asyncio.CancelledError:
            logger.info("Qt event processing cancelled")
            raise
        except Exception as e:
            logger.error("Error processing Qt events: %s", e)

    async def _shutdown(self) -> None:
        """Perform graceful shutdown of all components."""
        if self.state == AppState.SHUTTING_DOWN:
            return

        self.state = AppState.SHUTTING_DOWN
        logger.info("Starting application shutdown")

        if self.event_bus and not self.event_bus.is_shutdown():
            try:
                await self.event_bus.emit_and_wait(
                    EventTypes.APP_SHUTDOWN_STARTING,
                    source="application",
                    timeout=SHUTDOWN_LISTENER_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.warning("Shutdown listeners did not finish within %.1fs", SHUTDOWN_LISTENER_TIMEOUT)

        # Releases the key hook and the HTTP client
        if self.main_controller:
            await self.main_controller.shutdown()

        if self.ui_manager:
            try:
                await self.ui_manager.shutdown()
            except Exception as e:
                logger.error("Error shutting down UI manager: %s", e)

        if self.tray_manager:
            self.tray_manager.shutdown()

        if self.database_manager:
            await self.database_manager.close()

        if self.event_bus:
            logger.info("Event bus totals: %s", await self.event_bus.get_metrics())
            await self.event_bus.shutdown()

        logger.info("Application shutdown complete")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} v{APP_VERSION} - AI-powered clipboard rewriter"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set logging level"
    )

    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for log files"
    )

    parser.add_argument(
        "--minimized",
        action="store_true",
        help="Start in the tray without opening settings (used for auto-start)"
    )

    parser.add_argument(
        "--no-tray",
        action="store_true",
        help="Disable system tray (fallback mode)"
    )

    return parser.parse_args(argv)


async def main() -> int:
    """
    Main application entry point.

    Returns:
        Exit code
    """
    args = parse_arguments()

    log_level = "DEBUG" if args.debug else args.log_level
    app_logger = setup_logging(
        log_dir=args.log_dir,
        log_level=log_level,
        enable_console=not args.minimized,
        enable_json=True
    )

    logger.info("Starting %s v%s", APP_NAME, APP_VERSION)
    logger.info("Logging to %s", app_logger.log_file)

    app = Application(use_tray=not args.no_tray, start_minimized=args.minimized)

    try:
        return await app.run()
    except Exception as e:
        logger.error("Fatal error: %s", e)
        return 1
    finally:
        logging.shutdown()


def run_app():
    """Synchronous entry point for the console script."""
    try:
        return asyncio.run(main())

    except KeyboardInterrupt:
        print("Application interrupted")
        return 0

    except Exception as e:
        print(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(run_app())
