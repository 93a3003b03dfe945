"""
UIManager Module

Coordinates the PyQt6 side of the application. EventBus handlers run on the
asyncio loop; window work is queued and replayed on the Qt thread through
a signal.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QCoreApplication, QObject, QTimer, pyqtSignal
from PyQt6.QtWidgets import QApplication

from ..controllers.event_bus import EventBus
from ..models.settings_manager import SettingsManager
from .settings_window import SettingsWindow
from .. import EventTypes

logger = logging.getLogger(__name__)


class UIManager(QObject):
    """
    Central coordinator for the UI components.

    Owns the settings window and opens it on request from the tray or the
    rewrite pipeline.
    """

    # Signals for thread-safe communication
    ui_action_requested = pyqtSignal(str, dict)

    def __init__(
        self,
        event_bus: EventBus,
        settings_manager: SettingsManager
    ):
        """
        Initialize UIManager.

        Args:
            event_bus: EventBus instance for communication
            settings_manager: SettingsManager backing the settings window
        """
        super().__init__()

        self.event_bus = event_bus
        self.settings_manager = settings_manager

        self.settings_window: Optional[SettingsWindow] = None

        self._initialized = False
        self._app_instance: Optional[QCoreApplication] = None
        self._tasks = set()

        self._async_timer = QTimer()
        self._async_timer.timeout.connect(self._process_async_events)
        self._async_timer.setInterval(10)

        self._event_queue: List[Dict[str, Any]] = []

        logger.info("UIManager initialized")

    async def initialize(self) -> bool:
        """
        Subscribe to UI events and start the dispatch timer.

        Returns:
            True if initialization successful
        """
        if self._initialized:
            logger.warning("UIManager already initialized")
            return True

        try:
            self._app_instance = QApplication.instance()
            if self._app_instance is None:
                logger.warning("No QApplication instance found, creating one")
                self._app_instance = QApplication([])

            await self.event_bus.subscribe(
                EventTypes.TRAY_SETTINGS_REQUESTED,
                self._handle_show_settings,
                priority=95
            )

            await self.event_bus.subscribe(
                EventTypes.UI_SETTINGS_SHOW,
                self._handle_show_settings,
                priority=95
            )

            await self.event_bus.subscribe(
                EventTypes.APP_SHUTDOWN_STARTING,
                self._handle_app_shutdown
            )

            self.ui_action_requested.connect(self._handle_ui_action)
            self._async_timer.start()

            self._initialized = True
            logger.info("UIManager initialization complete")
            return True

        except Exception as e:
            logger.error("UIManager initialization failed: %s", e)
            return False

    async def _handle_show_settings(self, event_data) -> None:
        self._queue_ui_action("show_settings", event_data.data or {})

    async def _handle_app_shutdown(self, event_data) -> None:
        # Edits still in flight must reach the database before it closes
        if self.settings_window:
            await self.settings_window.flush_pending_writes()

    def _queue_ui_action(self, action: str, data: Dict[str, Any]) -> None:
        """Queue a UI action for main thread processing."""
        self._event_queue.append({
            "action": action,
            "data": data
        })

    def _process_async_events(self) -> None:
        """Replay queued actions as signals on the Qt thread."""
        try:
            while self._event_queue:
                event = self._event_queue.pop(0)
                self.ui_action_requested.emit(event["action"], event["data"])
        except Exception as e:
            logger.error("Error processing async events: %s", e)

    def _handle_ui_action(self, action: str, data: Dict[str, Any]) -> None:
        try:
            if action == "show_settings":
                QTimer.singleShot(0, self._show_settings_sync)
            else:
                logger.warning("Unknown UI action: %s", action)

        except Exception as e:
            logger.error("Error handling UI action %s: %s", action, e)

    def _show_settings_sync(self) -> None:
        task = asyncio.create_task(self.show_settings_window())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def show_settings_window(self) -> bool:
        """
        Show the settings window, creating it if it is not open.

        Returns:
            True if the window is shown
        """
        try:
            if not self.settings_window or not self.settings_window.isVisible():
                self.settings_window = SettingsWindow(
                    event_bus=self.event_bus,
                    settings_manager=self.settings_manager,
                    parent=None
                )

                if not await self.settings_window.initialize():
                    logger.error("Failed to initialize settings window")
                    return False

            self.settings_window.show()
            self.settings_window.raise_()
            self.settings_window.activateWindow()

            logger.info("Settings window shown")
            return True

        except Exception as e:
            logger.error("Error showing settings window: %s", e)
            return False

    async def shutdown(self) -> None:
        """Stop the timer and close open windows."""
        if not self._initialized:
            return

        logger.info("Shutting down UIManager...")
        self._async_timer.stop()

        if self.settings_window:
            self.settings_window.close()
            self.settings_window = None

        self._event_queue.clear()
        self._initialized = False
        logger.info("UIManager shutdown complete")
