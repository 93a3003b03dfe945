"""
Main Controller Module

Orchestrates one rewrite per hotkey trigger: validate settings, read the
clipboard, call the rewrite API, write the result back, and report through
the tray status line and a notification. At most one rewrite is in flight;
triggers arriving meanwhile are dropped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

from .event_bus import EventBus
from ..models.clipboard_manager import ClipboardError, ClipboardManager, ClipboardUnavailableError
from ..models.openrouter_client import OpenRouterClient, RewriteError
from ..models.settings_manager import RewriteSettings, SettingsManager
from .. import AppState, EventTypes, HOTKEY_DESCRIPTION, IconState, MAX_TEXT_LENGTH

if TYPE_CHECKING:
    from .hotkey_handler import HotkeyHandler
    from ..views.notification_manager import NotificationManager
    from ..views.tray_manager import TrayManager

logger = logging.getLogger(__name__)

STATUS_READY = f"Ready - {HOTKEY_DESCRIPTION}"
STATUS_PROCESSING = "Processing..."
STATUS_ERROR = f"Error - {HOTKEY_DESCRIPTION}"
STATUS_CONFIGURATION_REQUIRED = "Configuration required"
STATUS_HOTKEY_FAILED = "Hotkey registration failed"

MSG_CONFIGURATION_REQUIRED = "Please configure your API key and model in settings"
MSG_EMPTY_CLIPBOARD = "Clipboard is empty or contains no text"
MSG_TEXT_TOO_LONG = f"Text is too long (max {MAX_TEXT_LENGTH} characters)"
MSG_HOTKEY_FAILED = (
    "Failed to register global hotkey. Please run as administrator or check permissions."
)


class PipelineState(Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class RewriteResult:
    """Outcome of one pipeline run."""
    original_text: str = ""
    rewritten_text: str = ""
    success: bool = False
    error_message: Optional[str] = None
    duration: float = 0.0


class PipelineError(Exception):
    """Any failure that ends a rewrite run; the message is shown to the user."""
    pass


class ConfigurationInvalidError(PipelineError):
    """API key or model missing."""
    pass


class EmptyClipboardError(PipelineError, ClipboardUnavailableError):
    """Clipboard holds only whitespace; treated as no usable text."""
    pass


class InputTooLongError(PipelineError):
    """Clipboard text exceeds MAX_TEXT_LENGTH characters."""
    pass


class MainController:
    """
    Main application controller.

    Owns the rewrite pipeline and the lifetime of the hotkey handler and the
    rewrite client. Collaborators are injected so the pipeline can run
    without a display.
    """

    def __init__(
        self,
        event_bus: EventBus,
        settings_manager: SettingsManager,
        clipboard_manager: ClipboardManager,
        rewrite_client: OpenRouterClient,
        notification_manager: "NotificationManager",
        tray_manager: Optional["TrayManager"] = None,
        hotkey_handler: Optional["HotkeyHandler"] = None
    ):
        """
        Initialize MainController.

        Args:
            event_bus: EventBus instance for coordination
            settings_manager: SettingsManager holding the rewrite configuration
            clipboard_manager: Clipboard access
            rewrite_client: Chat-completion client
            notification_manager: User-facing notifications
            tray_manager: Optional TrayManager for the status line
            hotkey_handler: Optional HotkeyHandler producing triggers
        """
        self.event_bus = event_bus
        self.settings_manager = settings_manager
        self.clipboard_manager = clipboard_manager
        self.rewrite_client = rewrite_client
        self.notification_manager = notification_manager
        self.tray_manager = tray_manager
        self.hotkey_handler = hotkey_handler

        self._initialized = False
        self._app_state = AppState.STARTING
        self.state = PipelineState.IDLE
        self.status_text = STATUS_READY

        self._busy = False
        self._hotkey_ok = True
        self._pipeline_task: Optional[asyncio.Task] = None

        self.completed_runs = 0
        self.failed_runs = 0
        self.dropped_triggers = 0
        self.last_result: Optional[RewriteResult] = None

        logger.debug("MainController initialized")

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def initialize(self) -> bool:
        """
        Subscribe to triggers and install the hotkey.

        A failed hotkey registration leaves the application running with the
        status line reporting it.

        Returns:
            True if the controller is ready
        """
        if self._initialized:
            logger.warning("MainController already initialized")
            return True

        await self.event_bus.subscribe(
            EventTypes.HOTKEY_REWRITE_TRIGGERED,
            self._handle_rewrite_trigger,
            priority=100
        )

        await self.event_bus.subscribe(
            EventTypes.TRAY_QUIT_REQUESTED,
            self._handle_quit_request,
            priority=100
        )

        await self.settings_manager.load_settings()
        self.settings_manager.add_change_callback(self._on_settings_changed)

        try:
            await self.rewrite_client.initialize()
        except RewriteError as e:
            logger.error("Rewrite client initialization failed: %s", e)

        hotkey_ok = True
        if self.hotkey_handler is not None:
            hotkey_ok = await self.hotkey_handler.initialize()
        self._hotkey_ok = hotkey_ok

        self._set_idle_status()
        if not hotkey_ok:
            logger.error("Continuing without hotkey: %s",
                         getattr(self.hotkey_handler, 'last_error', None))
            await self.notification_manager.notify_error(MSG_HOTKEY_FAILED)

        if not self.settings_manager.is_valid():
            logger.info("Rewrite settings incomplete; first trigger will open settings")

        self._app_state = AppState.READY
        self._initialized = True

        await self.event_bus.emit(
            EventTypes.APP_READY,
            {
                'hotkey_active': hotkey_ok,
                'timestamp': datetime.now().isoformat()
            },
            source="MainController"
        )

        logger.info("MainController ready (hotkey active: %s)", hotkey_ok)
        return True

    def _try_acquire(self) -> bool:
        # Checked and set without awaiting in between
        if self._busy:
            return False
        self._busy = True
        return True

    def _release(self) -> None:
        self._busy = False
        self.state = PipelineState.IDLE

    async def _drop_trigger(self) -> None:
        self.dropped_triggers += 1
        logger.info("Rewrite already in progress, dropping trigger (%d dropped)",
                    self.dropped_triggers)
        await self.event_bus.emit(
            EventTypes.REWRITE_DROPPED,
            {'dropped_triggers': self.dropped_triggers},
            source="MainController"
        )

    async def _handle_rewrite_trigger(self, event_data) -> Optional[asyncio.Task]:
        """
        Start a pipeline run unless one is already in flight.

        Returns:
            The task running the pipeline, or None if the trigger was dropped
        """
        if not self._try_acquire():
            await self._drop_trigger()
            return None

        self._pipeline_task = asyncio.create_task(self._run_acquired())
        return self._pipeline_task

    async def run_pipeline(self) -> RewriteResult:
        """
        Perform one rewrite run.

        Returns:
            RewriteResult; an unsuccessful result if another run is in flight
        """
        if not self._try_acquire():
            await self._drop_trigger()
            return RewriteResult(success=False, error_message="Rewrite already in progress")

        return await self._run_acquired()

    async def _run_acquired(self) -> RewriteResult:
        try:
            return await self._execute_pipeline()
        except Exception as e:
            # Anything not mapped to a PipelineError still must not escape
            logger.exception("Unexpected pipeline failure")
            return await self._finish_error("", f"Unexpected error: {e}", time.monotonic())
        finally:
            self._release()

    async def _execute_pipeline(self) -> RewriteResult:
        started = time.monotonic()
        settings = self.settings_manager.settings

        if not settings.is_valid():
            return await self._handle_configuration_required(started)

        self.state = PipelineState.PROCESSING
        self._set_status(STATUS_PROCESSING, is_processing=True)
        await self.event_bus.emit(EventTypes.REWRITE_STARTED, source="MainController")

        original = ""
        try:
            original = await self._read_input()
            rewritten = await self._rewrite(original, settings)
            await self._write_output(rewritten)
        except PipelineError as e:
            return await self._finish_error(original, str(e), started)

        return await self._finish_success(original, rewritten, started)

    async def _read_input(self) -> str:
        try:
            text = await self.clipboard_manager.read_text()
        except ClipboardError as e:
            raise PipelineError(f"Failed to read clipboard: {e}") from e

        if not text.strip():
            raise EmptyClipboardError(MSG_EMPTY_CLIPBOARD)

        if len(text) > MAX_TEXT_LENGTH:
            raise InputTooLongError(MSG_TEXT_TOO_LONG)

        return text

    async def _rewrite(self, text: str, settings: RewriteSettings) -> str:
        try:
            return await self.rewrite_client.rewrite(
                text=text,
                api_key=settings.api_key,
                model=settings.current_model(),
                system_prompt=settings.system_prompt,
                user_prompt_template=settings.user_prompt_template
            )
        except RewriteError as e:
            raise PipelineError(f"Failed to rewrite text: {e}") from e

    async def _write_output(self, text: str) -> None:
        try:
            await self.clipboard_manager.write_text(text)
        except ClipboardError as e:
            raise PipelineError(f"Failed to update clipboard: {e}") from e

    async def _handle_configuration_required(self, started: float) -> RewriteResult:
        error = ConfigurationInvalidError(MSG_CONFIGURATION_REQUIRED)
        logger.warning("Rewrite requested without a valid configuration")

        self._set_status(STATUS_CONFIGURATION_REQUIRED)
        await self.notification_manager.notify_warning(str(error))
        await self.event_bus.emit(
            EventTypes.UI_SETTINGS_SHOW,
            {'trigger_source': 'configuration_required'},
            source="MainController"
        )

        self.failed_runs += 1
        result = RewriteResult(
            success=False,
            error_message=str(error),
            duration=time.monotonic() - started
        )
        self.last_result = result
        return result

    async def _finish_success(self, original: str, rewritten: str, started: float) -> RewriteResult:
        self.state = PipelineState.SUCCESS
        self.completed_runs += 1

        result = RewriteResult(
            original_text=original,
            rewritten_text=rewritten,
            success=True,
            duration=time.monotonic() - started
        )
        self.last_result = result

        logger.info("Rewrite completed: %d -> %d characters in %.2fs",
                    len(original), len(rewritten), result.duration)

        await self.notification_manager.notify_success(
            f"Text rewritten successfully! ({len(rewritten)} characters)"
        )
        self._set_status(STATUS_READY)

        await self.event_bus.emit(
            EventTypes.REWRITE_COMPLETED,
            {'characters': len(rewritten), 'duration': result.duration},
            source="MainController"
        )
        return result

    async def _finish_error(self, original: str, message: str, started: float) -> RewriteResult:
        self.state = PipelineState.ERROR
        self.failed_runs += 1

        result = RewriteResult(
            original_text=original,
            success=False,
            error_message=message,
            duration=time.monotonic() - started
        )
        self.last_result = result

        logger.error("Rewrite failed: %s", message)

        await self.notification_manager.notify_error(message)
        self._set_status(STATUS_ERROR, icon_state=IconState.ERROR)

        await self.event_bus.emit(
            EventTypes.REWRITE_FAILED,
            {'error_message': message},
            source="MainController"
        )
        return result

    def _set_idle_status(self) -> None:
        if self._hotkey_ok:
            self._set_status(STATUS_READY)
        else:
            self._set_status(STATUS_HOTKEY_FAILED, icon_state=IconState.DISABLED)

    def _on_settings_changed(self, settings: RewriteSettings) -> None:
        """Clear the configuration prompt once the settings become usable."""
        if self.status_text == STATUS_CONFIGURATION_REQUIRED and settings.is_valid() and not self._busy:
            logger.info("Rewrite settings completed")
            self._set_idle_status()

    def _set_status(self, text: str, is_processing: bool = False, icon_state: Optional[str] = None) -> None:
        self.status_text = text
        if self.tray_manager is None:
            return

        try:
            self.tray_manager.set_status(text, is_processing=is_processing, icon_state=icon_state)
        except Exception as e:
            logger.error("Failed to update tray status: %s", e)

    async def _handle_quit_request(self, event_data) -> None:
        """Turn a tray quit into an application shutdown request."""
        logger.info("Quit requested from %s", event_data.source)

        await self.event_bus.emit(
            EventTypes.APP_SHUTDOWN_REQUESTED,
            {
                'trigger_source': event_data.source,
                'reason': 'user_request'
            },
            source="MainController"
        )

    def get_status(self) -> Dict[str, Any]:
        """
        Get current controller status.

        Returns:
            Dictionary with state, status line and counters
        """
        return {
            'initialized': self._initialized,
            'app_state': self._app_state,
            'pipeline_state': self.state.value,
            'status_text': self.status_text,
            'busy': self._busy,
            'settings_valid': self.settings_manager.is_valid(),
            'model': self.settings_manager.current_model(),
            'completed_runs': self.completed_runs,
            'failed_runs': self.failed_runs,
            'dropped_triggers': self.dropped_triggers,
            'hotkey_active': (
                self.hotkey_handler is not None and self.hotkey_handler.is_handler_active()
            ),
        }

    async def shutdown(self) -> None:
        """
        Release the key hook and the HTTP client.

        Runs even while a rewrite is in flight; each step is best effort.
        """
        if self._app_state == AppState.SHUTTING_DOWN:
            return

        logger.info("Shutting down MainController...")
        self._app_state = AppState.SHUTTING_DOWN

        if self.hotkey_handler is not None:
            try:
                await self.hotkey_handler.shutdown()
            except Exception as e:
                logger.error("Error shutting down hotkey handler: %s", e)

        task = self._pipeline_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("In-flight rewrite cancelled by shutdown")
            except Exception as e:
                logger.error("In-flight rewrite ended with error: %s", e)

        try:
            await self.rewrite_client.close()
        except Exception as e:
            logger.error("Error closing rewrite client: %s", e)

        try:
            self.clipboard_manager.shutdown()
        except Exception as e:
            logger.error("Error shutting down clipboard manager: %s", e)

        self._initialized = False
        logger.info("MainController shutdown complete")

    def __str__(self) -> str:
        return (f"MainController(state={self.state.value}, busy={self._busy}, "
                f"completed={self.completed_runs}, failed={self.failed_runs})")
