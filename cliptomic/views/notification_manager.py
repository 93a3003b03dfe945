"""
Notification Manager Module

Transient OS notifications behind a single ``notify`` call. Delivery walks an
ordered chain of backends chosen once at startup by platform: the native
mechanism first, then the tray balloon, then a log line. A failing backend
is logged and the next one is tried; callers never see an exception.
"""

import asyncio
import logging
import subprocess
import sys
from enum import Enum
from typing import List, Optional, Sequence

from plyer import notification as plyer_notification

from .. import APP_NAME

logger = logging.getLogger(__name__)

# Seconds before osascript is considered hung
OSASCRIPT_TIMEOUT = 5


class Severity(Enum):
    """Notification severity."""
    NONE = "none"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NotificationDeliveryError(Exception):
    """Raised by a backend that could not show a notification."""
    pass


class NotificationBackend:
    """Base class for one delivery mechanism."""

    name = "base"

    def notify(self, title: str, message: str, severity: Severity) -> None:
        raise NotImplementedError


def escape_applescript(value: str) -> str:
    """Escape a string for use inside an AppleScript string literal."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MacOSScriptNotifier(NotificationBackend):
    """Native macOS notification through ``osascript``."""

    name = "osascript"

    SOUNDS = {
        Severity.ERROR: "Basso",
        Severity.WARNING: "Sosumi",
    }
    DEFAULT_SOUND = "Glass"

    def notify(self, title: str, message: str, severity: Severity) -> None:
        sound = self.SOUNDS.get(severity, self.DEFAULT_SOUND)
        script = (
            f'display notification "{escape_applescript(message)}" '
            f'with title "{escape_applescript(title)}" sound name "{sound}"'
        )

        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                timeout=OSASCRIPT_TIMEOUT
            )
        except subprocess.TimeoutExpired as e:
            raise NotificationDeliveryError("Notification command timed out") from e
        except OSError as e:
            raise NotificationDeliveryError(f"Could not run osascript: {e}") from e

        if result.returncode != 0:
            raise NotificationDeliveryError(
                f"Notification command failed with exit code: {result.returncode}"
            )


class PlyerNotifier(NotificationBackend):
    """Native notification through plyer (Windows toast, libnotify, ...)."""

    name = "plyer"

    def __init__(self, app_name: str = APP_NAME, timeout: int = 5):
        self.app_name = app_name
        self.timeout = timeout

    def notify(self, title: str, message: str, severity: Severity) -> None:
        try:
            plyer_notification.notify(
                title=title,
                message=message[:256],
                app_name=self.app_name,
                timeout=self.timeout
            )
        except Exception as e:
            raise NotificationDeliveryError(f"plyer notification failed: {e}") from e


class TrayBalloonNotifier(NotificationBackend):
    """Balloon shown by the tray icon."""

    name = "tray"

    def __init__(self, tray_manager):
        self.tray_manager = tray_manager

    def notify(self, title: str, message: str, severity: Severity) -> None:
        if self.tray_manager is None or not self.tray_manager.show_balloon(title, message):
            raise NotificationDeliveryError("Tray balloon not available")


class LogNotifier(NotificationBackend):
    """Last resort: write the notification to the log."""

    name = "log"

    LEVELS = {
        Severity.ERROR: logging.ERROR,
        Severity.WARNING: logging.WARNING,
    }

    def notify(self, title: str, message: str, severity: Severity) -> None:
        logger.log(self.LEVELS.get(severity, logging.INFO), "%s: %s", title, message)


def create_default_backends(tray_manager=None, platform: Optional[str] = None) -> List[NotificationBackend]:
    """
    Build the fallback chain for the given platform.

    Args:
        tray_manager: TrayManager providing balloons (optional)
        platform: ``sys.platform`` value (current platform if None)

    Returns:
        Ordered list of backends
    """
    platform = platform or sys.platform

    backends: List[NotificationBackend] = []
    if platform == "darwin":
        backends.append(MacOSScriptNotifier())
    else:
        backends.append(PlyerNotifier())

    if tray_manager is not None:
        backends.append(TrayBalloonNotifier(tray_manager))

    backends.append(LogNotifier())
    return backends


class NotificationManager:
    """
    Front for all user-facing notifications.

    ``notify`` runs the blocking backends on a worker thread and returns the
    name of the backend that delivered, or None.
    """

    SUCCESS_TITLE = APP_NAME
    WARNING_TITLE = f"{APP_NAME} Warning"
    ERROR_TITLE = f"{APP_NAME} Error"

    def __init__(self, backends: Optional[Sequence[NotificationBackend]] = None):
        """
        Initialize NotificationManager.

        Args:
            backends: Ordered fallback chain (log-only when omitted)
        """
        self.backends: List[NotificationBackend] = list(backends or [LogNotifier()])
        self.delivery_failures = 0

        logger.info("NotificationManager initialized with chain: %s",
                    " -> ".join(b.name for b in self.backends))

    def deliver(self, title: str, message: str, severity: Severity = Severity.INFO) -> Optional[str]:
        """
        Try each backend in order until one succeeds.

        Returns:
            Name of the delivering backend, or None if all failed
        """
        for backend in self.backends:
            try:
                backend.notify(title, message, severity)
                logger.debug("Notification delivered via %s", backend.name)
                return backend.name
            except Exception as e:
                self.delivery_failures += 1
                logger.warning("Notification via %s failed: %s", backend.name, e)

        logger.error("All notification backends failed for: %s", title)
        return None

    async def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> Optional[str]:
        """Show a notification without blocking the event loop. Never raises."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.deliver, title, message, severity)
        except Exception as e:
            logger.error("Notification dispatch failed: %s", e)
            return None

    async def notify_success(self, message: str = "Text rewritten successfully!") -> Optional[str]:
        return await self.notify(self.SUCCESS_TITLE, message, Severity.INFO)

    async def notify_warning(self, message: str) -> Optional[str]:
        return await self.notify(self.WARNING_TITLE, message, Severity.WARNING)

    async def notify_error(self, message: str) -> Optional[str]:
        return await self.notify(self.ERROR_TITLE, message, Severity.ERROR)
