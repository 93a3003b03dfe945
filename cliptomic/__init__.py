"""
Cliptomic Application

A lightweight background utility that rewrites clipboard text with an
AI model on a global hotkey. Built following the MVC pattern with an
asyncio event bus between components.
"""

import os
from pathlib import Path

__version__ = "1.0.0"
__author__ = "Cliptomic Team"
__description__ = "AI-powered clipboard rewriter"

# Application metadata
APP_NAME = "Cliptomic"
APP_VERSION = __version__
APP_AUTHOR = __author__
APP_DESCRIPTION = __description__


def get_app_data_dir() -> str:
    """
    Get the application data directory for storing configuration and logs.

    On Windows, this uses %APPDATA%\\Cliptomic
    On other platforms, this uses $XDG_CONFIG_HOME/Cliptomic or ~/.config/Cliptomic

    Returns:
        Path to the application data directory as a string
    """
    if os.name == 'nt':  # Windows
        appdata = os.getenv('APPDATA')
        if appdata:
            return str(Path(appdata) / APP_NAME)
        else:
            # Fallback to home directory if APPDATA is not set
            return str(Path.home() / f".{APP_NAME.lower()}")
    else:
        xdg_config = os.getenv('XDG_CONFIG_HOME')
        if xdg_config:
            return str(Path(xdg_config) / APP_NAME)
        else:
            return str(Path.home() / ".config" / APP_NAME)


# Configuration constants
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_DATABASE_NAME = str(Path(get_app_data_dir()) / "settings.db")
DEFAULT_LOG_DIR = Path(get_app_data_dir()) / "logs"

# Longest clipboard text sent to the rewrite API
MAX_TEXT_LENGTH = 5000

HOTKEY_DESCRIPTION = "Shift+Control+Space"


# Event types used throughout the application
class EventTypes:
    """Central registry of event types for the EventBus system."""

    # Application lifecycle
    APP_READY = "app.ready"
    APP_SHUTDOWN_REQUESTED = "app.shutdown_requested"
    APP_SHUTDOWN_STARTING = "app.shutdown_starting"

    # Tray events
    TRAY_SETTINGS_REQUESTED = "tray.settings_requested"
    TRAY_QUIT_REQUESTED = "tray.quit_requested"

    # UI events
    UI_SETTINGS_SHOW = "ui.settings.show"

    # Settings events
    SETTINGS_UPDATED = "settings.updated"
    SETTINGS_RESET = "settings.reset"

    # Error events
    ERROR_OCCURRED = "error.occurred"

    # Hotkey events
    HOTKEY_REWRITE_TRIGGERED = "hotkey.rewrite_triggered"
    HOTKEY_REGISTRATION_SUCCESS = "hotkey.registration.success"
    HOTKEY_REGISTRATION_FAILED = "hotkey.registration.failed"
    HOTKEY_HANDLER_SHUTDOWN = "hotkey.handler.shutdown"

    # Rewrite pipeline events
    REWRITE_STARTED = "rewrite.started"
    REWRITE_COMPLETED = "rewrite.completed"
    REWRITE_FAILED = "rewrite.failed"
    REWRITE_DROPPED = "rewrite.dropped"


# Application states
class AppState:
    """Application state enumeration."""
    STARTING = "starting"
    READY = "ready"
    ERROR = "error"
    SHUTTING_DOWN = "shutting_down"


# Icon states for tray manager
class IconState:
    """System tray icon state enumeration."""
    IDLE = "idle"
    PROCESSING = "processing"
    ERROR = "error"
    DISABLED = "disabled"
