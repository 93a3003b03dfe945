"""
Tray Manager Module

System tray icon with pystray: a status line, Settings as the default
(click) action, and Exit. The icon runs detached on pystray's own thread;
menu callbacks are marshalled back to the asyncio loop.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..controllers.event_bus import EventBus, get_event_bus
from ..utils.icon_manager import IconManager, get_icon_manager
from .. import APP_NAME, EventTypes, IconState

logger = logging.getLogger(__name__)


class MenuItemType(Enum):
    """Menu item type enumeration."""
    ACTION = "action"
    STATUS = "status"
    SEPARATOR = "separator"


class TrayMenuAction(Enum):
    """Tray menu action enumeration."""
    OPEN_SETTINGS = "open_settings"
    EXIT = "exit"


def _load_pystray():
    # pystray picks its platform backend at import time
    import pystray
    return pystray


class TrayManager:
    """
    System tray icon manager using pystray.

    ``set_status`` and ``show_balloon`` may be called from any thread and
    are no-ops until the icon is running.
    """

    def __init__(
        self,
        app_name: str = APP_NAME,
        shutdown_event: Optional[asyncio.Event] = None,
        event_bus: Optional[EventBus] = None,
        icon_manager: Optional[IconManager] = None,
        backend: Any = None
    ):
        """
        Initialize TrayManager.

        Args:
            app_name: Application name for the tray icon
            shutdown_event: Event to set when Exit is chosen
            event_bus: EventBus for menu actions (global bus if None)
            icon_manager: Icon source (global IconManager if None)
            backend: Module providing ``Icon``, ``Menu`` and ``MenuItem``
                (pystray when omitted)
        """
        self.app_name = app_name
        self._shutdown_event = shutdown_event
        self._event_bus = event_bus or get_event_bus()
        self._icon_manager = icon_manager or get_icon_manager()
        self._backend = backend

        self._icon = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._is_running = False
        self._shutdown_requested = False

        self.status_text = "Starting..."
        self.is_processing = False
        self._current_state = IconState.IDLE

        self._menu_items: List[Dict[str, Any]] = [
            {
                'text': 'Settings',
                'action': TrayMenuAction.OPEN_SETTINGS,
                'type': MenuItemType.ACTION,
                'default': True
            },
            {
                'type': MenuItemType.STATUS
            },
            {
                'type': MenuItemType.SEPARATOR
            },
            {
                'text': 'Exit',
                'action': TrayMenuAction.EXIT,
                'type': MenuItemType.ACTION
            }
        ]

        logger.info("TrayManager initialized: %s", app_name)

    @property
    def tooltip(self) -> str:
        return f"{self.app_name} - {self.status_text}"

    def initialize(self) -> bool:
        """
        Create the icon and start it detached.

        Must be called from the thread running the asyncio loop.

        Returns:
            True if the tray icon is running
        """
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        try:
            if self._backend is None:
                self._backend = _load_pystray()

            self._icon_manager.preload_icons()

            self._icon = self._backend.Icon(
                self.app_name,
                self._icon_manager.get_pil_image(self._current_state),
                self.tooltip,
                self._build_menu()
            )
            self._icon.run_detached(setup=self._setup_tray_icon)
            self._is_running = True

            logger.info("System tray started in detached mode")
            return True

        except Exception as e:
            logger.error("Failed to initialize TrayManager: %s", e)
            self._icon = None
            return False

    def _setup_tray_icon(self, icon) -> None:
        """Setup function called when the detached tray icon is ready."""
        try:
            icon.visible = True
            logger.debug("Tray icon setup complete")
        except Exception as e:
            logger.error("Error setting up tray icon: %s", e)

    def _build_menu(self):
        """Build the pystray menu from the item configuration."""
        backend = self._backend
        menu_items = []

        for item_config in self._menu_items:
            item_type = item_config['type']

            if item_type == MenuItemType.SEPARATOR:
                menu_items.append(backend.Menu.SEPARATOR)

            elif item_type == MenuItemType.STATUS:
                # Text is re-read on every menu refresh
                menu_items.append(
                    backend.MenuItem(
                        lambda _item: self.status_text,
                        lambda _icon, _item: None,
                        enabled=False
                    )
                )

            elif item_type == MenuItemType.ACTION:
                menu_items.append(
                    backend.MenuItem(
                        item_config['text'],
                        self._create_menu_handler(item_config['action']),
                        default=item_config.get('default', False)
                    )
                )

        return backend.Menu(*menu_items)

    def _create_menu_handler(self, action: TrayMenuAction) -> Callable:
        """Handler running on the tray thread that schedules the async action."""
        def handler(icon, item):
            if self._loop and not self._loop.is_closed():
                asyncio.run_coroutine_threadsafe(
                    self._handle_menu_action(action),
                    self._loop
                )
            else:
                logger.warning("No event loop for tray action: %s", action.value)

        return handler

    async def _handle_menu_action(self, action: TrayMenuAction) -> None:
        """Handle menu action on the asyncio loop."""
        try:
            logger.debug("Menu action triggered: %s", action.value)

            if action == TrayMenuAction.OPEN_SETTINGS:
                await self._event_bus.emit(
                    EventTypes.TRAY_SETTINGS_REQUESTED,
                    source="tray"
                )

            elif action == TrayMenuAction.EXIT:
                if self._shutdown_event:
                    self._shutdown_event.set()
                else:
                    await self._event_bus.emit(
                        EventTypes.TRAY_QUIT_REQUESTED,
                        source="tray"
                    )

        except Exception as e:
            logger.error("Error handling menu action '%s': %s", action, e)

    def set_status(self, text: str, is_processing: bool = False, icon_state: Optional[str] = None) -> None:
        """
        Update the status line, tooltip and icon.

        Args:
            text: Status text shown in the menu and tooltip
            is_processing: Show the processing icon instead of the idle one
            icon_state: Explicit ``IconState`` overriding the idle/processing choice
        """
        self.status_text = text
        self.is_processing = is_processing
        state = icon_state or (IconState.PROCESSING if is_processing else IconState.IDLE)

        if not self._is_running or self._icon is None:
            # Picked up by initialize()
            self._current_state = state
            logger.debug("Tray not running, status kept: %s", text)
            return

        try:
            self._icon.title = self.tooltip
            self._apply_icon_state(state)
            self._icon.update_menu()
        except Exception as e:
            logger.error("Failed to update tray status: %s", e)

    def _apply_icon_state(self, state: str) -> None:
        if state == self._current_state:
            return

        self._current_state = state
        self._icon.icon = self._icon_manager.get_pil_image(state)
        logger.debug("Icon state updated to: %s", state)

    def show_balloon(self, title: str, message: str) -> bool:
        """
        Show a balloon notification from the tray icon.

        Returns:
            True if the balloon was handed to the tray
        """
        if not self._is_running or self._icon is None:
            return False

        if not getattr(self._icon, 'HAS_NOTIFICATION', True):
            return False

        try:
            self._icon.notify(message, title)
            return True
        except Exception as e:
            logger.error("Failed to show tray balloon: %s", e)
            return False

    def is_running(self) -> bool:
        return self._is_running

    def shutdown(self) -> None:
        """Stop the tray icon."""
        if self._shutdown_requested:
            return

        self._shutdown_requested = True
        logger.info("Shutting down TrayManager...")

        icon, self._icon = self._icon, None
        self._is_running = False

        if icon is not None:
            try:
                icon.stop()
            except Exception as e:
                logger.error("Error stopping tray icon: %s", e)

        logger.info("TrayManager shutdown complete")

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self._is_running,
            'status_text': self.status_text,
            'is_processing': self.is_processing,
            'current_state': self._current_state,
            'shutdown_requested': self._shutdown_requested
        }
