"""
Controllers package for Cliptomic

This package contains the Controller layer components following the MVC pattern:
- MainController: Rewrite pipeline orchestration (controllers.main_controller)
- EventBus: Asynchronous event distribution system
- HotkeyHandler: Global hotkey monitoring (controllers.hotkey_handler)
"""

from .event_bus import EventBus, get_event_bus

__all__ = [
    'EventBus',
    'get_event_bus'
]
