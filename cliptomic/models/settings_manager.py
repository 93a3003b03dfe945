"""
Settings Manager Module

Manages the user's rewrite configuration: API key, model choice and prompt
templates. Values are loaded once at startup and written through to the
SQLite store on every change.
"""

import asyncio
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional

from ..controllers.event_bus import EventBus, get_event_bus
from .. import EventTypes
from .openrouter_client import FREE_MODELS

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that rewrites text to improve clarity, grammar, "
    "and style while maintaining the original meaning. Respond only with the "
    "rewritten text, no additional commentary, no additional formatting."
)
DEFAULT_USER_PROMPT_TEMPLATE = "Please rewrite the following text: {text}"
TEXT_PLACEHOLDER = "{text}"


@dataclass
class RewriteSettings:
    """Complete user configuration for the rewrite pipeline."""
    api_key: str = ""
    selected_model: str = field(default_factory=lambda: FREE_MODELS[0])
    custom_model: str = ""
    use_custom_model: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_prompt_template: str = DEFAULT_USER_PROMPT_TEMPLATE

    def current_model(self) -> str:
        """Effective model: the custom one when enabled and non-blank."""
        if self.use_custom_model and self.custom_model.strip():
            return self.custom_model
        return self.selected_model

    def is_valid(self) -> bool:
        """API key and effective model must both be non-blank."""
        return bool(self.api_key.strip()) and bool(self.current_model().strip())


SETTING_KEYS = tuple(f.name for f in fields(RewriteSettings))


class SettingsManager:
    """
    Application settings manager with database persistence.

    Reads are served from memory; every setter writes the single changed key
    to storage immediately. No locking beyond that: last write wins.
    """

    def __init__(
        self,
        database_manager=None,
        event_bus: Optional[EventBus] = None
    ):
        """
        Initialize SettingsManager.

        Args:
            database_manager: DatabaseManager instance for storage
            event_bus: EventBus for change notifications (global bus if None)
        """
        self.database_manager = database_manager
        self._event_bus = event_bus or get_event_bus()

        self._settings: Optional[RewriteSettings] = None
        self._load_lock = asyncio.Lock()
        self._change_callbacks: List[Callable] = []

        logger.info("SettingsManager initialized")

    @property
    def settings(self) -> RewriteSettings:
        """Current settings (defaults until ``load_settings`` has run)."""
        if self._settings is None:
            return RewriteSettings()
        return self._settings

    async def load_settings(self) -> RewriteSettings:
        """
        Load settings from the database, filling in defaults.

        Returns:
            RewriteSettings instance
        """
        async with self._load_lock:
            if self._settings is not None:
                return self._settings

            stored: Dict[str, Any] = {}
            if self.database_manager:
                await self.database_manager.initialize_database()
                stored = await self.database_manager.get_all_settings()

            self._settings = self._merge_with_defaults(stored)
            logger.info("Settings loaded (api key set: %s, model: %s)",
                        bool(self._settings.api_key), self._settings.current_model())
            return self._settings

    def _merge_with_defaults(self, overrides: Dict[str, Any]) -> RewriteSettings:
        """Apply stored values over the defaults, ignoring unknown or mistyped keys."""
        settings = RewriteSettings()

        for key, value in overrides.items():
            if key not in SETTING_KEYS:
                logger.warning("Ignoring unknown settings key: %s", key)
                continue

            expected = type(getattr(settings, key))
            if not isinstance(value, expected):
                logger.warning("Ignoring settings key %s with wrong type %s",
                               key, type(value).__name__)
                continue

            setattr(settings, key, value)

        return settings

    async def _update(self, key: str, value: Any) -> bool:
        """Write one field through to storage and memory."""
        settings = await self.load_settings()

        if self.database_manager:
            if not await self.database_manager.set_setting(key, value):
                logger.error("Failed to persist setting: %s", key)
                return False

        setattr(settings, key, value)

        await self._notify_changes()

        await self._event_bus.emit(
            EventTypes.SETTINGS_UPDATED,
            {
                'key': key,
                # Never put the key itself on the bus
                'value': bool(value) if key == 'api_key' else value
            },
            source="SettingsManager"
        )

        logger.debug("Setting updated: %s", key)
        return True

    async def set_api_key(self, api_key: str) -> bool:
        return await self._update('api_key', api_key)

    async def set_selected_model(self, model: str) -> bool:
        return await self._update('selected_model', model)

    async def set_custom_model(self, model: str) -> bool:
        return await self._update('custom_model', model)

    async def set_use_custom_model(self, enabled: bool) -> bool:
        return await self._update('use_custom_model', bool(enabled))

    async def set_system_prompt(self, prompt: str) -> bool:
        return await self._update('system_prompt', prompt)

    async def set_user_prompt_template(self, template: str) -> bool:
        """
        Store the user prompt template.

        A template without ``{text}`` is stored as given but logged, since the
        clipboard content would then never reach the model.
        """
        if TEXT_PLACEHOLDER not in template:
            logger.warning("User prompt template has no %s placeholder", TEXT_PLACEHOLDER)
        return await self._update('user_prompt_template', template)

    def current_model(self) -> str:
        """Effective model identifier for the next rewrite."""
        return self.settings.current_model()

    def is_valid(self) -> bool:
        """True when an API key and an effective model are configured."""
        return self.settings.is_valid()

    async def reset_to_defaults(self) -> None:
        """Restore every field to its default and persist it."""
        if self.database_manager:
            await self.database_manager.clear_all_settings()

        self._settings = RewriteSettings()
        await self._notify_changes()

        await self._event_bus.emit(
            EventTypes.SETTINGS_RESET,
            source="SettingsManager"
        )
        logger.info("Settings reset to defaults")

    def add_change_callback(self, callback: Callable) -> None:
        """
        Add callback for settings changes.

        Args:
            callback: Function (sync or async) receiving the RewriteSettings
        """
        self._change_callbacks.append(callback)

    async def _notify_changes(self) -> None:
        """Notify all change callbacks."""
        for callback in self._change_callbacks:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(self.settings)
                else:
                    callback(self.settings)
            except Exception as e:
                logger.error("Error in settings change callback: %s", e)

    def __str__(self) -> str:
        if self._settings is None:
            return "SettingsManager(not loaded)"

        return f"SettingsManager(model={self._settings.current_model()}, valid={self._settings.is_valid()})"
