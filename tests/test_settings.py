"""Tests for RewriteSettings validity and SettingsManager persistence."""

import asyncio

import pytest

from cliptomic import EventTypes
from cliptomic.models.database_manager import DatabaseManager
from cliptomic.models.openrouter_client import FREE_MODELS
from cliptomic.models.settings_manager import (
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_USER_PROMPT_TEMPLATE,
    RewriteSettings,
    SettingsManager,
)


def test_defaults_are_invalid_until_api_key_is_set():
    settings = RewriteSettings()

    assert settings.selected_model == FREE_MODELS[0]
    assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT
    assert settings.user_prompt_template == DEFAULT_USER_PROMPT_TEMPLATE
    assert settings.is_valid() is False

    settings.api_key = "sk-or-test"
    assert settings.is_valid() is True


def test_whitespace_api_key_is_invalid():
    settings = RewriteSettings(api_key="   \t")
    assert settings.is_valid() is False


def test_custom_model_takes_precedence_when_enabled_and_non_blank():
    settings = RewriteSettings(
        api_key="k",
        selected_model="m1",
        custom_model="x/y",
        use_custom_model=True
    )
    assert settings.current_model() == "x/y"

    settings.use_custom_model = False
    assert settings.current_model() == "m1"


def test_blank_custom_model_falls_back_to_selected_model():
    settings = RewriteSettings(
        api_key="k",
        selected_model="m1",
        custom_model="   ",
        use_custom_model=True
    )
    assert settings.current_model() == "m1"
    assert settings.is_valid() is True


def test_blank_effective_model_is_invalid():
    settings = RewriteSettings(api_key="k", selected_model="")
    assert settings.is_valid() is False


@pytest.mark.asyncio
async def test_settings_persist_across_managers(tmp_path, event_bus):
    db_path = str(tmp_path / "settings.db")

    manager = SettingsManager(DatabaseManager(db_path), event_bus=event_bus)
    await manager.load_settings()
    assert manager.is_valid() is False

    assert await manager.set_api_key("sk-or-abc")
    assert await manager.set_use_custom_model(True)
    assert await manager.set_custom_model("openai/gpt-4o")
    assert await manager.set_user_prompt_template("Fix: {text}")

    assert manager.current_model() == "openai/gpt-4o"
    assert manager.is_valid() is True

    reloaded = SettingsManager(DatabaseManager(db_path), event_bus=event_bus)
    settings = await reloaded.load_settings()

    assert settings.api_key == "sk-or-abc"
    assert settings.use_custom_model is True
    assert settings.custom_model == "openai/gpt-4o"
    assert settings.user_prompt_template == "Fix: {text}"
    assert settings.selected_model == FREE_MODELS[0]


@pytest.mark.asyncio
async def test_update_event_never_carries_api_key(event_bus):
    manager = SettingsManager(event_bus=event_bus)
    updates = []
    received = asyncio.Event()

    async def on_update(event):
        updates.append(event.data)
        received.set()

    await event_bus.subscribe(EventTypes.SETTINGS_UPDATED, on_update)

    await manager.set_api_key("sk-or-secret")
    await asyncio.wait_for(received.wait(), timeout=1.0)

    assert updates[0] == {'key': 'api_key', 'value': True}


@pytest.mark.asyncio
async def test_mistyped_stored_values_are_ignored(tmp_path, event_bus):
    db = DatabaseManager(str(tmp_path / "settings.db"))
    await db.initialize_database()
    await db.set_setting("use_custom_model", "yes")
    await db.set_setting("unknown_key", "value")

    manager = SettingsManager(db, event_bus=event_bus)
    settings = await manager.load_settings()

    assert settings.use_custom_model is False


@pytest.mark.asyncio
async def test_reset_to_defaults_clears_storage(tmp_path, event_bus):
    db_path = str(tmp_path / "settings.db")
    manager = SettingsManager(DatabaseManager(db_path), event_bus=event_bus)
    await manager.set_api_key("sk-or-abc")
    await manager.set_selected_model("openai/gpt-5")

    await manager.reset_to_defaults()

    assert manager.settings == RewriteSettings()

    reloaded = SettingsManager(DatabaseManager(db_path), event_bus=event_bus)
    assert await reloaded.load_settings() == RewriteSettings()


@pytest.mark.asyncio
async def test_change_callbacks_receive_updated_settings(event_bus):
    manager = SettingsManager(event_bus=event_bus)
    seen = []

    manager.add_change_callback(lambda settings: seen.append(settings.selected_model))
    await manager.set_api_key("sk-or-abc")
    await manager.set_selected_model("google/gemini-2.5-pro")

    assert seen[-1] == "google/gemini-2.5-pro"
