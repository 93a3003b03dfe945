"""Tests for the rewrite pipeline in MainController.

Real SettingsManager and OpenRouterClient (over httpx.MockTransport); fakes
for clipboard, tray, notifications and the hotkey handler.
"""

import asyncio

import httpx
import pytest
import pytest_asyncio

from conftest import FakeHotkeyHandler, GatedRewriteClient
from cliptomic import EventTypes, IconState
from cliptomic.controllers.main_controller import (
    EmptyClipboardError,
    MainController,
    PipelineState,
    STATUS_CONFIGURATION_REQUIRED,
    STATUS_ERROR,
    STATUS_HOTKEY_FAILED,
    STATUS_PROCESSING,
    STATUS_READY,
)
from cliptomic.models.clipboard_manager import ClipboardError, ClipboardUnavailableError
from cliptomic.models.openrouter_client import OpenRouterClient
from cliptomic.models.settings_manager import SettingsManager


class MockOpenRouter:
    """Counts requests and answers with a fixed status/body."""

    def __init__(self, content="The quick brown fox.", status_code=200):
        self.content = content
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "nope"})
        return httpx.Response(200, json={"choices": [{"message": {"content": self.content}}]})


@pytest_asyncio.fixture
async def settings_manager(event_bus):
    manager = SettingsManager(event_bus=event_bus)
    await manager.set_api_key("sk-or-test")
    return manager


@pytest.fixture
def api():
    return MockOpenRouter()


@pytest.fixture
def controller(event_bus, settings_manager, fake_clipboard, notifications, fake_tray, api):
    return MainController(
        event_bus=event_bus,
        settings_manager=settings_manager,
        clipboard_manager=fake_clipboard,
        rewrite_client=OpenRouterClient(transport=httpx.MockTransport(api)),
        notification_manager=notifications,
        tray_manager=fake_tray
    )


@pytest.mark.asyncio
async def test_successful_rewrite_replaces_clipboard(controller, fake_clipboard, notifications, fake_tray, api):
    fake_clipboard.text = "teh quick brwon fox"

    result = await controller.run_pipeline()

    assert result.success is True
    assert result.original_text == "teh quick brwon fox"
    assert result.rewritten_text == "The quick brown fox."
    assert fake_clipboard.text == "The quick brown fox."
    assert len(api.requests) == 1

    assert notifications.sent == [("success", "Text rewritten successfully! (20 characters)")]
    assert fake_tray.statuses == [(STATUS_PROCESSING, True), (STATUS_READY, False)]
    assert controller.state == PipelineState.IDLE
    assert controller.completed_runs == 1


@pytest.mark.asyncio
async def test_invalid_configuration_opens_settings_without_api_call(
    event_bus, fake_clipboard, notifications, fake_tray, api
):
    controller = MainController(
        event_bus=event_bus,
        settings_manager=SettingsManager(event_bus=event_bus),
        clipboard_manager=fake_clipboard,
        rewrite_client=OpenRouterClient(transport=httpx.MockTransport(api)),
        notification_manager=notifications,
        tray_manager=fake_tray
    )
    fake_clipboard.text = "some text"

    opened = asyncio.Event()

    async def on_show(event):
        opened.set()

    await event_bus.subscribe(EventTypes.UI_SETTINGS_SHOW, on_show)

    result = await controller.run_pipeline()

    assert result.success is False
    assert api.requests == []
    assert fake_clipboard.writes == []
    assert fake_tray.statuses == [(STATUS_CONFIGURATION_REQUIRED, False)]
    assert notifications.sent == [
        ("warning", "Please configure your API key and model in settings")
    ]
    await asyncio.wait_for(opened.wait(), timeout=1.0)
    assert controller.state == PipelineState.IDLE


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n\t  "])
async def test_blank_clipboard_is_rejected(controller, fake_clipboard, notifications, fake_tray, api, text):
    fake_clipboard.text = text

    result = await controller.run_pipeline()

    assert result.success is False
    assert api.requests == []
    assert notifications.sent == [("error", "Clipboard is empty or contains no text")]
    assert fake_tray.statuses[-1] == (STATUS_ERROR, False)


@pytest.mark.asyncio
async def test_text_at_limit_is_sent(controller, fake_clipboard, api):
    fake_clipboard.text = "a" * 5000

    result = await controller.run_pipeline()

    assert result.success is True
    assert len(api.requests) == 1


@pytest.mark.asyncio
async def test_text_over_limit_is_rejected_without_api_call(controller, fake_clipboard, notifications, api):
    fake_clipboard.text = "a" * 5001

    result = await controller.run_pipeline()

    assert result.success is False
    assert result.error_message == "Text is too long (max 5000 characters)"
    assert api.requests == []
    assert fake_clipboard.writes == []
    assert notifications.sent == [("error", "Text is too long (max 5000 characters)")]


@pytest.mark.asyncio
async def test_authentication_failure_leaves_clipboard_unchanged(
    controller, fake_clipboard, notifications, fake_tray, api
):
    api.status_code = 401
    fake_clipboard.text = "original text"

    result = await controller.run_pipeline()

    assert result.success is False
    assert fake_clipboard.text == "original text"
    assert fake_clipboard.writes == []

    kind, message = notifications.sent[0]
    assert kind == "error"
    assert message.startswith("Failed to rewrite text: Authentication failed")
    assert fake_tray.statuses[-1] == (STATUS_ERROR, False)
    assert fake_tray.icon_states[-1] == IconState.ERROR
    assert controller.failed_runs == 1


@pytest.mark.asyncio
async def test_clipboard_read_failure_is_reported(controller, fake_clipboard, notifications):
    fake_clipboard.read_error = ClipboardUnavailableError("no backend")

    result = await controller.run_pipeline()

    assert result.success is False
    assert notifications.sent == [("error", "Failed to read clipboard: no backend")]


@pytest.mark.asyncio
async def test_clipboard_write_failure_is_reported(controller, fake_clipboard, notifications):
    fake_clipboard.text = "fine text"
    fake_clipboard.write_error = ClipboardError("locked")

    result = await controller.run_pipeline()

    assert result.success is False
    assert notifications.sent == [("error", "Failed to update clipboard: locked")]


@pytest.mark.asyncio
async def test_custom_model_is_used_when_enabled(controller, settings_manager, fake_clipboard, api):
    await settings_manager.set_use_custom_model(True)
    await settings_manager.set_custom_model("x/y")
    fake_clipboard.text = "hello"

    await controller.run_pipeline()

    assert b'"model":"x/y"' in api.requests[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_trigger_while_processing_is_dropped(event_bus, settings_manager, fake_clipboard, notifications):
    client = GatedRewriteClient(result="done")
    controller = MainController(
        event_bus=event_bus,
        settings_manager=settings_manager,
        clipboard_manager=fake_clipboard,
        rewrite_client=client,
        notification_manager=notifications
    )
    fake_clipboard.text = "first"

    first = await controller._handle_rewrite_trigger(None)
    assert first is not None
    assert controller.is_busy

    # Let the first run reach the API call
    while client.calls == 0:
        await asyncio.sleep(0.01)

    second = await controller._handle_rewrite_trigger(None)
    assert second is None
    assert controller.dropped_triggers == 1

    client.gate.set()
    result = await first

    assert result.success is True
    assert client.calls == 1
    assert not controller.is_busy

    # Once idle, the next trigger runs again
    third = await controller._handle_rewrite_trigger(None)
    await third
    assert client.calls == 2


@pytest.mark.asyncio
async def test_initialize_reports_ready_or_hotkey_failure(
    event_bus, settings_manager, fake_clipboard, notifications, fake_tray, api
):
    def build(hotkey_handler):
        return MainController(
            event_bus=event_bus,
            settings_manager=settings_manager,
            clipboard_manager=fake_clipboard,
            rewrite_client=OpenRouterClient(transport=httpx.MockTransport(api)),
            notification_manager=notifications,
            tray_manager=fake_tray,
            hotkey_handler=hotkey_handler
        )

    ok = build(FakeHotkeyHandler(succeed=True))
    assert await ok.initialize() is True
    assert fake_tray.statuses[-1] == (STATUS_READY, False)
    assert ok.get_status()["hotkey_active"] is True

    failed = build(FakeHotkeyHandler(succeed=False))
    assert await failed.initialize() is True
    assert fake_tray.statuses[-1] == (STATUS_HOTKEY_FAILED, False)
    assert fake_tray.icon_states[-1] == IconState.DISABLED
    assert notifications.sent[-1][0] == "error"

    await ok.shutdown()
    await failed.shutdown()


@pytest.mark.asyncio
async def test_hotkey_trigger_event_runs_pipeline(controller, event_bus, fake_clipboard):
    fake_clipboard.text = "teh text"
    completed = asyncio.Event()

    async def on_completed(event):
        completed.set()

    await event_bus.subscribe(EventTypes.REWRITE_COMPLETED, on_completed)
    await controller.initialize()

    await event_bus.emit(EventTypes.HOTKEY_REWRITE_TRIGGERED, {'combination': 'Shift+Control+Space'})

    await asyncio.wait_for(completed.wait(), timeout=2.0)
    assert fake_clipboard.text == "The quick brown fox."
    await controller.shutdown()


@pytest.mark.asyncio
async def test_shutdown_mid_flight_releases_resources(event_bus, settings_manager, fake_clipboard, notifications):
    client = GatedRewriteClient()
    hotkeys = FakeHotkeyHandler()
    controller = MainController(
        event_bus=event_bus,
        settings_manager=settings_manager,
        clipboard_manager=fake_clipboard,
        rewrite_client=client,
        notification_manager=notifications,
        hotkey_handler=hotkeys
    )
    await controller.initialize()
    fake_clipboard.text = "in flight"

    task = await controller._handle_rewrite_trigger(None)
    while client.calls == 0:
        await asyncio.sleep(0.01)

    await controller.shutdown()

    assert task.cancelled()
    assert hotkeys.shutdown_calls == 1
    assert client.closed is True
    assert fake_clipboard.shut_down is True
    assert not controller.is_busy


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_escape(event_bus, settings_manager, fake_clipboard, notifications):
    class BrokenClient(GatedRewriteClient):
        async def rewrite(self, *args, **kwargs):
            raise RuntimeError("kaboom")

    controller = MainController(
        event_bus=event_bus,
        settings_manager=settings_manager,
        clipboard_manager=fake_clipboard,
        rewrite_client=BrokenClient(),
        notification_manager=notifications
    )
    fake_clipboard.text = "text"

    result = await controller.run_pipeline()

    assert result.success is False
    assert "kaboom" in result.error_message
    assert not controller.is_busy


@pytest.mark.asyncio
async def test_blank_clipboard_is_a_clipboard_unavailable_error(controller, fake_clipboard):
    fake_clipboard.text = " \t\n"

    with pytest.raises(ClipboardUnavailableError) as excinfo:
        await controller._read_input()

    assert isinstance(excinfo.value, EmptyClipboardError)


@pytest.mark.asyncio
async def test_direct_run_while_busy_is_dropped_and_announced(
    event_bus, settings_manager, fake_clipboard, notifications
):
    client = GatedRewriteClient(result="done")
    controller = MainController(
        event_bus=event_bus,
        settings_manager=settings_manager,
        clipboard_manager=fake_clipboard,
        rewrite_client=client,
        notification_manager=notifications
    )
    fake_clipboard.text = "first"

    dropped = []
    announced = asyncio.Event()

    async def on_dropped(event):
        dropped.append(event.data)
        announced.set()

    await event_bus.subscribe(EventTypes.REWRITE_DROPPED, on_dropped)

    first = asyncio.create_task(controller.run_pipeline())
    while client.calls == 0:
        await asyncio.sleep(0.01)

    result = await controller.run_pipeline()
    assert result.success is False
    assert result.error_message == "Rewrite already in progress"

    await asyncio.wait_for(announced.wait(), timeout=1.0)
    assert dropped == [{'dropped_triggers': 1}]

    client.gate.set()
    assert (await first).success is True


@pytest.mark.asyncio
async def test_completing_settings_clears_configuration_prompt(
    event_bus, fake_clipboard, notifications, fake_tray, api
):
    settings = SettingsManager(event_bus=event_bus)
    controller = MainController(
        event_bus=event_bus,
        settings_manager=settings,
        clipboard_manager=fake_clipboard,
        rewrite_client=OpenRouterClient(transport=httpx.MockTransport(api)),
        notification_manager=notifications,
        tray_manager=fake_tray,
        hotkey_handler=FakeHotkeyHandler(succeed=True)
    )
    await controller.initialize()
    fake_clipboard.text = "some text"

    await controller.run_pipeline()
    assert fake_tray.statuses[-1] == (STATUS_CONFIGURATION_REQUIRED, False)

    await settings.set_api_key("sk-or-now-set")

    assert fake_tray.statuses[-1] == (STATUS_READY, False)
    assert controller.status_text == STATUS_READY
    await controller.shutdown()
