"""Shared fixtures and fakes for the Cliptomic test suite.

The fakes stand in for the OS-facing pieces (clipboard, tray, notifications,
key listener) so the pipeline can be exercised without a display.
"""

import asyncio

import pytest
import pytest_asyncio

from cliptomic.controllers.event_bus import EventBus
from cliptomic.models.clipboard_manager import ClipboardError


@pytest_asyncio.fixture
async def event_bus():
    bus = EventBus(enable_metrics=True)
    yield bus
    await bus.shutdown(timeout=1.0)


class FakeClipboard:
    """In-memory clipboard with injectable failures."""

    def __init__(self, text=""):
        self.text = text
        self.read_error = None
        self.write_error = None
        self.writes = []
        self.shut_down = False

    async def read_text(self):
        if self.read_error:
            raise self.read_error
        return self.text

    async def write_text(self, text):
        if self.write_error:
            raise self.write_error
        self.writes.append(text)
        self.text = text

    async def has_text(self):
        try:
            return bool(await self.read_text())
        except ClipboardError:
            return False

    def shutdown(self):
        self.shut_down = True


class RecordingNotifications:
    """Collects notifications as (kind, message) tuples."""

    def __init__(self):
        self.sent = []

    async def notify_success(self, message="Text rewritten successfully!"):
        self.sent.append(("success", message))

    async def notify_warning(self, message):
        self.sent.append(("warning", message))

    async def notify_error(self, message):
        self.sent.append(("error", message))


class FakeTray:
    def __init__(self):
        self.statuses = []
        self.icon_states = []

    def set_status(self, text, is_processing=False, icon_state=None):
        self.statuses.append((text, is_processing))
        self.icon_states.append(icon_state)


class FakeHotkeyHandler:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.initialized = False
        self.shutdown_calls = 0
        self.last_error = None if succeed else "listener refused"

    async def initialize(self):
        self.initialized = self.succeed
        return self.succeed

    def is_handler_active(self):
        return self.initialized and self.shutdown_calls == 0

    async def shutdown(self):
        self.shutdown_calls += 1


class GatedRewriteClient:
    """Rewrite client that blocks until ``gate`` is set."""

    def __init__(self, result="rewritten"):
        self.result = result
        self.gate = asyncio.Event()
        self.calls = 0
        self.closed = False

    async def initialize(self):
        return True

    async def rewrite(self, text, api_key, model, system_prompt, user_prompt_template):
        self.calls += 1
        await self.gate.wait()
        return self.result

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_clipboard():
    return FakeClipboard()


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def fake_tray():
    return FakeTray()
