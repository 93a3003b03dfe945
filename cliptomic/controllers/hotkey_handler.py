"""
Hotkey Handler Module

Global Shift+Control+Space detection using a system-wide pynput listener.
Key events arrive on the listener's own thread; detected triggers cross
into the asyncio loop through a bounded thread-safe queue and are emitted
on the EventBus in the order they were detected.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from queue import Empty, Full, Queue
from typing import Any, Callable, Optional

from .event_bus import EventBus
from .. import EventTypes, HOTKEY_DESCRIPTION

logger = logging.getLogger(__name__)

SHIFT_KEYS = frozenset({'shift', 'shift_l', 'shift_r'})
CTRL_KEYS = frozenset({'ctrl', 'ctrl_l', 'ctrl_r'})
TRIGGER_KEY = 'space'

# Seconds to wait for the OS hook to report ready
LISTENER_START_TIMEOUT = 5.0


@dataclass
class HotkeyEvent:
    """Thread-safe hotkey event data structure."""
    combination: str = HOTKEY_DESCRIPTION
    timestamp: float = field(default_factory=time.time)
    source: str = "hotkey"


class HotkeyRegistrationError(Exception):
    """Raised when the system-wide key hook cannot be installed."""
    pass


class ThreadSafeEventQueue:
    """
    Bounded queue bridging the pynput thread and the asyncio loop.

    Events beyond ``maxsize`` are dropped rather than blocking the OS
    callback thread.
    """

    def __init__(self, maxsize: int = 8):
        self._queue: Queue = Queue(maxsize=maxsize)
        self._shutdown = threading.Event()

    def put_event(self, event: HotkeyEvent) -> bool:
        """
        Put an event in the queue from any thread.

        Returns:
            True if event was queued
        """
        if self._shutdown.is_set():
            return False

        try:
            self._queue.put_nowait(event)
            return True
        except Full:
            logger.debug("Hotkey queue full, dropping trigger")
            return False

    def get_event(self) -> Optional[HotkeyEvent]:
        """Return the next queued event, or None if the queue is empty."""
        try:
            return self._queue.get_nowait()
        except Empty:
            return None

    def shutdown(self) -> None:
        """Refuse new events and discard pending ones."""
        self._shutdown.set()

        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break

    def __len__(self) -> int:
        return self._queue.qsize()


class HotkeyDetector:
    """
    Modifier state machine for Shift+Control+Space.

    Holding both modifiers and pressing Space yields one trigger per Space
    key-down; there is no debounce, auto-repeat re-triggers.
    """

    description = HOTKEY_DESCRIPTION

    def __init__(self):
        self.shift_pressed = False
        self.ctrl_pressed = False

    def key_down(self, key_name: str) -> bool:
        """
        Record a key press.

        Returns:
            True when this press completes the hotkey
        """
        if key_name in SHIFT_KEYS:
            self.shift_pressed = True
        elif key_name in CTRL_KEYS:
            self.ctrl_pressed = True
        elif key_name == TRIGGER_KEY:
            return self.shift_pressed and self.ctrl_pressed
        return False

    def key_up(self, key_name: str) -> None:
        """Record a key release."""
        if key_name in SHIFT_KEYS:
            self.shift_pressed = False
        elif key_name in CTRL_KEYS:
            self.ctrl_pressed = False

    def reset(self) -> None:
        self.shift_pressed = False
        self.ctrl_pressed = False


def key_to_name(key: Any) -> str:
    """
    Convert a pynput key into a lowercase name.

    ``Key`` members carry ``name`` (``shift_r``, ``space``); ``KeyCode``
    instances carry ``char``.
    """
    name = getattr(key, 'name', None)
    if name:
        return name.lower()

    char = getattr(key, 'char', None)
    if char == ' ':
        return TRIGGER_KEY
    if char:
        return char.lower()

    return ''


def _create_pynput_listener(on_press: Callable, on_release: Callable):
    """Create a system-wide, non-suppressing pynput keyboard listener."""
    # pynput binds to the display server at import time
    from pynput import keyboard

    return keyboard.Listener(
        on_press=on_press,
        on_release=on_release,
        suppress=False
    )


class HotkeyHandler:
    """
    Global hotkey handler with asynchronous event emission.

    Owns the OS-level listener, the detector state and the queue consumer
    task. ``shutdown`` releases the hook unconditionally.
    """

    def __init__(
        self,
        event_bus: EventBus,
        listener_factory: Optional[Callable] = None,
        queue_size: int = 8
    ):
        """
        Initialize HotkeyHandler.

        Args:
            event_bus: EventBus instance for event emission
            listener_factory: Callable(on_press, on_release) returning a
                started-able listener (pynput by default)
            queue_size: Capacity of the cross-thread trigger queue
        """
        self.event_bus = event_bus
        self._listener_factory = listener_factory or _create_pynput_listener

        self.detector = HotkeyDetector()
        self._event_queue = ThreadSafeEventQueue(maxsize=queue_size)
        self._listener = None
        self._consumer_task: Optional[asyncio.Task] = None

        self._initialized = False
        self._shutdown_requested = False
        self.trigger_count = 0
        self.last_error: Optional[str] = None

        logger.debug("HotkeyHandler initialized")

    @property
    def description(self) -> str:
        return self.detector.description

    async def initialize(self) -> bool:
        """
        Install the global key hook and start forwarding triggers.

        Returns:
            True if the hook is active; False leaves the rest of the
            application running without the hotkey
        """
        if self._initialized:
            logger.warning("HotkeyHandler already initialized")
            return True

        try:
            await self._start_listener()
        except HotkeyRegistrationError as e:
            self.last_error = str(e)
            logger.error("Hotkey registration failed: %s", e)
            await self.event_bus.emit(
                EventTypes.HOTKEY_REGISTRATION_FAILED,
                {'combination': self.description, 'error_message': str(e)},
                source="HotkeyHandler"
            )
            return False

        self._consumer_task = asyncio.create_task(self._process_hotkey_events())
        self._initialized = True

        await self.event_bus.emit(
            EventTypes.HOTKEY_REGISTRATION_SUCCESS,
            {'combination': self.description},
            source="HotkeyHandler"
        )

        logger.info("Global hotkey registered: %s", self.description)
        return True

    async def _start_listener(self) -> None:
        """
        Create and start the OS listener, waiting until it reports ready.

        Raises:
            HotkeyRegistrationError: If the hook cannot be installed
        """
        try:
            listener = self._listener_factory(self._on_key_press, self._on_key_release)
            listener.start()
        except Exception as e:
            raise HotkeyRegistrationError(f"Failed to start key listener: {e}") from e

        self._listener = listener

        try:
            await self._wait_until_ready(listener)
        except HotkeyRegistrationError:
            self._stop_listener()
            raise

        # macOS reports missing accessibility permission here
        if getattr(listener, 'IS_TRUSTED', True) is False:
            self._stop_listener()
            raise HotkeyRegistrationError(
                "Process is not trusted for input monitoring; grant accessibility permission"
            )

    async def _wait_until_ready(self, listener) -> None:
        """
        Wait for the listener's ready signal without tying up the loop.

        pynput's ``wait()`` never returns if the listener thread dies before
        it is ready, so it runs on a daemon thread that is polled here and
        abandoned on timeout.

        Raises:
            HotkeyRegistrationError: If the listener is not ready in time
        """
        wait = getattr(listener, 'wait', None)
        if wait is None:
            return

        ready = threading.Event()
        errors = []

        def wait_for_listener():
            try:
                wait()
            except Exception as e:
                errors.append(e)
            ready.set()

        threading.Thread(
            target=wait_for_listener,
            name="hotkey-listener-ready",
            daemon=True
        ).start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + LISTENER_START_TIMEOUT
        while not ready.is_set():
            if loop.time() >= deadline:
                raise HotkeyRegistrationError(
                    f"Key listener did not become ready within {LISTENER_START_TIMEOUT:.1f}s"
                )
            await asyncio.sleep(0.05)

        if errors:
            raise HotkeyRegistrationError(f"Key listener did not start: {errors[0]}")

    def _stop_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return

        try:
            listener.stop()
        except Exception as e:
            logger.error("Error stopping key listener: %s", e)

    def _on_key_press(self, key) -> None:
        """Listener-thread callback for key-down."""
        try:
            if self.detector.key_down(key_to_name(key)):
                if self._event_queue.put_event(HotkeyEvent()):
                    logger.debug("Hotkey queued for processing: %s", self.description)
        except Exception as e:
            logger.error("Error handling key press: %s", e)

    def _on_key_release(self, key) -> None:
        """Listener-thread callback for key-up."""
        try:
            self.detector.key_up(key_to_name(key))
        except Exception as e:
            logger.error("Error handling key release: %s", e)

    async def _process_hotkey_events(self) -> None:
        """Drain the trigger queue into the EventBus until shutdown."""
        while not self._shutdown_requested:
            try:
                event = self._event_queue.get_event()

                if event is None:
                    await asyncio.sleep(0.02)
                    continue

                await self._emit_trigger(event)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error processing hotkey events: %s", e)
                await asyncio.sleep(0.1)

    async def _emit_trigger(self, event: HotkeyEvent) -> None:
        self.trigger_count += 1
        await self.event_bus.emit(
            EventTypes.HOTKEY_REWRITE_TRIGGERED,
            {
                'combination': event.combination,
                'timestamp': event.timestamp
            },
            source="HotkeyHandler"
        )

    def is_handler_active(self) -> bool:
        return self._initialized and self._listener is not None and not self._shutdown_requested

    async def shutdown(self) -> None:
        """Release the key hook and stop the consumer. Best effort, never raises."""
        if self._shutdown_requested:
            return

        logger.debug("Shutting down HotkeyHandler")
        self._shutdown_requested = True

        self._event_queue.shutdown()
        self._stop_listener()
        self.detector.reset()

        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("Hotkey consumer ended with error: %s", e)
            self._consumer_task = None

        if not self.event_bus.is_shutdown():
            await self.event_bus.emit(
                EventTypes.HOTKEY_HANDLER_SHUTDOWN,
                source="HotkeyHandler"
            )

        logger.debug("HotkeyHandler shutdown complete")

    def __str__(self) -> str:
        return (f"HotkeyHandler(initialized={self._initialized}, "
                f"active={self.is_handler_active()}, triggers={self.trigger_count})")
