"""
EventBus Module

In-process publish/subscribe channel between the hotkey thread, the
rewrite pipeline, the tray and the settings UI.

``emit`` queues an event and returns at once; a single drain task delivers
queued events in emission order. ``emit_and_wait`` dispatches immediately
and returns the handlers' results, which shutdown uses so that listeners
finish before components are torn down.
"""

import asyncio
import logging
import time
import traceback
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import uuid4

from .. import EventTypes

logger = logging.getLogger(__name__)


@dataclass
class EventData:
    """One delivered event."""
    event_type: str
    data: Any = None
    source: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class EventSubscription:
    subscription_id: str
    event_type: str
    handler: Callable
    priority: int = 0
    once: bool = False


class EventBusError(Exception):
    """Raised for invalid subscriptions."""
    pass


class EventBus:
    """
    Asynchronous event channel.

    Handlers receive an ``EventData`` and may be plain callables or
    coroutine functions. Higher priority handlers run first. A handler that
    raises is logged and reported as ``error.occurred``; the remaining
    handlers still run.
    """

    def __init__(self, max_queue_size: int = 1000, enable_metrics: bool = True):
        """
        Args:
            max_queue_size: Events held for delivery before new ones are dropped
            enable_metrics: Whether to count emissions, calls and failures
        """
        self._subscribers: Dict[str, List[EventSubscription]] = defaultdict(list)
        self._pending: deque = deque()
        self._max_queue_size = max_queue_size
        self._draining = False
        self._shutdown_requested = False
        self._drain_tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

        self._enable_metrics = enable_metrics
        self._counters: Dict[str, int] = {
            'events_emitted': 0,
            'events_processed': 0,
            'handlers_called': 0,
            'handler_errors': 0,
            'queue_overflows': 0
        }

        logger.debug("EventBus created (max_queue_size=%d)", max_queue_size)

    def _count(self, name: str) -> None:
        if self._enable_metrics:
            self._counters[name] += 1

    async def subscribe(
        self,
        event_type: str,
        handler: Callable,
        priority: int = 0,
        once: bool = False
    ) -> str:
        """
        Register a handler for an event type.

        Args:
            event_type: Event name, usually an ``EventTypes`` constant
            handler: Callable taking one ``EventData``
            priority: Higher values are called first
            once: Remove the subscription after its first successful call

        Returns:
            Subscription ID for ``unsubscribe``

        Raises:
            EventBusError: If handler is not callable
        """
        if not callable(handler):
            raise EventBusError(f"Handler must be callable, got {type(handler)}")

        subscription = EventSubscription(
            subscription_id=str(uuid4()),
            event_type=event_type,
            handler=handler,
            priority=priority,
            once=once
        )

        async with self._lock:
            handlers = self._subscribers[event_type]
            handlers.append(subscription)
            handlers.sort(key=lambda s: s.priority, reverse=True)

        logger.debug("Subscribed to '%s' (priority %d)", event_type, priority)
        return subscription.subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns False if the ID is unknown."""
        async with self._lock:
            for event_type, handlers in self._subscribers.items():
                remaining = [s for s in handlers if s.subscription_id != subscription_id]
                if len(remaining) != len(handlers):
                    self._subscribers[event_type] = remaining
                    logger.debug("Unsubscribed from '%s'", event_type)
                    return True

        logger.warning("Subscription ID not found: %s", subscription_id)
        return False

    async def emit(self, event_type: str, data: Any = None, source: Optional[str] = None) -> None:
        """Queue an event for in-order delivery. Dropped after shutdown or on overflow."""
        if self._shutdown_requested:
            logger.warning("Ignoring event emitted during shutdown: %s", event_type)
            return

        if len(self._pending) >= self._max_queue_size:
            self._count('queue_overflows')
            logger.warning("Event queue full, dropping event: %s", event_type)
            return

        self._pending.append(EventData(event_type=event_type, data=data, source=source))
        self._count('events_emitted')

        if not self._draining:
            task = asyncio.create_task(self._drain())
            self._drain_tasks.add(task)
            task.add_done_callback(self._drain_tasks.discard)

        logger.debug("Emitted event: %s", event_type)

    async def emit_and_wait(
        self,
        event_type: str,
        data: Any = None,
        source: Optional[str] = None,
        timeout: float = 5.0
    ) -> List[Any]:
        """
        Dispatch an event now, bypassing the queue.

        Returns:
            Return values of the handlers that succeeded

        Raises:
            asyncio.TimeoutError: If the handlers take longer than timeout
        """
        event = EventData(event_type=event_type, data=data, source=source)
        return await asyncio.wait_for(self._dispatch(event), timeout=timeout)

    async def _drain(self) -> None:
        if self._draining:
            return

        self._draining = True
        try:
            while self._pending and not self._shutdown_requested:
                await self._dispatch(self._pending.popleft())
                self._count('events_processed')
                await asyncio.sleep(0)
        except Exception as e:
            logger.error("Error delivering queued events: %s", e, exc_info=True)
        finally:
            self._draining = False

    async def _dispatch(self, event: EventData) -> List[Any]:
        async with self._lock:
            handlers = list(self._subscribers.get(event.event_type, ()))

        results = []
        finished_once = []

        for subscription in handlers:
            try:
                result = subscription.handler(event)
                if asyncio.iscoroutine(result):
                    result = await result
            except Exception as e:
                self._count('handler_errors')
                await self._report_handler_error(event, subscription, e)
                continue

            self._count('handlers_called')
            results.append(result)
            if subscription.once:
                finished_once.append(subscription.subscription_id)

        for subscription_id in finished_once:
            await self.unsubscribe(subscription_id)

        return results

    async def _report_handler_error(self, event: EventData, subscription: EventSubscription, error: Exception) -> None:
        logger.error("Handler for '%s' failed: %s", event.event_type, error)
        logger.debug("Handler failure details:", exc_info=True)

        # Failures inside error handlers are only logged
        if event.event_type == EventTypes.ERROR_OCCURRED:
            return

        await self.emit(
            EventTypes.ERROR_OCCURRED,
            {
                'error': str(error),
                'original_event': event.event_type,
                'handler': getattr(subscription.handler, '__qualname__', repr(subscription.handler)),
                'traceback': traceback.format_exc()
            },
            source="EventBus"
        )

    async def get_metrics(self) -> Dict[str, Any]:
        """Counters plus queue depth and subscriber counts; empty when metrics are off."""
        if not self._enable_metrics:
            return {}

        async with self._lock:
            subscription_counts = {
                event_type: len(handlers)
                for event_type, handlers in self._subscribers.items()
                if handlers
            }

        return {
            **self._counters,
            'queue_size': len(self._pending),
            'subscription_counts': subscription_counts,
        }

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Let queued events drain for up to timeout seconds, then refuse new ones."""
        deadline = time.monotonic() + timeout
        while self._pending and time.monotonic() < deadline:
            await asyncio.sleep(0.05)

        self._shutdown_requested = True

        async with self._lock:
            self._subscribers.clear()
            self._pending.clear()

        logger.info("EventBus shut down")

    def is_shutdown(self) -> bool:
        return self._shutdown_requested


_global_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide bus, created on first use."""
    global _global_event_bus
    if _global_event_bus is None:
        _global_event_bus = EventBus()
    return _global_event_bus
