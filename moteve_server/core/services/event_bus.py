"""
Event bus implementation for publish-subscribe messaging.

Sequence lifecycle events flow through here, so the upload manager never
calls the finalizer directly.
"""

import asyncio
import fnmatch
import logging
import time
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Union

from ..domain.events import Event, EventPriority
from ..interfaces.lifecycle import IComponent
from ..interfaces.messaging import IEventBus

logger = logging.getLogger(__name__)


class EventSubscription:
    """Represents an event subscription."""

    def __init__(self, subscription_id: str, event_pattern: str,
                 handler: Callable[[Event], Any], priority: EventPriority):
        self.subscription_id = subscription_id
        self.event_pattern = event_pattern
        self.handler = handler
        self.priority = priority
        self.call_count = 0
        self.last_called: Optional[float] = None
        self.error_count = 0


class EventBus(IComponent, IEventBus):
    """
    Priority-queue event bus with a pool of worker tasks.

    Handlers run on the workers, never inside ``publish``. A failing
    handler is counted and logged; other handlers still run.
    """

    def __init__(self, max_workers: int = 4, queue_size: int = 1000,
                 drain_timeout: float = 10.0):
        self._subscriptions: Dict[str, List[EventSubscription]] = defaultdict(list)
        self._wildcard_subscriptions: List[EventSubscription] = []
        self._event_queue: asyncio.PriorityQueue[Any] = asyncio.PriorityQueue(maxsize=queue_size)
        self._workers: List[asyncio.Task[Any]] = []
        self._max_workers = max_workers
        self._drain_timeout = drain_timeout
        self._running = False

        self._metrics: Dict[str, Any] = {
            'events_published': 0,
            'events_processed': 0,
            'events_failed': 0,
            'subscriptions_count': 0,
            'processing_times': [],
        }

    @property
    def name(self) -> str:
        return "EventBus"

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the event bus and worker tasks."""
        if self._running:
            return

        logger.info(f"Starting event bus with {self._max_workers} workers")

        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_process())
            for _ in range(self._max_workers)
        ]

    async def stop(self) -> None:
        """Stop the event bus and cancel its workers."""
        if not self._running:
            return

        logger.info("Stopping event bus...")

        try:
            await asyncio.wait_for(self.join(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping {self._event_queue.qsize()} queued events on shutdown")

        self._running = False

        for worker in self._workers:
            worker.cancel()

        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)

        self._workers.clear()
        self._subscriptions.clear()
        self._wildcard_subscriptions.clear()

        logger.info("Event bus stopped")

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': True,
            'status': 'running' if self._running else 'stopped',
            'details': {
                'workers_count': len(self._workers),
                'subscriptions_count': self._metrics['subscriptions_count'],
                'queue_size': self._event_queue.qsize(),
                'events_published': self._metrics['events_published'],
                'events_processed': self._metrics['events_processed'],
                'events_failed': self._metrics['events_failed']
            }
        }

    async def publish(self, event: Union[Event, str], data: Any = None,
                      priority: EventPriority = EventPriority.NORMAL) -> str:
        """Publish an event to the event bus."""
        if not self._running:
            raise RuntimeError("Event bus is not running")

        if isinstance(event, str):
            event = Event(name=event, data=data, priority=priority)

        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(f"Event queue full, dropping event: {event.name}")
            raise RuntimeError("Event queue is full")

        self._metrics['events_published'] += 1
        logger.debug(f"Published event: {event.name} (ID: {event.event_id})")
        return event.event_id

    async def subscribe(self, event_name: str, handler: Callable[[Event], Any],
                        priority: EventPriority = EventPriority.NORMAL) -> str:
        """Subscribe to events with the given name pattern."""
        subscription = EventSubscription(
            subscription_id=str(uuid.uuid4()),
            event_pattern=event_name,
            handler=handler,
            priority=priority
        )

        if '*' in event_name or '?' in event_name:
            self._wildcard_subscriptions.append(subscription)
            self._wildcard_subscriptions.sort(key=lambda s: s.priority.value, reverse=True)
        else:
            self._subscriptions[event_name].append(subscription)
            self._subscriptions[event_name].sort(key=lambda s: s.priority.value, reverse=True)

        self._metrics['subscriptions_count'] += 1

        logger.debug(f"Added subscription for '{event_name}' (ID: {subscription.subscription_id})")
        return subscription.subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Unsubscribe using subscription ID."""
        buckets = list(self._subscriptions.values()) + [self._wildcard_subscriptions]
        for subscriptions in buckets:
            for i, subscription in enumerate(subscriptions):
                if subscription.subscription_id == subscription_id:
                    subscriptions.pop(i)
                    self._metrics['subscriptions_count'] -= 1
                    return True

        return False

    async def get_metrics(self) -> Dict[str, Any]:
        times = self._metrics['processing_times']
        avg_processing_time = sum(times) / len(times) if times else 0.0

        return {
            'events_published': self._metrics['events_published'],
            'events_processed': self._metrics['events_processed'],
            'events_failed': self._metrics['events_failed'],
            'subscriptions_count': self._metrics['subscriptions_count'],
            'queue_size': self._event_queue.qsize(),
            'avg_processing_time': avg_processing_time,
        }

    async def join(self) -> None:
        """Wait until every published event has been processed."""
        if not self._workers:
            return
        await self._event_queue.join()

    async def _worker_process(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._event_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self._process_event(event)
            finally:
                self._event_queue.task_done()

    async def _process_event(self, event: Event) -> None:
        """Call every handler matching the event name."""
        start_time = time.time()

        matching = list(self._subscriptions.get(event.name, []))
        matching.extend(
            s for s in self._wildcard_subscriptions
            if fnmatch.fnmatch(event.name, s.event_pattern)
        )
        matching.sort(key=lambda s: s.priority.value, reverse=True)

        for subscription in matching:
            try:
                result = subscription.handler(event)
                if asyncio.iscoroutine(result):
                    await result

                subscription.call_count += 1
                subscription.last_called = time.time()

            except Exception as e:
                subscription.error_count += 1
                self._metrics['events_failed'] += 1
                logger.error(f"Handler error for event {event.name}: {e}")

        self._metrics['events_processed'] += 1

        times = self._metrics['processing_times']
        times.append(time.time() - start_time)
        if len(times) > 1000:
            del times[:-1000]
