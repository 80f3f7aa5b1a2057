"""Event notification channel for long-running operations.

Each ClientSession owns one EventNotifier: a bounded FIFO that background
operations publish to and a single streaming consumer drains. The consumer
polls on a fixed interval rather than blocking on receive so that a stop
request is always noticed within one interval.

Delivery is at-least-once: when the consumer's send fails, the event is
put back on the queue from a helper thread and the stream ends.
"""

import enum
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_PUSH_TIMEOUT = 5.0


class EventType(enum.Enum):
    INFO = 'info'
    ERROR = 'error'


class EventDeliveryError(Exception):
    """Streaming consumer failed to deliver an event."""


@dataclass(frozen=True)
class Event:
    """Outcome of (part of) an operation.

    Attributes:
        operation_id: Correlates the event with the request that started it
        event_type: Severity
        summary: One-line human summary
        details: Longer description or error message
    """
    operation_id: str
    event_type: EventType
    summary: str
    details: str = ''

    @classmethod
    def info(cls, operation_id: str, summary: str, details: str = '') -> 'Event':
        return cls(operation_id, EventType.INFO, summary, details)

    @classmethod
    def error(cls, operation_id: str, summary: str, details: str = '') -> 'Event':
        return cls(operation_id, EventType.ERROR, summary, details)

    @property
    def is_error(self) -> bool:
        return self.event_type is EventType.ERROR

    def to_dict(self) -> dict:
        return {
            'operation_id': self.operation_id,
            'event_type': self.event_type.value,
            'summary': self.summary,
            'details': self.details,
        }


class EventNotifier:
    """Bounded in-memory event queue with a polling stream consumer.

    Attributes:
        poll_interval: Seconds the consumer waits when the queue is empty
        push_timeout: Seconds a publisher waits for a free slot
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 push_timeout: float = DEFAULT_PUSH_TIMEOUT):
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=maxsize)
        self.poll_interval = poll_interval
        self.push_timeout = push_timeout
        self._requeue_threads: set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def publish(self, event: Event) -> bool:
        """Enqueue an event, waiting at most push_timeout for room.

        Returns:
            True if queued, False if dropped (channel full or closed)
        """
        if self._closed:
            logger.error("Event channel closed, dropping event for operation %s: %s",
                         event.operation_id, event.summary)
            return False
        try:
            self._queue.put(event, timeout=self.push_timeout)
        except queue.Full:
            logger.error("Event channel full, dropping event for operation %s: %s",
                         event.operation_id, event.summary)
            return False
        logger.debug("Queued event: %s", event)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Pop one event, or None if none arrived within timeout."""
        try:
            if timeout == 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _requeue(self, event: Event) -> None:
        """Re-enqueue an undelivered event from a helper thread."""
        def worker():
            try:
                self._queue.put(event, timeout=self.push_timeout)
            except queue.Full:
                logger.error("Unable to re-queue event for operation %s: channel full",
                             event.operation_id)
            finally:
                with self._lock:
                    self._requeue_threads.discard(threading.current_thread())

        thread = threading.Thread(target=worker, name='event-requeue', daemon=True)
        with self._lock:
            self._requeue_threads.add(thread)
        thread.start()

    def stream(self, send: Callable[[Event], None],
               stop: Optional[threading.Event] = None) -> None:
        """Deliver events to send() until stop is set.

        Args:
            send: Delivers one event to the subscriber; raising means the
                subscriber is gone
            stop: Cancellation flag checked between polls

        Raises:
            EventDeliveryError: If send() failed (the event was re-queued)
        """
        stop = stop or threading.Event()
        logger.debug("Waiting on event stream...")
        while not stop.is_set():
            event = self.get(timeout=0)
            if event is None:
                stop.wait(self.poll_interval)
                continue
            logger.debug("Sending event: %s", event)
            try:
                send(event)
            except Exception as e:
                logger.error("Unable to send event for operation %s: %s",
                             event.operation_id, e)
                self._requeue(event)
                raise EventDeliveryError(f"unable to send event: {e}") from e
        logger.debug("Event stream stopped")

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for pending re-queues without closing the channel."""
        with self._lock:
            threads = list(self._requeue_threads)
        for thread in threads:
            thread.join(timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting events and wait for pending re-queues.

        Only call once no producer can still publish.
        """
        self._closed = True
        self.drain(timeout)
