#!/usr/bin/env python3
"""Tests for events.py - the per-session event channel."""

import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from events import Event, EventDeliveryError, EventNotifier, EventType


class TestEvent:
    """Test Event construction."""

    def test_info(self):
        event = Event.info('op-1', 'deployed', 'all good')

        assert event.event_type is EventType.INFO
        assert not event.is_error

    def test_error(self):
        event = Event.error('op-1', 'failed')

        assert event.is_error
        assert event.details == ''

    def test_to_dict(self):
        assert Event.error('op-1', 'failed', 'boom').to_dict() == {
            'operation_id': 'op-1',
            'event_type': 'error',
            'summary': 'failed',
            'details': 'boom',
        }


class TestPublish:
    """Test bounded publishing."""

    def test_fifo(self):
        notifier = EventNotifier()
        for i in range(3):
            notifier.publish(Event.info(f'op-{i}', 'done'))

        ids = [notifier.get(timeout=0).operation_id for _ in range(3)]
        assert ids == ['op-0', 'op-1', 'op-2']

    def test_full_channel_drops_after_timeout(self, caplog):
        """A publisher waits push_timeout, then drops and logs an error."""
        notifier = EventNotifier(maxsize=1, push_timeout=0.05)
        assert notifier.publish(Event.info('op-1', 'first'))

        started = time.monotonic()
        assert notifier.publish(Event.info('op-2', 'second')) is False
        assert time.monotonic() - started >= 0.04

        assert notifier.qsize() == 1
        assert 'dropping event for operation op-2' in caplog.text

    def test_publish_after_close_dropped(self):
        notifier = EventNotifier()
        notifier.close()

        assert notifier.closed
        assert notifier.publish(Event.info('op-1', 'late')) is False

    def test_get_empty(self):
        assert EventNotifier().get(timeout=0) is None
        assert EventNotifier().get(timeout=0.01) is None


class TestStream:
    """Test the polling consumer."""

    def test_delivers_until_stopped(self):
        notifier = EventNotifier(poll_interval=0.01)
        for i in range(3):
            notifier.publish(Event.info(f'op-{i}', 'done'))
        received = []
        stop = threading.Event()

        def send(event):
            received.append(event.operation_id)
            if len(received) == 3:
                stop.set()

        notifier.stream(send, stop)

        assert received == ['op-0', 'op-1', 'op-2']

    def test_receives_events_published_later(self):
        """Events published while the stream is idle are delivered on a later poll."""
        notifier = EventNotifier(poll_interval=0.01)
        stop = threading.Event()
        received = []

        def send(event):
            received.append(event)
            stop.set()

        publisher = threading.Timer(0.05, notifier.publish, args=(Event.info('op-1', 'done'),))
        publisher.start()
        notifier.stream(send, stop)
        publisher.join()

        assert [e.operation_id for e in received] == ['op-1']

    def test_stop_observed_while_idle(self):
        notifier = EventNotifier(poll_interval=0.01)
        stop = threading.Event()
        threading.Timer(0.05, stop.set).start()

        started = time.monotonic()
        notifier.stream(lambda event: None, stop)

        assert time.monotonic() - started < 1.0

    def test_failed_send_requeues(self):
        """An event that could not be sent is delivered to the next consumer."""
        notifier = EventNotifier(poll_interval=0.01)
        notifier.publish(Event.error('op-1', 'failed'))

        def broken_send(event):
            raise ConnectionError('subscriber gone')

        with pytest.raises(EventDeliveryError, match='subscriber gone'):
            notifier.stream(broken_send)

        notifier.close(timeout=1.0)
        redelivered = notifier.get(timeout=1.0)
        assert redelivered is not None
        assert redelivered.operation_id == 'op-1'

    def test_drain_keeps_channel_open(self):
        """drain() waits for re-queues but later events are still accepted."""
        notifier = EventNotifier(poll_interval=0.01)
        notifier.publish(Event.info('op-1', 'first'))

        def broken_send(event):
            raise ConnectionError('subscriber gone')

        with pytest.raises(EventDeliveryError):
            notifier.stream(broken_send)
        notifier.drain(timeout=1.0)

        assert not notifier.closed
        assert notifier.publish(Event.info('op-1', 'second'))
        assert notifier.qsize() == 2
