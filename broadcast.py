import json
import logging
import queue
import threading
from collections import defaultdict

logger = logging.getLogger(__name__)

VEHICLE_ENTERED = 'vehicle-entered'
VEHICLE_EXITED = 'vehicle-exited'


class Broadcaster:
    """
    In-process, per-owner fan-out of dashboard events.

    Delivery is fire-and-forget and at-most-once: nothing is queued for
    subscribers that join later, and a subscriber that raises is logged
    and skipped.
    """

    def __init__(self):
        self._subscribers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, owner_id, callback):
        """Register callback(event, payload) for one owner. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers[owner_id].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(owner_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(owner_id, None)

        return unsubscribe

    def subscriber_count(self, owner_id):
        with self._lock:
            return len(self._subscribers.get(owner_id, []))

    def publish(self, owner_id, event, payload):
        with self._lock:
            callbacks = list(self._subscribers.get(owner_id, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(event, payload)
                delivered += 1
            except Exception:
                logger.exception('Subscriber failed on %s for owner %s', event, owner_id)
        return delivered


def format_event(event, payload):
    """Encode one event as a text/event-stream frame."""
    return f'event: {event}\ndata: {json.dumps(payload)}\n\n'


class EventStream:
    """
    One dashboard connection's view of an owner's events.

    Subscribes on construction so nothing published after the connection
    opens is missed. Iterating yields event-stream frames, with a comment
    frame first and a keep-alive comment whenever `heartbeat` seconds pass
    quietly. `close()` unsubscribes; the WSGI server calls it when the
    client goes away.
    """

    def __init__(self, broadcaster, owner_id, heartbeat=15.0, max_pending=100):
        self.owner_id = owner_id
        self.heartbeat = heartbeat
        self._pending = queue.Queue(maxsize=max_pending)
        self._greeted = False
        self._unsubscribe = broadcaster.subscribe(owner_id, self._enqueue)

    def _enqueue(self, event, payload):
        try:
            self._pending.put_nowait((event, payload))
        except queue.Full:
            logger.warning('Dropping %s for slow stream of owner %s', event, self.owner_id)

    def __iter__(self):
        return self

    def __next__(self):
        if not self._greeted:
            self._greeted = True
            return ': connected\n\n'
        try:
            event, payload = self._pending.get(timeout=self.heartbeat)
        except queue.Empty:
            return ': keep-alive\n\n'
        return format_event(event, payload)

    def close(self):
        self._unsubscribe()
