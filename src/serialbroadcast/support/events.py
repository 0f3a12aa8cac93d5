import threading
from queue import Queue


class EventSource(object):
    """
    A list of listeners that are called with each event fired.
    Listeners may be added or removed from any thread; firing iterates over a snapshot.
    """

    def __init__(self):
        self._handlers = ()
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            self._handlers = self._handlers + (handler,)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                handlers = list(self._handlers)
                handlers.remove(handler)
                self._handlers = tuple(handlers)
        return self

    def handlers(self):
        return self._handlers

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        self._fire_all(events)

    def _fire_all(self, events):
        for e in events:
            self._deliver(e)

    def _fire(self, *args, **kwargs):
        self._deliver(*args, **kwargs)

    def _deliver(self, *args, **kwargs):
        for handler in self._handlers:
            handler(*args, **kwargs)


class QueuedEventSource(EventSource):
    """
    the public fire() methods post events to the queue. These are delivered when a thread
    calls publish()
    """
    def __init__(self):
        super().__init__()
        self.event_queue = Queue()

    def _fire(self, event):
        self.event_queue.put(event)

    def _fire_all(self, events):
        for e in events:
            self.event_queue.put(e)

    def publish(self):
        """ publishes any queued events on the calling thread.
        :return: the number of events published
        """
        queue = self.event_queue
        events = []
        while not queue.empty():
            events.append(queue.get())
        for e in events:
            self._deliver(e)
        return len(events)
