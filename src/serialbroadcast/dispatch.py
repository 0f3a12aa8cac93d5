"""
Runs message handlers concurrently, with a bound on how many run at once.
"""
import logging
import threading

from serialbroadcast.errors import HandlerError, UnroutableMessage
from serialbroadcast.registry import HandlerRegistry
from serialbroadcast.support.events import EventSource
from serialbroadcast.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)


class FailureMode:
    """ What a scheduler does with handler failures and unroutable messages. """
    DROP = 'drop'
    LOG = 'log'
    FORWARD = 'forward'

    all = (DROP, LOG, FORWARD)


class DispatchFailureEvent(CommonEqualityMixin):
    """ Posted to the failure listeners of a scheduler in FORWARD mode. """
    def __init__(self, source, frame, error):
        """
        :param source: the DispatchScheduler
        :param frame: the message bytes that could not be handled
        :param error: a HandlerError, whose cause is the handler exception, or an UnroutableMessage
        """
        self.source = source
        self.frame = frame
        self.error = error


class DispatchScheduler:
    """
    Takes frames in order and hands each one to its handler on a worker thread.

    At most `parallelism` handlers run at the same time. When every worker slot is taken,
    the scheduler stops taking frames until a handler finishes, so slow handlers throttle
    intake. Handlers complete in any order.

    A failing handler or an unroutable message never stops the scheduler. Failures are
    dropped, logged or forwarded to the `failures` listeners, depending on the failure mode.
    """

    def __init__(self, registry: HandlerRegistry, parallelism=4, failure_mode=FailureMode.LOG,
                 encoding='utf-8', failures: EventSource=None):
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1: %s" % parallelism)
        if failure_mode not in FailureMode.all:
            raise ValueError("unknown failure mode: %s" % failure_mode)
        self.registry = registry
        self.parallelism = parallelism
        self.failure_mode = failure_mode
        self.encoding = encoding
        self.failures = failures if failures is not None else EventSource()
        self._slots = threading.BoundedSemaphore(parallelism)
        self._lock = threading.Condition()
        self._stop_event = threading.Event()
        self._in_flight = 0
        self._active = 0
        self.received = 0
        self.handled = 0
        self.failed = 0
        self.unroutable = 0
        self.max_active = 0

    @classmethod
    def from_config(cls, registry, config, failures=None):
        return cls(registry, config.parallelism, config.failure_mode, config.encoding, failures)

    def run(self, frames):
        """
        Dispatches every frame from the iterable, in order, then waits for the handlers still running.
        The registry is sealed for the duration.
        :return: the number of frames taken
        """
        count = 0
        self._stop_event.clear()
        self.registry.seal()
        try:
            for frame in frames:
                self._slots.acquire()
                self._start(frame)
                count += 1
                if self._stop_event.is_set():
                    break
        finally:
            self.join()
            self.registry.unseal()
        return count

    def stop(self):
        """ stops taking frames once the frame being taken now is dispatched """
        self._stop_event.set()

    def join(self, timeout=None):
        """
        Waits until no handlers are running.
        :return: True if none are running
        """
        with self._lock:
            return self._lock.wait_for(lambda: self._in_flight == 0, timeout)

    @property
    def in_flight(self):
        return self._in_flight

    def _start(self, frame):
        with self._lock:
            self._in_flight += 1
            self.received += 1
        try:
            worker = threading.Thread(target=self._work, args=(frame,), daemon=True)
            worker.start()
        except Exception:
            self._finished()
            raise

    def _work(self, frame):
        try:
            self.dispatch(frame)
        finally:
            self._finished()

    def _finished(self):
        with self._lock:
            self._in_flight -= 1
            self._lock.notify_all()
        self._slots.release()

    def dispatch(self, frame: bytes) -> bool:
        """
        Resolves the handler for the frame and runs it on the calling thread.
        :return: True if the handler ran without raising
        """
        handler = self.registry.resolve(frame)
        if handler is None:
            with self._lock:
                self.unroutable += 1
            prefix = self.registry.prefix(frame)
            self._report(frame, UnroutableMessage("no handler for '%s'" % prefix, frame, prefix))
            return False

        message = frame.decode(self.encoding, errors='replace')
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            handler(message)
        except Exception as e:
            error = HandlerError("error handling message %r: %s" % (message, e), frame)
            error.__cause__ = e
            with self._lock:
                self.failed += 1
            self._report(frame, error)
            return False
        finally:
            with self._lock:
                self._active -= 1
        with self._lock:
            self.handled += 1
        return True

    def _report(self, frame, error):
        mode = self.failure_mode
        if mode == FailureMode.LOG:
            if isinstance(error, UnroutableMessage):
                logger.warning("unknown command: %r", frame)
            else:
                logger.error("%s", error, exc_info=error.__cause__)
        elif mode == FailureMode.FORWARD:
            try:
                self.failures.fire(DispatchFailureEvent(self, frame, error))
            except Exception as e:
                logger.exception("failure listener raised %s", e)
