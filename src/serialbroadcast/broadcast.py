"""
A serial session: frames read from one transport are dispatched to handlers by prefix.
"""
import logging
import os
import threading
import time
from queue import Full, Queue

from serialbroadcast.catalog import PortAvailableEvent, PortUnavailableEvent, SerialPortCatalog
from serialbroadcast.config.config import BroadcastConfig
from serialbroadcast.dispatch import DispatchFailureEvent, DispatchScheduler
from serialbroadcast.errors import TransportReadError
from serialbroadcast.framing import FrameReader
from serialbroadcast.probing import AutoDetector
from serialbroadcast.registry import HandlerRegistry
from serialbroadcast.support.events import QueuedEventSource
from serialbroadcast.support.loop import OnceLoop
from serialbroadcast.transport.base import Transport, TracingTransport
from serialbroadcast.transport.serial_transport import SerialTransportFactory
from serialbroadcast.verification import verifier_from_config

logger = logging.getLogger(__name__)


class Broadcast:
    """
    Reads frames from a transport and dispatches them to the registered handlers.

    The read loop puts frames on a bounded queue, and the dispatch loop takes them off in order
    and runs the handlers with bounded concurrency. Both loops can run on the caller's threads,
    via read() and handle_messages(), or in the background via start() and stop().

    Register handlers before dispatch starts. Failures from handlers are queued on `failures`
    when the failure mode is 'forward', and delivered to its listeners by publish_failures().
    """

    def __init__(self, transport: Transport, config: BroadcastConfig=None, registry: HandlerRegistry=None):
        self.config = config = config if config is not None else BroadcastConfig()
        self.transport = TracingTransport(transport, logger) if config.trace else transport
        self.reader = FrameReader.from_config(config)
        self.messages = Queue(config.queue_size)
        self.registry = registry if registry is not None else HandlerRegistry(config.encoding)
        self.failures = QueuedEventSource()
        self.scheduler = DispatchScheduler.from_config(self.registry, config, self.failures)
        self.error = None                   # the read error that ended the session, if any
        self._stop_event = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False
        self._read_loop = OnceLoop(self.read, name="read %s" % transport.name, log=logger)
        self._handle_loop = OnceLoop(self.handle_messages, name="dispatch %s" % transport.name, log=logger)

    @classmethod
    def detect(cls, catalog=None, verifier=None, config: BroadcastConfig=None, factory=None,
               cancel_event=None, max_rounds=None):
        """
        Finds the port with the device attached and opens a session on it.
        :param catalog: lists the candidate ports. Defaults to all local serial ports.
        :param verifier: recognises the device. Defaults to the configured pattern.
        :param factory: opens transports. Defaults to serial ports with the configured line settings.
        :return: a Broadcast on the device port, or None if max_rounds passed without finding it
        :raises ProbeCancelled: when cancel_event is set before the device is found
        """
        config = config if config is not None else BroadcastConfig()
        catalog = catalog if catalog is not None else SerialPortCatalog()
        verifier = verifier if verifier is not None else verifier_from_config(config)
        factory = factory if factory is not None else SerialTransportFactory(config)
        detector = AutoDetector.from_config(catalog, factory, verifier, config, max_rounds)
        transport = detector.detect(cancel_event)
        return cls(transport, config) if transport is not None else None

    def add_handler(self, prefix, handler):
        self.registry.register(prefix, handler)

    def set_default_handler(self, handler):
        self.registry.set_default(handler)

    def read(self):
        """
        Reads frames from the transport onto the message queue until the end of the stream, a read
        error or stop(). The transport is closed when reading ends.
        :return: the number of frames read
        :raises TransportReadError: when reading fails
        """
        try:
            return self.reader.read_from(self.transport, self._enqueue, self._stop_event, self.config.poll_interval)
        except TransportReadError as e:
            logger.error("reading %s failed: %s", self.transport.name, e)
            self.error = e
            raise
        finally:
            self._end_messages()
            self.close()

    def handle_messages(self):
        """
        Dispatches queued frames until reading ends or stop() is called.
        :return: the number of frames dispatched
        """
        return self.scheduler.run(iter(self.messages.get, None))

    def _enqueue(self, frame):
        while not self._stop_event.is_set():
            try:
                self.messages.put(frame, timeout=self.config.poll_interval)
                return
            except Full:
                pass

    def _end_messages(self):
        """ posts the sentinel that ends handle_messages() """
        while True:
            try:
                self.messages.put(None, timeout=self.config.poll_interval)
                return
            except Full:
                if self._stop_event.is_set():
                    # the dispatch loop stops after its next frame
                    return

    def write(self, data):
        """
        Writes to the transport. Errors are raised to the caller and the write is not retried.
        """
        return self.transport.write(data)

    def publish_failures(self):
        """ delivers queued dispatch failures to the `failures` listeners on the calling thread """
        return self.failures.publish()

    def start(self):
        self._handle_loop.start()
        self._read_loop.start()

    def stop(self, timeout=None):
        """ stops both loops, waits for running handlers and closes the transport """
        self._stop_event.set()
        self.scheduler.stop()
        self._read_loop.stop(timeout)
        self._end_messages()
        self._handle_loop.stop(timeout)
        self.close()

    def join(self, timeout=None):
        """ waits for the background loops to finish, which happens at the end of the stream """
        for loop in (self._read_loop, self._handle_loop):
            thread = loop.background_thread
            if thread is not None:
                thread.join(timeout)

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.transport.close()

    @property
    def closed(self):
        return self._closed

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def log_port_events(event):
    if isinstance(event, PortAvailableEvent):
        logger.info("port available %s: %s", event.key, getattr(event.resource, 'description', ''))
    elif isinstance(event, PortUnavailableEvent):
        logger.info("port removed %s", event.key)


def log_failure(event: DispatchFailureEvent):
    logger.warning("failed to handle %r: %s", event.frame, event.error)


def monitor(directory=None):
    """
    A helper to watch a device for manual testing. Waits for a port whose output matches the configured
    pattern, then logs every message it sends.
    Settings are read from serialbroadcast.cfg in the given directory, by default the working directory.
    """
    logging.getLogger('serialbroadcast').setLevel(logging.INFO)
    logging.getLogger('serialbroadcast').addHandler(logging.StreamHandler())

    config = BroadcastConfig.from_file(directory=directory or os.getcwd())
    config.failure_mode = 'forward'
    catalog = SerialPortCatalog()
    catalog.listeners += log_port_events
    logger.info("waiting for device on %s", ", ".join(catalog.enumerate_ports()) or "no ports")

    cancel = threading.Event()
    try:
        broadcast = Broadcast.detect(catalog, config=config, cancel_event=cancel)
        broadcast.set_default_handler(lambda message: logger.info("%s: %s", broadcast.transport.name, message))
        broadcast.failures += log_failure
        with broadcast:
            while not broadcast.closed:
                time.sleep(0.1)
                broadcast.publish_failures()
    except KeyboardInterrupt:
        cancel.set()


if __name__ == '__main__':
    monitor()
