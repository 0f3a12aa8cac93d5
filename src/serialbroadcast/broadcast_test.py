import threading
import unittest

import timeout_decorator
from unittest.mock import Mock

from hamcrest import assert_that, calling, equal_to, instance_of, is_, none, not_none, raises

from serialbroadcast.broadcast import Broadcast
from serialbroadcast.catalog import StaticPortCatalog
from serialbroadcast.config.config import BroadcastConfig
from serialbroadcast.dispatch import DispatchFailureEvent
from serialbroadcast.errors import HandlerError, ProbeCancelled, RegistrationError, TransportReadError
from serialbroadcast.support.loop_test import debug_timeout
from serialbroadcast.transport.base import TracingTransport
from serialbroadcast.transport.memory import MemoryTransport
from serialbroadcast.verification import PatternVerifier


def fast_config(**kwargs):
    options = dict(poll_interval=0.01, probe_timeout=0.1, probe_backoff=0.01)
    options.update(kwargs)
    return BroadcastConfig(**options)


class Recorder:
    """ collects the messages passed to it from any thread """
    def __init__(self):
        self.messages = []
        self._lock = threading.Lock()

    def __call__(self, message):
        with self._lock:
            self.messages.append(message)


class BroadcastTest(unittest.TestCase):

    def setUp(self):
        self.transport = MemoryTransport("test", timeout=0.01)
        self.sut = Broadcast(self.transport, fast_config(parallelism=1))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_messages_routed_by_prefix(self):
        temp, default = Recorder(), Recorder()
        self.sut.add_handler("TEMP", temp)
        self.sut.set_default_handler(default)
        self.transport.feed(b"TEMP 21.5\nHUM")
        self.transport.feed(b"ID 40\nTEMP 22.0\n")
        self.transport.end()
        assert_that(self.sut.read(), is_(3))
        assert_that(self.sut.handle_messages(), is_(3))
        assert_that(temp.messages, is_(["TEMP 21.5", "TEMP 22.0"]))
        assert_that(default.messages, is_(["HUMID 40"]))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_transport_closed_once_at_end_of_stream(self):
        self.transport.end()
        self.sut.read()
        self.sut.close()
        assert_that(self.transport.close_count, is_(1))
        assert_that(self.sut.closed, is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_read_error_recorded_and_raised(self):
        default = Recorder()
        self.sut.set_default_handler(default)
        self.transport.feed(b"one\n")
        self.transport.fail()
        assert_that(calling(self.sut.read), raises(TransportReadError))
        assert_that(self.sut.error, instance_of(TransportReadError))
        assert_that(self.transport.close_count, is_(1))
        # frames read before the error are still dispatched
        assert_that(self.sut.handle_messages(), is_(1))
        assert_that(default.messages, is_(["one"]))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_background_session(self):
        default = Recorder()
        self.sut.set_default_handler(default)
        with self.sut:
            for i in range(10):
                self.transport.feed(b"line %d\n" % i)
            self.transport.end()
            self.sut.join()
        assert_that(default.messages, is_(["line %d" % i for i in range(10)]))
        assert_that(self.transport.close_count, is_(1))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_while_waiting_for_data(self):
        self.sut.set_default_handler(Mock())
        self.sut.start()
        self.sut.stop()
        assert_that(self.transport.close_count, is_(1))
        assert_that(self.sut.closed, is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_handlers_cannot_change_during_dispatch(self):
        errors = []

        def register(message):
            try:
                self.sut.add_handler("LATE", Mock())
            except RegistrationError as e:
                errors.append(e)

        self.sut.set_default_handler(register)
        self.transport.feed(b"x\n")
        self.transport.end()
        self.sut.read()
        self.sut.handle_messages()
        assert_that(len(errors), is_(1))
        # registration is allowed again once dispatch finishes
        self.sut.add_handler("LATE", Mock())

    @timeout_decorator.timeout(debug_timeout(5))
    def test_failures_published_on_calling_thread(self):
        sut = Broadcast(self.transport, fast_config(failure_mode='forward'))
        listener = Mock()
        sut.failures += listener
        sut.set_default_handler(Mock(side_effect=ValueError("bad")))
        self.transport.feed(b"oops\n")
        self.transport.end()
        sut.read()
        sut.handle_messages()
        listener.assert_not_called()
        assert_that(sut.publish_failures(), is_(1))
        event = listener.call_args[0][0]
        assert_that(event, instance_of(DispatchFailureEvent))
        assert_that(event.frame, is_(b"oops"))
        assert_that(event.error, instance_of(HandlerError))

    def test_write(self):
        assert_that(self.sut.write(b"GET\n"), is_(4))
        assert_that(bytes(self.transport.written), is_(b"GET\n"))

    def test_trace_decorates_transport(self):
        sut = Broadcast(self.transport, fast_config(trace=True))
        assert_that(sut.transport, instance_of(TracingTransport))
        assert_that(sut.transport.name, is_("test"))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_custom_delimiter(self):
        sut = Broadcast(self.transport, fast_config(delimiter=ord(';')))
        default = Recorder()
        sut.set_default_handler(default)
        self.transport.feed(b"a;b;c")
        self.transport.end()
        sut.read()
        sut.handle_messages()
        assert_that(default.messages, is_(["a", "b"]))


class BroadcastDetectTest(unittest.TestCase):

    def setUp(self):
        self.transports = {}

    def factory(self, name):
        transport = MemoryTransport(name, timeout=0.01)
        if name == "device":
            transport.feed(b"boot\nDEVICE v1.2\n")
        self.transports[name] = transport
        return transport

    @timeout_decorator.timeout(debug_timeout(5))
    def test_detects_device_and_opens_session(self):
        catalog = StaticPortCatalog(["other", "device"])
        config = fast_config(pattern="DEVICE v")
        sut = Broadcast.detect(catalog, config=config, factory=self.factory)
        assert_that(sut, is_(not_none()))
        assert_that(sut.transport, is_(self.transports["device"]))
        assert_that(self.transports["other"].close_count, is_(1))
        assert_that(self.transports["device"].close_count, is_(0))
        sut.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_explicit_verifier(self):
        catalog = StaticPortCatalog(["device"])
        verifier = PatternVerifier(rb"v1\.\d")
        sut = Broadcast.detect(catalog, verifier, fast_config(), self.factory)
        assert_that(sut.transport.name, equal_to("device"))
        sut.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_no_device_within_rounds(self):
        catalog = StaticPortCatalog(["other"])
        sut = Broadcast.detect(catalog, config=fast_config(pattern="DEVICE v"), factory=self.factory, max_rounds=2)
        assert_that(sut, is_(none()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        catalog = StaticPortCatalog(["device"])
        assert_that(calling(Broadcast.detect).with_args(catalog, config=fast_config(pattern="DEVICE v"),
                                                        factory=self.factory, cancel_event=cancel),
                    raises(ProbeCancelled))
