import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_

from serialbroadcast.transport.base import TracingTransport, TransportDecorator
from serialbroadcast.transport.memory import MemoryTransport


class TransportDecoratorTest(unittest.TestCase):

    def test_delegates(self):
        decorated = MemoryTransport("inner", chunks=[b"data"])
        sut = TransportDecorator(decorated)
        assert_that(sut.name, is_("inner"))
        assert_that(sut.open, is_(True))
        assert_that(sut.read(10, 0), is_(b"data"))
        assert_that(sut.write(b"out"), is_(3))
        sut.close()
        assert_that(decorated.close_count, is_(1))
        assert_that(repr(sut), is_("TransportDecorator('inner')"))


class TracingTransportTest(unittest.TestCase):

    def setUp(self):
        self.decorated = MemoryTransport("traced", chunks=[b"in"])
        self.log = Mock()
        self.sut = TracingTransport(self.decorated, self.log)

    def test_read_logged(self):
        assert_that(self.sut.read(10, 0), is_(b"in"))
        self.log.debug.assert_called_once_with("%s read %r", "traced", b"in")

    def test_empty_read_not_logged(self):
        self.sut.read(10, 0)
        self.log.reset_mock()
        assert_that(self.sut.read(10, 0), is_(b''))
        self.log.debug.assert_not_called()

    def test_write_logged(self):
        self.sut.write(bytearray(b"out"))
        self.log.debug.assert_called_once_with("%s write %r", "traced", b"out")
        assert_that(bytes(self.decorated.written), is_(b"out"))
