"""
An in-process transport. Bytes fed on one thread are read on another.
"""
import threading
from collections import deque

from serialbroadcast.errors import EndOfStream, TransportReadError, TransportWriteError
from serialbroadcast.transport.base import Transport


class MemoryTransport(Transport):
    """
    A transport whose input is supplied by calling feed(). Each fed chunk is returned by
    at most one read() call, so tests control exactly how the stream is chunked.
    Calling end() marks the end of the stream once the fed chunks are consumed.
    Written data is collected in `written`.
    """

    def __init__(self, name="memory", chunks=(), timeout=None):
        self._name = name
        self.timeout = timeout
        self._chunks = deque(chunks)
        self._ended = False
        self._error = None
        self._closed = False
        self._condition = threading.Condition()
        self.written = bytearray()
        self.reads = 0
        self.close_count = 0

    @property
    def name(self):
        return self._name

    @property
    def open(self):
        return not self._closed

    def feed(self, data):
        with self._condition:
            self._chunks.append(bytes(data))
            self._condition.notify_all()

    def end(self):
        with self._condition:
            self._ended = True
            self._condition.notify_all()

    def fail(self, error=None):
        """ once the fed chunks are read, the next read raises the given error, by default a TransportReadError """
        with self._condition:
            self._error = error or TransportReadError("simulated read failure", self._name)
            self._condition.notify_all()

    def read(self, size, timeout=None):
        timeout = self.timeout if timeout is None else timeout
        with self._condition:
            self._condition.wait_for(self._readable, timeout)
            self.reads += 1
            if self._closed:
                raise TransportReadError("transport is closed", self._name)
            if not self._chunks:
                if self._error is not None:
                    error, self._error = self._error, None
                    raise error
                if self._ended:
                    raise EndOfStream(self._name)
                return b''
            chunk = self._chunks.popleft()
            if len(chunk) > size:
                self._chunks.appendleft(chunk[size:])
                chunk = chunk[:size]
            return chunk

    def _readable(self):
        return self._closed or self._ended or self._error is not None or bool(self._chunks)

    def write(self, data):
        if self._closed:
            raise TransportWriteError("transport is closed", self._name)
        self.written.extend(data)
        return len(data)

    def close(self):
        with self._condition:
            self.close_count += 1
            self._closed = True
            self._condition.notify_all()
