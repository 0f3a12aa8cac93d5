"""
Splits a byte stream into delimited messages.
"""
import logging
import threading

from serialbroadcast.errors import EndOfStream

logger = logging.getLogger(__name__)


class FrameReader:
    """
    Accumulates bytes read from a transport and splits them into frames at each delimiter.

    Frames are emitted in the order their delimiters arrive, however the stream happens to be
    chunked by the reads. Bytes after the last delimiter are kept until more data arrives.
    A frame is an immutable copy of the message bytes, without the delimiter.
    """

    def __init__(self, delimiter=b'\n', read_size=1024, flush_remainder=False):
        """
        :param delimiter: the single byte that ends each message
        :param read_size: the most bytes requested by each transport read
        :param flush_remainder: when True, bytes left over at the end of the stream are emitted
            as a final frame. By default they are kept unemitted.
        """
        if len(delimiter) != 1:
            raise ValueError("the delimiter must be a single byte: %r" % delimiter)
        self.delimiter = bytes(delimiter)
        self.read_size = read_size
        self.flush_remainder = flush_remainder
        self._buffer = bytearray()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        return cls(config.delimiter_byte, config.read_size, config.flush_remainder)

    @property
    def pending(self) -> bytes:
        """ a copy of the bytes received that are not yet part of a complete frame """
        with self._lock:
            return bytes(self._buffer)

    def ingest(self, chunk) -> list:
        """
        Appends the chunk to the buffer and extracts every complete frame.
        :return: the frames completed by this chunk, in stream order. Empty messages are included.
        """
        frames = []
        if not chunk:
            return frames
        delimiter = self.delimiter
        with self._lock:
            buffer = self._buffer
            buffer.extend(chunk)
            start = 0
            end = buffer.find(delimiter)
            while end >= 0:
                frames.append(bytes(buffer[start:end]))
                start = end + 1
                end = buffer.find(delimiter, start)
            if start:
                del buffer[:start]
        return frames

    def flush(self):
        """
        Removes and returns the undelimited remainder.
        :return: the remainder, or None when the buffer is empty
        """
        with self._lock:
            if not self._buffer:
                return None
            remainder = bytes(self._buffer)
            self._buffer.clear()
        return remainder

    def read_from(self, transport, sink, stop_event=None, timeout=None):
        """
        Reads the transport until the end of the stream, passing each frame to sink in order.
        :param transport: the transport to read
        :param sink: a callable that receives each frame
        :param stop_event: a threading.Event that ends the loop when set. It is checked between reads.
        :param timeout: the read timeout passed to the transport, which bounds how long a stop takes
            to be noticed.
        :return: the number of frames passed to sink
        :raises TransportReadError: when the transport fails. Reading stops.
        """
        count = 0
        while stop_event is None or not stop_event.is_set():
            try:
                chunk = transport.read(self.read_size, timeout)
            except EndOfStream:
                logger.debug("end of stream on %s, %d bytes unframed", transport.name, len(self.pending))
                if self.flush_remainder:
                    remainder = self.flush()
                    if remainder is not None:
                        sink(remainder)
                        count += 1
                break
            for frame in self.ingest(chunk):
                sink(frame)
                count += 1
        return count
