import random
import threading
import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, calling, empty, is_, raises

from serialbroadcast.config.config import BroadcastConfig
from serialbroadcast.errors import TransportReadError
from serialbroadcast.framing import FrameReader
from serialbroadcast.transport.memory import MemoryTransport


def split_at(data, points):
    points = sorted(set(points))
    return [data[i:j] for i, j in zip([0] + points, points + [len(data)])]


class FrameReaderIngestTest(unittest.TestCase):

    def test_frames_span_chunks(self):
        sut = FrameReader()
        assert_that(sut.ingest(b"AAA\nBB"), is_([b"AAA"]))
        assert_that(sut.ingest(b"B\nCC"), is_([b"BBB"]))
        assert_that(sut.pending, is_(b"CC"))

    def test_empty_chunk_is_a_no_op(self):
        sut = FrameReader()
        sut.ingest(b"partial")
        assert_that(sut.ingest(b""), is_(empty()))
        assert_that(sut.pending, is_(b"partial"))

    def test_only_delimiters_yield_empty_frames(self):
        sut = FrameReader()
        assert_that(sut.ingest(b"\n\n\n"), is_([b"", b"", b""]))
        assert_that(sut.pending, is_(b""))

    def test_delimiter_is_not_part_of_frame(self):
        sut = FrameReader(delimiter=b"\r")
        assert_that(sut.ingest(b"one\rtwo\r\nthree"), is_([b"one", b"two"]))
        assert_that(sut.pending, is_(b"\nthree"))

    def test_frames_are_copies(self):
        sut = FrameReader()
        chunk = bytearray(b"abc\n")
        frames = sut.ingest(chunk)
        chunk[0] = ord("z")
        sut.ingest(b"def\n")
        assert_that(frames, is_([b"abc"]))
        assert_that(type(frames[0]), is_(bytes))

    def test_any_chunking_yields_the_same_frames(self):
        stream = b"PING 1\nPONG\n\nDATA a b c\nlonger message with spaces\nxx\nremainder"
        expected = FrameReader().ingest(stream)
        rnd = random.Random(1234)
        for _ in range(200):
            points = rnd.sample(range(1, len(stream)), rnd.randint(0, 12))
            sut = FrameReader()
            frames = []
            for chunk in split_at(stream, points):
                frames.extend(sut.ingest(chunk))
            assert_that(frames, is_(expected))
            assert_that(sut.pending, is_(b"remainder"))

    def test_byte_at_a_time(self):
        sut = FrameReader()
        frames = []
        for b in b"a\nbc\n":
            frames.extend(sut.ingest(bytes([b])))
        assert_that(frames, is_([b"a", b"bc"]))

    def test_flush(self):
        sut = FrameReader()
        sut.ingest(b"a\nrest")
        assert_that(sut.flush(), is_(b"rest"))
        assert_that(sut.flush(), is_(None))

    def test_delimiter_must_be_one_byte(self):
        assert_that(calling(FrameReader).with_args(b"\r\n"), raises(ValueError))

    def test_from_config(self):
        sut = FrameReader.from_config(BroadcastConfig(delimiter=0, read_size=16, flush_remainder=True))
        assert_that(sut.delimiter, is_(b"\x00"))
        assert_that(sut.read_size, is_(16))
        assert_that(sut.flush_remainder, is_(True))


class FrameReaderReadTest(unittest.TestCase):

    def test_end_of_stream_keeps_remainder(self):
        transport = MemoryTransport(chunks=[b"AAA\nBB", b"B\nCC"])
        transport.end()
        sink = Mock()
        sut = FrameReader()
        assert_that(sut.read_from(transport, sink), is_(2))
        sink.assert_has_calls([call(b"AAA"), call(b"BBB")])
        assert_that(sink.call_count, is_(2))
        assert_that(sut.pending, is_(b"CC"))

    def test_end_of_stream_logs_unframed_count(self):
        transport = MemoryTransport("port", chunks=[b"A\nCC"])
        transport.end()
        with self.assertLogs("serialbroadcast.framing", "DEBUG") as logs:
            FrameReader().read_from(transport, Mock())
        assert_that(logs.output, is_(["DEBUG:serialbroadcast.framing:end of stream on port, 2 bytes unframed"]))

    def test_end_of_stream_flushes_remainder_when_configured(self):
        transport = MemoryTransport(chunks=[b"AAA\nCC"])
        transport.end()
        sink = Mock()
        sut = FrameReader(flush_remainder=True)
        assert_that(sut.read_from(transport, sink), is_(2))
        sink.assert_has_calls([call(b"AAA"), call(b"CC")])
        assert_that(sut.pending, is_(b""))

    def test_reads_use_read_size(self):
        transport = MemoryTransport(chunks=[b"abcdef\n"])
        transport.end()
        sink = Mock()
        sut = FrameReader(read_size=2)
        sut.read_from(transport, sink)
        sink.assert_called_once_with(b"abcdef")
        assert_that(transport.reads, is_(5))

    def test_read_error_propagates(self):
        transport = MemoryTransport(chunks=[b"one\ntw"])
        transport.fail()
        sink = Mock()
        sut = FrameReader()
        # the fed chunk is read before the failure is raised
        assert_that(calling(sut.read_from).with_args(transport, sink), raises(TransportReadError))
        sink.assert_called_once_with(b"one")
        assert_that(sut.pending, is_(b"tw"))

    def test_stop_event_ends_reading(self):
        transport = MemoryTransport()
        stop = threading.Event()
        stop.set()
        sink = Mock()
        assert_that(FrameReader().read_from(transport, sink, stop, timeout=0.01), is_(0))
        assert_that(transport.reads, is_(0))

    def test_empty_reads_continue_until_stopped(self):
        transport = MemoryTransport()
        stop = threading.Event()

        def read(size, timeout=None):
            if transport.reads == 3:
                stop.set()
            transport.reads += 1
            return b''
        transport.read = read
        FrameReader().read_from(transport, Mock(), stop, timeout=0.01)
        assert_that(transport.reads, is_(4))
