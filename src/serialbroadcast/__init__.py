"""


Serial Broadcast

- Transport: a byte stream endpoint that is read in chunks with a timeout, written and closed.
  SerialTransport for local serial ports, MemoryTransport for feeding bytes in-process.
- FrameReader - reassembles delimited frames from chunks, however the stream happens to be split.
  A frame is everything before the delimiter. Bytes after the last delimiter wait for the next chunk.
- HandlerRegistry - maps message prefixes to handlers. The prefix is the message text up to the
  first whitespace. Unmatched messages go to the default handler, if there is one.
- DispatchScheduler - takes frames in order and runs each handler on a worker thread, with
  at most `parallelism` handlers running at once. Handler failures are dropped, logged or
  forwarded as DispatchFailureEvent.
- Broadcast - one session on a transport. The read loop fills a bounded queue, the dispatch loop
  drains it.


Device detection

- PortCatalog - lists the candidate ports, posting PortAvailableEvent/PortUnavailableEvent as
  ports come and go.
- Verifier - decides whether some bytes came from the expected device, e.g. a regular expression
  over the first output.
- DeviceProber - opens a race between the candidate transports. Every candidate is read on
  its own thread; the first chunk to pass the verifier wins and all the other candidates are closed.
- AutoDetector - repeats probing rounds, backing off between them, until a device is found or
  the caller sets the cancel event.


## Threading

All blocking is on threads: one per probed candidate, one for reading, one for dispatching
and one per running handler. Cancellation and shutdown use threading.Event, and every blocking
read has a timeout so the events are noticed promptly.

Failure events are queued and published on whichever thread calls Broadcast.publish_failures().
"""
