"""
Finds which of several ports has the target device attached.

Every candidate port is read concurrently and each chunk is checked with a Verifier.
The first port whose data matches wins; every other candidate is closed.
"""
import logging
import threading
import time

from serialbroadcast.errors import EndOfStream, ProbeCancelled, TransportError, TransportOpenError
from serialbroadcast.support.retry_strategy import BackoffRetryStrategy, RetryStrategy
from serialbroadcast.transport.base import TransportFactory
from serialbroadcast.verification import Verifier

logger = logging.getLogger(__name__)


class ProbeState:
    IDLE = 'idle'
    RACING = 'racing'
    WON = 'won'
    ALL_FAILED = 'all failed'
    CANCELLED = 'cancelled'


class DeviceProber:
    """
    Races reads across a set of open transports.

    Each candidate is read on its own thread for up to the probe timeout. The first
    candidate with a chunk that passes the verifier is the winner, and is returned open.
    The other loops are signalled to stop, and each closes its own transport before the
    probe returns. A candidate whose read fails is closed and drops out of the race
    without affecting the others.
    """

    def __init__(self, read_size=1024, poll_interval=0.1):
        """
        :param read_size: the most bytes requested by each read
        :param poll_interval: the longest single read. Stop and cancellation signals are
            noticed between reads, so this bounds how long they take to be observed.
        """
        self.read_size = read_size
        self.poll_interval = poll_interval
        self.state = ProbeState.IDLE

    @classmethod
    def from_config(cls, config):
        return cls(config.read_size, config.poll_interval)

    def probe(self, candidates, verifier: Verifier, timeout, cancel_event=None):
        """
        Reads all candidates until one matches, all time out or fail, or the probe is cancelled.
        Only the winner is left open.
        :param candidates: the open transports to race
        :param verifier: decides whether a chunk comes from the device
        :param timeout: how long each candidate is read, in seconds
        :param cancel_event: a threading.Event that cancels the probe when set
        :return: the winning transport, or None if no candidate matched
        :raises ProbeCancelled: when cancel_event is set before a winner is found
        """
        cancel_event = cancel_event if cancel_event is not None else threading.Event()
        race = _Race(verifier, cancel_event)
        self.state = ProbeState.RACING
        loops = [threading.Thread(target=self._candidate_loop, args=(race, candidate, timeout),
                                  name="probe %s" % candidate.name, daemon=True)
                 for candidate in candidates]
        for loop in loops:
            loop.start()
        for loop in loops:
            loop.join()

        winner = race.winner
        if winner is not None:
            self.state = ProbeState.WON
            logger.info("device %r found on %s", verifier.key, winner.name)
            return winner
        if cancel_event.is_set():
            self.state = ProbeState.CANCELLED
            raise ProbeCancelled("probe of %d ports cancelled" % len(loops))
        self.state = ProbeState.ALL_FAILED
        logger.debug("no device among %d ports", len(loops))
        return None

    def _candidate_loop(self, race, transport, timeout):
        """ reads one candidate until it matches, the race is over, or the timeout expires """
        won = False
        deadline = time.monotonic() + timeout
        try:
            while not race.over():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug("probe timed out on %s", transport.name)
                    break
                chunk = transport.read(self.read_size, min(remaining, self.poll_interval))
                if chunk and not race.over() and race.verifier.check(chunk):
                    won = race.finish(transport)
                    break
        except EndOfStream:
            logger.debug("end of stream while probing %s", transport.name)
        except TransportError as e:
            logger.info("abandoning %s: %s", transport.name, e)
        finally:
            if not won:
                self._close(transport)

    @staticmethod
    def _close(transport):
        try:
            transport.close()
        except Exception as e:
            logger.warning("error closing %s: %s", transport.name, e)


class _Race:
    """ The state shared by the candidate loops of one probe. """

    def __init__(self, verifier, cancel_event):
        self.verifier = verifier
        self.cancel_event = cancel_event
        self.done = threading.Event()
        self.winner = None
        self._lock = threading.Lock()

    def over(self):
        return self.done.is_set() or self.cancel_event.is_set()

    def finish(self, transport):
        """
        Records the transport as winner, unless another candidate has already won.
        :return: True if the transport is the winner
        """
        with self._lock:
            if self.winner is not None:
                return False
            self.winner = transport
        self.done.set()
        return True


class AutoDetector:
    """
    Repeats probing rounds until the device is found.

    Each round lists the ports in the catalog, opens them with the transport factory and
    races them with a DeviceProber. Ports that fail to open are left out of the round.
    After a round without a match, the detector waits for the retry strategy's delay and
    tries again, so devices plugged in later are found.
    """

    def __init__(self, catalog, factory: TransportFactory, verifier: Verifier, prober: DeviceProber=None,
                 probe_timeout=2.0, retry_strategy: RetryStrategy=None, max_rounds=None):
        """
        :param catalog: a PortCatalog listing the candidate ports
        :param factory: opens a transport for a port name
        :param verifier: recognises the device
        :param probe_timeout: how long each round reads the candidates, in seconds
        :param retry_strategy: gives the delay after a failed round
        :param max_rounds: the number of rounds before giving up. None tries until found or cancelled.
        """
        self.catalog = catalog
        self.factory = factory
        self.verifier = verifier
        self.prober = prober if prober is not None else DeviceProber()
        self.probe_timeout = probe_timeout
        self.retry_strategy = retry_strategy if retry_strategy is not None else RetryStrategy()
        self.max_rounds = max_rounds
        self.rounds = 0

    @classmethod
    def from_config(cls, catalog, factory, verifier, config, max_rounds=None):
        retry = BackoffRetryStrategy(config.probe_backoff, config.probe_backoff_factor, config.probe_backoff_max)
        return cls(catalog, factory, verifier, DeviceProber.from_config(config), config.probe_timeout,
                   retry, max_rounds)

    def detect(self, cancel_event=None):
        """
        Probes until a port matches.
        :return: the open transport of the device, or None when max_rounds is reached
            by this call
        :raises ProbeCancelled: when cancel_event is set first
        """
        cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.retry_strategy.reset()
        self.rounds = 0
        while self.max_rounds is None or self.rounds < self.max_rounds:
            if cancel_event.is_set():
                raise ProbeCancelled("device detection cancelled")
            self.rounds += 1
            winner = self.round(cancel_event)
            if winner is not None:
                self.retry_strategy.reset()
                return winner
            delay = self.retry_strategy()
            logger.debug("no device found in round %d, retrying in %.2fs", self.rounds, delay)
            if delay > 0 and cancel_event.wait(delay):
                raise ProbeCancelled("device detection cancelled")
        return None

    def round(self, cancel_event):
        """
        Runs one probing round over the ports presently in the catalog.
        :return: the winning transport or None
        """
        candidates = self._open_candidates(self._enumerate())
        if not candidates:
            # nothing to race, so wait out the round as a probe would
            if cancel_event.wait(self.probe_timeout):
                raise ProbeCancelled("device detection cancelled")
            return None
        return self.prober.probe(candidates, self.verifier, self.probe_timeout, cancel_event)

    def _enumerate(self):
        try:
            return self.catalog.enumerate_ports()
        except Exception as e:
            logger.warning("unable to list ports: %s", e)
            return []

    def _open_candidates(self, names):
        candidates = []
        for name in names:
            try:
                candidates.append(self.factory(name))
            except TransportOpenError as e:
                logger.debug("skipping %s: %s", name, e)
        return candidates
