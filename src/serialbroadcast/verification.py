"""
Rules that decide whether bytes read from a port come from the device being looked for.
"""
import re
from abc import abstractmethod

from serialbroadcast.errors import VerifierConstructionError


def tobytes(arg, encoding='utf-8'):
    """
    Converts a string to bytes
    >>> tobytes("abc")
    b'abc'
    >>> tobytes(b"abc")
    b'abc'
    """
    if isinstance(arg, str):
        arg = arg.encode(encoding)
    return bytes(arg)


class Verifier:
    """ Recognises a device from a chunk of the bytes it sends. """

    @abstractmethod
    def check(self, chunk: bytes) -> bool:
        raise NotImplementedError

    @property
    def key(self) -> bytes:
        """ identifies the device being verified. Used for logging only. """
        return b''


class PatternVerifier(Verifier):
    """
    Matches chunks against a regular expression. The pattern is searched for anywhere in the chunk,
    so anchor it with ^ to match only at the start.
    """

    def __init__(self, pattern, key=b''):
        """
        :param pattern: the regular expression, as str or bytes
        :param key: the device serial key or other identification
        :raises VerifierConstructionError: when the pattern is not a valid regular expression
        """
        try:
            self.pattern = re.compile(tobytes(pattern))
        except re.error as e:
            raise VerifierConstructionError("invalid device pattern %r: %s" % (pattern, e)) from e
        self._key = tobytes(key)

    def check(self, chunk):
        return self.pattern.search(chunk) is not None

    @property
    def key(self):
        return self._key

    def __repr__(self):
        return "PatternVerifier(%r, key=%r)" % (self.pattern.pattern, self._key)


class AcceptAllVerifier(Verifier):
    """ Accepts the first port that sends anything. Suits setups with a single device attached. """

    def check(self, chunk):
        return bool(chunk)


def verifier_from_config(config) -> Verifier:
    """ a PatternVerifier for the configured pattern, or an AcceptAllVerifier when no pattern is set """
    if config.pattern is None:
        return AcceptAllVerifier()
    return PatternVerifier(config.pattern, config.key)
