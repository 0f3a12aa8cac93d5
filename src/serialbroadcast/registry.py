"""
Routes messages to handlers by the message prefix.
"""
import logging
import threading

from serialbroadcast.errors import RegistrationError

logger = logging.getLogger(__name__)

whitespace = b' \t\n\r\x0b\x0c'


def message_prefix(message: bytes) -> bytes:
    """
    The bytes of the message before the first whitespace byte, or the whole message when it has none.
    >>> message_prefix(b"PING 123")
    b'PING'
    >>> message_prefix(b"PONG")
    b'PONG'
    >>> message_prefix(b" leading")
    b''
    """
    for i, b in enumerate(message):
        if b in whitespace:
            return bytes(message[:i])
    return bytes(message)


class HandlerRegistry:
    """
    Maps message prefixes to handlers, with an optional default handler for messages no keyed
    handler matches. A handler is a callable that takes the decoded message text and raises an
    exception to report failure.

    Registration replaces the handler table as a whole, so a lookup never sees a partially updated
    table. While a scheduler dispatches from the registry it is sealed, and registration raises
    RegistrationError.
    """

    def __init__(self, encoding='utf-8'):
        self.encoding = encoding
        self._handlers = {}
        self._default = None
        self._sealed = 0
        self._lock = threading.Lock()

    def register(self, prefix: str, handler):
        """
        Registers the handler for messages whose prefix is exactly `prefix`.
        A handler already registered for the prefix is replaced.
        """
        if not callable(handler):
            raise TypeError("handler for '%s' is not callable: %r" % (prefix, handler))
        with self._lock:
            self._check_unsealed()
            handlers = dict(self._handlers)
            handlers[prefix] = handler
            self._handlers = handlers
        logger.debug("registered handler for '%s'", prefix)

    def unregister(self, prefix: str):
        with self._lock:
            self._check_unsealed()
            handlers = dict(self._handlers)
            handlers.pop(prefix, None)
            self._handlers = handlers

    def set_default(self, handler):
        """ sets the handler for messages that have no keyed handler. None removes the default. """
        if handler is not None and not callable(handler):
            raise TypeError("default handler is not callable: %r" % handler)
        with self._lock:
            self._check_unsealed()
            self._default = handler

    @property
    def default(self):
        return self._default

    @property
    def prefixes(self):
        return tuple(self._handlers)

    def prefix(self, message: bytes) -> str:
        """ the routing key of the message """
        return message_prefix(message).decode(self.encoding, errors='replace')

    def resolve(self, message: bytes):
        """
        Finds the handler for the message.
        :return: the handler registered for the message prefix, else the default handler,
            else None when the message is unroutable.
        """
        handler = self._handlers.get(self.prefix(message))
        return handler if handler is not None else self._default

    def seal(self):
        """ rejects registration until unseal() is called the same number of times """
        with self._lock:
            self._sealed += 1

    def unseal(self):
        with self._lock:
            if self._sealed:
                self._sealed -= 1

    @property
    def sealed(self) -> bool:
        return self._sealed > 0

    def _check_unsealed(self):
        if self._sealed:
            raise RegistrationError("handlers cannot be registered while messages are being dispatched")

    def __len__(self):
        return len(self._handlers)
