"""
Exceptions raised by serialbroadcast.

Errors that concern a single message or a single probing candidate are reported and
isolated; only a read failure on the active transport ends a session.
"""


class BroadcastError(Exception):
    """ Base class for all serialbroadcast errors. """


class TransportError(BroadcastError, IOError):
    """ A transport could not perform an operation. """

    def __init__(self, message, transport_name=None):
        super().__init__(message)
        self.transport_name = transport_name


class TransportOpenError(TransportError):
    """ A transport could not be opened. """


class TransportReadError(TransportError):
    """ Reading from a transport failed for a reason other than end of stream. """


class TransportWriteError(TransportError):
    """ Writing to a transport failed. Writes are never retried. """


class EndOfStream(BroadcastError):
    """ The transport has no more data. This is not a failure. """


class HandlerError(BroadcastError):
    """ A message handler raised an exception. The handler's exception is the cause. """

    def __init__(self, message, frame=None):
        super().__init__(message)
        self.frame = frame


class UnroutableMessage(BroadcastError):
    """ No handler is registered for the message prefix and there is no default handler. """

    def __init__(self, message, frame=None, prefix=None):
        super().__init__(message)
        self.frame = frame
        self.prefix = prefix


class RegistrationError(BroadcastError):
    """ Handlers cannot be registered while dispatch is running. """


class ProbeCancelled(BroadcastError):
    """ Device detection was cancelled before a device was found. """


class VerifierConstructionError(BroadcastError, ValueError):
    """ The device verification rule is invalid. """
