from abc import abstractmethod


class Transport:
    """
    A byte stream endpoint that can be read, written and closed.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """ identifies the endpoint, such as the serial port device path """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        """ determines if this transport is open and can be read from/written to. """
        raise NotImplementedError

    @abstractmethod
    def read(self, size, timeout=None) -> bytes:
        """
        Reads up to size bytes.
        :param size: the maximum number of bytes to return
        :param timeout: the longest time to wait for data, in seconds. None uses the transport default.
        :return: the bytes read. Empty when no data arrived before the timeout.
        :raises EndOfStream: when no more data will ever arrive
        :raises TransportReadError: when reading fails
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, data) -> int:
        """
        Writes the data.
        :return: the number of bytes written
        :raises TransportWriteError: when writing fails
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.name)


class TransportDecorator(Transport):
    """
    A TransportDecorator wraps another transport and delegates to it's methods.
    This allows subclasses to easily override some behaviors while keeping others
    unchanged.
    """

    def __init__(self, decorate: Transport):
        self.decorate = decorate

    @property
    def name(self):
        return self.decorate.name

    @property
    def open(self) -> bool:
        return self.decorate.open

    def read(self, size, timeout=None):
        return self.decorate.read(size, timeout)

    def write(self, data):
        return self.decorate.write(data)

    def close(self):
        self.decorate.close()


class TransportFactory:
    """
    A factory knows how to create an open transport for a named endpoint.
    """
    @abstractmethod
    def __call__(self, name) -> Transport:
        """
        Opens the transport to the named endpoint.
        :raises TransportOpenError: when the endpoint cannot be opened
        """
        raise NotImplementedError()


class TracingTransport(TransportDecorator):
    """
    Logs the bytes read from and written to the decorated transport.
    """
    def __init__(self, decorate: Transport, log):
        super().__init__(decorate)
        self.logger = log

    def read(self, size, timeout=None):
        data = super().read(size, timeout)
        if data:
            self.logger.debug("%s read %r", self.name, data)
        return data

    def write(self, data):
        self.logger.debug("%s write %r", self.name, bytes(data))
        return super().write(data)
