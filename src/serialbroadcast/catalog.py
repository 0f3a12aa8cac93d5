"""
    Device catalogs list the ports that may have the target device attached.
    Each enumeration is compared with the previous one, and events are posted
    to the catalog listeners as ports appear and disappear. For example, when a
    USB serial adapter is plugged in, a PortAvailableEvent is posted with the
    port details.
"""

import logging
import re

from serialbroadcast.support.events import EventSource
from serialbroadcast.support.mixins import CommonEqualityMixin
from serialbroadcast.transport.serial_transport import serial_port_info

logger = logging.getLogger(__name__)


class PortEvent(CommonEqualityMixin):
    """ Notification about a port. """
    def __init__(self, source, key, resource):
        """
        :param source   The PortCatalog that posted this event
        :param key The port name.
        :param resource The port details, which may have instance-specific details beyond what is available in
            key.
        """
        self.source = source
        self.key = key
        self.resource = resource


class PortAvailableEvent(PortEvent):
    """ Signifies that a port is available. """


class PortUnavailableEvent(PortEvent):
    """ Signifies that a port has become unavailable. """


class PortCatalog:
    """
    Determines the available ports each time enumerate_ports() is called.
    Subclasses provide the ports via _fetch_available().
    """

    def __init__(self):
        self.listeners = EventSource()
        self.previous = {}      # the previous known ports

    def _is_allowed(self, key, device):
        """
        Template method to allow subclasses to pre-filter the set of
        recognized ports for any that should be excluded.
        """
        return True

    def attached(self, key, device):
        """template method for subclasses to process a new port"""
        logger.info("available port: %s", key)

    def detached(self, key, device):
        """template method for subclasses to process a removed port"""
        logger.info("unavailable port: %s", key)

    def _attach(self, key, device):
        self.attached(key, device)
        return key, device

    def _detach(self, key, device):
        self.detached(key, device)
        return key, device

    def _changed_events(self, available: dict) -> list:
        """
        Computes which ports have been added, removed or changed.
        :param available: dictionary of port name to port info.
        :return: returns a list of events to send
        """
        # build a map of { name: None } for all previous ports
        # after adding the list of current ports, any key that has a None value
        # has been removed.
        current_ports = {p: None for p in self.previous}
        current_ports.update(available)

        events = []  # the events to send
        for handle, current in current_ports.items():
            previous = self.previous.get(handle, None)
            if self._one_is_none(current, previous) or not self._device_eq(current, previous):
                if previous is not None:
                    events.append(PortUnavailableEvent(self, *self._detach(handle, previous)))
                if current is not None:
                    events.append(PortAvailableEvent(self, *self._attach(handle, current)))
        return events

    @staticmethod
    def _one_is_none(v1, v2):
        """ Determines if one of the values is None
        >>> PortCatalog._one_is_none("a", "b")
        False
        >>> PortCatalog._one_is_none("a", None)
        True
        >>> PortCatalog._one_is_none(None, None)
        False
        """
        return (v1 is None) != (v2 is None)

    def _device_eq(self, current, previous):
        return current == previous

    def _update(self, available: dict):
        """ given a new set of available ports, determines
            which ports have been added/changed/removed and
            fires the corresponding events.
        """
        events = self._changed_events(available)
        self.previous = available
        self.listeners.fire_all(events)

    def _fetch_available(self):
        """ Template method for subclasses to determine the ports currently available.
        :return: a dictionary of port name to port details.
        """
        return {}

    def _filter_available(self, available: dict):
        return {k: v for k, v in available.items() if self._is_allowed(k, v)}

    def enumerate_ports(self) -> list:
        """
        Lists the names of the ports currently available, and posts events for the changes since the last call.
        """
        available = self._filter_available(self._fetch_available())
        self._update(available)
        return list(available)


class StaticPortCatalog(PortCatalog):
    """ A fixed list of port names. """

    def __init__(self, names):
        super().__init__()
        self.names = list(names)

    def _fetch_available(self):
        return {name: name for name in self.names}


class SerialPortCatalog(PortCatalog):
    """
    Lists local serial ports, optionally restricted to those where the device name,
    description or hardware id matches a regular expression.
    """

    def __init__(self, include=None):
        """
        :param include: a regular expression, matched case insensitively. None includes every port.
        """
        super().__init__()
        self.include = re.compile(include, re.IGNORECASE) if include else None

    def _is_allowed(self, key, device):
        if self.include is None:
            return True
        fields = (device.device, device.description, device.hwid)
        return any(f and self.include.search(f) for f in fields)

    def _device_eq(self, current, previous):
        return current.hwid == previous.hwid

    def _fetch_available(self):
        """ computes the available serial port/device map """
        return {p.device: p for p in self._fetch_ports()}

    def _fetch_ports(self):
        return serial_port_info()
