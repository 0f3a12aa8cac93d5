"""
Implements a transport over a serial port.
"""

import logging

import serial
from serial.tools import list_ports

from serialbroadcast.errors import TransportOpenError, TransportReadError, TransportWriteError
from serialbroadcast.transport.base import Transport, TransportFactory

logger = logging.getLogger(__name__)

parities = {
    'none': serial.PARITY_NONE,
    'odd': serial.PARITY_ODD,
    'even': serial.PARITY_EVEN,
    'mark': serial.PARITY_MARK,
    'space': serial.PARITY_SPACE,
}

stop_bits = {
    1: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2: serial.STOPBITS_TWO,
}


class SerialTransport(Transport):
    """
    A transport that provides comms via a serial port.
    """

    def __init__(self, ser: serial.Serial, drain=True):
        """
        :param ser: the open serial port
        :param drain: when True, each write waits until the data has been transmitted, then
            discards anything left in the output buffer
        """
        self.ser = ser
        self.drain = drain

    @property
    def name(self):
        return self.ser.port

    @property
    def open(self) -> bool:
        return self.ser.is_open

    def read(self, size, timeout=None):
        """
        Waits for the first byte up to the timeout, then returns it along with whatever else has
        already arrived, up to size bytes.
        """
        ser = self.ser
        try:
            if timeout is not None and timeout != ser.timeout:
                ser.timeout = timeout
            data = ser.read(1)
            if data and size > 1:
                waiting = min(ser.in_waiting, size - 1)
                if waiting:
                    data += ser.read(waiting)
            return data
        except (serial.SerialException, OSError) as e:
            raise TransportReadError("error reading from serial port %s: %s" % (self.name, e), self.name) from e

    def write(self, data):
        ser = self.ser
        try:
            count = ser.write(data)
            if self.drain:
                ser.flush()
                ser.reset_output_buffer()
            return count
        except (serial.SerialException, OSError) as e:
            raise TransportWriteError("error writing to serial port %s: %s" % (self.name, e), self.name) from e

    def close(self):
        self.ser.close()
        logger.info("closed serial port %s", self.name)


class SerialTransportFactory(TransportFactory):
    """
    Opens serial ports with the line settings from a BroadcastConfig.
    """

    def __init__(self, config, serial_class=serial.Serial):
        self.config = config
        self.serial_class = serial_class

    def __call__(self, name):
        ser = self._create(name)
        try:
            ser.open()
        except (serial.SerialException, OSError) as e:
            logger.warning("error opening serial port %s: %s", name, e)
            raise TransportOpenError("unable to open serial port %s: %s" % (name, e), name) from e
        logger.info("opened serial port %s", name)
        return SerialTransport(ser, self.config.drain)

    def _create(self, name):
        """ creates the serial port instance, configured but not yet open """
        config = self.config
        ser = self.serial_class()
        ser.port = name
        ser.baudrate = config.baud_rate
        ser.bytesize = config.data_bits
        ser.parity = parities[config.parity]
        ser.stopbits = stop_bits[config.stop_bits]
        ser.timeout = config.poll_interval
        # applied by pyserial when the port is opened
        ser.dtr = config.dtr
        ser.rts = config.rts
        return ser


def serial_port_info():
    """
    :return: a tuple of ListPortInfo for the serial ports present.
    """
    return tuple(list_ports.comports())

