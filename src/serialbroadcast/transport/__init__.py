"""
The transport package provides an abstraction of a byte stream endpoint, such as a serial port.
Concrete implementations include pyserial ports and an in-memory stream.
"""
