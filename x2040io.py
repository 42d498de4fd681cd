"""
X2040 Transport Endpoints

The display sits behind an FTDI USB bridge (VID 0x0403, PID 0x6001). Two
ways of reaching it are supported:

- ``UsbEndpoint``: raw bulk transfers through pyusb. The ``ftdi_sio`` kernel
  driver is detached from the interface if it has claimed it.
- ``SerialEndpoint``: the virtual serial port the kernel driver exposes
  (``/dev/ttyUSB0`` and friends) through pyserial.

Both expose ``write(data) -> int`` and ``close()``, and raise
``X2040TransportError`` for any failure of the underlying library.
"""

import logging
from typing import Optional

import serial
import usb.core
import usb.util

from x2040errors import X2040DeviceNotFound, X2040TransportError

logger = logging.getLogger('X2040')

VENDOR_ID = 0x0403
PRODUCT_ID = 0x6001
OUT_ENDPOINT = 0x02
WRITE_TIMEOUT_MS = 1000
DEFAULT_BAUDRATE = 9600


class UsbEndpoint:
    """Bulk OUT endpoint of the X2040, opened with pyusb."""

    def __init__(self, device, interface, endpoint, timeout: int = WRITE_TIMEOUT_MS,
                 kernel_driver_detached: bool = False):
        self._dev = device
        self._intf = interface
        self._ep = endpoint
        self.timeout = timeout
        self.kernel_driver_detached = kernel_driver_detached

    @classmethod
    def open(cls, vid: int = VENDOR_ID, pid: int = PRODUCT_ID,
             endpoint_address: int = OUT_ENDPOINT,
             timeout: int = WRITE_TIMEOUT_MS) -> "UsbEndpoint":
        """Find the device, claim its default interface and open the OUT endpoint."""
        try:
            dev = usb.core.find(idVendor=vid, idProduct=pid)
        except (usb.core.NoBackendError, usb.core.USBError) as e:
            raise X2040TransportError(f"obtain device: {e}") from e
        if dev is None:
            raise X2040DeviceNotFound(f"x2040 device {vid:04x}:{pid:04x} not found")

        detached = False
        try:
            if dev.is_kernel_driver_active(0):
                dev.detach_kernel_driver(0)
                detached = True
                logger.debug("Detached kernel driver from interface 0")
            dev.set_configuration()
            intf = dev.get_active_configuration()[(0, 0)]
            usb.util.claim_interface(dev, intf)
        except usb.core.USBError as e:
            usb.util.dispose_resources(dev)
            raise X2040TransportError(f"default interface: {e}") from e

        ep = usb.util.find_descriptor(intf, bEndpointAddress=endpoint_address)
        if ep is None:
            usb.util.release_interface(dev, intf)
            usb.util.dispose_resources(dev)
            raise X2040TransportError(f"open endpoint: no endpoint 0x{endpoint_address:02x}")

        logger.info("Opened X2040 %04x:%04x (EP OUT=0x%02x)", vid, pid, endpoint_address)
        return cls(dev, intf, ep, timeout, kernel_driver_detached=detached)

    def write(self, data: bytes) -> int:
        if self._ep is None:
            raise X2040TransportError("USB write failed: device is closed")
        try:
            return self._ep.write(data, timeout=self.timeout)
        except usb.core.USBError as e:
            raise X2040TransportError(f"USB write failed: {e}") from e

    def close(self) -> None:
        """
        Release the interface, hand it back to the kernel driver if it was
        detached, and close the device handle.

        The handle is disposed even when releasing the interface fails.
        """
        if self._dev is None:
            return
        release_error = None
        try:
            usb.util.release_interface(self._dev, self._intf)
            if self.kernel_driver_detached:
                self._dev.attach_kernel_driver(0)
                logger.debug("Reattached kernel driver to interface 0")
        except usb.core.USBError as e:
            release_error = e

        try:
            usb.util.dispose_resources(self._dev)
        except usb.core.USBError as e:
            raise X2040TransportError(f"USB close failed: {e}") from e

        self._dev = None
        self._intf = None
        self._ep = None
        if release_error is not None:
            raise X2040TransportError(f"USB close failed: {release_error}") from release_error
        logger.debug("USB device closed")


class SerialEndpoint:
    """FTDI virtual serial port of the X2040, opened with pyserial."""

    def __init__(self, port, baudrate: int = DEFAULT_BAUDRATE):
        """
        Args:
            port: Serial device path or an already open ``serial.Serial``
            baudrate: Communication baud rate (default 9600)
        """
        if isinstance(port, str):
            logger.debug(f"Opening serial port: {port} at {baudrate} baud")
            try:
                self.ser: Optional[serial.Serial] = serial.Serial(
                    port=port,
                    baudrate=baudrate,
                    bytesize=8,
                    parity='N',
                    stopbits=1,
                    timeout=1,
                    write_timeout=1,
                )
            except serial.SerialException as e:
                raise X2040TransportError(f"Serial connection failed: {e}") from e
        else:
            logger.debug("Using existing serial connection")
            self.ser = port

    def write(self, data: bytes) -> int:
        try:
            written = self.ser.write(data)
            self.ser.flush()
        except (serial.SerialException, serial.SerialTimeoutException) as e:
            raise X2040TransportError(f"Serial write failed: {e}") from e
        return written

    def close(self) -> None:
        if self.ser is not None and self.ser.is_open:
            logger.debug("Closing serial connection")
            try:
                self.ser.close()
            except serial.SerialException as e:
                raise X2040TransportError(f"Serial close failed: {e}") from e
        self.ser = None
