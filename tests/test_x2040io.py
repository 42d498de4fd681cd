"""
Tests for x2040io - USB and serial endpoints.

Tests cover:
- Device lookup by VID/PID and kernel driver detach
- Interface claim and OUT endpoint lookup
- Write / close behavior and error translation
- Serial port open, write and close
"""

import pytest
import serial
import usb.core
from unittest.mock import MagicMock, patch

from x2040 import PertelianX2040
from x2040errors import X2040DeviceNotFound, X2040TransportError
from x2040io import (
    OUT_ENDPOINT,
    PRODUCT_ID,
    VENDOR_ID,
    WRITE_TIMEOUT_MS,
    SerialEndpoint,
    UsbEndpoint,
)


@pytest.fixture
def usb_mocks():
    dev = MagicMock()
    dev.is_kernel_driver_active.return_value = True
    intf = MagicMock()
    cfg = MagicMock()
    cfg.__getitem__.return_value = intf
    dev.get_active_configuration.return_value = cfg
    ep = MagicMock()
    ep.write.return_value = 1
    with patch('x2040io.usb.core.find', return_value=dev) as find, \
         patch('x2040io.usb.util.claim_interface') as claim, \
         patch('x2040io.usb.util.release_interface') as release, \
         patch('x2040io.usb.util.dispose_resources') as dispose, \
         patch('x2040io.usb.util.find_descriptor', return_value=ep) as find_descriptor:
        yield {
            'dev': dev, 'intf': intf, 'cfg': cfg, 'ep': ep,
            'find': find, 'claim': claim, 'release': release,
            'dispose': dispose, 'find_descriptor': find_descriptor,
        }


class TestUsbEndpoint:

    def test_constants(self):
        assert VENDOR_ID == 0x0403
        assert PRODUCT_ID == 0x6001
        assert OUT_ENDPOINT == 0x02
        assert WRITE_TIMEOUT_MS == 1000

    def test_open_success(self, usb_mocks):
        endpoint = UsbEndpoint.open()

        usb_mocks['find'].assert_called_once_with(idVendor=0x0403, idProduct=0x6001)
        usb_mocks['dev'].detach_kernel_driver.assert_called_once_with(0)
        usb_mocks['dev'].set_configuration.assert_called_once()
        usb_mocks['cfg'].__getitem__.assert_called_once_with((0, 0))
        usb_mocks['claim'].assert_called_once_with(usb_mocks['dev'], usb_mocks['intf'])
        usb_mocks['find_descriptor'].assert_called_once_with(
            usb_mocks['intf'], bEndpointAddress=0x02)
        assert endpoint.timeout == 1000

    def test_open_skips_detach_without_kernel_driver(self, usb_mocks):
        usb_mocks['dev'].is_kernel_driver_active.return_value = False
        UsbEndpoint.open()
        usb_mocks['dev'].detach_kernel_driver.assert_not_called()

    def test_device_not_found(self, usb_mocks):
        usb_mocks['find'].return_value = None
        with pytest.raises(X2040DeviceNotFound, match="0403:6001"):
            UsbEndpoint.open()

    def test_find_failure(self, usb_mocks):
        usb_mocks['find'].side_effect = usb.core.USBError("Access denied")
        with pytest.raises(X2040TransportError, match="obtain device") as exc:
            UsbEndpoint.open()
        assert isinstance(exc.value.__cause__, usb.core.USBError)

    def test_claim_failure_disposes(self, usb_mocks):
        usb_mocks['claim'].side_effect = usb.core.USBError("Resource busy")
        with pytest.raises(X2040TransportError, match="default interface"):
            UsbEndpoint.open()
        usb_mocks['dispose'].assert_called_once_with(usb_mocks['dev'])

    def test_missing_endpoint(self, usb_mocks):
        usb_mocks['find_descriptor'].return_value = None
        with pytest.raises(X2040TransportError, match="open endpoint"):
            UsbEndpoint.open(endpoint_address=0x05)
        usb_mocks['release'].assert_called_once_with(usb_mocks['dev'], usb_mocks['intf'])

    def test_write(self, usb_mocks):
        endpoint = UsbEndpoint.open(timeout=250)
        assert endpoint.write(b'A') == 1
        usb_mocks['ep'].write.assert_called_once_with(b'A', timeout=250)

    def test_write_failure(self, usb_mocks):
        usb_mocks['ep'].write.side_effect = usb.core.USBError("Pipe error")
        endpoint = UsbEndpoint.open()
        with pytest.raises(X2040TransportError) as exc:
            endpoint.write(b'A')
        assert isinstance(exc.value.__cause__, usb.core.USBError)

    def test_close(self, usb_mocks):
        endpoint = UsbEndpoint.open()
        endpoint.close()
        usb_mocks['release'].assert_called_once_with(usb_mocks['dev'], usb_mocks['intf'])
        usb_mocks['dispose'].assert_called_once_with(usb_mocks['dev'])
        # Second close is a no-op
        endpoint.close()
        assert usb_mocks['dispose'].call_count == 1

    def test_close_reattaches_kernel_driver(self, usb_mocks):
        endpoint = UsbEndpoint.open()
        assert endpoint.kernel_driver_detached
        endpoint.close()
        usb_mocks['dev'].attach_kernel_driver.assert_called_once_with(0)

    def test_close_leaves_kernel_driver_alone(self, usb_mocks):
        usb_mocks['dev'].is_kernel_driver_active.return_value = False
        endpoint = UsbEndpoint.open()
        endpoint.close()
        usb_mocks['dev'].attach_kernel_driver.assert_not_called()

    def test_close_disposes_when_release_fails(self, usb_mocks):
        usb_mocks['release'].side_effect = usb.core.USBError("gone")
        endpoint = UsbEndpoint.open()
        with pytest.raises(X2040TransportError, match="USB close failed") as exc:
            endpoint.close()
        assert isinstance(exc.value.__cause__, usb.core.USBError)
        usb_mocks['dispose'].assert_called_once_with(usb_mocks['dev'])
        endpoint.close()
        assert usb_mocks['dispose'].call_count == 1

    def test_display_close_after_failed_release(self, usb_mocks):
        usb_mocks['release'].side_effect = usb.core.USBError("gone")
        display = PertelianX2040(UsbEndpoint.open())
        with pytest.raises(X2040TransportError):
            display.close()
        assert not display.closed
        display.close()
        assert display.closed
        assert usb_mocks['dispose'].call_count == 1

    def test_close_dispose_failure_keeps_handle(self, usb_mocks):
        usb_mocks['dispose'].side_effect = [usb.core.USBError("busy"), None]
        endpoint = UsbEndpoint.open()
        with pytest.raises(X2040TransportError):
            endpoint.close()
        endpoint.close()
        assert usb_mocks['dispose'].call_count == 2

    def test_write_after_close(self, usb_mocks):
        endpoint = UsbEndpoint.open()
        endpoint.close()
        with pytest.raises(X2040TransportError, match="closed"):
            endpoint.write(b'A')


class TestSerialEndpoint:

    def test_open_port(self):
        with patch('x2040io.serial.Serial') as mock_serial:
            endpoint = SerialEndpoint('/dev/ttyUSB0', 19200)
        mock_serial.assert_called_once_with(
            port='/dev/ttyUSB0', baudrate=19200, bytesize=8, parity='N',
            stopbits=1, timeout=1, write_timeout=1,
        )
        assert endpoint.ser is mock_serial.return_value

    def test_open_failure(self):
        with patch('x2040io.serial.Serial', side_effect=serial.SerialException("no port")):
            with pytest.raises(X2040TransportError, match="Serial connection failed") as exc:
                SerialEndpoint('/dev/ttyUSB9')
        assert not isinstance(exc.value, X2040DeviceNotFound)

    def test_existing_connection(self):
        ser = MagicMock()
        endpoint = SerialEndpoint(ser)
        assert endpoint.ser is ser

    def test_write_flushes(self):
        ser = MagicMock()
        ser.write.return_value = 1
        endpoint = SerialEndpoint(ser)
        assert endpoint.write(b'Z') == 1
        ser.write.assert_called_once_with(b'Z')
        ser.flush.assert_called_once()

    def test_write_timeout(self):
        ser = MagicMock()
        ser.write.side_effect = serial.SerialTimeoutException("Write timeout")
        endpoint = SerialEndpoint(ser)
        with pytest.raises(X2040TransportError):
            endpoint.write(b'Z')

    def test_close(self):
        ser = MagicMock()
        ser.is_open = True
        endpoint = SerialEndpoint(ser)
        endpoint.close()
        ser.close.assert_called_once()
        assert endpoint.ser is None
        endpoint.close()
