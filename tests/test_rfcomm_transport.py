"""
Unit tests for the RFCOMM transport (mocked, no hardware required).

BlueZ tool invocations and the serial port are replaced with mocks.

To run from command line:
    python -m pytest tests/test_rfcomm_transport.py -v
"""

import asyncio
import time
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import serial

from obd_bluetooth.exceptions import (
    TransportBackgroundError,
    TransportException,
    TransportTimeoutError,
)
from obd_bluetooth.rfcomm_transport import RFCOMMTransport, parse_channel, parse_devices
from obd_bluetooth.transport import DiscoveredDevice

DEVICES_OUTPUT = """\
Device 00:1D:A5:1E:32:25 OBDII
Device 11:22:33:44:55:66 Kitchen Speaker
[CHG] Controller 00:1A:7D:DA:71:13 Discovering: no
"""

SDP_OUTPUT = """\
Searching for SP on 00:1D:A5:1E:32:25 ...
Service Name: SPP
Service RecHandle: 0x10000
Service Class ID List:
  "Serial Port" (0x1101)
Protocol Descriptor List:
  "L2CAP" (0x0100)
  "RFCOMM" (0x0003)
    Channel: 2
"""


class TestParsers(unittest.TestCase):
    """Tests for BlueZ output parsing."""

    def test_parse_devices(self) -> None:
        """Test device lines are parsed and other lines ignored."""
        self.assertEqual(
            parse_devices(DEVICES_OUTPUT),
            [
                DiscoveredDevice("00:1D:A5:1E:32:25", "OBDII"),
                DiscoveredDevice("11:22:33:44:55:66", "Kitchen Speaker"),
            ],
        )

    def test_parse_devices_empty(self) -> None:
        self.assertEqual(parse_devices(""), [])

    def test_parse_channel(self) -> None:
        """Test the RFCOMM channel is extracted from SDP records."""
        self.assertEqual(parse_channel(SDP_OUTPUT), 2)
        self.assertIsNone(parse_channel("Searching for SP on 00:1D:A5:1E:32:25 ..."))


class TestRFCOMMTransport(unittest.IsolatedAsyncioTestCase):
    """Tests for RFCOMMTransport with mocked tools and serial port."""

    def setUp(self) -> None:
        self.transport = RFCOMMTransport(rfcomm_device=3, scan_timeout=1.0, use_sudo=False)
        self.commands = []
        self.results = {}

        async def run(*args, timeout=None):
            self.commands.append(args)
            for prefix, result in self.results.items():
                if args[:len(prefix)] == prefix:
                    return result
            return (0, "", "")

        self.transport._run = AsyncMock(side_effect=run)

    async def asyncTearDown(self) -> None:
        await self.transport.close()

    def test_repr(self) -> None:
        """Test string representation."""
        repr_str = repr(self.transport)
        self.assertIn("/dev/rfcomm3", repr_str)
        self.assertIn("closed", repr_str)

    async def test_inquire_yields_devices(self) -> None:
        """Test inquiry scans then lists devices."""
        self.results[("bluetoothctl", "devices")] = (0, DEVICES_OUTPUT, "")

        devices = [device async for device in self.transport.inquire()]

        self.assertEqual([d.name for d in devices], ["OBDII", "Kitchen Speaker"])
        self.assertEqual(self.commands[0][:2], ("bluetoothctl", "--timeout"))
        self.assertIn("scan", self.commands[0])

    async def test_inquire_failure(self) -> None:
        """Test a failing device listing raises TransportException."""
        self.results[("bluetoothctl", "devices")] = (1, "", "org.bluez.Error.NotReady")
        with self.assertRaises(TransportException) as context:
            async for _ in self.transport.inquire():
                pass
        self.assertIn("NotReady", str(context.exception))

    async def test_find_channel(self) -> None:
        """Test the SP channel is looked up with sdptool."""
        self.results[("sdptool",)] = (0, SDP_OUTPUT, "")
        channel = await self.transport.find_channel("00:1D:A5:1E:32:25")
        self.assertEqual(channel, 2)
        self.assertEqual(
            self.commands[-1], ("sdptool", "search", "--bdaddr", "00:1D:A5:1E:32:25", "SP")
        )

    async def test_find_channel_without_record(self) -> None:
        """Test a device without a serial port record fails."""
        with self.assertRaises(TransportException):
            await self.transport.find_channel("00:1D:A5:1E:32:25")

    async def test_write_when_closed(self) -> None:
        """Test writing when the channel is closed raises exception."""
        with self.assertRaises(TransportException) as context:
            await self.transport.write(b"ATZ\r")
        self.assertIn("not open", str(context.exception).lower())

    async def test_connect_write_and_read(self) -> None:
        """Test connect binds rfcomm, opens serial and emits adapter output."""
        self.results[("bluetoothctl", "info")] = (0, "Connected: yes", "")
        received = []
        self.transport.add_data_listener(received.append)

        responses = [b'\r\rELM327 v1.5\r\r>']

        def read_until(terminator):
            if responses:
                return responses.pop(0)
            time.sleep(0.01)
            return b''

        mock_serial = MagicMock()
        mock_serial.read_until.side_effect = read_until

        with patch('obd_bluetooth.rfcomm_transport.serial.Serial', return_value=mock_serial) as serial_cls, \
                patch('obd_bluetooth.rfcomm_transport.Path.exists', side_effect=[False, True]):
            await self.transport.connect("00:1D:A5:1E:32:25", 2)

        self.assertTrue(self.transport.is_open)
        self.assertIn(("rfcomm", "bind", "3", "00:1D:A5:1E:32:25", "2"), self.commands)
        self.assertEqual(serial_cls.call_args.kwargs['port'], '/dev/rfcomm3')

        await self.transport.write(b"ATZ\r")
        mock_serial.write.assert_called_once_with(b"ATZ\r")

        for _ in range(100):
            if received:
                break
            await asyncio.sleep(0.01)
        self.assertEqual(received, ["ELM327 v1.5"])

        await self.transport.close()
        self.assertFalse(self.transport.is_open)
        mock_serial.close.assert_called_once()
        self.assertIn(("rfcomm", "release", "3"), self.commands)

    async def test_connect_twice_fails(self) -> None:
        """Test a second connect on an open transport is refused."""
        self.transport._is_open = True
        with self.assertRaises(TransportException):
            await self.transport.connect("00:1D:A5:1E:32:25", 1)
        self.transport._is_open = False

    async def test_bind_failure(self) -> None:
        """Test rfcomm bind errors surface as TransportException."""
        self.results[("rfcomm", "bind")] = (1, "", "Can't create device: Operation not permitted")
        with patch('obd_bluetooth.rfcomm_transport.Path.exists', return_value=False):
            with self.assertRaises(TransportException) as context:
                await self.transport.connect("00:1D:A5:1E:32:25", 1)
        self.assertIn("Operation not permitted", str(context.exception))
        self.assertFalse(self.transport.is_open)

    async def test_serial_open_failure_releases_rfcomm(self) -> None:
        """Test a serial open failure releases the binding."""
        self.results[("bluetoothctl", "info")] = (0, "Connected: yes", "")
        with patch('obd_bluetooth.rfcomm_transport.serial.Serial',
                   side_effect=serial.SerialException("could not open port")), \
                patch('obd_bluetooth.rfcomm_transport.Path.exists', side_effect=[False, True]):
            with self.assertRaises(TransportException):
                await self.transport.connect("00:1D:A5:1E:32:25", 1)
        self.assertEqual(self.commands[-1], ("rfcomm", "release", "3"))

    async def test_write_timeout(self) -> None:
        """Test serial write timeouts map to TransportTimeoutError."""
        mock_serial = MagicMock()
        mock_serial.write.side_effect = serial.SerialTimeoutException("Write timeout")
        self.transport._serial = mock_serial
        self.transport._is_open = True

        with self.assertRaises(TransportTimeoutError):
            await self.transport.write(b"ATZ\r")

    async def test_bind_releases_when_device_never_appears(self) -> None:
        """Test a bound device node that never shows up is released before failing."""
        with patch('obd_bluetooth.rfcomm_transport.Path.exists', return_value=False), \
                patch('obd_bluetooth.rfcomm_transport.asyncio.sleep', new=AsyncMock()):
            with self.assertRaises(TransportException) as context:
                await self.transport._bind_rfcomm("00:1D:A5:1E:32:25", 1)

        self.assertIn("did not appear", str(context.exception))
        self.assertEqual(self.commands[-1], ("rfcomm", "release", "3"))

    async def test_partial_reads_are_joined_until_prompt(self) -> None:
        """Test a response split by read timeouts is emitted once, whole."""
        received = []
        self.transport.add_data_listener(received.append)
        self.transport.add_error_listener(lambda error: None)
        chunks = [b'\r\rELM3', b'', b'27 v1.5\r\r>', b'OK\r\r>']

        def read_until(terminator):
            if chunks:
                return chunks.pop(0)
            raise serial.SerialException("device disconnected")

        mock_serial = MagicMock()
        mock_serial.read_until.side_effect = read_until
        self.transport._serial = mock_serial
        self.transport._is_open = True

        await self.transport._read_loop()
        self.transport._is_open = False

        self.assertEqual(received, ["ELM327 v1.5", "OK"])

    async def test_read_error_is_emitted(self) -> None:
        """Test reader failures reach error listeners as background errors."""
        errors = []
        self.transport.add_error_listener(errors.append)
        mock_serial = MagicMock()
        mock_serial.read_until.side_effect = serial.SerialException("device reports readiness to read but returned no data")
        self.transport._serial = mock_serial
        self.transport._is_open = True

        await self.transport._read_loop()

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], TransportBackgroundError)


if __name__ == '__main__':
    unittest.main()
