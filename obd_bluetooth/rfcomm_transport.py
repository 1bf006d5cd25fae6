"""
Bluetooth RFCOMM transport for OBD2 adapters.

This module drives BlueZ command line tools (bluetoothctl, sdptool, rfcomm)
for inquiry, channel lookup and binding, and talks to the bound
/dev/rfcommN device through pyserial.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import AsyncGenerator, Optional

import serial  # type: ignore[import-untyped]

from .exceptions import TransportBackgroundError, TransportException, TransportTimeoutError
from .transport import DiscoveredDevice, Transport, format_payload

logger = logging.getLogger(__name__)

ELM_PROMPT = b'>'

_DEVICE_LINE = re.compile(r'^Device\s+([0-9A-Fa-f:]{17})\s+(.+)$')
_CHANNEL_LINE = re.compile(r'Channel:\s*(\d+)')


def parse_devices(output: str) -> list[DiscoveredDevice]:
    """Parse `bluetoothctl devices` output into discovered devices."""
    devices = []
    for line in output.splitlines():
        match = _DEVICE_LINE.match(line.strip())
        if match:
            devices.append(DiscoveredDevice(address=match.group(1), name=match.group(2).strip()))
    return devices


def parse_channel(output: str) -> Optional[int]:
    """Parse the first RFCOMM channel from `sdptool search` output."""
    match = _CHANNEL_LINE.search(output)
    return int(match.group(1)) if match else None


class RFCOMMTransport(Transport):
    """Bluetooth RFCOMM transport for OBD2 communication."""

    def __init__(
        self,
        rfcomm_device: int = 0,
        baudrate: int = 115200,
        timeout: float = 1.0,
        write_timeout: float = 1.0,
        scan_timeout: float = 10.0,
        use_sudo: bool = True,
    ) -> None:
        """
        Initialize Bluetooth transport.

        Args:
            rfcomm_device: RFCOMM device number (0 = /dev/rfcomm0)
            baudrate: Baud rate for serial communication
            timeout: Read timeout in seconds
            write_timeout: Write timeout in seconds
            scan_timeout: Inquiry duration in seconds
            use_sudo: Prefix rfcomm bind/release with sudo
        """
        super().__init__()
        self.rfcomm_device = rfcomm_device
        self.baudrate = baudrate
        self.timeout = timeout
        self.write_timeout = write_timeout
        self.scan_timeout = scan_timeout
        self.use_sudo = use_sudo
        self.address: Optional[str] = None
        self.channel: Optional[int] = None
        self._serial: Optional[serial.Serial] = None
        self._reader: Optional["asyncio.Task[None]"] = None

    @property
    def device_path(self) -> str:
        """Get the RFCOMM device path."""
        return f"/dev/rfcomm{self.rfcomm_device}"

    async def _run(self, *args: str, timeout: Optional[float] = None) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportException(f"Could not run {args[0]}: {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise TransportTimeoutError(f"Timeout running {' '.join(args)}") from e
        return (
            proc.returncode if proc.returncode is not None else -1,
            stdout.decode(errors='replace'),
            stderr.decode(errors='replace'),
        )

    def _privileged(self, *args: str) -> tuple[str, ...]:
        return ("sudo", *args) if self.use_sudo else args

    async def inquire(self) -> AsyncGenerator[DiscoveredDevice, None]:
        """Scan for nearby devices and report them one at a time."""
        logger.debug("scanning for bluetooth devices for %.1fs", self.scan_timeout)
        await self._run(
            "bluetoothctl", "--timeout", str(int(self.scan_timeout)), "scan", "on",
            timeout=self.scan_timeout + 5.0,
        )
        returncode, stdout, stderr = await self._run("bluetoothctl", "devices", timeout=5.0)
        if returncode != 0:
            raise TransportException(f"Bluetooth inquiry failed: {stderr.strip()}")
        for device in parse_devices(stdout):
            yield device

    async def find_channel(self, address: str) -> int:
        """Look up the serial port (SP) channel advertised over SDP."""
        returncode, stdout, stderr = await self._run(
            "sdptool", "search", "--bdaddr", address, "SP", timeout=10.0,
        )
        channel = parse_channel(stdout)
        if returncode != 0 or channel is None:
            raise TransportException(
                f"No serial port channel found on {address}: {stderr.strip() or 'no SP record'}"
            )
        return channel

    async def _ensure_bluetoothctl_connected(self, address: str) -> None:
        """Ensure the Bluetooth device is connected via bluetoothctl."""
        try:
            _, stdout, _ = await self._run("bluetoothctl", "info", address, timeout=5.0)
            if "Connected: yes" in stdout:
                return
            await self._run("bluetoothctl", "connect", address, timeout=10.0)
            # Wait a moment for connection to stabilize
            await asyncio.sleep(0.5)
        except TransportException as e:
            # rfcomm bind can still succeed without a prior ACL link
            logger.debug("bluetoothctl connect to %s failed: %s", address, e)

    async def _bind_rfcomm(self, address: str, channel: int) -> None:
        """Bind the RFCOMM device."""
        if Path(self.device_path).exists():
            await self._release_rfcomm()
            await asyncio.sleep(0.2)

        returncode, _, stderr = await self._run(
            *self._privileged("rfcomm", "bind", str(self.rfcomm_device), address, str(channel)),
            timeout=5.0,
        )
        if returncode != 0 and "busy" not in stderr.lower():
            raise TransportException(f"Failed to bind RFCOMM device: {stderr.strip()}")

        # Wait for device to appear
        for _ in range(20):
            if Path(self.device_path).exists():
                return
            await asyncio.sleep(0.1)
        await self._release_rfcomm()
        raise TransportException(f"RFCOMM device {self.device_path} did not appear")

    async def _release_rfcomm(self) -> None:
        """Release the RFCOMM device."""
        try:
            await self._run(*self._privileged("rfcomm", "release", str(self.rfcomm_device)), timeout=2.0)
        except TransportException as e:
            logger.debug("rfcomm release failed: %s", e)

    async def connect(self, address: str, channel: int) -> None:
        """Bind /dev/rfcommN to the device and open it."""
        if self._is_open:
            raise TransportException(
                f"Bluetooth device already open ({self.address} channel {self.channel})"
            )

        await self._ensure_bluetoothctl_connected(address)
        await self._bind_rfcomm(address, channel)
        # Wait a moment for device to be ready
        await asyncio.sleep(0.3)

        loop = asyncio.get_running_loop()
        try:
            self._serial = await loop.run_in_executor(
                None,
                lambda: serial.Serial(
                    port=self.device_path,
                    baudrate=self.baudrate,
                    timeout=self.timeout,
                    write_timeout=self.write_timeout,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                ),
            )
        except serial.SerialException as e:
            await self._release_rfcomm()
            raise TransportException(f"Failed to open Bluetooth device {address}: {e}") from e

        self.address = address
        self.channel = channel
        self._is_open = True
        self._reader = loop.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        """Read prompt-terminated responses and emit them as text."""
        loop = asyncio.get_running_loop()
        buffer = bytearray()
        while self._is_open and self._serial is not None:
            try:
                data = await loop.run_in_executor(None, self._serial.read_until, ELM_PROMPT)
            except serial.SerialException as e:
                self._emit_error(TransportBackgroundError(f"Bluetooth read error: {e}"))
                return
            if not data:
                continue
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("read %s", format_payload("RX", data))
            # read_until returns early on timeout; hold partial reads until the prompt
            buffer.extend(data)
            if not buffer.endswith(ELM_PROMPT):
                continue
            text = bytes(buffer).rstrip(ELM_PROMPT).decode('ascii', errors='ignore').strip()
            buffer.clear()
            if text:
                self._emit_data(text)

    async def write(self, data: bytes) -> None:
        """Write data to the Bluetooth device."""
        if not self._is_open or self._serial is None:
            raise TransportException("Bluetooth device not open")

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._serial.write, data)
        except serial.SerialTimeoutException as e:
            raise TransportTimeoutError(f"Write timeout: {e}") from e
        except serial.SerialException as e:
            raise TransportException(f"Bluetooth write error: {e}") from e

    async def close(self) -> None:
        """Close the Bluetooth connection."""
        if not self._is_open:
            return

        self._is_open = False
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        try:
            if self._serial is not None:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._serial.close)
                self._serial = None
        except serial.SerialException as e:
            raise TransportException(f"Error closing Bluetooth connection: {e}") from e
        finally:
            await self._release_rfcomm()
            self.address = None
            self.channel = None

    def __repr__(self) -> str:
        """String representation."""
        status = "open" if self._is_open else "closed"
        return (
            f"RFCOMMTransport(address={self.address}, "
            f"device={self.device_path}, status={status})"
        )
