"""
Mock transport for testing the connection broker.

This module provides a scripted transport that simulates Bluetooth inquiry,
channel lookup, connect and ELM327 responses without any hardware.
"""

import asyncio
from typing import AsyncGenerator, Iterable, Optional

from .exceptions import TransportException
from .transport import DiscoveredDevice, Transport


class MockTransport(Transport):
    """
    Mock transport for testing broker behaviour.

    Attributes:
        devices (list): Devices reported by inquiry, in order.
        channels (dict): Serial port channel per device address.
        responses (dict): Dictionary mapping commands to responses.
        call_count (dict): Counter for transport calls and written commands.
        written (list): Raw bytes passed to write(), in order.
        inquiry_error, find_channel_error, connect_error (Exception | None):
            Raised by the corresponding operation when set.
        connect_gate (asyncio.Event | None): When set, connect() waits for it.
    """

    def __init__(
        self,
        devices: Optional[Iterable[tuple[str, str]]] = None,
        channels: Optional[dict[str, int]] = None,
    ) -> None:
        """
        Initialize mock transport.

        Args:
            devices: (address, name) pairs reported by inquiry
            channels: Serial port channel per address (default 1 for every device)
        """
        super().__init__()
        self.devices = [DiscoveredDevice(address, name) for address, name in devices or []]
        self.channels: dict[str, int] = dict(channels or {})
        self.call_count: dict[str, int] = {}
        self.written: list[bytes] = []
        self.connected_to: Optional[tuple[str, int]] = None
        self.inquiry_error: Optional[Exception] = None
        self.find_channel_error: Optional[Exception] = None
        self.connect_error: Optional[BaseException] = None
        self.write_error: Optional[Exception] = None
        self.connect_gate: Optional[asyncio.Event] = None

        # Responses of an ELM327 v1.5 adapter to the init sequence
        self.responses: dict[str, str] = {
            'ATZ': '\r\rELM327 v1.5\r\r>',
            'ATE0': 'ATE0\rOK\r\r>',
            'ATL0': 'OK\r\r>',
            'ATS0': 'OK\r\r>',
            'ATH1': 'OK\r\r>',
            'ATSP0': 'OK\r\r>',
            '010D': '7E8 03 41 0D 00 \r\r>',
        }

    def _count(self, key: str) -> None:
        self.call_count[key] = self.call_count.get(key, 0) + 1

    async def inquire(self) -> AsyncGenerator[DiscoveredDevice, None]:
        """Report the scripted devices one at a time."""
        self._count('inquire')
        if self.inquiry_error is not None:
            raise self.inquiry_error
        for device in list(self.devices):
            await asyncio.sleep(0)
            yield device

    async def find_channel(self, address: str) -> int:
        """Return the scripted channel for `address`."""
        self._count('find_channel')
        await asyncio.sleep(0)
        if self.find_channel_error is not None:
            raise self.find_channel_error
        return self.channels.get(address, 1)

    async def connect(self, address: str, channel: int) -> None:
        """Mock connect, optionally held open by connect_gate."""
        self._count('connect')
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = (address, channel)
        self._is_open = True

    async def write(self, data: bytes) -> None:
        """
        Mock write operation.

        Queues the canned response for the command as inbound data.
        """
        if not self._is_open:
            raise TransportException("Bluetooth device not open")
        if self.write_error is not None:
            raise self.write_error

        self.written.append(data)
        command = data.decode('ascii').strip()
        self._count(command)

        response = self.responses.get(command, '?\r\r>')
        # Prompt is stripped like RFCOMMTransport does
        asyncio.get_running_loop().call_soon(self._emit_data, response.rstrip('>').strip())

    async def close(self) -> None:
        """Close the mock transport."""
        self._count('close')
        self._is_open = False
        self.connected_to = None

    def emit_error(self, error: BaseException) -> None:
        """Simulate an asynchronous transport error."""
        self._emit_error(error)

    def emit_data(self, payload: str) -> None:
        """Simulate unsolicited inbound data."""
        self._emit_data(payload)
