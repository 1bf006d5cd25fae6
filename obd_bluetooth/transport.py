"""
Abstract transport interface for OBD2 Bluetooth communication.

This module provides the base class for transports used by the connection
broker: device inquiry, channel lookup, connect and raw byte writes, plus
listeners for inbound data and asynchronous errors.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncGenerator, Callable

logger = logging.getLogger(__name__)

DataListener = Callable[[str], None]
ErrorListener = Callable[[BaseException], None]


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device reported by inquiry."""

    address: str
    name: str


def format_payload(direction: str, data: bytes) -> str:
    """Render a payload as ASCII and HEX for debug logging."""
    ascii_repr = data.decode('ascii', errors='replace').replace('\r', '\\r').replace('\n', '\\n')
    hex_repr = ' '.join(f'{b:02X}' for b in data)
    return f"[{direction} {len(data):3d}B] {ascii_repr} HEX: {hex_repr}"


class Transport(ABC):
    """Abstract base class for OBD2 Bluetooth transports."""

    def __init__(self) -> None:
        """Initialize the transport."""
        self._is_open: bool = False
        self._data_listeners: list[DataListener] = []
        self._error_listeners: list[ErrorListener] = []

    @abstractmethod
    def inquire(self) -> AsyncGenerator[DiscoveredDevice, None]:
        """
        Run device inquiry.

        Yields devices one at a time; the iterator ends when inquiry finishes.

        Raises:
            TransportException: If inquiry cannot be started
        """
        pass

    @abstractmethod
    async def find_channel(self, address: str) -> int:
        """
        Look up the serial port channel of a discovered device.

        Args:
            address: Bluetooth MAC address

        Returns:
            RFCOMM channel number

        Raises:
            TransportException: If no serial port channel is found
        """
        pass

    @abstractmethod
    async def connect(self, address: str, channel: int) -> None:
        """
        Open the channel to the device.

        Args:
            address: Bluetooth MAC address
            channel: RFCOMM channel number

        Raises:
            TransportException: If connection fails
        """
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write data to the open channel.

        Args:
            data: Bytes to write

        Raises:
            TransportException: If write fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the channel.

        Raises:
            TransportException: If disconnection fails
        """
        pass

    @property
    def is_open(self) -> bool:
        """Check if the channel is open."""
        return self._is_open

    def add_data_listener(self, listener: DataListener) -> None:
        """Register a callback receiving decoded inbound text."""
        self._data_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register a callback receiving asynchronous transport errors."""
        self._error_listeners.append(listener)

    def _emit_data(self, payload: str) -> None:
        for listener in list(self._data_listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("data listener %r failed", listener)

    def _emit_error(self, error: BaseException) -> None:
        if not self._error_listeners:
            logger.warning("unobserved transport error: %s", error)
            return
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("error listener %r failed", listener)
