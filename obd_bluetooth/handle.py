"""
Connection handle handed out by the broker.

Every caller of the broker receives the same handle. Writes accept diagnostic
text commands and encode them before they reach the transport.
"""

import logging
from typing import Union, TYPE_CHECKING

from .transport import Transport, format_payload

if TYPE_CHECKING:
    from .state import ConnectionState

logger = logging.getLogger(__name__)


class ConnectionHandle:
    """Shared handle to the single open adapter channel."""

    encoding = 'utf-8'

    def __init__(
        self,
        transport: Transport,
        address: str,
        channel: int,
        state: "ConnectionState",
    ) -> None:
        """
        Initialize the handle.

        Args:
            transport: Transport owning the open channel
            address: Bluetooth MAC address of the adapter
            channel: RFCOMM channel number
            state: Connection state that decides readiness
        """
        self.transport = transport
        self.address = address
        self.channel = channel
        self._state = state

    @property
    def ready(self) -> bool:
        """Check if the handshake has completed for this handle."""
        return self._state.ready and self._state.handle is self

    async def write(self, message: Union[str, bytes]) -> None:
        """
        Write a diagnostic command to the adapter.

        Args:
            message: Text command (encoded as UTF-8) or raw bytes

        Raises:
            TransportException: If the transport write fails
        """
        if isinstance(message, str):
            data = message.encode(self.encoding)
        else:
            data = bytes(message)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("write %s", format_payload("TX", data))
        await self.transport.write(data)

    def __repr__(self) -> str:
        """String representation."""
        status = "ready" if self.ready else "not ready"
        return (
            f"ConnectionHandle(address={self.address}, "
            f"channel={self.channel}, status={status})"
        )
