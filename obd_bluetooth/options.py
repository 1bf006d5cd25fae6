"""
Connection options for the OBD Bluetooth broker.

Options name the adapter to search for and, optionally, its address and
RFCOMM channel. When both address and channel are known, discovery is skipped.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .exceptions import InvalidArgumentException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Options used to locate and open the adapter connection.

    Attributes:
        name: Device name to search for (case-insensitive substring match).
        address: Optional Bluetooth MAC address (e.g., '00:1D:A5:1E:32:25').
        channel: Optional RFCOMM channel number.
    """

    name: str
    address: Optional[str] = None
    channel: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidArgumentException(
                "options.name should be a non-empty string"
            )
        if self.address is not None and not isinstance(self.address, str):
            raise InvalidArgumentException("options.address should be a string")
        # bool is an int subclass but never a valid channel
        if self.channel is not None and (
            isinstance(self.channel, bool) or not isinstance(self.channel, int)
        ):
            raise InvalidArgumentException("options.channel should be a number")

    @property
    def direct(self) -> bool:
        """Check if discovery can be skipped."""
        return self.address is not None and self.channel is not None

    @classmethod
    def coerce(cls, value: Any) -> "ConnectionOptions":
        """
        Build validated options from options or a mapping.

        Args:
            value: A ConnectionOptions instance or a mapping with 'name',
                   and optionally 'address' and 'channel' keys; other
                   keys belong to other consumers and are ignored

        Returns:
            Validated ConnectionOptions

        Raises:
            InvalidArgumentException: If value is missing or malformed
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise InvalidArgumentException(
                "an options object must be provided to obd_bluetooth"
            )
        ignored = set(value) - {"name", "address", "channel"}
        if ignored:
            logger.debug("ignoring connection options: %s", ", ".join(sorted(map(str, ignored))))
        return cls(
            name=value.get("name"),  # type: ignore[arg-type]
            address=value.get("address"),
            channel=value.get("channel"),
        )
