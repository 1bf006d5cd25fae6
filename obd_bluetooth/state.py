"""Connection state for the broker."""

import logging
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .exceptions import InvalidStateTransition

if TYPE_CHECKING:
    from .handle import ConnectionHandle

logger = logging.getLogger(__name__)


class ConnectionPhase(Enum):
    """Lifecycle phase of the single shared connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"


_VALID_TRANSITIONS = {
    ConnectionPhase.IDLE: {ConnectionPhase.CONNECTING},
    ConnectionPhase.CONNECTING: {ConnectionPhase.READY, ConnectionPhase.IDLE},
    ConnectionPhase.READY: {ConnectionPhase.IDLE},
}


class ConnectionState:
    """Holds at most one connection handle and its phase.

    Owned by a single broker, which is its only mutator. All mutation happens
    on the event loop thread, so no lock is needed.
    """

    def __init__(self) -> None:
        self._phase = ConnectionPhase.IDLE
        self._handle: Optional["ConnectionHandle"] = None

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def handle(self) -> Optional["ConnectionHandle"]:
        return self._handle

    @property
    def ready(self) -> bool:
        """True only after the handshake finished for the current handle."""
        return self._phase is ConnectionPhase.READY

    @property
    def connecting(self) -> bool:
        return self._phase is ConnectionPhase.CONNECTING

    def attach(self, handle: "ConnectionHandle") -> None:
        """Store the freshly opened, not yet ready, handle."""
        if self._phase is not ConnectionPhase.CONNECTING:
            raise InvalidStateTransition(
                f"cannot attach a channel while {self._phase.value}"
            )
        if self._handle is not None and self._handle is not handle:
            raise InvalidStateTransition("a channel is already attached")
        self._handle = handle

    def transition_to(self, new_phase: ConnectionPhase) -> None:
        """
        Move to a new phase.

        Returning to IDLE drops the handle. READY requires an attached handle.

        Raises:
            InvalidStateTransition: If the edge is not allowed
        """
        if new_phase not in _VALID_TRANSITIONS[self._phase]:
            logger.warning(
                "Invalid state transition: %s → %s", self._phase.value, new_phase.value
            )
            raise InvalidStateTransition(
                f"{self._phase.value} → {new_phase.value}"
            )
        if new_phase is ConnectionPhase.READY and self._handle is None:
            raise InvalidStateTransition("cannot become ready without a channel")

        old_phase = self._phase
        self._phase = new_phase
        if new_phase is ConnectionPhase.IDLE:
            self._handle = None
        logger.debug("State transition: %s → %s", old_phase.value, new_phase.value)

    def __repr__(self) -> str:
        return f"ConnectionState(phase={self._phase.value}, handle={self._handle!r})"
