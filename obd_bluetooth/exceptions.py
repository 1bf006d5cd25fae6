"""
Custom exceptions for the OBD Bluetooth connection broker.

This module defines all custom exception classes raised by the broker and by
transports, so callers can tell which phase of a connection attempt failed.
"""

from typing import Optional


class OBDBluetoothException(Exception):
    """
    Base exception for all obd_bluetooth errors.

    This is the parent class for all custom exceptions raised by this package.
    """
    pass


class InvalidArgumentException(OBDBluetoothException, ValueError):
    """
    Exception raised when options or the configure function are malformed.

    Raised synchronously at the call boundary, before any transport activity.
    """
    pass


class DeviceNotFoundException(OBDBluetoothException):
    """
    Exception raised when discovery finishes without a matching device.

    Never reaches callers directly: it becomes the cause of a
    ConnectionFailedException.
    """
    pass


class ChainedException(OBDBluetoothException):
    """
    Exception wrapping an underlying cause with a context message.

    The message reads "<context>: <cause>" and the cause is kept both as
    the ``cause`` attribute and as ``__cause__`` so tracebacks show the chain.

    Attributes:
        cause: The underlying error, or None.
        phase: Name of the phase that failed (discovery, connect, handshake).
    """

    default_phase = "connect"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        phase: Optional[str] = None,
    ) -> None:
        if cause is not None:
            message = f"{message}: {str(cause) or type(cause).__name__}"
        super().__init__(message)
        self.cause = cause
        self.phase = phase or self.default_phase
        self.__cause__ = cause


class ConnectionFailedException(ChainedException):
    """
    Exception raised when discovery, channel lookup or connect fails.

    Every request queued for the failed attempt is rejected with the same
    instance.
    """
    pass


class HandshakeFailedException(ChainedException):
    """
    Exception raised when the configuration handshake fails after connecting.

    The connection state is reset so the next acquire starts over.
    """

    default_phase = "handshake"


class TransportException(OBDBluetoothException):
    """
    Exception raised by a transport when an I/O operation fails.
    """
    pass


class TransportTimeoutError(TransportException):
    """Timeout during a transport operation."""
    pass


class TransportBackgroundError(TransportException):
    """
    Asynchronous transport error unrelated to any in-flight request.

    Only ever logged by the broker's error observer.
    """
    pass


class InvalidStateTransition(OBDBluetoothException):
    """Exception raised when the connection state is moved along an invalid edge."""
    pass
