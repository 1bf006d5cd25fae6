"""
Connection broker for OBD2 Bluetooth adapters.

Only one Bluetooth serial connection to the adapter can exist at a time, so
the broker makes every caller share the same connection. The first caller
triggers discovery (or a direct connect), the connection is configured with a
caller-supplied handshake, and then every waiting caller receives the same
handle.

Example:
    >>> broker = ConnectionBroker(RFCOMMTransport())
    >>> connect = broker.acquire({'name': 'OBDII'})
    >>> handle = await connect(elm327_handshake())
    >>> await handle.write('010D\\r')
"""

import asyncio
import inspect
import logging
from contextlib import aclosing
from typing import Any, Awaitable, Callable, Optional

from .exceptions import (
    ConnectionFailedException,
    DeviceNotFoundException,
    HandshakeFailedException,
    InvalidArgumentException,
)
from .handle import ConnectionHandle
from .options import ConnectionOptions
from .request_queue import RequestQueue
from .state import ConnectionPhase, ConnectionState
from .transport import Transport

logger = logging.getLogger(__name__)

ConfigureFn = Callable[[ConnectionHandle], Awaitable[Any]]
Connector = Callable[[ConfigureFn], "asyncio.Future[ConnectionHandle]"]

CONNECT_CONTEXT = "failed to connect to ecu"
HANDSHAKE_CONTEXT = "failed to configure ecu connection"
DEVICE_NOT_FOUND = "Could not find Bluetooth Device!"


class ConnectionBroker:
    """
    Hands out the single shared adapter connection.

    Attributes:
        transport (Transport): Transport used for discovery, connect and I/O.
    """

    def __init__(self, transport: Transport, state: Optional[ConnectionState] = None) -> None:
        """
        Initialize the broker and subscribe to transport events.

        Args:
            transport: Transport capability to drive
            state: Connection state owned by this broker (a fresh one by default)
        """
        self.transport = transport
        self._state = state if state is not None else ConnectionState()
        self._queue = RequestQueue()
        self._attempt: Optional["asyncio.Task[None]"] = None
        self._closing = False
        self._data_subscribers: list[Callable[[str], None]] = []

        transport.add_data_listener(self.on_data)
        transport.add_error_listener(self.on_error)

    @property
    def state(self) -> ConnectionState:
        """Connection state, read-only for callers."""
        return self._state

    @property
    def pending(self) -> int:
        """Number of callers waiting for the current attempt."""
        return len(self._queue)

    def acquire(self, options: Any) -> Connector:
        """
        Bind options and return a connector function.

        Args:
            options: ConnectionOptions or a mapping with 'name', 'address', 'channel'

        Returns:
            A function taking the configuration handshake and returning a
            future that resolves with the shared ConnectionHandle

        Raises:
            InvalidArgumentException: If options are malformed
        """
        opts = ConnectionOptions.coerce(options)

        def connector(configure_fn: ConfigureFn) -> "asyncio.Future[ConnectionHandle]":
            if not callable(configure_fn):
                raise InvalidArgumentException(
                    "you must provide a configure_fn that returns an awaitable"
                )
            return self._request(opts, configure_fn)

        return connector

    def _request(
        self, options: ConnectionOptions, configure_fn: ConfigureFn
    ) -> "asyncio.Future[ConnectionHandle]":
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[ConnectionHandle]" = loop.create_future()

        if self._state.ready:
            logger.debug("returning existing connection instance")
            future.set_result(self._state.handle)  # type: ignore[arg-type]
            return future

        request = self._queue.enqueue(future)
        if self._state.phase is ConnectionPhase.IDLE:
            logger.debug("opening a bluetooth connection (request %d)", request.request_id)
            self._state.transition_to(ConnectionPhase.CONNECTING)
            self._attempt = loop.create_task(self._connect(options, configure_fn))
        else:
            logger.debug(
                "connection attempt in flight, request %d queued behind it",
                request.request_id,
            )
        return future

    async def _connect(self, options: ConnectionOptions, configure_fn: ConfigureFn) -> None:
        phase = "connect"
        try:
            if options.direct:
                address, channel = options.address, options.channel
            else:
                phase = "discovery"
                address, channel = await self._discover(options.name)
                phase = "connect"
            await self.transport.connect(address, channel)  # type: ignore[arg-type]
        except (Exception, asyncio.CancelledError) as e:
            self._reraise_if_closing(e)
            error = ConnectionFailedException(CONNECT_CONTEXT, e, phase=phase)
            logger.debug("error establishing a bluetooth connection: %s", error)
            self._fail(error)
            return

        logger.debug("connected to %s on channel %s", address, channel)
        handle = ConnectionHandle(self.transport, address, channel, self._state)  # type: ignore[arg-type]
        self._state.attach(handle)

        logger.debug("bluetooth connection established, running configuration function")
        try:
            result = configure_fn(handle)
            if not inspect.isawaitable(result):
                raise TypeError(
                    f"configure_fn returned {type(result).__name__}, expected an awaitable"
                )
            await result
        except (Exception, asyncio.CancelledError) as e:
            self._reraise_if_closing(e)
            error = HandshakeFailedException(HANDSHAKE_CONTEXT, e)
            logger.warning("configuration handshake failed: %s", error)
            await self._close_transport()
            self._fail(error)
            return

        logger.debug("finished running configuration function, returning connection")
        self._state.transition_to(ConnectionPhase.READY)
        self._attempt = None
        self._queue.drain(result=handle)

    def _reraise_if_closing(self, error: BaseException) -> None:
        # Only close() may cancel the attempt outright; any other cancellation
        # fails the attempt like an ordinary error.
        if isinstance(error, asyncio.CancelledError) and self._closing:
            raise error

    async def _discover(self, name: str) -> tuple[str, int]:
        """Find the first device whose name contains `name` and resolve its channel."""
        wanted = name.lower()
        logger.debug("starting bluetooth inquiry for %r", name)
        async with aclosing(self.transport.inquire()) as devices:
            async for device in devices:
                logger.debug("found device %s (%s)", device.name, device.address)
                if wanted in device.name.lower():
                    logger.debug("matching bluetooth device %s", device.address)
                    channel = await self.transport.find_channel(device.address)
                    logger.debug("resolved serial port channel %d", channel)
                    return device.address, channel
        logger.debug("Bluetooth Device not found!")
        raise DeviceNotFoundException(DEVICE_NOT_FOUND)

    def _fail(self, error: BaseException) -> None:
        self._state.transition_to(ConnectionPhase.IDLE)
        self._attempt = None
        self._queue.drain(error=error)

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug("error closing transport after failed handshake: %s", e)

    def add_data_subscriber(self, callback: Callable[[str], None]) -> None:
        """Forward inbound adapter text to `callback`."""
        self._data_subscribers.append(callback)

    def on_data(self, payload: str) -> None:
        """
        Observe inbound data from the adapter.

        Payload decoding into PID events belongs to subscribers; this only logs
        and forwards, and never raises.
        """
        logger.debug("received obd data %s", payload)
        for callback in list(self._data_subscribers):
            try:
                callback(payload)
            except Exception:
                logger.exception("data subscriber %r failed", callback)

    def on_error(self, error: BaseException) -> None:
        """Log an asynchronous transport error; requests and state are untouched."""
        logger.error("bluetooth emitted an error %s", error)
        logger.debug("bluetooth error trace", exc_info=(type(error), error, error.__traceback__))

    async def close(self) -> None:
        """Close the transport and forget the connection."""
        if self._attempt is not None:
            attempt = self._attempt
            self._closing = True
            attempt.cancel()
            try:
                await attempt
            except asyncio.CancelledError:
                # Propagate when the task calling close() is itself being cancelled
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
            finally:
                self._closing = False
                self._attempt = None
                if self._state.connecting:
                    self._fail(ConnectionFailedException("connection attempt aborted, broker closed"))
        if self._state.ready:
            self._state.transition_to(ConnectionPhase.IDLE)
        await self.transport.close()


_default_broker: Optional[ConnectionBroker] = None


def get_default_broker() -> ConnectionBroker:
    """Return the process-wide broker, creating it around RFCOMMTransport."""
    global _default_broker
    if _default_broker is None:
        from .rfcomm_transport import RFCOMMTransport

        _default_broker = ConnectionBroker(RFCOMMTransport())
    return _default_broker


def set_default_broker(broker: Optional[ConnectionBroker]) -> None:
    """Replace the process-wide broker (None recreates it on next use)."""
    global _default_broker
    _default_broker = broker


def configure_connection(options: Any) -> Connector:
    """
    Bind options against the process-wide broker.

    All callers share one connection no matter how many connectors exist.
    """
    return get_default_broker().acquire(options)
