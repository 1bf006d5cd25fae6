"""
Ready-made configuration handshake for ELM327 adapters.

Pass the result of elm327_handshake() as the configure function of a
connector to reset the adapter and apply the usual OBD-II/UDS settings before
the connection is handed out.
"""

import asyncio
from typing import Awaitable, Callable, Sequence

from .handle import ConnectionHandle

ELM327_INIT_COMMANDS = (
    'ATZ',    # Reset
    'ATE0',   # Echo off
    'ATL0',   # Linefeeds off
    'ATS0',   # Spaces off
    'ATH1',   # Headers on
    'ATSP0',  # Auto protocol detection
)


def elm327_handshake(
    commands: Sequence[str] = ELM327_INIT_COMMANDS,
    delay: float = 0.0,
) -> Callable[[ConnectionHandle], Awaitable[None]]:
    """
    Build a configure function sending ELM327 init commands.

    Args:
        commands: AT commands to send, in order, each terminated with '\\r'
        delay: Seconds to wait after each command (real adapters need ~0.1s,
               and about 1s after ATZ)

    Returns:
        Async function accepting the not-yet-ready ConnectionHandle
    """

    async def configure(handle: ConnectionHandle) -> None:
        for command in commands:
            await handle.write(command + '\r')
            if delay:
                await asyncio.sleep(delay)

    return configure
