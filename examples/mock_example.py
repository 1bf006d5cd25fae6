"""
Example: Sharing one connection between several callers, without hardware.

This example demonstrates how the broker hands the same configured
connection to concurrent callers, using MockTransport in place of a real
Bluetooth adapter.
"""

import asyncio
import logging

from obd_bluetooth import ConnectionBroker, ConnectionFailedException, MockTransport, elm327_handshake


async def poll(name: str, connect) -> None:
    """Pretend to be an independent poller that needs the connection."""
    handle = await connect(elm327_handshake())
    print(f"{name}: got {handle!r}")
    await handle.write('010D\r')


async def main():
    """Main example function."""
    transport = MockTransport(devices=[
        ("11:22:33:44:55:66", "Kitchen Speaker"),
        ("00:1D:A5:1E:32:25", "OBDII"),
    ])
    broker = ConnectionBroker(transport)
    broker.add_data_subscriber(lambda payload: print(f"adapter says: {payload!r}"))

    connect = broker.acquire({'name': 'obd'})

    # Three pollers start at once, only one connection is made
    await asyncio.gather(poll("speed", connect), poll("rpm", connect), poll("coolant", connect))
    print(f"\nconnect calls: {transport.call_count['connect']}")

    # A missing adapter rejects every waiting caller with the same error
    missing = ConnectionBroker(MockTransport())
    try:
        await missing.acquire({'name': 'OBDII'})(elm327_handshake())
    except ConnectionFailedException as e:
        print(f"\nExpected failure in phase '{e.phase}': {e}")

    await broker.close()
    print("\n=== Connection closed ===")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
