"""
Example: Connecting to an ELM327 adapter over Bluetooth RFCOMM.

This example discovers the adapter by name (or connects directly when an
address and channel are configured), runs the ELM327 init sequence and reads
the vehicle speed.

Usage:
    python examples/bluetooth_example.py [obd_bluetooth.ini]
"""

import asyncio
import logging
import sys

from obd_bluetooth import (
    ConnectionBroker,
    OBDBluetoothException,
    RFCOMMTransport,
    elm327_handshake,
    load_config,
    options_from_config,
    transport_from_config,
)


async def main(config_file=None):
    """Main example function."""
    if config_file:
        config = load_config(config_file)
        options = options_from_config(config)
        transport = transport_from_config(config)
    else:
        # Replace with your adapter's name; add address/channel to skip discovery
        options = {'name': 'OBDII'}
        transport = RFCOMMTransport(rfcomm_device=0, baudrate=115200)

    broker = ConnectionBroker(transport)
    broker.add_data_subscriber(lambda payload: print(f"<< {payload}"))

    try:
        connect = broker.acquire(options)
        # Real adapters need a pause between init commands
        handle = await connect(elm327_handshake(delay=0.3))
        print(f"Connected: {handle!r}")

        print("\n=== Reading Vehicle Speed (PID 0x0D) ===")
        await handle.write('010D\r')
        await asyncio.sleep(1.0)
    except OBDBluetoothException as e:
        print(f"Error: {e}")
    finally:
        await broker.close()
        print("\n=== Connection closed ===")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
