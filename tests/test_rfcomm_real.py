"""
Integration tests for the broker with a real Bluetooth adapter.

These tests require:
1. An ELM327 Bluetooth adapter powered on and paired
2. BlueZ tools (bluetoothctl, sdptool, rfcomm) and sudo rights for rfcomm
3. OBD_BT_NAME set to (part of) the adapter name, e.g. OBD_BT_NAME=OBDII
   Optionally OBD_BT_ADDRESS and OBD_BT_CHANNEL to skip discovery.

Tests are skipped if OBD_BT_NAME is not set.

To run from command line:
    OBD_BT_NAME=OBDII python -m pytest tests/test_rfcomm_real.py -v
"""

import asyncio
import os
import unittest

import pytest

from obd_bluetooth import ConnectionBroker, RFCOMMTransport, elm327_handshake

ADAPTER_NAME = os.environ.get("OBD_BT_NAME")
ADAPTER_ADDRESS = os.environ.get("OBD_BT_ADDRESS")
ADAPTER_CHANNEL = os.environ.get("OBD_BT_CHANNEL")


@pytest.mark.integration
@pytest.mark.bluetooth
@unittest.skipUnless(ADAPTER_NAME, "OBD_BT_NAME not set")
class TestRFCOMMRealConnection(unittest.IsolatedAsyncioTestCase):
    """
    Integration tests for a real Bluetooth ELM327 adapter.

    The adapter does NOT need to be connected to a vehicle.
    """

    async def asyncSetUp(self) -> None:
        self.broker = ConnectionBroker(RFCOMMTransport())
        self.options = {'name': ADAPTER_NAME}
        if ADAPTER_ADDRESS and ADAPTER_CHANNEL:
            self.options.update(address=ADAPTER_ADDRESS, channel=int(ADAPTER_CHANNEL))

    async def asyncTearDown(self) -> None:
        await self.broker.close()
        # Allow RFCOMM to fully release
        await asyncio.sleep(2.0)

    async def test_connect_and_initialize(self) -> None:
        """Test concurrent callers get one initialized connection."""
        received = []
        self.broker.add_data_subscriber(received.append)

        connect = self.broker.acquire(self.options)
        handshake = elm327_handshake(delay=0.5)
        first, second = await asyncio.gather(connect(handshake), connect(handshake))

        self.assertIs(first, second)
        self.assertTrue(first.ready)
        self.assertTrue(any("ELM" in payload for payload in received), received)
