"""
OBD Bluetooth connection broker.

This package makes every caller share the single Bluetooth serial connection
an OBD-II adapter allows, and only hands it out once a configuration
handshake has completed.
"""

from .broker import ConnectionBroker, configure_connection, get_default_broker, set_default_broker
from .config import load_config, options_from_config, transport_from_config
from .exceptions import (
    OBDBluetoothException,
    InvalidArgumentException,
    DeviceNotFoundException,
    ConnectionFailedException,
    HandshakeFailedException,
    TransportException,
    TransportTimeoutError,
    TransportBackgroundError,
    InvalidStateTransition,
)
from .handle import ConnectionHandle
from .handshake import ELM327_INIT_COMMANDS, elm327_handshake
from .mock_transport import MockTransport
from .options import ConnectionOptions
from .rfcomm_transport import RFCOMMTransport
from .state import ConnectionPhase, ConnectionState
from .transport import DiscoveredDevice, Transport

__all__ = [
    # Broker
    'ConnectionBroker',
    'configure_connection',
    'get_default_broker',
    'set_default_broker',
    'ConnectionHandle',
    'ConnectionOptions',
    'ConnectionPhase',
    'ConnectionState',

    # Handshake
    'ELM327_INIT_COMMANDS',
    'elm327_handshake',

    # Transports
    'Transport',
    'DiscoveredDevice',
    'RFCOMMTransport',
    'MockTransport',

    # Configuration
    'load_config',
    'options_from_config',
    'transport_from_config',

    # Exceptions
    'OBDBluetoothException',
    'InvalidArgumentException',
    'DeviceNotFoundException',
    'ConnectionFailedException',
    'HandshakeFailedException',
    'TransportException',
    'TransportTimeoutError',
    'TransportBackgroundError',
    'InvalidStateTransition',
]
