"""
INI configuration for the OBD Bluetooth broker.

Example file:

    [Bluetooth]
    name = OBDII
    # address = 00:1D:A5:1E:32:25
    # channel = 1

    [Transport]
    rfcomm_device = 0
    baudrate = 115200
    scan_timeout = 10
"""

import configparser
import os
from typing import Union

from .exceptions import InvalidArgumentException
from .options import ConnectionOptions
from .rfcomm_transport import RFCOMMTransport

REQUIRED_SECTIONS = ['Bluetooth']


def load_config(config_file: Union[str, os.PathLike]) -> configparser.ConfigParser:
    """Load and validate configuration from INI file."""
    if not os.path.exists(config_file):
        raise InvalidArgumentException(f"Configuration file '{config_file}' not found")

    config = configparser.ConfigParser()
    try:
        config.read(config_file)
    except configparser.Error as e:
        raise InvalidArgumentException(f"Invalid configuration file '{config_file}': {e}") from e

    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise InvalidArgumentException(
                f"Missing required section '[{section}]' in config file"
            )
    return config


def options_from_config(config: configparser.ConfigParser) -> ConnectionOptions:
    """Build ConnectionOptions from the [Bluetooth] section."""
    bluetooth = config['Bluetooth']
    address = bluetooth.get('address', '').strip() or None
    try:
        channel = bluetooth.getint('channel') if bluetooth.get('channel', '').strip() else None
    except ValueError as e:
        raise InvalidArgumentException(f"Bluetooth.channel should be a number: {e}") from e
    return ConnectionOptions(
        name=bluetooth.get('name', '').strip(),
        address=address,
        channel=channel,
    )


def transport_from_config(config: configparser.ConfigParser) -> RFCOMMTransport:
    """Build an RFCOMMTransport from the optional [Transport] section."""
    if 'Transport' not in config:
        return RFCOMMTransport()
    transport = config['Transport']
    try:
        return RFCOMMTransport(
            rfcomm_device=transport.getint('rfcomm_device', 0),
            baudrate=transport.getint('baudrate', 115200),
            timeout=transport.getfloat('timeout', 1.0),
            write_timeout=transport.getfloat('write_timeout', 1.0),
            scan_timeout=transport.getfloat('scan_timeout', 10.0),
            use_sudo=transport.getboolean('use_sudo', True),
        )
    except ValueError as e:
        raise InvalidArgumentException(f"Invalid [Transport] setting: {e}") from e
