# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package tplink_smarthome implements a client for TP-Link Kasa smart home devices (plugs, switches and bulbs).

The devices speak a simple, undocumented local protocol on port 9999: JSON
commands, obfuscated with an autokey XOR cipher, sent over TCP (with a 4-byte
length prefix) or broadcast over UDP for discovery.

The protocol has been reverse-engineered from observed device traffic--enough
at least to discover devices, query their state, switch them on and off, dim
them, read their energy meters, and reboot or rename them.

Each recognized model is represented by a device class that implements exactly
the capabilities (Switch, Dimmer, Emeter, DeviceActions) that model supports;
unrecognized models resolve to RawDevice.
"""

from .version import __version__

from .internal_types import HostAndPort, Jsonable, JsonableDict

from .exceptions import (
    TpLinkError,
    NetworkError,
    FramingError,
    ProtocolError,
    SchemaError,
    DeviceResponseError,
    ValidationError,
  )

from .constants import DEFAULT_PORT, DEFAULT_TIMEOUT, DEFAULT_DISCOVERY_TIMEOUT, BROADCAST_ADDRESS
from .codec import encrypt, decrypt, pack_frame, unpack_frame, encode_request
from .transport import Transport, TcpTransport, UdpBroadcastSocket
from .datatypes import SysInfo, LightState, EmeterRealtime, Location, DeviceData
from .protocol import SmartCommand, SmartResponse, merge_commands
from .capabilities import Capability, Switch, Dimmer, Emeter, DeviceActions
from .devices import (
    DeviceKind,
    Device,
    BaseDevice,
    RawDevice,
    HS100,
    HS110,
    HS220,
    LB110,
    CAPABILITY_MATRIX,
    resolve,
    identify,
    connect,
  )
from .discovery import DiscoveryClient, discover
from .util import parse_address, format_address

__all__ = [
    '__version__',
    'HostAndPort', 'Jsonable', 'JsonableDict',
    'TpLinkError', 'NetworkError', 'FramingError', 'ProtocolError', 'SchemaError',
    'DeviceResponseError', 'ValidationError',
    'DEFAULT_PORT', 'DEFAULT_TIMEOUT', 'DEFAULT_DISCOVERY_TIMEOUT', 'BROADCAST_ADDRESS',
    'encrypt', 'decrypt', 'pack_frame', 'unpack_frame', 'encode_request',
    'Transport', 'TcpTransport', 'UdpBroadcastSocket',
    'SysInfo', 'LightState', 'EmeterRealtime', 'Location', 'DeviceData',
    'SmartCommand', 'SmartResponse', 'merge_commands',
    'Capability', 'Switch', 'Dimmer', 'Emeter', 'DeviceActions',
    'DeviceKind', 'Device', 'BaseDevice', 'RawDevice', 'HS100', 'HS110', 'HS220', 'LB110',
    'CAPABILITY_MATRIX', 'resolve', 'identify', 'connect',
    'DiscoveryClient', 'discover',
    'parse_address', 'format_address',
]
