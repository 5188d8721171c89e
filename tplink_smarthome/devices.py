#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
The device model: a closed set of device variants, each with a fixed set of capabilities.

A device is resolved from the model string in its system info. Resolution is
total: models that are not recognized resolve to RawDevice, which supports the
basic info query and nothing else.

    Variant    Switch  Dimmer  Emeter  DeviceActions
    HS100        x                          x
    HS110        x               x          x
    HS220        x       x                  x
    LB110        x       x       x          x
    RawDevice
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TIMEOUT, DEFAULT_PORT
from .codec import decode_response_payload
from .datatypes import SysInfo, DeviceData
from .protocol import (
    SmartCommand,
    SmartResponse,
    SysInfoResponse,
    BULB_EMETER_MODULE,
    BULB_TIME_MODULE,
    get_sysinfo_command,
    merge_commands,
  )
from .transport import Transport, TcpTransport
from .capabilities import (
    Capability,
    CommandIssuer,
    RelaySwitch,
    BulbSwitch,
    DimmerModuleDimmer,
    BulbDimmer,
    Emeter,
    DeviceActions,
  )
from .util import parse_address, format_address

class DeviceKind(Enum):
    """The tag identifying a device variant"""
    HS100 = "HS100"
    HS110 = "HS110"
    HS220 = "HS220"
    LB110 = "LB110"
    UNKNOWN = "unknown"

CAPABILITY_MATRIX: Mapping[DeviceKind, FrozenSet[Capability]] = {
    DeviceKind.HS100: frozenset([Capability.SWITCH, Capability.DEVICE_ACTIONS]),
    DeviceKind.HS110: frozenset([Capability.SWITCH, Capability.EMETER, Capability.DEVICE_ACTIONS]),
    DeviceKind.HS220: frozenset([Capability.SWITCH, Capability.DIMMER, Capability.DEVICE_ACTIONS]),
    DeviceKind.LB110: frozenset([Capability.SWITCH, Capability.DIMMER, Capability.EMETER, Capability.DEVICE_ACTIONS]),
    DeviceKind.UNKNOWN: frozenset(),
}
"""The capabilities each device variant supports"""

class BaseDevice(CommandIssuer):
    """The operations common to every device variant: raw queries and the system info query."""

    kind: ClassVar[DeviceKind] = DeviceKind.UNKNOWN

    addr: HostAndPort
    """The (ip_address, port) of the device"""

    transport: Transport
    """The transport used for every round trip to the device"""

    def __init__(self, addr: HostAndPort, transport: Optional[Transport]=None):
        self.addr = addr
        self.transport = TcpTransport() if transport is None else transport

    @classmethod
    def from_addr(
            cls,
            address: Union[str, HostAndPort],
            transport: Optional[Transport]=None,
            timeout_secs: float=DEFAULT_TIMEOUT,
            default_port: int=DEFAULT_PORT,
          ) -> Self:
        """Creates a handle for a device known to be of this variant. No network I/O is performed."""
        if transport is None:
            transport = TcpTransport(timeout_secs=timeout_secs)
        return cls(parse_address(address, default_port=default_port), transport)

    @classmethod
    async def connect(
            cls,
            address: Union[str, HostAndPort],
            transport: Optional[Transport]=None,
            timeout_secs: float=DEFAULT_TIMEOUT,
            default_port: int=DEFAULT_PORT,
          ) -> Self:
        """Creates a handle for a device known to be of this variant, and checks that it answers an info query.

        Raises NetworkError if the device is unreachable, or ProtocolError if its answer is malformed.
        """
        device = cls.from_addr(address, transport=transport, timeout_secs=timeout_secs, default_port=default_port)
        sysinfo = await device.sysinfo()
        if cls.kind != DeviceKind.UNKNOWN and resolve_kind(sysinfo) != cls.kind:
            logger.warning(f"{device}: reported model {sysinfo.get('model')!r} is not a {cls.kind.value}")
        return device

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return CAPABILITY_MATRIX[self.kind]

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def query(self, command: Mapping[str, Any]) -> JsonableDict:
        """Sends an arbitrary command object and returns the decoded response payload."""
        plain = await self.transport.send_and_receive(self.addr, command)
        return decode_response_payload(plain)

    async def command(self, cmd: SmartCommand) -> SmartResponse:
        return await cmd(self.transport, self.addr)

    async def commands(self, *cmds: SmartCommand) -> List[SmartResponse]:
        """Sends several commands in a single request, and returns their responses in order."""
        payload = await self.query(merge_commands(*[cmd.to_json() for cmd in cmds]))
        return [cmd.create_response(payload) for cmd in cmds]

    async def device_data(self) -> DeviceData:
        """Queries system info and returns it unparsed, paired with this device's address."""
        payload = await self.query(get_sysinfo_command.to_json())
        return DeviceData(self.addr, payload)

    async def sysinfo(self) -> SysInfo:
        response = await self.command(get_sysinfo_command)
        assert isinstance(response, SysInfoResponse)
        return response.sysinfo

    def __str__(self) -> str:
        return f"{type(self).__name__}({format_address(self.addr)})"

    def __repr__(self) -> str:
        return str(self)

class RawDevice(BaseDevice):
    """A device whose model is not recognized. Only the info query (and raw queries) are available."""
    kind = DeviceKind.UNKNOWN

class HS100(BaseDevice, RelaySwitch, DeviceActions):
    """HS100 smart plug"""
    kind = DeviceKind.HS100

class HS110(BaseDevice, RelaySwitch, Emeter, DeviceActions):
    """HS110 smart plug with energy monitoring"""
    kind = DeviceKind.HS110

class HS220(BaseDevice, RelaySwitch, DimmerModuleDimmer, DeviceActions):
    """HS220 dimmable wall switch"""
    kind = DeviceKind.HS220

class LB110(BaseDevice, BulbSwitch, BulbDimmer, Emeter, DeviceActions):
    """LB110 dimmable white smart bulb"""
    kind = DeviceKind.LB110
    emeter_module = BULB_EMETER_MODULE
    time_module = BULB_TIME_MODULE

Device = Union[HS100, HS110, HS220, LB110, RawDevice]
"""A handle for any device: one of the recognized variants, or the generic fallback"""

DEVICE_CLASSES: Mapping[DeviceKind, Type[BaseDevice]] = {
    DeviceKind.HS100: HS100,
    DeviceKind.HS110: HS110,
    DeviceKind.HS220: HS220,
    DeviceKind.LB110: LB110,
    DeviceKind.UNKNOWN: RawDevice,
}

MODEL_PREFIXES: Sequence[Tuple[str, DeviceKind]] = (
    ("HS100", DeviceKind.HS100),
    ("HS110", DeviceKind.HS110),
    ("HS220", DeviceKind.HS220),
    ("LB110", DeviceKind.LB110),
)
"""Model string prefixes (e.g., "HS110(UK)") that identify each recognized variant"""

def resolve_kind(sysinfo: Mapping[str, Any]) -> DeviceKind:
    """Maps a system info payload to a device kind. Never fails; anything unrecognized is UNKNOWN."""
    model = sysinfo.get('model')
    if isinstance(model, str):
        for prefix, kind in MODEL_PREFIXES:
            if model.startswith(prefix):
                return kind
    return DeviceKind.UNKNOWN

def resolve(address: HostAndPort, sysinfo: Mapping[str, Any], transport: Optional[Transport]=None) -> Device:
    """Creates the device handle of the right variant for a system info payload.

    Pure and total: no network I/O is performed, and unrecognized or missing
    models resolve to RawDevice rather than raising.
    """
    kind = resolve_kind(sysinfo)
    device = cast(Device, DEVICE_CLASSES[kind](address, transport))
    logger.debug(f"Resolved model {sysinfo.get('model')!r} at {format_address(address)} to {device}")
    return device

def device_from_data(data: DeviceData, transport: Optional[Transport]=None) -> Device:
    """Resolves a device from discovered (or directly queried) data.

    If the data has no well-formed system info, the device resolves to RawDevice.
    """
    module = data.payload.get('system')
    sysinfo = module.get('get_sysinfo') if isinstance(module, dict) else None
    return resolve(data.addr, sysinfo if isinstance(sysinfo, dict) else {}, transport=transport)

async def identify(
        address: Union[str, HostAndPort],
        transport: Optional[Transport]=None,
        timeout_secs: float=DEFAULT_TIMEOUT,
        default_port: int=DEFAULT_PORT,
      ) -> Tuple[Device, SysInfo]:
    """Queries a device's system info and resolves it to the right variant.

    Returns (device, sysinfo). Raises NetworkError or ProtocolError if the device
    cannot be queried.
    """
    raw = RawDevice.from_addr(address, transport=transport, timeout_secs=timeout_secs, default_port=default_port)
    sysinfo = await raw.sysinfo()
    return (resolve(raw.addr, sysinfo, transport=raw.transport), sysinfo)

async def connect(
        address: Union[str, HostAndPort],
        transport: Optional[Transport]=None,
        timeout_secs: float=DEFAULT_TIMEOUT,
        default_port: int=DEFAULT_PORT,
      ) -> Device:
    """Queries a device at a known address and returns a handle of the right variant."""
    device, _ = await identify(address, transport=transport, timeout_secs=timeout_secs, default_port=default_port)
    return device
