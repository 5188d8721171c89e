#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Capability interfaces: operation contracts that a device variant may or may not implement.

Each capability is a mixin class. A device variant supports a capability iff its
class derives from that capability's mixin; methods of capabilities a variant
lacks simply do not exist on it. Capability membership never depends on what a
device reports at runtime.
"""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import MAX_ALIAS_LENGTH
from .exceptions import SchemaError, ValidationError
from .datatypes import SysInfo, Location, LightState, EmeterRealtime
from .protocol import (
    SmartCommand,
    SmartResponse,
    LightStateResponse,
    EmeterRealtimeResponse,
    TimeResponse,
    EMETER_MODULE,
    TIME_MODULE,
    set_relay_state_command,
    dimmer_set_brightness_command,
    get_light_state_command,
    transition_light_state_command,
    get_realtime_command,
    get_time_command,
    reboot_command,
    set_dev_alias_command,
  )

class Capability(Enum):
    """The named operation contracts a device variant can implement"""
    SWITCH = "switch"
    DIMMER = "dimmer"
    EMETER = "emeter"
    DEVICE_ACTIONS = "device_actions"

class CommandIssuer(ABC):
    """The device operations that capability implementations are built on."""

    @abstractmethod
    async def command(self, cmd: SmartCommand) -> SmartResponse:
        raise NotImplementedError()

    @abstractmethod
    async def sysinfo(self) -> SysInfo:
        raise NotImplementedError()

class CapabilityInterface(CommandIssuer):
    capability: ClassVar[Capability]

def capabilities_of_class(cls: type) -> FrozenSet[Capability]:
    """Returns the set of capabilities whose interfaces cls implements."""
    return frozenset(
        base.__dict__['capability'] for base in cls.__mro__
        if issubclass(base, CapabilityInterface) and 'capability' in base.__dict__
      )

# ======================= Switch

class Switch(CapabilityInterface):
    """On/off control."""
    capability = Capability.SWITCH

    @abstractmethod
    async def is_on(self) -> bool:
        raise NotImplementedError()

    @abstractmethod
    async def switch_on(self) -> None:
        raise NotImplementedError()

    @abstractmethod
    async def switch_off(self) -> None:
        raise NotImplementedError()

    async def toggle(self) -> bool:
        """Switches the device to the opposite state. Returns the new state."""
        new_state = not await self.is_on()
        if new_state:
            await self.switch_on()
        else:
            await self.switch_off()
        return new_state

class RelaySwitch(Switch):
    """Switch implemented by the system module's relay (plugs and wall switches)."""

    async def is_on(self) -> bool:
        relay_state = (await self.sysinfo()).relay_state
        if relay_state is None:
            raise SchemaError("sysinfo: missing field 'relay_state'")
        return relay_state == 1

    async def switch_on(self) -> None:
        await self.command(set_relay_state_command(True))

    async def switch_off(self) -> None:
        await self.command(set_relay_state_command(False))

class BulbSwitch(Switch):
    """Switch implemented by a bulb's lighting service."""

    async def light_state(self) -> LightState:
        response = await self.command(get_light_state_command)
        assert isinstance(response, LightStateResponse)
        return response.light_state

    async def is_on(self) -> bool:
        return (await self.light_state()).on_off

    async def switch_on(self) -> None:
        await self.command(transition_light_state_command(on_off=True))

    async def switch_off(self) -> None:
        await self.command(transition_light_state_command(on_off=False))

# ======================= Dimmer

MIN_BRIGHTNESS = 0
MAX_BRIGHTNESS = 100

def validate_brightness(brightness: int) -> int:
    """Raises ValidationError unless brightness is an int in [MIN_BRIGHTNESS, MAX_BRIGHTNESS]."""
    if isinstance(brightness, bool) or not isinstance(brightness, int):
        raise ValidationError(f"Brightness must be an integer, got {brightness!r}")
    if not MIN_BRIGHTNESS <= brightness <= MAX_BRIGHTNESS:
        raise ValidationError(f"Brightness {brightness} is outside the valid range {MIN_BRIGHTNESS}..{MAX_BRIGHTNESS}")
    return brightness

class Dimmer(CapabilityInterface):
    """Brightness control, as a percentage."""
    capability = Capability.DIMMER

    @abstractmethod
    async def brightness(self) -> int:
        raise NotImplementedError()

    @abstractmethod
    async def _apply_brightness(self, brightness: int) -> None:
        raise NotImplementedError()

    async def set_brightness(self, brightness: int) -> None:
        """Sets the brightness (0..100).

        The value is validated before anything is sent; an out-of-range value raises
        ValidationError without any network traffic.
        """
        validate_brightness(brightness)
        await self._apply_brightness(brightness)

class DimmerModuleDimmer(Dimmer):
    """Dimmer implemented by the smartlife.iot.dimmer module (wall dimmers)."""

    async def brightness(self) -> int:
        brightness = (await self.sysinfo()).brightness
        if brightness is None:
            raise SchemaError("sysinfo: missing field 'brightness'")
        return brightness

    async def _apply_brightness(self, brightness: int) -> None:
        await self.command(dimmer_set_brightness_command(brightness))

class BulbDimmer(Dimmer):
    """Dimmer implemented by a bulb's lighting service."""

    async def brightness(self) -> int:
        response = await self.command(get_light_state_command)
        assert isinstance(response, LightStateResponse)
        return response.light_state.brightness

    async def _apply_brightness(self, brightness: int) -> None:
        await self.command(transition_light_state_command(brightness=brightness))

# ======================= Emeter

class Emeter(CapabilityInterface):
    """Energy metering."""
    capability = Capability.EMETER

    emeter_module: ClassVar[str] = EMETER_MODULE
    """The module that answers get_realtime on this variant"""

    async def emeter_realtime(self) -> EmeterRealtime:
        response = await self.command(get_realtime_command(self.emeter_module))
        assert isinstance(response, EmeterRealtimeResponse)
        return response.realtime

# ======================= DeviceActions

class DeviceActions(CapabilityInterface):
    """Whole-device administration: reboot, rename, location and clock."""
    capability = Capability.DEVICE_ACTIONS

    time_module: ClassVar[str] = TIME_MODULE
    """The module that answers get_time on this variant"""

    async def reboot(self, delay_secs: int=1) -> None:
        """Asks the device to reboot after delay_secs seconds."""
        if isinstance(delay_secs, bool) or not isinstance(delay_secs, int) or delay_secs < 0:
            raise ValidationError(f"Reboot delay must be a non-negative integer, got {delay_secs!r}")
        logger.info(f"Rebooting {self} in {delay_secs}s")
        await self.command(reboot_command(delay_secs))

    async def set_alias(self, alias: str) -> None:
        if not isinstance(alias, str) or not 0 < len(alias) <= MAX_ALIAS_LENGTH:
            raise ValidationError(f"Alias must be a string of 1..{MAX_ALIAS_LENGTH} characters, got {alias!r}")
        await self.command(set_dev_alias_command(alias))

    async def location(self) -> Location:
        result = (await self.sysinfo()).location
        if result is None:
            raise SchemaError("sysinfo: missing location fields")
        return result

    async def time(self) -> datetime.datetime:
        """The device's local wall-clock time"""
        response = await self.command(get_time_command(self.time_module))
        assert isinstance(response, TimeResponse)
        return response.time
