#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Parsed representations of the data that devices report about themselves.
"""

from __future__ import annotations

import datetime
from types import MappingProxyType

from .internal_types import *
from .exceptions import SchemaError
from .util import get_field, get_optional_field, format_address

if TYPE_CHECKING:
    from .transport import Transport
    from .devices import Device

class Location:
    """A device's configured geographic location, in decimal degrees."""
    latitude: float
    longitude: float

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Location):
            return NotImplemented
        return (self.latitude, self.longitude) == (other.latitude, other.longitude)

    def __str__(self) -> str:
        return f"Location(latitude={self.latitude}, longitude={self.longitude})"

    def __repr__(self) -> str:
        return str(self)

class SysInfo(Mapping[str, Jsonable]):
    """Read-only view of a device's response to system.get_sysinfo.

    Well-known attributes are exposed as properties; every field, including ones
    this package does not know about, is also available through the read-only
    Mapping interface.
    """

    _data: Mapping[str, Jsonable]

    def __init__(self, data: Mapping[str, Jsonable]):
        if not isinstance(data, Mapping):
            raise SchemaError(f"sysinfo is not an object: {data!r}")
        self._data = MappingProxyType(dict(data))

    def __getitem__(self, key: str) -> Jsonable:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __str__(self) -> str:
        return f"SysInfo(alias={self.alias!r}, model={self.model!r}, sw_ver={self.sw_ver!r})"

    def __repr__(self) -> str:
        return str(self)

    def to_jsonable(self) -> JsonableDict:
        return dict(self._data)

    def _str(self, key: str) -> Optional[str]:
        return get_optional_field(self._data, key, str, context="sysinfo")

    @property
    def alias(self) -> str:
        """The user-assigned device name"""
        return get_field(self._data, 'alias', str, context="sysinfo")

    @property
    def model(self) -> str:
        """The hardware model string; e.g., "HS110(US)"."""
        return get_field(self._data, 'model', str, context="sysinfo")

    @property
    def dev_name(self) -> Optional[str]:
        """The product description; e.g., "Wi-Fi Smart Plug With Energy Monitoring"."""
        result = self._str('dev_name')
        if result is None:
            result = self._str('description')
        return result

    @property
    def hw_type(self) -> Optional[str]:
        """The device type string; plugs report "type", bulbs report "mic_type"."""
        result = self._str('type')
        if result is None:
            result = self._str('mic_type')
        return result

    @property
    def sw_ver(self) -> Optional[str]:
        return self._str('sw_ver')

    @property
    def hw_ver(self) -> Optional[str]:
        return self._str('hw_ver')

    @property
    def mac(self) -> Optional[str]:
        for key in ('mac', 'mic_mac', 'ethernet_mac'):
            result = self._str(key)
            if result is not None:
                return result
        return None

    @property
    def device_id(self) -> Optional[str]:
        return self._str('deviceId')

    @property
    def rssi(self) -> Optional[int]:
        """WiFi signal strength in dB"""
        return get_optional_field(self._data, 'rssi', int, context="sysinfo")

    @property
    def active_mode(self) -> Optional[str]:
        return self._str('active_mode')

    @property
    def feature(self) -> Optional[str]:
        """Feature flags, as a colon-separated string (e.g., "TIM:ENE")."""
        return self._str('feature')

    @property
    def relay_state(self) -> Optional[int]:
        """1 if the relay is closed (on), 0 if open, None if the device has no relay."""
        return get_optional_field(self._data, 'relay_state', int, context="sysinfo")

    @property
    def brightness(self) -> Optional[int]:
        """Dimmer brightness (0..100) for devices that report it at the top level."""
        return get_optional_field(self._data, 'brightness', int, context="sysinfo")

    @property
    def led_off(self) -> Optional[bool]:
        value = get_optional_field(self._data, 'led_off', int, context="sysinfo")
        return None if value is None else bool(value)

    @property
    def on_time(self) -> Optional[int]:
        """Seconds since the relay was last switched on"""
        return get_optional_field(self._data, 'on_time', int, context="sysinfo")

    @property
    def is_dimmable(self) -> bool:
        value = get_optional_field(self._data, 'is_dimmable', int, context="sysinfo")
        if value is not None:
            return bool(value)
        return 'brightness' in self._data

    @property
    def light_state(self) -> Optional[LightState]:
        """The bulb's light state, for bulbs; None otherwise."""
        value = get_optional_field(self._data, 'light_state', dict, context="sysinfo")
        return None if value is None else LightState(value)

    @property
    def location(self) -> Optional[Location]:
        """The configured location, or None if not reported.

        Newer firmware reports integer latitude_i/longitude_i in units of 1e-4 degrees.
        """
        lat = get_optional_field(self._data, 'latitude', float, context="sysinfo")
        lon = get_optional_field(self._data, 'longitude', float, context="sysinfo")
        if lat is not None and lon is not None:
            return Location(float(lat), float(lon))
        lat_i = get_optional_field(self._data, 'latitude_i', int, context="sysinfo")
        lon_i = get_optional_field(self._data, 'longitude_i', int, context="sysinfo")
        if lat_i is not None and lon_i is not None:
            return Location(lat_i / 10000.0, lon_i / 10000.0)
        return None

class LightState:
    """A bulb's light state, from sysinfo.light_state or lightingservice.get_light_state.

    When a bulb is off, its brightness/color fields are reported under dft_on_state
    (the state it will return to when switched on).
    """
    _data: Mapping[str, Jsonable]

    def __init__(self, data: Mapping[str, Jsonable]):
        self._data = MappingProxyType(dict(data))

    def _details(self) -> Mapping[str, Jsonable]:
        if not self.on_off:
            dft = get_optional_field(self._data, 'dft_on_state', dict, context="light_state")
            if dft is not None:
                return dft
        return self._data

    @property
    def on_off(self) -> bool:
        return bool(get_field(self._data, 'on_off', int, context="light_state"))

    @property
    def brightness(self) -> int:
        return get_field(self._details(), 'brightness', int, context="light_state")

    @property
    def hue(self) -> Optional[int]:
        return get_optional_field(self._details(), 'hue', int, context="light_state")

    @property
    def saturation(self) -> Optional[int]:
        return get_optional_field(self._details(), 'saturation', int, context="light_state")

    @property
    def color_temp(self) -> Optional[int]:
        return get_optional_field(self._details(), 'color_temp', int, context="light_state")

    @property
    def mode(self) -> Optional[str]:
        return get_optional_field(self._details(), 'mode', str, context="light_state")

    def to_jsonable(self) -> JsonableDict:
        return dict(self._data)

    def __str__(self) -> str:
        return f"LightState({dict(self._data)})"

    def __repr__(self) -> str:
        return str(self)

class EmeterRealtime:
    """Realtime energy meter readings, normalized to volts, amps, watts and kilowatt-hours.

    Older plug firmware reports voltage/current/power/total; newer firmware and bulbs
    report voltage_mv/current_ma/power_mw/total_wh. Bulbs report only power.
    """
    voltage: Optional[float]
    current: Optional[float]
    power: float
    total: Optional[float]

    def __init__(self, data: Mapping[str, Jsonable]):
        self.voltage = self._read(data, 'voltage', 'voltage_mv', 1000.0)
        self.current = self._read(data, 'current', 'current_ma', 1000.0)
        power = self._read(data, 'power', 'power_mw', 1000.0)
        if power is None:
            raise SchemaError(f"get_realtime: missing field 'power' or 'power_mw' in {dict(data)!r}")
        self.power = power
        self.total = self._read(data, 'total', 'total_wh', 1000.0)

    @staticmethod
    def _read(data: Mapping[str, Jsonable], key: str, scaled_key: str, divisor: float) -> Optional[float]:
        value = get_optional_field(data, key, float, context="get_realtime")
        if value is not None:
            return float(value)
        scaled = get_optional_field(data, scaled_key, float, context="get_realtime")
        if scaled is not None:
            return float(scaled) / divisor
        return None

    def to_jsonable(self) -> JsonableDict:
        return {
            "voltage": self.voltage,
            "current": self.current,
            "power": self.power,
            "total": self.total,
        }

    def __str__(self) -> str:
        return f"EmeterRealtime(voltage={self.voltage}, current={self.current}, power={self.power}, total={self.total})"

    def __repr__(self) -> str:
        return str(self)

class DeviceData:
    """A device's network address paired with its most recent raw response payload.

    The payload is kept unparsed; sysinfo() parses it on demand.
    """

    addr: HostAndPort
    """The (ip_address, port) the response came from"""

    payload: JsonableDict
    """The decoded JSON response, e.g. {"system": {"get_sysinfo": {...}}}"""

    def __init__(self, addr: HostAndPort, payload: JsonableDict):
        self.addr = addr
        self.payload = payload

    def sysinfo(self) -> SysInfo:
        """Parses the system.get_sysinfo portion of the payload.

        Raises SchemaError (or DeviceResponseError) if it is missing or malformed.
        """
        from .protocol import get_sysinfo_command
        return get_sysinfo_command.create_response(self.payload).sysinfo

    def device(self, transport: Optional[Transport]=None) -> Device:
        """Resolves the device variant that sent this data. Never fails; see devices.resolve()."""
        from .devices import device_from_data
        return device_from_data(self, transport=transport)

    def to_jsonable(self) -> JsonableDict:
        return {"addr": format_address(self.addr), "payload": self.payload}

    def __str__(self) -> str:
        return f"DeviceData(addr={format_address(self.addr)}, payload={self.payload})"

    def __repr__(self) -> str:
        return str(self)

def parse_device_time(data: Mapping[str, Jsonable]) -> datetime.datetime:
    """Parses a get_time result ({"year":..,"month":..,"mday":..,"hour":..,"min":..,"sec":..})."""
    try:
        return datetime.datetime(
            get_field(data, 'year', int, context="get_time"),
            get_field(data, 'month', int, context="get_time"),
            get_field(data, 'mday', int, context="get_time"),
            get_field(data, 'hour', int, context="get_time"),
            get_field(data, 'min', int, context="get_time"),
            get_field(data, 'sec', int, context="get_time"),
          )
    except ValueError as e:
        raise SchemaError(f"get_time: invalid date/time {dict(data)!r}") from e
