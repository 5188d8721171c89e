#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Command and response shapes of the TP-Link smart home protocol.

A command is a JSON object nested as module -> method -> arguments:

    {"system": {"set_relay_state": {"state": 1}}}

The response mirrors that nesting, with the method's result object in place of
its arguments. The result carries an err_code (0 = success) along with any
method-specific data:

    {"system": {"set_relay_state": {"err_code": 0}}}

If a module is not supported at all, the error is reported at module level:

    {"smartlife.iot.dimmer": {"err_code": -1, "err_msg": "module not support"}}

Several commands may be merged into a single request; each command extracts
its own portion of the combined response. Fields this package does not know
about are ignored.
"""

from __future__ import annotations

import datetime

from .internal_types import *
from .pkg_logging import logger
from .exceptions import DeviceResponseError, ValidationError
from .codec import decode_response_payload
from .datatypes import SysInfo, LightState, EmeterRealtime, parse_device_time
from .util import get_field, get_optional_field
from .transport import Transport

SYSTEM_MODULE = "system"
EMETER_MODULE = "emeter"
BULB_EMETER_MODULE = "smartlife.iot.common.emeter"
DIMMER_MODULE = "smartlife.iot.dimmer"
LIGHTING_MODULE = "smartlife.iot.smartbulb.lightingservice"
TIME_MODULE = "time"
BULB_TIME_MODULE = "smartlife.iot.common.timesetting"

def merge_commands(*commands: Mapping[str, Any]) -> JsonableDict:
    """Combines several command objects into one request object.

    Methods of the same module are merged into that module's object. Requesting
    the same module/method twice raises ValidationError, since the device would
    only answer once.
    """
    result: Dict[str, JsonableDict] = {}
    for command in commands:
        for module, methods in command.items():
            if not isinstance(methods, Mapping):
                raise ValidationError(f"Command module {module} must map method names to arguments, got {methods!r}")
            merged = result.setdefault(module, {})
            for method, params in methods.items():
                if method in merged:
                    raise ValidationError(f"Command {module}.{method} requested more than once")
                merged[method] = params
    return cast(JsonableDict, result)

class SmartResponse:
    """A response to a SmartCommand: the command's own result object, extracted from a full response payload."""

    command: SmartCommand
    payload: JsonableDict
    """The complete decoded response payload (which may include results of other merged commands)"""

    result: JsonableDict
    """The result object found at payload[module][method]"""

    def __init__(self, command: SmartCommand, payload: JsonableDict):
        self.command = command
        self.payload = payload
        self.result = self.extract_result(payload, command.module, command.method)
        self.post_init()

    def post_init(self) -> None:
        """Post-initialization hook, allows subclasses to validate and parse the result"""
        pass

    @staticmethod
    def extract_result(payload: Mapping[str, Any], module: str, method: str) -> JsonableDict:
        """Returns payload[module][method], checking the err_code at both levels.

        Raises SchemaError if the module or method is missing or not an object,
        and DeviceResponseError if the device reported a non-zero err_code.
        """
        context = f"{module}.{method}"
        module_obj = get_field(payload, module, dict, context=f"response to {context}")
        if method not in module_obj:
            err_code = get_optional_field(module_obj, 'err_code', int, context=context)
            if err_code is not None and err_code != 0:
                err_msg = get_optional_field(module_obj, 'err_msg', str, context=context)
                raise DeviceResponseError(err_code, err_msg, context=context)
        result = get_field(module_obj, method, dict, context=f"response to {context}")
        err_code = get_optional_field(result, 'err_code', int, context=context)
        if err_code is not None and err_code != 0:
            err_msg = get_optional_field(result, 'err_msg', str, context=context)
            raise DeviceResponseError(err_code, err_msg, context=context)
        return result

    @property
    def name(self) -> str:
        return self.command.name

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.name}: {self.result})"

    def __repr__(self) -> str:
        return str(self)

class SysInfoResponse(SmartResponse):
    sysinfo: SysInfo

    def post_init(self) -> None:
        self.sysinfo = SysInfo(self.result)
        # model is required to resolve a device variant
        self.sysinfo.model

class LightStateResponse(SmartResponse):
    light_state: LightState

    def post_init(self) -> None:
        self.light_state = LightState(self.result)
        self.light_state.on_off

class EmeterRealtimeResponse(SmartResponse):
    realtime: EmeterRealtime

    def post_init(self) -> None:
        self.realtime = EmeterRealtime(self.result)

class TimeResponse(SmartResponse):
    time: datetime.datetime

    def post_init(self) -> None:
        self.time = parse_device_time(self.result)

class SmartCommand:
    """A single module/method command, and the response class used to interpret its result"""

    name: str
    module: str
    method: str
    params: JsonableDict
    response_cls: Type[SmartResponse]

    def __init__(
            self,
            name: str,
            module: str,
            method: str,
            params: Optional[JsonableDict]=None,
            response_cls: Type[SmartResponse]=SmartResponse,
          ):
        self.name = name
        self.module = module
        self.method = method
        self.params = {} if params is None else params
        self.response_cls = response_cls

    def to_json(self) -> JsonableDict:
        """Returns the command as a JSON object, e.g. {"system": {"get_sysinfo": {}}}"""
        return {self.module: {self.method: dict(self.params)}}

    def create_response(self, payload: JsonableDict) -> SmartResponse:
        return self.response_cls(self, payload)

    async def __call__(self, transport: Transport, address: HostAndPort) -> SmartResponse:
        logger.debug(f"Sending command {self} to {address[0]}:{address[1]}")
        plain = await transport.send_and_receive(address, self.to_json())
        response = self.create_response(decode_response_payload(plain))
        logger.debug(f"Received response {response}")
        return response

    def __str__(self) -> str:
        return f"SmartCommand({self.name}: {self.to_json()})"

    def __repr__(self) -> str:
        return str(self)

get_sysinfo_command = SmartCommand("Get System Info", SYSTEM_MODULE, "get_sysinfo", response_cls=SysInfoResponse)
"""A command that returns the device's self-description"""

def set_relay_state_command(on: bool) -> SmartCommand:
    return SmartCommand("Set Relay State", SYSTEM_MODULE, "set_relay_state", {"state": 1 if on else 0})

def set_dev_alias_command(alias: str) -> SmartCommand:
    return SmartCommand("Set Device Alias", SYSTEM_MODULE, "set_dev_alias", {"alias": alias})

def reboot_command(delay_secs: int=1) -> SmartCommand:
    return SmartCommand("Reboot", SYSTEM_MODULE, "reboot", {"delay": delay_secs})

def get_realtime_command(module: str=EMETER_MODULE) -> SmartCommand:
    return SmartCommand("Get Emeter Realtime", module, "get_realtime", response_cls=EmeterRealtimeResponse)

def get_time_command(module: str=TIME_MODULE) -> SmartCommand:
    return SmartCommand("Get Time", module, "get_time", response_cls=TimeResponse)

def dimmer_set_brightness_command(brightness: int) -> SmartCommand:
    return SmartCommand("Set Brightness", DIMMER_MODULE, "set_brightness", {"brightness": brightness})

get_light_state_command = SmartCommand("Get Light State", LIGHTING_MODULE, "get_light_state", response_cls=LightStateResponse)
"""A command that returns a bulb's current light state"""

def transition_light_state_command(
        on_off: Optional[bool]=None,
        brightness: Optional[int]=None,
        transition_period_ms: int=0
      ) -> SmartCommand:
    """Changes a bulb's light state. Omitted fields are left unchanged."""
    params: JsonableDict = {"ignore_default": 1, "transition_period": transition_period_ms}
    if on_off is not None:
        params["on_off"] = 1 if on_off else 0
    if brightness is not None:
        params["brightness"] = brightness
    return SmartCommand("Transition Light State", LIGHTING_MODULE, "transition_light_state", params)
