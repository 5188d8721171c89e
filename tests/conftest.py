# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Shared fixtures: canned device payloads, an in-memory transport and local TCP and UDP devices."""

from __future__ import annotations

import asyncio
import copy
import json

import pytest

from tplink_smarthome.internal_types import *
from tplink_smarthome.codec import decrypt, encrypt, pack_frame
from tplink_smarthome.constants import FRAME_HEADER_LENGTH
from tplink_smarthome.transport import Transport

ResultKey = Tuple[str, Optional[str]]
"""(module, method) for a method result, or (module, None) for a module-level error object"""

HS100_SYSINFO: JsonableDict = {
    "sw_ver": "1.2.5 Build 171213 Rel.101523",
    "hw_ver": "1.0",
    "type": "IOT.SMARTPLUGSWITCH",
    "model": "HS100(UK)",
    "mac": "50:C7:BF:00:00:01",
    "deviceId": "8006A1B2C3D4E5F60718293A4B5C6D7E8F901234",
    "dev_name": "Wi-Fi Smart Plug",
    "alias": "Lamp",
    "relay_state": 0,
    "on_time": 0,
    "active_mode": "schedule",
    "feature": "TIM",
    "updating": 0,
    "rssi": -52,
    "led_off": 0,
    "latitude": 51.5,
    "longitude": -0.12,
    "err_code": 0,
}

HS110_SYSINFO: JsonableDict = {
    "sw_ver": "1.5.4 Build 180815 Rel.121440",
    "hw_ver": "2.0",
    "type": "IOT.SMARTPLUGSWITCH",
    "model": "HS110(EU)",
    "mac": "50:C7:BF:00:00:02",
    "dev_name": "Smart Wi-Fi Plug With Energy Monitoring",
    "alias": "Kettle",
    "relay_state": 1,
    "on_time": 3600,
    "active_mode": "none",
    "feature": "TIM:ENE",
    "updating": 0,
    "rssi": -61,
    "led_off": 0,
    "latitude_i": 515000,
    "longitude_i": -1200,
    "err_code": 0,
}

HS220_SYSINFO: JsonableDict = {
    "sw_ver": "1.5.7 Build 180912 Rel.104837",
    "hw_ver": "1.0",
    "mic_type": "IOT.SMARTPLUGSWITCH",
    "model": "HS220(US)",
    "mac": "50:C7:BF:00:00:03",
    "dev_name": "Smart Wi-Fi Dimmer",
    "alias": "Hall",
    "relay_state": 1,
    "brightness": 50,
    "on_time": 120,
    "active_mode": "none",
    "feature": "TIM",
    "rssi": -47,
    "led_off": 0,
    "err_code": 0,
}

LB110_SYSINFO: JsonableDict = {
    "sw_ver": "1.8.6 Build 180809 Rel.091659",
    "hw_ver": "1.0",
    "mic_type": "IOT.SMARTBULB",
    "model": "LB110(EU)",
    "mic_mac": "50C7BF000004",
    "description": "Smart Wi-Fi LED Bulb with Dimmable Light",
    "alias": "Desk",
    "is_dimmable": 1,
    "is_color": 0,
    "is_variable_color_temp": 0,
    "light_state": {
        "on_off": 1,
        "mode": "normal",
        "hue": 0,
        "saturation": 0,
        "color_temp": 2700,
        "brightness": 80,
    },
    "active_mode": "none",
    "rssi": -58,
    "err_code": 0,
}

def build_response(command: Mapping[str, Any], results: Mapping[ResultKey, JsonableDict]) -> JsonableDict:
    """Builds the response a device would give to command.

    Each requested module/method is answered with results[(module, method)]. A module
    with a results[(module, None)] entry answers with that object instead, as devices
    do for modules they do not support. Anything else gets err_code -2.
    """
    response: JsonableDict = {}
    for module, methods in command.items():
        if (module, None) in results:
            response[module] = copy.deepcopy(results[(module, None)])
            continue
        module_response: JsonableDict = {}
        for method in methods:
            result = results.get((module, method))
            if result is None:
                module_response[method] = {"err_code": -2, "err_msg": "member not support"}
            else:
                module_response[method] = copy.deepcopy(result)
        response[module] = module_response
    return response

def apply_relay_state(command: Mapping[str, Any], results: MutableMapping[ResultKey, JsonableDict]) -> None:
    """Updates the stored sysinfo relay_state when command successfully sets the relay, as a plug would."""
    params = command.get("system", {}).get("set_relay_state")
    outcome = results.get(("system", "set_relay_state"))
    sysinfo = results.get(("system", "get_sysinfo"))
    if params is None or outcome is None or sysinfo is None or outcome.get("err_code") != 0:
        return
    results[("system", "get_sysinfo")] = dict(sysinfo, relay_state=params["state"])

def default_results(sysinfo: JsonableDict) -> Dict[ResultKey, JsonableDict]:
    """Results that make a device with the given sysinfo answer the common commands successfully."""
    return {
        ("system", "get_sysinfo"): sysinfo,
        ("system", "set_relay_state"): {"err_code": 0},
        ("system", "set_dev_alias"): {"err_code": 0},
        ("system", "reboot"): {"err_code": 0},
        ("smartlife.iot.dimmer", "set_brightness"): {"err_code": 0},
        ("smartlife.iot.smartbulb.lightingservice", "transition_light_state"): {"on_off": 1, "brightness": 80, "err_code": 0},
    }

class MockTransport(Transport):
    """An in-memory transport that records every command and answers from a table of results."""

    results: Dict[ResultKey, JsonableDict]
    calls: List[Tuple[HostAndPort, JsonableDict]]

    def __init__(self, results: Optional[Mapping[ResultKey, JsonableDict]]=None):
        self.results = {} if results is None else dict(results)
        self.calls = []

    @property
    def commands(self) -> List[JsonableDict]:
        return [command for _, command in self.calls]

    async def send_and_receive(self, address: HostAndPort, command: Mapping[str, Any]) -> bytes:
        self.calls.append((address, json.loads(json.dumps(command))))
        response = build_response(command, self.results)
        apply_relay_state(command, self.results)
        return json.dumps(response).encode('utf-8')

class FakeTcpDevice:
    """A device listening on a local TCP port that answers framed, encrypted commands.

    If reply is set, it is written verbatim in place of the normal response.

    Usage:
        async with FakeTcpDevice(default_results(HS100_SYSINFO)) as device:
            ... connect to ("127.0.0.1", device.port) ...
    """

    results: Dict[ResultKey, JsonableDict]
    reply: Optional[bytes]
    requests: List[JsonableDict]
    port: int = 0
    _server: Optional[asyncio.AbstractServer] = None

    def __init__(self, results: Optional[Mapping[ResultKey, JsonableDict]]=None, reply: Optional[bytes]=None):
        self.results = {} if results is None else dict(results)
        self.reply = reply
        self.requests = []

    @property
    def addr(self) -> HostAndPort:
        return ("127.0.0.1", self.port)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            header = await reader.readexactly(FRAME_HEADER_LENGTH)
            cipher = await reader.readexactly(int.from_bytes(header, 'big'))
            command = json.loads(decrypt(cipher).decode('utf-8'))
            self.requests.append(command)
            if self.reply is not None:
                writer.write(self.reply)
            elif len(self.results) > 0:
                writer.write(pack_frame(encrypt(json.dumps(build_response(command, self.results)).encode('utf-8'))))
                apply_relay_state(command, self.results)
            else:
                # never answer; wait for the client to give up
                await reader.read()
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def __aenter__(self) -> FakeTcpDevice:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        assert self._server is not None
        self._server.close()
        await self._server.wait_closed()
        return False

def sysinfo_reply(sysinfo: JsonableDict) -> bytes:
    """An unframed, encrypted discovery reply carrying sysinfo."""
    return encrypt(json.dumps({"system": {"get_sysinfo": sysinfo}}).encode('utf-8'))

class FakeUdpDevice(asyncio.DatagramProtocol):
    """A device listening on a local UDP port that answers each probe with a fixed list of datagrams.

    Every probe is also handed to each of peers, which answer from their own sockets, as other
    devices on the network would when the probe is broadcast.
    """

    replies: List[bytes]
    probes: List[bytes]
    peers: List[FakeUdpDevice]
    transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, replies: List[bytes], peers: Optional[List[FakeUdpDevice]]=None):
        self.replies = replies
        self.probes = []
        self.peers = [] if peers is None else peers

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.DatagramTransport, transport)

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.probes.append(data)
        assert self.transport is not None
        for reply in self.replies:
            self.transport.sendto(reply, addr)
        for peer in self.peers:
            peer.datagram_received(data, addr)

    @property
    def port(self) -> int:
        assert self.transport is not None
        return self.transport.get_extra_info('sockname')[1]

    def close(self) -> None:
        for peer in self.peers:
            peer.close()
        assert self.transport is not None
        self.transport.close()

async def start_fake_udp_device(replies: List[bytes], peers: Optional[List[FakeUdpDevice]]=None) -> FakeUdpDevice:
    loop = asyncio.get_running_loop()
    _, protocol = await loop.create_datagram_endpoint(
        lambda: FakeUdpDevice(replies, peers),
        local_addr=("127.0.0.1", 0)
      )
    return protocol


@pytest.fixture
def hs100_transport() -> MockTransport:
    return MockTransport(default_results(HS100_SYSINFO))

@pytest.fixture
def hs110_transport() -> MockTransport:
    results = default_results(HS110_SYSINFO)
    results[("emeter", "get_realtime")] = {"voltage": 231.2, "current": 0.52, "power": 120.0, "total": 3.75, "err_code": 0}
    results[("time", "get_time")] = {"year": 2024, "month": 3, "mday": 9, "hour": 14, "min": 5, "sec": 30, "err_code": 0}
    return MockTransport(results)

@pytest.fixture
def hs220_transport() -> MockTransport:
    return MockTransport(default_results(HS220_SYSINFO))

@pytest.fixture
def lb110_transport() -> MockTransport:
    results = default_results(LB110_SYSINFO)
    results[("smartlife.iot.smartbulb.lightingservice", "get_light_state")] = {
        "on_off": 0,
        "dft_on_state": {"mode": "normal", "hue": 0, "saturation": 0, "color_temp": 2700, "brightness": 35},
        "err_code": 0,
      }
    results[("smartlife.iot.common.emeter", "get_realtime")] = {"power_mw": 8400, "err_code": 0}
    results[("smartlife.iot.common.timesetting", "get_time")] = {"year": 2024, "month": 1, "mday": 2, "hour": 3, "min": 4, "sec": 5, "err_code": 0}
    results[("emeter", None)] = {"err_code": -1, "err_msg": "module not support"}
    return MockTransport(results)
