# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import netifaces
import pytest

from tplink_smarthome import util
from tplink_smarthome.util import parse_address, format_address, get_field, get_optional_field, get_local_broadcast_addresses
from tplink_smarthome.exceptions import SchemaError, ValidationError

@pytest.mark.parametrize("address, expected", [
    ("192.168.1.5", ("192.168.1.5", 9999)),
    ("192.168.1.5:10000", ("192.168.1.5", 10000)),
    ("plug.local", ("plug.local", 9999)),
    ("plug.local:9998", ("plug.local", 9998)),
    (("192.168.1.5", 80), ("192.168.1.5", 80)),
    ("::1", ("::1", 9999)),
    ("[::1]", ("::1", 9999)),
    ("[fe80::1]:9999", ("fe80::1", 9999)),
])
def test_parse_address(address, expected):
    assert parse_address(address) == expected

def test_parse_address_default_port():
    assert parse_address("192.168.1.5", default_port=1234) == ("192.168.1.5", 1234)
    assert parse_address("192.168.1.5:99", default_port=1234) == ("192.168.1.5", 99)

@pytest.mark.parametrize("address", ["", ":9999", "host:port", "host:0", "host:65536", ("host", -1)])
def test_parse_address_rejects_invalid(address):
    with pytest.raises(ValidationError):
        parse_address(address)

def test_format_address():
    assert format_address(("10.0.0.2", 9999)) == "10.0.0.2:9999"

def test_get_field():
    data = {"i": 1, "f": 1.5, "b": True, "s": "x", "o": {}}
    assert get_field(data, "i", int) == 1
    assert get_field(data, "i", float) == 1
    assert get_field(data, "b", bool) is True
    assert get_field(data, "o", dict) == {}
    with pytest.raises(SchemaError):
        get_field(data, "b", int)
    with pytest.raises(SchemaError):
        get_field(data, "s", int)
    with pytest.raises(SchemaError):
        get_field(data, "missing", str)

def test_get_optional_field():
    assert get_optional_field({}, "x", int) is None
    assert get_optional_field({}, "x", int, default=5) == 5
    with pytest.raises(SchemaError):
        get_optional_field({"x": "1"}, "x", int)

def fake_interfaces(monkeypatch, table):
    monkeypatch.setattr(util.netifaces, "interfaces", lambda: list(table.keys()))
    monkeypatch.setattr(util.netifaces, "ifaddresses", lambda ifname: table[ifname])

def test_local_broadcast_addresses(monkeypatch):
    fake_interfaces(monkeypatch, {
        "lo": {netifaces.AF_INET: [{"addr": "127.0.0.1", "netmask": "255.0.0.0", "peer": "127.0.0.1"}]},
        "eth0": {netifaces.AF_INET: [{"addr": "192.168.1.20", "netmask": "255.255.255.0", "broadcast": "192.168.1.255"}]},
        "eth1": {netifaces.AF_INET: [{"addr": "192.168.1.21", "netmask": "255.255.255.0", "broadcast": "192.168.1.255"}]},
        "wlan0": {netifaces.AF_INET: [{"addr": "10.0.0.5", "netmask": "255.255.255.0", "broadcast": "10.0.0.255"}]},
        "tun0": {},
    })
    assert get_local_broadcast_addresses() == ["192.168.1.255", "10.0.0.255"]

def test_local_broadcast_addresses_fallback(monkeypatch):
    fake_interfaces(monkeypatch, {
        "lo": {netifaces.AF_INET: [{"addr": "127.0.0.1", "netmask": "255.0.0.0"}]},
    })
    assert get_local_broadcast_addresses() == ["255.255.255.255"]

def test_local_broadcast_addresses_includes_loopback_on_request(monkeypatch):
    fake_interfaces(monkeypatch, {
        "lo": {netifaces.AF_INET: [{"addr": "127.0.0.1", "netmask": "255.0.0.0", "broadcast": "127.255.255.255"}]},
    })
    assert get_local_broadcast_addresses() == ["255.255.255.255"]
    assert get_local_broadcast_addresses(include_loopback=True) == ["127.255.255.255"]
