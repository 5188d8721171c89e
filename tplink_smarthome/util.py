#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from ipaddress import IPv4Address

import netifaces

from .internal_types import *
from .constants import DEFAULT_PORT, BROADCAST_ADDRESS
from .exceptions import SchemaError, ValidationError

_T = TypeVar('_T')

def parse_address(address: Union[str, HostAndPort], default_port: int=DEFAULT_PORT) -> HostAndPort:
    """Normalizes "host", "host:port" or a (host, port) tuple to a (host, port) tuple.

    Raises ValidationError if the port is not a valid integer port number.
    """
    if isinstance(address, tuple):
        host, port = address
    else:
        host, sep, port_str = address.rpartition(':')
        if sep == '' or ']' in port_str or (address.count(':') > 1 and not address.startswith('[')):
            host, port = address, default_port
        else:
            try:
                port = int(port_str)
            except ValueError as e:
                raise ValidationError(f"Not a valid address: {address}") from e
        host = host.strip('[]')
    if host == '':
        raise ValidationError(f"Not a valid address: {address!r}")
    if not 0 < port < 65536:
        raise ValidationError(f"Port out of range in address: {address!r}")
    return (host, port)

def format_address(address: HostAndPort) -> str:
    """Formats a (host, port) tuple as "host:port"."""
    return f"{address[0]}:{address[1]}"

def get_local_broadcast_addresses(include_loopback: bool=False) -> List[str]:
    """Returns the IPv4 broadcast address of every local interface that has one.

    Falls back to [BROADCAST_ADDRESS] if no interface reports a broadcast address.
    The result is deduplicated and preserves interface order.
    """
    result: List[str] = []
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        for addrinfo in ifinfo.get(netifaces.AF_INET, []):
            ip_str = addrinfo.get('addr')
            broadcast = addrinfo.get('broadcast')
            if ip_str is None or broadcast is None:
                continue
            if not include_loopback and IPv4Address(ip_str).is_loopback:
                continue
            if broadcast not in result:
                result.append(broadcast)
    if len(result) == 0:
        result.append(BROADCAST_ADDRESS)
    return result

def get_field(
        mapping: Mapping[str, Any],
        key: str,
        kind: Union[Type[_T], Tuple[Type[Any], ...]],
        context: str="response"
      ) -> _T:
    """Returns mapping[key], checking that it is present and an instance of kind.

    bool values are never accepted where int or float is expected.

    Raises SchemaError if the field is absent or of the wrong kind.
    """
    if key not in mapping:
        raise SchemaError(f"{context}: missing field '{key}'")
    value = mapping[key]
    if not _is_kind(value, kind):
        raise SchemaError(f"{context}: field '{key}' has unexpected value {value!r}")
    return cast(_T, value)

def get_optional_field(
        mapping: Mapping[str, Any],
        key: str,
        kind: Union[Type[_T], Tuple[Type[Any], ...]],
        default: Optional[_T]=None,
        context: str="response"
      ) -> Optional[_T]:
    """Like get_field(), but returns default if the field is absent."""
    if key not in mapping:
        return default
    return get_field(mapping, key, kind, context=context)

def _is_kind(value: Any, kind: Union[Type[Any], Tuple[Type[Any], ...]]) -> bool:
    kinds = kind if isinstance(kind, tuple) else (kind,)
    if isinstance(value, bool) and bool not in kinds:
        return False
    if float in kinds and isinstance(value, int) and not isinstance(value, bool):
        return True
    return isinstance(value, kinds)
