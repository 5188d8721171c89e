#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryClient -- A discovery client that can:

  1. Send a get_sysinfo probe to a UDP broadcast address (typically 255.255.255.255:9999)
  2. Receive and decode the system info replies of devices on the local network
  3. Collect and return replies received within a bounded wait time, keyed by source address
"""

from __future__ import annotations

import math
import time

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_PORT, DEFAULT_DISCOVERY_TIMEOUT, BROADCAST_ADDRESS
from .exceptions import ProtocolError, ValidationError
from .codec import decode_response_payload
from .datatypes import DeviceData
from .protocol import get_sysinfo_command
from .transport import UdpBroadcastSocket
from .util import get_local_broadcast_addresses, format_address

def validate_timeout(timeout: Optional[float]) -> float:
    """Raises ValidationError unless timeout is a finite, positive number of seconds."""
    if timeout is None or isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValidationError(f"Discovery timeout must be a positive number of seconds, got {timeout!r}")
    if not (timeout > 0.0 and math.isfinite(timeout)):
        raise ValidationError(f"Discovery timeout must be a positive number of seconds, got {timeout!r}")
    return float(timeout)

class DiscoveryClient(
        AsyncContextManager['DiscoveryClient'],
        AsyncIterable[DeviceData]
      ):
    """
    A discovery client that broadcasts a single get_sysinfo probe when entered, and
    returns the replies as they arrive, within an AsyncContextManager/AsyncIterable interface.

    Usage:
        async with DiscoveryClient(timeout=3.0) as client:
            async for data in client:
                print(data.addr, data.sysinfo().alias)
                # It is possible to break out of the loop early if desired
    """

    timeout: float
    """The amount of time (in seconds) to wait for replies to come in."""

    port: int
    """The UDP port the probe is sent to."""

    broadcast_addresses: List[str]
    """The addresses the probe is sent to."""

    framed: bool
    """If True, the probe carries the 4-byte length prefix. Replies are accepted either way."""

    udp_socket: UdpBroadcastSocket
    end_time: float = 0.0

    def __init__(
            self,
            timeout: float=DEFAULT_DISCOVERY_TIMEOUT,
            broadcast_addresses: Optional[Iterable[str]]=None,
            port: int=DEFAULT_PORT,
            all_interfaces: bool=False,
            framed: bool=True,
            bind_address: str="0.0.0.0",
          ):
        """Create a discovery client.

        Parameters:
            timeout:             The amount of time (in seconds) to wait for replies. Must be positive;
                                    discovery always terminates.
            broadcast_addresses: The addresses to send the probe to. Defaults to 255.255.255.255, or to the
                                    broadcast address of every local interface if all_interfaces is True.
            port:                The UDP port to send the probe to. Defaults to 9999.
            all_interfaces:      If True and broadcast_addresses is not given, probe every interface's
                                    broadcast address rather than the limited broadcast address.
            framed:              If False, the probe is sent as bare ciphertext without a length prefix.
            bind_address:        The local address to bind to. Defaults to all interfaces.
        """
        self.timeout = validate_timeout(timeout)
        self.port = port
        self.framed = framed
        if broadcast_addresses is None:
            broadcast_addresses = get_local_broadcast_addresses() if all_interfaces else [BROADCAST_ADDRESS]
        self.broadcast_addresses = list(broadcast_addresses)
        self.udp_socket = UdpBroadcastSocket(bind_address=bind_address, framed=framed)

    async def __aenter__(self) -> DiscoveryClient:
        await self.udp_socket.__aenter__()
        try:
            command = get_sysinfo_command.to_json()
            for address in self.broadcast_addresses:
                self.udp_socket.send_probe(command, (address, self.port))
            self.end_time = time.monotonic() + self.timeout
        except BaseException as e:
            await self.udp_socket.__aexit__(type(e), e, e.__traceback__)
            raise
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        return await self.udp_socket.__aexit__(exc_type, exc, tb)

    async def iter_responses(self) -> AsyncIterator[DeviceData]:
        """Yields each well-formed reply until the wait time elapses.

        Replies that cannot be decoded, or that do not carry a system info object, are
        dropped with a warning.
        """
        while True:
            remaining_time = self.end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            resp_tuple = await self.udp_socket.receive(remaining_time)
            if resp_tuple is None:
                break
            addr, plain = resp_tuple
            try:
                data = DeviceData(addr, decode_response_payload(plain))
                sysinfo = data.sysinfo()
            except ProtocolError as e:
                logger.warning(f"Dropping malformed discovery reply from {format_address(addr)}: {e}")
                continue
            logger.debug(f"Received discovery reply from {format_address(addr)}: {sysinfo}")
            yield data

    def __aiter__(self) -> AsyncIterator[DeviceData]:
        return self.iter_responses()

    async def discover(self) -> Dict[HostAndPort, DeviceData]:
        """Collects every reply received within the wait time.

        Keyed by source address; a later reply from the same address replaces an earlier one.
        """
        results: Dict[HostAndPort, DeviceData] = {}
        async for data in self.iter_responses():
            results[data.addr] = data
        return results

async def discover(
        timeout: float=DEFAULT_DISCOVERY_TIMEOUT,
        broadcast_addresses: Optional[Iterable[str]]=None,
        port: int=DEFAULT_PORT,
        all_interfaces: bool=False,
        framed: bool=True,
      ) -> Dict[HostAndPort, DeviceData]:
    """A simple discovery that broadcasts a probe, waits for a fixed time for all replies to come in,
       and returns them keyed by source address.

       Early out/incremental results can be obtained by iterating a DiscoveryClient.
    """
    async with DiscoveryClient(
            timeout=timeout,
            broadcast_addresses=broadcast_addresses,
            port=port,
            all_interfaces=all_interfaces,
            framed=framed,
          ) as client:
        results = await client.discover()
    logger.debug(f"Discovery found {len(results)} device(s)")
    return results
