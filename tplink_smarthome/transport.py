#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Transports that carry encoded commands to devices and bring their responses back.

  TcpTransport       -- A unicast request/response round trip. One connection per call;
                        each connect, write and read is bounded by a timeout.
  UdpBroadcastSocket -- A broadcast-capable datagram socket that sends a probe and
                        delivers raw replies to a receive loop (owned by discovery).
"""

from __future__ import annotations

import asyncio
import socket
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_TIMEOUT,
    FRAME_HEADER_LENGTH,
    MAX_FRAME_LENGTH,
  )
from .exceptions import NetworkError, FramingError
from .codec import (
    decrypt,
    encode_request,
    read_frame_header,
    is_framed,
  )

MAX_QUEUE_SIZE = 1000

class Transport(ABC):
    """The contract shared by every unicast transport: send one command, return the decrypted response bytes."""

    @abstractmethod
    async def send_and_receive(self, address: HostAndPort, command: Mapping[str, Any]) -> bytes:
        raise NotImplementedError()

class TcpTransport(Transport):
    """Sends each command over a fresh TCP connection and reads back exactly one response frame."""

    timeout_secs: float
    """The bound (in seconds) on each of connect, write and read."""

    max_frame_length: int
    """Response frames declaring more payload bytes than this are rejected."""

    def __init__(self, timeout_secs: float=DEFAULT_TIMEOUT, max_frame_length: int=MAX_FRAME_LENGTH):
        self.timeout_secs = timeout_secs
        self.max_frame_length = max_frame_length

    async def _connect(self, address: HostAndPort) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        host, port = address
        try:
            return await asyncio.wait_for(asyncio.open_connection(host, port), self.timeout_secs)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timed out connecting to {host}:{port} after {self.timeout_secs}s") from e
        except OSError as e:
            raise NetworkError(f"Unable to connect to {host}:{port}: {e}") from e

    async def _write_exactly(self, writer: asyncio.StreamWriter, data: bytes) -> None:
        logger.debug(f"Writing exactly {len(data)} bytes: {data.hex(' ')}")
        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), self.timeout_secs)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timed out writing request after {self.timeout_secs}s") from e
        except OSError as e:
            raise NetworkError(f"Error writing request: {e}") from e

    async def _read_exactly(self, reader: asyncio.StreamReader, length: int) -> bytes:
        try:
            data = await asyncio.wait_for(reader.readexactly(length), self.timeout_secs)
        except asyncio.IncompleteReadError as e:
            raise FramingError(f"Connection closed after {len(e.partial)} of {length} expected bytes") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timed out reading response after {self.timeout_secs}s") from e
        except OSError as e:
            raise NetworkError(f"Error reading response: {e}") from e
        logger.debug(f"Read exactly {len(data)} bytes: {data.hex(' ')}")
        return data

    async def _read_frame(self, reader: asyncio.StreamReader) -> bytes:
        header = await self._read_exactly(reader, FRAME_HEADER_LENGTH)
        length = read_frame_header(header, max_length=self.max_frame_length)
        return await self._read_exactly(reader, length)

    async def _async_dispose(self, writer: asyncio.StreamWriter) -> None:
        try:
            writer.close()
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Exception while closing connection: {e}")

    async def send_and_receive(self, address: HostAndPort, command: Mapping[str, Any]) -> bytes:
        """Performs one complete round trip: connect, write a frame, read a frame, close.

        Returns the decrypted response payload bytes. Raises NetworkError on
        connect/write/read failure or timeout, and FramingError on a truncated
        or oversized response frame.
        """
        logger.debug(f"Sending command to {address[0]}:{address[1]}: {command}")
        reader, writer = await self._connect(address)
        try:
            await self._write_exactly(writer, encode_request(command))
            cipher = await self._read_frame(reader)
        finally:
            await self._async_dispose(writer)
        plain = decrypt(cipher)
        logger.debug(f"Received response from {address[0]}:{address[1]}: {plain!r}")
        return plain

    def __str__(self) -> str:
        return f"TcpTransport(timeout_secs={self.timeout_secs})"

    def __repr__(self) -> str:
        return str(self)

class _BroadcastProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio datagram transport and UdpBroadcastSocket."""
    owner: UdpBroadcastSocket

    def __init__(self, owner: UdpBroadcastSocket):
        self.owner = owner

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        """Called when some datagram is received."""
        self.owner.on_datagram((addr[0], addr[1]), data)

    def error_received(self, exc: Exception) -> None:
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        logger.info(f"Error received on broadcast socket: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the socket is closed."""
        logger.debug(f"Broadcast socket closed, exc={exc}")
        self.owner.on_end_of_stream()

class UdpBroadcastSocket(AsyncContextManager['UdpBroadcastSocket']):
    """
    A broadcast-capable UDP socket that can:

      1. Send an encoded command datagram to a broadcast (or unicast) address
      2. Receive raw reply datagrams, decrypt them, and hand them to a receive loop

      The socket is bound when the context manager is entered and closed when it exits.
    """

    bind_address: str
    """The local IP address to bind to. Defaults to all interfaces."""

    framed: bool
    """If True, sent datagrams carry the 4-byte length prefix; otherwise the bare ciphertext is sent."""

    queue: asyncio.Queue[Optional[Tuple[HostAndPort, bytes]]]
    eos: bool = False

    _transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, bind_address: str="0.0.0.0", framed: bool=True, max_queue_size: int=MAX_QUEUE_SIZE):
        self.bind_address = bind_address
        self.framed = framed
        self.queue = asyncio.Queue(max_queue_size)

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self.bind_address, 0))
            untyped_transport, _ = await loop.create_datagram_endpoint(
                lambda: _BroadcastProtocol(self),
                sock=sock
              )
        except OSError as e:
            sock.close()
            raise NetworkError(f"Unable to open broadcast socket on {self.bind_address}: {e}") from e
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport
        self._transport = untyped_transport # type: ignore[assignment]
        logger.debug(f"Broadcast socket bound to {sock.getsockname()}")

    def close(self) -> None:
        if self._transport is not None:
            try:
                self._transport.close()
            except Exception as e:
                logger.error(f"Error closing broadcast transport: {e}")
            self._transport = None
        self.on_end_of_stream()

    def send_probe(self, command: Mapping[str, Any], address: HostAndPort) -> None:
        """Encodes a command and sends it as a single datagram to address."""
        if self._transport is None:
            raise NetworkError("Broadcast socket is not open")
        data = encode_request(command, framed=self.framed)
        logger.debug(f"Sending {len(data)}-byte probe to {address[0]}:{address[1]}: {command}")
        try:
            self._transport.sendto(data, address)
        except OSError as e:
            raise NetworkError(f"Unable to send probe to {address[0]}:{address[1]}: {e}") from e

    def on_datagram(self, addr: HostAndPort, data: bytes) -> None:
        if self.eos:
            return
        cipher = data[FRAME_HEADER_LENGTH:] if is_framed(data) else data
        try:
            self.queue.put_nowait((addr, decrypt(cipher)))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping datagram from {addr}")

    def on_end_of_stream(self) -> None:
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                pass

    async def receive(self, timeout_secs: float) -> Optional[Tuple[HostAndPort, bytes]]:
        """Waits up to timeout_secs for the next (source_address, plaintext) pair.

        Returns None if the timeout elapses or the socket has been closed.
        """
        if timeout_secs <= 0.0:
            return None
        if self.eos and self.queue.empty():
            return None
        try:
            result = await asyncio.wait_for(self.queue.get(), timeout_secs)
        except asyncio.TimeoutError:
            return None
        self.queue.task_done()
        return result

    async def __aenter__(self) -> UdpBroadcastSocket:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False
