#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Wire codec for the TP-Link smart home protocol.

Every payload on the wire is obfuscated with an autokey XOR cipher: the running
key starts at INITIAL_KEY, each plaintext byte is XORed with the key, and the
resulting ciphertext byte becomes the key for the next byte. The key is local
to a single call; nothing is carried between frames.

On TCP (and, by default, UDP) the ciphertext is preceded by a 4-byte big-endian
length prefix:

    <length: 4 bytes, big-endian> <ciphertext: length bytes>
"""

from __future__ import annotations

import json
import struct
from itertools import accumulate
from operator import xor

from .internal_types import *
from .constants import INITIAL_KEY, FRAME_HEADER_LENGTH, MAX_FRAME_LENGTH
from .exceptions import FramingError, ProtocolError

_HEADER = struct.Struct('>I')

def encrypt(plain: bytes) -> bytes:
    """Obfuscates a plaintext byte string with the autokey cipher.

    Each ciphertext byte is the XOR of the plaintext byte and the previous
    ciphertext byte (INITIAL_KEY for the first byte).
    """
    return bytes(accumulate(plain, xor, initial=INITIAL_KEY))[1:]

def decrypt(cipher: bytes) -> bytes:
    """Recovers the plaintext from a byte string produced by encrypt()."""
    keys = bytes([INITIAL_KEY]) + cipher[:-1]
    return bytes(c ^ k for c, k in zip(cipher, keys))

def pack_frame(payload: bytes) -> bytes:
    """Prepends the 4-byte big-endian length prefix to an (already encrypted) payload."""
    return _HEADER.pack(len(payload)) + payload

def read_frame_header(header: bytes, max_length: int=MAX_FRAME_LENGTH) -> int:
    """Parses a 4-byte frame header and returns the declared payload length.

    Raises FramingError if the header is the wrong size or declares more than max_length bytes.
    """
    if len(header) != FRAME_HEADER_LENGTH:
        raise FramingError(f"Frame header must be {FRAME_HEADER_LENGTH} bytes, got {len(header)}")
    (length,) = _HEADER.unpack(header)
    if length > max_length:
        raise FramingError(f"Declared frame length {length} exceeds maximum of {max_length}")
    return length

def unpack_frame(data: bytes, max_length: int=MAX_FRAME_LENGTH) -> bytes:
    """Splits a complete frame into its payload, validating the length prefix.

    The declared length must match the number of bytes that follow the header
    exactly; a truncated or overlong frame raises FramingError rather than
    returning a partial payload.
    """
    length = read_frame_header(data[:FRAME_HEADER_LENGTH], max_length=max_length)
    payload = data[FRAME_HEADER_LENGTH:]
    if len(payload) != length:
        raise FramingError(f"Frame declares {length} payload bytes but {len(payload)} are present")
    return payload

def is_framed(data: bytes) -> bool:
    """Returns True iff data begins with a length prefix that exactly matches the rest of the data."""
    if len(data) < FRAME_HEADER_LENGTH:
        return False
    (length,) = _HEADER.unpack(data[:FRAME_HEADER_LENGTH])
    return length == len(data) - FRAME_HEADER_LENGTH

def encode_command(command: Mapping[str, Any]) -> bytes:
    """Serializes a command object to compact UTF-8 JSON."""
    return json.dumps(command, separators=(',', ':')).encode('utf-8')

def encode_request(command: Mapping[str, Any], framed: bool=True) -> bytes:
    """Serializes, encrypts and (optionally) frames a command object for the wire."""
    cipher = encrypt(encode_command(command))
    return pack_frame(cipher) if framed else cipher

def decode_response_payload(plain: bytes) -> JsonableDict:
    """Parses decrypted response bytes into a JSON object.

    Raises ProtocolError if the bytes are not UTF-8 JSON, or the JSON is not an object.
    """
    try:
        result = json.loads(plain.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError(f"Response is not valid JSON: {plain[:64]!r}") from e
    if not isinstance(result, dict):
        raise ProtocolError(f"Response JSON is not an object: {result!r}")
    return result
