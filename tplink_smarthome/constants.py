# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

DEFAULT_PORT = 9999
"""The TCP and UDP port number that TP-Link smart home devices listen on."""

BROADCAST_ADDRESS = "255.255.255.255"
"""The limited broadcast address that discovery probes are sent to by default."""

INITIAL_KEY = 171
"""The seed of the autokey cipher's running key, as observed in device traffic."""

FRAME_HEADER_LENGTH = 4
"""The size of the big-endian unsigned length prefix at the start of every frame."""

MAX_FRAME_LENGTH = 64 * 1024
"""Frames that declare a payload longer than this are rejected as malformed."""

DEFAULT_TIMEOUT = 5.0
"""The default bound (in seconds) on each connect, write and read of a TCP round trip."""

DEFAULT_DISCOVERY_TIMEOUT = 3.0
"""The default amount of time (in seconds) to collect discovery responses."""

MAX_ALIAS_LENGTH = 31
"""The longest device alias that firmware accepts."""
