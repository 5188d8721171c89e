#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from typing import Optional

class TpLinkError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class NetworkError(TpLinkError):
  """A connection could not be made, timed out, or a socket read/write failed."""
  pass

class FramingError(TpLinkError):
  """A frame's declared length was inconsistent with the bytes received, or exceeded the sanity bound."""
  pass

class ProtocolError(TpLinkError):
  """A decoded payload was not a JSON object, or did not have the expected shape."""
  pass

class SchemaError(ProtocolError):
  """An expected module, method or field is missing from a response, or has the wrong kind."""
  pass

class DeviceResponseError(ProtocolError):
  """The device answered a command with a non-zero err_code."""
  err_code: int
  err_msg: Optional[str]

  def __init__(self, err_code: int, err_msg: Optional[str]=None, context: Optional[str]=None):
    msg = f"Device returned err_code={err_code}"
    if err_msg is not None:
      msg += f" ({err_msg})"
    if context is not None:
      msg = f"{context}: {msg}"
    super().__init__(msg)
    self.err_code = err_code
    self.err_msg = err_msg

class ValidationError(TpLinkError, ValueError):
  """A caller-supplied argument was rejected before any network I/O was attempted."""
  pass
