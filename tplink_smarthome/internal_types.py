# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Any,
    AsyncContextManager,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Sequence,
    Set,
    TYPE_CHECKING,
    Tuple,
    Type,
    TypeVar,
    Union,
    cast,
)
from types import TracebackType
from typing_extensions import Self, TypeAlias

HostAndPort: TypeAlias = Tuple[str, int]
"""An (ip_address_or_hostname, port) tuple, as used by the socket APIs"""

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A value that can be serialized to JSON"""

JsonableDict: TypeAlias = Dict[str, Jsonable]
"""A JSON object"""

__all__ = [
    'Any', 'AsyncContextManager', 'AsyncIterable', 'AsyncIterator', 'Awaitable',
    'Callable', 'ClassVar', 'Dict', 'FrozenSet', 'Iterable', 'Iterator', 'List',
    'Mapping', 'MutableMapping', 'Optional', 'Sequence', 'Set', 'TYPE_CHECKING', 'Tuple', 'Type',
    'TypeVar', 'Union', 'cast', 'TracebackType', 'Self', 'TypeAlias',
    'HostAndPort', 'Jsonable', 'JsonableDict',
]
