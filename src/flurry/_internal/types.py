"""Shared type aliases used across flurry modules."""

from collections.abc import Callable
from typing import Any, Protocol, TypeAlias

# Handler: user-defined function with variable signature
Handler: TypeAlias = Callable[..., Any]


class Writer(Protocol):
    """Output sink handed to renderers and resource handlers."""

    def write(self, s: str, /) -> int: ...
