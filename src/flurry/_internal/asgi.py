"""ASGI type aliases.

Only the raw callable shapes. ``Request.from_asgi`` and ``Response.send``
are the two edges where flurry types meet ASGI messages.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any, TypeAlias

Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]
