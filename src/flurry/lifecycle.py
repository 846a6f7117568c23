"""Lifecycle collaborators the dispatcher starts and stops.

Both are optional. They are structural protocols: any object with the
right methods fits.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Initializable(Protocol):
    """Something that must be set up once before requests are served.

    The persistence session builder is the usual example.
    """

    def init(self) -> None: ...


@runtime_checkable
class WebApplicationLifecycle(Protocol):
    """Application hooks run once at process start and stop."""

    def init(self) -> None: ...

    def shutdown(self) -> None: ...
