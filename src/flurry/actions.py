"""Web action results.

A ``WebActionResponse`` wraps what an action handler produced: either a
result or an error. The JSON pipeline sends the bare result on success
and the whole wrapper on failure, so the two shapes differ on the wire.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class WebActionResponse:
    """Outcome of one web action. Immutable once built.

    Callers branch on ``error is None``; ``result`` is meaningless when
    an error is set.
    """

    result: Any = None
    error: Any = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def from_exception(cls, exc: BaseException) -> WebActionResponse:
        """Build an error response describing *exc*."""
        return cls(error={"type": type(exc).__name__, "message": str(exc)})

    def to_dict(self) -> dict[str, Any]:
        """Wire shape of the wrapper."""
        return {"success": self.success, "result": self.result, "error": self.error}
