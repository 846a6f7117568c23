"""Immutable multi-valued request parameters.

Used for the query string and url-encoded form bodies, which share one
wire format, and for JSON object bodies, whose values keep their decoded
types (``bool``, ``None``, numbers, nested objects).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import parse_qs


class QueryParams(Mapping[str, Any]):
    """Immutable query string (or form body) parameters.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    """

    _data: dict[str, list[Any]]
    _raw: bytes

    __slots__ = ("_data", "_raw")

    def __init__(self, query_string: bytes = b"") -> None:
        object.__setattr__(self, "_raw", query_string)
        parsed = parse_qs(query_string.decode("latin-1"), keep_blank_values=True)
        object.__setattr__(self, "_data", parsed)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> QueryParams:
        """Build params from an already-decoded mapping (e.g. a JSON body)."""
        params = cls()
        object.__setattr__(
            params,
            "_data",
            {str(k): list(v) if isinstance(v, list) else [v] for k, v in data.items()},
        )
        return params

    def __getitem__(self, key: str) -> Any:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"QueryParams({{{items}}})"

    def get(self, key: str, default: Any = None) -> Any:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[Any]:
        """Return all values for *key*."""
        return list(self._data.get(key, []))

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a plain dict: single values as-is, repeats as lists."""
        return {k: v[0] if len(v) == 1 else list(v) for k, v in self._data.items()}
