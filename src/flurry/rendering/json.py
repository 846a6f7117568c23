"""JSON rendering.

Serializes handler data with the stdlib encoder. Values the encoder does
not know are converted by ``to_jsonable``: objects with ``to_dict()``,
dataclasses, sets, dates, and other mappings.
"""

import dataclasses
import json as json_module
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from flurry._internal.types import Writer


def to_jsonable(value: Any) -> Any:
    """``default`` hook for ``json.dumps``."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return dict(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


class JsonRenderer:
    """Writes data to a writer as JSON."""

    __slots__ = ("indent", "sort_keys")

    content_type = "application/json"

    def __init__(self, *, indent: int | None = None, sort_keys: bool = False) -> None:
        self.indent = indent
        self.sort_keys = sort_keys

    def dumps(self, data: Any) -> str:
        return json_module.dumps(
            data,
            default=to_jsonable,
            indent=self.indent,
            sort_keys=self.sort_keys,
        )

    def render(self, data: Any, writer: Writer) -> None:
        writer.write(self.dumps(data))
