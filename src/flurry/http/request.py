"""The incoming HTTP request as the dispatcher sees it.

Only metadata lives on the object; the body is read once by the ASGI
handler through ``body_params()`` before any handler runs, and handlers
reach the values through ``rc.param()`` or their own signatures.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from flurry._internal.asgi import Receive
from flurry.http.headers import Headers
from flurry.http.query import QueryParams


@dataclass(frozen=True, slots=True)
class Request:
    method: str
    path: str
    headers: Headers
    query: QueryParams
    _receive: Receive | None = field(default=None, repr=False, compare=False)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_asgi(cls, scope: dict[str, Any], receive: Receive | None = None) -> Request:
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=Headers(scope.get("headers", ())),
            query=QueryParams(scope.get("query_string", b"")),
            _receive=receive,
        )

    @property
    def url(self) -> str:
        """Path plus query string, as exposed to templates under ``_r.url``."""
        raw = self.query._raw
        return f"{self.path}?{raw.decode('latin-1')}" if raw else self.path

    async def body(self) -> bytes:
        """Drain ``http.request`` messages; later calls return the same bytes."""
        if "body" not in self._cache:
            parts: list[bytes] = []
            more = self._receive is not None
            while more:
                message = await self._receive()
                parts.append(message.get("body", b""))
                more = message.get("more_body", False)
            self._cache["body"] = b"".join(parts)
        return self._cache["body"]

    async def body_params(self) -> QueryParams:
        """Request parameters carried in the body.

        A JSON object body keeps its decoded value types; a url-encoded
        (or untyped) body is parsed like a query string. Other bodies,
        including JSON that is not an object, carry no parameters.

        Raises:
            ValueError: The body claims to be JSON but does not parse.
        """
        content_type = self.headers.get("content-type", "")
        raw = await self.body()
        if "json" in content_type:
            data = json.loads(raw) if raw else None
            return QueryParams.from_mapping(data) if isinstance(data, dict) else QueryParams()
        if not content_type or "x-www-form-urlencoded" in content_type:
            return QueryParams(raw)
        return QueryParams()
