"""The outgoing HTTP response.

Built by the ASGI handler from whatever a pipeline wrote to the request
writer, then emitted as the two ASGI ``http.response.*`` messages. The
test client hands the same type back to tests.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from flurry._internal.asgi import Send

if TYPE_CHECKING:
    from flurry.context import RequestContext


@dataclass(frozen=True, slots=True)
class Response:
    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_output(
        cls, rc: RequestContext, content_type: str, *, status: int = 200
    ) -> Response:
        """Wrap everything the pipeline wrote to ``rc.writer``."""
        return cls(body=rc.output, status=status, content_type=content_type)

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body

    @property
    def text(self) -> str:
        return self.body.decode("utf-8") if isinstance(self.body, bytes) else self.body

    def json(self) -> Any:
        return json.loads(self.body_bytes)

    def header(self, name: str) -> str | None:
        """First value of header *name*, ignoring case."""
        wanted = name.lower()
        return next((v for k, v in self.headers if k.lower() == wanted), None)

    async def send(self, send: Send) -> None:
        """Emit this response over ASGI.

        1xx, 204 and 304 responses go out without a body whatever
        ``body`` holds.
        """
        body = b"" if self.status < 200 or self.status in (204, 304) else self.body_bytes
        headers = [
            (b"content-type", self.content_type.encode("latin-1")),
            *((k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in self.headers),
            (b"content-length", str(len(body)).encode("latin-1")),
        ]
        await send({"type": "http.response.start", "status": self.status, "headers": headers})
        await send({"type": "http.response.body", "body": body})
