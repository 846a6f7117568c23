"""Default error responses.

Used when no exception catcher took care of a failure.
"""

import logging
import traceback

from flurry.errors import HTTPError
from flurry.http.request import Request
from flurry.http.response import Response

logger = logging.getLogger("flurry.server")

TEXT = "text/plain; charset=utf-8"


def http_error_response(exc: HTTPError, request: Request, *, debug: bool) -> Response:
    """Map an HTTPError to a plain-text Response."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"

    return Response(body=detail, status=exc.status, content_type=TEXT, headers=exc.headers)


def internal_error_response(exc: Exception, request: Request, *, debug: bool) -> Response:
    """Handle an unexpected exception as a 500."""
    logger.error(
        "500 %s %s",
        request.method,
        request.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    if debug:
        body = "".join(traceback.format_exception(exc))
        return Response(body=body, status=500, content_type=TEXT)
    return Response(body="Internal Server Error", status=500, content_type=TEXT)
