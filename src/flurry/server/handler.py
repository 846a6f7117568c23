"""ASGI handler: translates ASGI scope/messages to flurry types.

The only component that touches raw ASGI directly. Converts the scope
into a ``Request`` and a ``RequestContext``, picks the dispatcher
pipeline for it, and sends the writer's contents back as a ``Response``.

Pipeline selection, in order:

1. Non-GET request carrying an action parameter: run the web action.
   For ``.json`` paths the action outcome is the response; otherwise the
   page renders afterwards with the outcome on ``rc.web_action_response``.
2. A resource handler registered for the exact request path.
3. ``.json`` paths: the model as JSON (suffix stripped from the path).
4. Everything else: a template page.
"""

import io
import logging
import mimetypes

from kida.environment.exceptions import TemplateNotFoundError

from flurry._internal.asgi import Receive, Scope, Send
from flurry.actions import WebActionResponse
from flurry.config import AppConfig
from flurry.context import RequestContext, rc_var
from flurry.dispatch import Dispatcher
from flurry.errors import (
    HTTPError,
    NotFound,
    NotInitializedError,
    NoWebAction,
    NoWebResourceHandler,
)
from flurry.exceptions import WebHandlerContext
from flurry.http.query import QueryParams
from flurry.http.request import Request
from flurry.http.response import Response
from flurry.server.errors import TEXT, http_error_response, internal_error_response

logger = logging.getLogger("flurry.server")

HTML = "text/html; charset=utf-8"
JSON = "application/json"

_BODYLESS = frozenset({"GET", "HEAD"})


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    dispatcher: Dispatcher,
    config: AppConfig,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    try:
        params = await request.body_params() if request.method not in _BODYLESS else QueryParams()
    except ValueError as exc:
        # Malformed JSON or undecodable body
        error = HTTPError(status=400, detail=f"Malformed request body: {exc}")
        await http_error_response(error, request, debug=config.debug).send(send)
        return

    resource_path, is_json = _resource_path(request.path, dispatcher, config)
    rc = RequestContext(resource_path, request=request, params=params)

    # Set the request context var (reset after dispatch)
    token = rc_var.set(rc)
    try:
        response = await _dispatch(rc, request, is_json, dispatcher=dispatcher, config=config)
    finally:
        rc_var.reset(token)

    await response.send(send)


def _resource_path(path: str, dispatcher: Dispatcher, config: AppConfig) -> tuple[str, bool]:
    """Strip the JSON suffix unless a resource handler owns the exact path."""
    suffix = config.json_suffix
    if not suffix or not path.endswith(suffix) or dispatcher.has_web_resource_handler_for(path):
        return path, False
    return path.removesuffix(suffix) or "/", True


async def _dispatch(
    rc: RequestContext,
    request: Request,
    is_json: bool,
    *,
    dispatcher: Dispatcher,
    config: AppConfig,
) -> Response:
    phase = "json" if is_json else "template"
    try:
        action_name = rc.param(config.action_param) if request.method not in _BODYLESS else None
        if action_name:
            phase = "action"
            if is_json:
                return await _json_action(action_name, rc, dispatcher)
            await dispatcher.process_web_action(action_name, rc)
            phase = "template"

        if dispatcher.has_web_resource_handler_for(rc.resource_path):
            phase = "resource"
            await dispatcher.process_web_resource_handler(rc)
            content_type = mimetypes.guess_type(rc.resource_path)[0] or TEXT
            return Response.from_output(rc, content_type)

        if is_json:
            await dispatcher.process_json(rc)
            return Response.from_output(rc, JSON)

        await dispatcher.process_template(rc)
        return Response.from_output(rc, HTML)

    except NotInitializedError as exc:
        return Response(body=str(exc), status=503, content_type=TEXT)
    except Exception as exc:
        return await _handle_error(exc, rc, request, phase, dispatcher=dispatcher, config=config)


async def _json_action(action_name: str, rc: RequestContext, dispatcher: Dispatcher) -> Response:
    """Run a JSON action; failures become the error-shaped wrapper."""
    status = 200
    try:
        await dispatcher.process_web_action(action_name, rc)
    except NoWebAction:
        raise
    except Exception as exc:
        logger.exception("Web action %r failed", action_name)
        rc.web_action_response = WebActionResponse.from_exception(exc)
        status = 500

    rc.writer = io.StringIO()
    dispatcher.process_web_action_response_json(rc)
    return Response.from_output(rc, JSON, status=status)


async def _handle_error(
    exc: Exception,
    rc: RequestContext,
    request: Request,
    phase: str,
    *,
    dispatcher: Dispatcher,
    config: AppConfig,
) -> Response:
    """Offer *exc* to its exception catcher, then fall back to defaults."""
    # Catchers start from an empty writer, not a half-written page
    rc.writer = io.StringIO()
    try:
        handled = await dispatcher.process_web_exception_catcher(
            exc, WebHandlerContext(phase), rc
        )
    except Exception as catcher_exc:
        logger.exception("Exception catcher failed while handling %s", type(exc).__name__)
        return internal_error_response(catcher_exc, request, debug=config.debug)

    if handled and rc.web_exception_context is not None:
        ctx = rc.web_exception_context
        return Response.from_output(rc, ctx.content_type, status=ctx.status)

    match exc:
        case HTTPError():
            return http_error_response(exc, request, debug=config.debug)
        case NoWebAction() | NoWebResourceHandler() | TemplateNotFoundError():
            return http_error_response(NotFound(str(exc)), request, debug=config.debug)
        case _:
            return internal_error_response(exc, request, debug=config.debug)
