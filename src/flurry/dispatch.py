"""Request dispatch: resolve handlers, compose the model, render.

The ``Dispatcher`` owns the pipeline for one request context:

- **Model composition** (``process_web_models``): root model handlers,
  then one exact-path lookup per cumulative path prefix, then every
  glob-matching handler. All write into one model dict; later writes win.
- **Template pages** (``process_template``): compose, add ``_r``, pick the
  template path, render with kida.
- **JSON** (``process_json``): compose, send ``_jsonData`` or the model.
- **Web actions** (``process_web_action`` +
  ``process_web_action_response_json``): invoke one named action, wrap
  the outcome, send the result or the error wrapper.
- **Resources** (``process_web_resource_handler``): the handler writes
  its own output.
- **Exception catchers** (``process_web_exception_catcher``): exact-type
  lookup, opt-in.

Failures propagate. A single failing handler aborts the request's
pipeline; only exception catchers (invoked by the caller) and template
methods (which log and yield ``None``) see errors.
"""

import logging
from typing import Any

from flurry.actions import WebActionResponse
from flurry.context import RequestContext
from flurry.errors import NotInitializedError, NoWebAction, NoWebResourceHandler
from flurry.exceptions import WebExceptionContext, WebHandlerContext
from flurry.handlers.refs import ModelHandlerRef
from flurry.handlers.registry import HandlerRegistry
from flurry.lifecycle import Initializable, WebApplicationLifecycle
from flurry.rendering.json import JsonRenderer
from flurry.rendering.templates import TemplateRenderer
from flurry.request_info import build_request_model

logger = logging.getLogger("flurry.dispatch")

MODEL_KEY_REQUEST = "_r"
"""Model key holding request metadata during template rendering."""

MODEL_KEY_JSON_DATA = "_jsonData"
"""Model key a handler sets to make ``process_json`` send just that value."""


class Dispatcher:
    """Runs the dispatch pipelines against a frozen handler registry.

    Usage::

        dispatcher = Dispatcher(registry, TemplateRenderer(config), JsonRenderer())
        dispatcher.init()

        rc = RequestContext("/admin/users")
        await dispatcher.process_template(rc)
        html = rc.output

    Thread safety:
        ``init()`` runs once before serving. Afterwards the dispatcher and
        its registry are only read; all per-request state lives on the
        ``RequestContext``.
    """

    __slots__ = (
        "_initialized",
        "_init_attempted",
        "json_renderer",
        "lifecycle",
        "persistence",
        "registry",
        "template_renderer",
    )

    def __init__(
        self,
        registry: HandlerRegistry,
        template_renderer: TemplateRenderer,
        json_renderer: JsonRenderer,
        *,
        lifecycle: WebApplicationLifecycle | None = None,
        persistence: Initializable | None = None,
    ) -> None:
        self.registry = registry
        self.template_renderer = template_renderer
        self.json_renderer = json_renderer
        self.lifecycle = lifecycle
        self.persistence = persistence
        self._initialized = False
        self._init_attempted = False

    # -- Lifecycle --

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> None:
        """Run one-time startup: persistence, registry, templates, app hooks.

        A second call is logged and ignored. A failure is logged with its
        traceback and leaves the dispatcher uninitialized; every pipeline
        then raises ``NotInitializedError``.
        """
        if self._init_attempted:
            logger.error("Dispatcher.init() called more than once; ignoring")
            return
        self._init_attempted = True

        try:
            if self.persistence is not None:
                self.persistence.init()

            self.registry.freeze()
            self.template_renderer.init(self.registry)

            if self.lifecycle is not None:
                self.lifecycle.init()
        except Exception:
            logger.exception("Application init failed")
            return

        self._initialized = True
        logger.debug("Dispatcher initialized")

    def shutdown(self) -> None:
        """Run the lifecycle's ``shutdown()``; skipped if init never succeeded."""
        if self._initialized and self.lifecycle is not None:
            self.lifecycle.shutdown()

    def _check_ready(self) -> None:
        if not self._initialized:
            raise NotInitializedError

    # -- Content processing --

    async def process_template(self, rc: RequestContext) -> None:
        """Compose the model and render it through a kida template."""
        self._check_ready()
        await self.process_web_models(rc)

        template_model: dict[str, Any] = dict(rc.model)
        template_model[MODEL_KEY_REQUEST] = build_request_model(rc)

        path = rc.pop_frame_path()
        if path is None:
            path = self.get_template_path(rc.resource_path)

        logger.debug("Rendering %s for %s", path, rc.resource_path)
        self.template_renderer.render(path, template_model, rc.writer, rc)

    def process_web_action_response_json(self, rc: RequestContext) -> None:
        """Send the stored action outcome as JSON.

        The bare result on success; the whole wrapper when an error is set,
        so clients can tell the two apart.
        """
        self._check_ready()
        response = rc.web_action_response
        if response is None:
            response = WebActionResponse()

        data: Any = response.result if response.error is None else response
        self.json_renderer.render(data, rc.writer)

    async def process_json(self, rc: RequestContext) -> None:
        """Compose the model and send it (or its ``_jsonData``) as JSON."""
        self._check_ready()
        await self.process_web_models(rc)

        data = rc.model.get(MODEL_KEY_JSON_DATA)
        if data is None:
            data = rc.model

        self.json_renderer.render(data, rc.writer)

    # -- Handler processing --

    async def process_web_action(self, action_name: str, rc: RequestContext) -> WebActionResponse:
        """Invoke the action registered as *action_name*.

        Raises ``NoWebAction`` if none is registered. Handler failures
        propagate unchanged. The response is stored on
        ``rc.web_action_response`` and returned.
        """
        self._check_ready()
        ref = self.registry.lookup_action(action_name)
        if ref is None:
            raise NoWebAction(action_name)

        result = await ref.invoke(rc)

        response = WebActionResponse(result=result)
        rc.web_action_response = response
        return response

    async def process_web_models(self, rc: RequestContext) -> None:
        """Run every model handler for ``rc`` into ``rc.model``.

        Order: handlers at ``"/"``; handlers at each cumulative prefix
        (``/a``, ``/a/b``, ...); glob-matching handlers against the full
        path. The first failure stops the composition.
        """
        await self._invoke_model_refs(self.registry.lookup_model_handlers("/"), rc)

        path = ""
        for segment in rc.resource_paths:
            path = f"{path}/{segment}"
            await self._invoke_model_refs(self.registry.lookup_model_handlers(path), rc)

        # The root request matches patterns as "/"
        full_path = path or "/"
        await self._invoke_model_refs(self.registry.lookup_matching_model_handlers(full_path), rc)

    async def _invoke_model_refs(
        self,
        refs: tuple[ModelHandlerRef, ...],
        rc: RequestContext,
    ) -> None:
        for ref in refs:
            await ref.invoke(rc)

    def has_web_resource_handler_for(self, resource_path: str) -> bool:
        return self.registry.lookup_resource(resource_path) is not None

    async def process_web_resource_handler(self, rc: RequestContext) -> None:
        """Invoke the resource handler for ``rc.resource_path``.

        Raises ``NoWebResourceHandler`` if none is registered.
        """
        self._check_ready()
        ref = self.registry.lookup_resource(rc.resource_path)
        if ref is None:
            raise NoWebResourceHandler(rc.resource_path)
        await ref.invoke(rc)

    # -- Exception catchers --

    async def process_web_exception_catcher(
        self,
        exc: BaseException,
        handler_context: WebHandlerContext,
        rc: RequestContext,
    ) -> bool:
        """Give the catcher registered for ``type(exc)`` a chance to respond.

        Lookup is by exact type: a catcher for ``ValueError`` does not see
        a ``UnicodeDecodeError``. Returns ``True`` when a catcher ran (its
        exception context is left on ``rc.web_exception_context``) and
        ``False`` when none is registered. A failing catcher propagates.
        """
        exception_context = WebExceptionContext(handler_context)

        ref = self.registry.lookup_catcher(type(exc))
        if ref is None:
            return False

        logger.debug("%s handled by %s", type(exc).__name__, ref)
        rc.web_exception_context = exception_context
        await ref.invoke(exc, exception_context, rc)
        return True

    # -- Template paths --

    def get_template_path(self, resource_path: str) -> str:
        """Map a resource path to its template path.

        The first leaf path that *resource_path* starts with wins, minus a
        trailing ``/``. Without a match the resource path is used as is.
        """
        for leaf_path in self.registry.leaf_paths():
            if resource_path.startswith(leaf_path):
                return leaf_path.removesuffix("/")
        return resource_path
