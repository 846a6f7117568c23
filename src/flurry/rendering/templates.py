"""kida template rendering.

Creates a kida Environment from the app configuration, installs filters,
globals and template methods on it, and renders resolved template paths
into a writer. The environment is built once in ``init()`` and is
immutable for the lifetime of the app.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from kida import Environment, FileSystemLoader

from flurry._internal.types import Writer
from flurry.config import AppConfig
from flurry.context import RequestContext, rc_var
from flurry.errors import ConfigurationError
from flurry.handlers.registry import HandlerRegistry
from flurry.rendering.filters import BUILTIN_FILTERS
from flurry.rendering.methods import TemplateMethodProxy

logger = logging.getLogger("flurry.rendering")


def create_environment(
    config: AppConfig,
    filters: Mapping[str, Callable[..., Any]],
    globals_: Mapping[str, Any],
) -> Environment:
    """Create a kida Environment from app configuration."""
    env = Environment(
        loader=FileSystemLoader(str(config.template_dir)),
        autoescape=config.autoescape,
        auto_reload=config.debug,
        trim_blocks=config.trim_blocks,
        lstrip_blocks=config.lstrip_blocks,
    )
    env.update_filters(BUILTIN_FILTERS)

    # User filters may override built-ins
    if filters:
        env.update_filters(dict(filters))

    for name, value in globals_.items():
        env.add_global(name, value)

    return env


class TemplateRenderer:
    """Renders a template path and model into a writer.

    Template names are the resolved path without its leading slash plus
    ``config.template_ext``: ``/admin/users`` -> ``admin/users.html``.
    The root path renders ``index.html``.

    Pass ``env`` to use a prebuilt kida Environment (e.g. one with a
    ``DictLoader`` in tests); app filters and globals are still applied.
    """

    __slots__ = ("_env", "_filters", "_globals", "_custom_env", "config")

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        env: Environment | None = None,
        filters: Mapping[str, Callable[..., Any]] | None = None,
        globals_: Mapping[str, Any] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._custom_env = env
        self._filters = dict(filters or {})
        self._globals = dict(globals_ or {})
        self._env: Environment | None = None

    @property
    def env(self) -> Environment:
        if self._env is None:
            msg = "TemplateRenderer.init() must run before templates are rendered."
            raise ConfigurationError(msg)
        return self._env

    def init(self, registry: HandlerRegistry | None = None) -> None:
        """Build the environment and expose the registry's template methods."""
        if self._custom_env is not None:
            env = self._custom_env
            env.update_filters(BUILTIN_FILTERS)
            if self._filters:
                env.update_filters(self._filters)
            for name, value in self._globals.items():
                env.add_global(name, value)
        else:
            env = create_environment(self.config, self._filters, self._globals)

        if registry is not None:
            for ref in registry.template_methods():
                env.add_global(ref.name, TemplateMethodProxy(ref.name, ref))
                logger.debug("Template method %r installed", ref.name)

        self._env = env

    def template_name(self, template_path: str) -> str:
        name = template_path.strip("/") or "index"
        return name + self.config.template_ext

    def render(
        self,
        template_path: str,
        model: Mapping[str, Any],
        writer: Writer,
        rc: RequestContext,
    ) -> None:
        """Render *template_path* with *model* and write the result.

        *rc* is made current for the duration of the render so template
        methods can reach it.
        """
        template = self.env.get_template(self.template_name(template_path))
        token = rc_var.set(rc)
        try:
            html = template.render(dict(model))
        finally:
            rc_var.reset(token)
        writer.write(html)
