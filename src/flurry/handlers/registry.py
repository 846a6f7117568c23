"""Handler registry: independent lookup tables per handler role.

Handlers are registered during setup and the registry is frozen when the
app starts serving. After ``freeze()`` every operation is a read, so
concurrent requests share it without locking.

Each table has its own resolution rule and none falls back to another:

- actions, resources, template methods: exact key, last registration wins
- model handlers: exact path, additive (every handler at a path runs)
- "matches" model handlers: glob pattern against the full path, additive
- exception catchers: exact runtime type, no base-class walk
- leaf paths: ordered prefixes, first match wins
"""

import logging
from collections import defaultdict
from fnmatch import fnmatchcase

from flurry.handlers.refs import (
    ActionHandlerRef,
    ExceptionCatcherRef,
    HandlerKind,
    HandlerRef,
    ModelHandlerRef,
    ResourceHandlerRef,
    TemplateMethodHandlerRef,
)

logger = logging.getLogger("flurry.handlers")

_EXPECTED: dict[HandlerKind, type] = {
    HandlerKind.ACTION: ActionHandlerRef,
    HandlerKind.MODEL: ModelHandlerRef,
    HandlerKind.RESOURCE: ResourceHandlerRef,
    HandlerKind.CATCHER: ExceptionCatcherRef,
    HandlerKind.TEMPLATE_METHOD: TemplateMethodHandlerRef,
}


class HandlerRegistry:
    """Lookup tables for every handler role.

    Usage::

        registry = HandlerRegistry()
        registry.register(HandlerKind.MODEL, "/users", ModelHandlerRef("/users", users))
        registry.add_leaf_path("/admin/")
        registry.freeze()
        registry.lookup_model_handlers("/users")
    """

    __slots__ = (
        "_actions",
        "_catchers",
        "_frozen",
        "_leaf_paths",
        "_match_models",
        "_models",
        "_resources",
        "_template_methods",
    )

    def __init__(self) -> None:
        self._actions: dict[str, ActionHandlerRef] = {}
        self._models: defaultdict[str, list[ModelHandlerRef]] = defaultdict(list)
        # Insertion order of patterns is the invocation order
        self._match_models: defaultdict[str, list[ModelHandlerRef]] = defaultdict(list)
        self._resources: dict[str, ResourceHandlerRef] = {}
        self._catchers: dict[type[BaseException], ExceptionCatcherRef] = {}
        self._template_methods: dict[str, TemplateMethodHandlerRef] = {}
        self._leaf_paths: list[str] = []
        self._frozen = False

    # -- Registration --

    def register(self, kind: HandlerKind, key: object, ref: HandlerRef) -> None:
        """Insert *ref* into the table for *kind*.

        Must be called before ``freeze()``. For model handlers, pass the
        pattern as *key* and a ref with ``matches=True`` to register a
        "matches" handler.
        """
        self._check_not_frozen()
        if not isinstance(ref, _EXPECTED[kind]):
            msg = f"{kind.name} handler must be a {_EXPECTED[kind].__name__}, got {type(ref).__name__}"
            raise TypeError(msg)

        match ref:
            case ActionHandlerRef():
                self._replace(self._actions, str(key), ref)
            case ModelHandlerRef(matches=True):
                self._match_models[str(key)].append(ref)
            case ModelHandlerRef():
                self._models[str(key)].append(ref)
            case ResourceHandlerRef():
                self._replace(self._resources, str(key), ref)
            case ExceptionCatcherRef():
                if not (isinstance(key, type) and issubclass(key, BaseException)):
                    msg = f"Exception catchers are keyed by exception type, got {key!r}"
                    raise TypeError(msg)
                self._replace(self._catchers, key, ref)
            case TemplateMethodHandlerRef():
                self._replace(self._template_methods, str(key), ref)

        logger.debug("Registered %s", ref)

    def add_leaf_path(self, prefix: str) -> None:
        """Append a template-root prefix. Earlier prefixes take precedence."""
        self._check_not_frozen()
        self._leaf_paths.append(prefix)

    def freeze(self) -> None:
        """Mark registration complete. No more handlers can be added."""
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # -- Lookup --

    def lookup_action(self, name: str) -> ActionHandlerRef | None:
        return self._actions.get(name)

    def lookup_model_handlers(self, path: str) -> tuple[ModelHandlerRef, ...]:
        """Model handlers registered at exactly *path*, in registration order."""
        refs = self._models.get(path)
        return tuple(refs) if refs else ()

    def lookup_matching_model_handlers(self, full_path: str) -> tuple[ModelHandlerRef, ...]:
        """Every "matches" handler whose glob pattern accepts *full_path*.

        ``*`` spans ``/``, so ``/admin/*`` matches ``/admin/users/list``.
        Results follow pattern registration order.
        """
        found: list[ModelHandlerRef] = []
        for pattern, refs in self._match_models.items():
            if fnmatchcase(full_path, pattern):
                found.extend(refs)
        return tuple(found)

    def lookup_resource(self, path: str) -> ResourceHandlerRef | None:
        return self._resources.get(path)

    def lookup_catcher(self, exc_type: type[BaseException]) -> ExceptionCatcherRef | None:
        """The catcher for exactly *exc_type*. Base classes are not consulted."""
        return self._catchers.get(exc_type)

    def lookup_template_method(self, name: str) -> TemplateMethodHandlerRef | None:
        return self._template_methods.get(name)

    def template_methods(self) -> tuple[TemplateMethodHandlerRef, ...]:
        return tuple(self._template_methods.values())

    def leaf_paths(self) -> tuple[str, ...]:
        return tuple(self._leaf_paths)

    # -- Internal --

    @staticmethod
    def _replace(table: dict, key: object, ref: HandlerRef) -> None:
        previous = table.get(key)
        if previous is not None:
            logger.warning("Replacing %s with %s", previous, ref)
        table[key] = ref

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = "Cannot register handlers after the registry is frozen."
            raise RuntimeError(msg)
