"""Tests for flurry.dispatch: model composition and the content pipelines."""

import json
import logging
from typing import Any

import pytest
from kida import DictLoader, Environment

from flurry.actions import WebActionResponse
from flurry.context import RequestContext
from flurry.dispatch import MODEL_KEY_JSON_DATA, MODEL_KEY_REQUEST, Dispatcher
from flurry.errors import NotInitializedError, NoWebAction, NoWebResourceHandler
from flurry.handlers import (
    ActionHandlerRef,
    HandlerKind,
    HandlerRegistry,
    ModelHandlerRef,
    ResourceHandlerRef,
)
from flurry.http.headers import Headers
from flurry.http.query import QueryParams
from flurry.http.request import Request
from flurry.rendering.json import JsonRenderer
from flurry.rendering.templates import TemplateRenderer


class RecordingRenderer(TemplateRenderer):
    """Captures render calls instead of loading templates."""

    __slots__ = ("calls",)

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def init(self, registry: HandlerRegistry | None = None) -> None:
        pass

    def render(self, template_path, model, writer, rc) -> None:
        self.calls.append((template_path, dict(model)))
        writer.write(f"rendered {template_path}")


def _model(registry: HandlerRegistry, key: str, func, *, matches: bool = False) -> None:
    registry.register(HandlerKind.MODEL, key, ModelHandlerRef(key, func, matches=matches))


def _dispatcher(
    registry: HandlerRegistry,
    renderer: TemplateRenderer | None = None,
    **kwargs: Any,
) -> Dispatcher:
    dispatcher = Dispatcher(
        registry,
        renderer if renderer is not None else RecordingRenderer(),
        JsonRenderer(sort_keys=True),
        **kwargs,
    )
    dispatcher.init()
    return dispatcher


class TestModelComposition:
    async def test_root_prefixes_then_patterns(self) -> None:
        registry = HandlerRegistry()
        order: list[str] = []

        def make(label: str):
            def handler(model):
                order.append(label)
                model["last"] = label

            return handler

        _model(registry, "/a/*", make("pattern"), matches=True)
        _model(registry, "/a/b", make("a/b"))
        _model(registry, "/a", make("a"))
        _model(registry, "/", make("root"))
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/a/b")
        await dispatcher.process_web_models(rc)

        assert order == ["root", "a", "a/b", "pattern"]
        assert rc.model["last"] == "pattern"

    async def test_later_writes_win(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/", lambda model: model.update(title="Site", theme="light"))
        _model(registry, "/docs", lambda model: model.update(title="Docs"))
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/docs")
        await dispatcher.process_web_models(rc)

        assert rc.model == {"title": "Docs", "theme": "light"}

    async def test_returned_mapping_is_merged(self) -> None:
        registry = HandlerRegistry()

        async def users():
            return {"users": ["ada", "grace"]}

        _model(registry, "/users", users)
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/users")
        await dispatcher.process_web_models(rc)

        assert rc.model["users"] == ["ada", "grace"]

    async def test_root_runs_once_for_root_request(self) -> None:
        registry = HandlerRegistry()
        calls: list[str] = []
        _model(registry, "/", lambda: calls.append("root"))
        dispatcher = _dispatcher(registry)

        await dispatcher.process_web_models(RequestContext("/"))

        assert calls == ["root"]

    async def test_root_request_matches_patterns_as_slash(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/*", lambda model: model.update(everywhere=True), matches=True)
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/")
        await dispatcher.process_web_models(rc)

        assert rc.model == {"everywhere": True}

    async def test_unrelated_handlers_do_not_run(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/blog", lambda model: model.update(blog=True))
        _model(registry, "/blog/*", lambda model: model.update(post=True), matches=True)
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/docs/intro")
        await dispatcher.process_web_models(rc)

        assert rc.model == {}

    async def test_failure_stops_composition(self) -> None:
        registry = HandlerRegistry()
        ran: list[str] = []

        def broken():
            raise LookupError("no such user")

        _model(registry, "/", broken)
        _model(registry, "/users", lambda: ran.append("users"))
        dispatcher = _dispatcher(registry)

        with pytest.raises(LookupError, match="no such user"):
            await dispatcher.process_web_models(RequestContext("/users"))
        assert ran == []

    async def test_mid_path_failure_skips_deeper_and_pattern_handlers(self) -> None:
        registry = HandlerRegistry()
        ran: list[str] = []

        def broken():
            ran.append("a")
            raise LookupError("no such section")

        _model(registry, "/", lambda: ran.append("root"))
        _model(registry, "/a", broken)
        _model(registry, "/a/b", lambda: ran.append("a/b"))
        _model(registry, "/a/b/c", lambda: ran.append("a/b/c"))
        _model(registry, "/a/*", lambda: ran.append("pattern"), matches=True)
        dispatcher = _dispatcher(registry)

        with pytest.raises(LookupError, match="no such section"):
            await dispatcher.process_web_models(RequestContext("/a/b/c"))
        assert ran == ["root", "a"]

    async def test_every_level_contributes_and_deepest_wins(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/", lambda model: model.update(level="root", root=True))
        _model(registry, "/a", lambda model: model.update(level="a", a=True))
        _model(registry, "/a/b", lambda model: model.update(level="a/b", ab=True))
        _model(registry, "/a/b/c", lambda model: model.update(level="a/b/c", abc=True))
        _model(
            registry,
            "/a/b/*",
            lambda model: model.update(level="pattern", pattern=True),
            matches=True,
        )
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/a/b/c")
        await dispatcher.process_web_models(rc)

        assert rc.model == {
            "level": "pattern",
            "root": True,
            "a": True,
            "ab": True,
            "abc": True,
            "pattern": True,
        }

    async def test_all_handlers_at_one_path_run_in_registration_order(self) -> None:
        registry = HandlerRegistry()
        ran: list[str] = []

        def first(model):
            ran.append("first")
            model["title"] = "first"

        def second(model):
            ran.append("second")
            model["title"] = "second"

        _model(registry, "/users", first)
        _model(registry, "/users", second)
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/users")
        await dispatcher.process_web_models(rc)

        assert ran == ["first", "second"]
        assert rc.model == {"title": "second"}

    async def test_handlers_receive_request_params(self) -> None:
        registry = HandlerRegistry()

        def page(model, page: int = 1):
            model["page"] = page

        _model(registry, "/list", page)
        dispatcher = _dispatcher(registry)

        request = Request(
            method="GET", path="/list", headers=Headers(), query=QueryParams(b"page=3")
        )
        rc = RequestContext("/list", request=request)
        await dispatcher.process_web_models(rc)

        assert rc.model["page"] == 3


class TestProcessTemplate:
    async def test_renders_resource_path_with_request_metadata(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/users", lambda model: model.update(title="Users"))
        renderer = RecordingRenderer()
        dispatcher = _dispatcher(registry, renderer)

        rc = RequestContext("/users")
        await dispatcher.process_template(rc)

        path, model = renderer.calls[0]
        assert path == "/users"
        assert model["title"] == "Users"
        assert model[MODEL_KEY_REQUEST]["path"] == "/users"
        assert model[MODEL_KEY_REQUEST]["rc"] is rc
        assert rc.output == "rendered /users"

    async def test_request_metadata_not_left_in_model(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        await dispatcher.process_template(rc)
        assert MODEL_KEY_REQUEST not in rc.model

    async def test_frame_path_overrides_once(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/admin", lambda rc: rc.set_frame_path("/admin/frame"))
        renderer = RecordingRenderer()
        dispatcher = _dispatcher(registry, renderer)

        rc = RequestContext("/admin")
        await dispatcher.process_template(rc)

        assert renderer.calls[0][0] == "/admin/frame"
        assert rc.pop_frame_path() is None

    async def test_leaf_path_picks_template(self) -> None:
        registry = HandlerRegistry()
        registry.add_leaf_path("/docs/")
        renderer = RecordingRenderer()
        dispatcher = _dispatcher(registry, renderer)

        await dispatcher.process_template(RequestContext("/docs/guide/install"))

        assert renderer.calls[0][0] == "/docs"

    async def test_renders_through_kida(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/", lambda model: model.update(site="Flurry"))
        _model(registry, "/hello", lambda model: model.update(name="Ada"))
        env = Environment(loader=DictLoader({"hello.html": "<h1>{{ site }}: {{ name }}</h1>"}))
        dispatcher = _dispatcher(registry, TemplateRenderer(env=env))

        rc = RequestContext("/hello")
        await dispatcher.process_template(rc)

        assert rc.output == "<h1>Flurry: Ada</h1>"


class TestTemplatePath:
    def _dispatcher(self, *leaf_paths: str) -> Dispatcher:
        registry = HandlerRegistry()
        for prefix in leaf_paths:
            registry.add_leaf_path(prefix)
        return _dispatcher(registry)

    def test_no_leaf_paths(self) -> None:
        assert self._dispatcher().get_template_path("/a/b") == "/a/b"

    def test_trailing_slash_removed(self) -> None:
        assert self._dispatcher("/docs/").get_template_path("/docs/x") == "/docs"

    def test_first_match_wins(self) -> None:
        dispatcher = self._dispatcher("/docs/", "/docs/api/")
        assert dispatcher.get_template_path("/docs/api/x") == "/docs"

    def test_plain_prefix_match(self) -> None:
        # No segment boundary check: "/doc" also covers "/docs"
        assert self._dispatcher("/doc").get_template_path("/docs") == "/doc"


class TestProcessJson:
    async def test_sends_model(self) -> None:
        registry = HandlerRegistry()
        _model(registry, "/users", lambda model: model.update(users=["ada"], count=1))
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/users")
        await dispatcher.process_json(rc)

        assert json.loads(rc.output) == {"count": 1, "users": ["ada"]}

    async def test_json_data_replaces_model(self) -> None:
        registry = HandlerRegistry()

        def users(model):
            model["title"] = "Users"
            model[MODEL_KEY_JSON_DATA] = [{"name": "ada"}]

        _model(registry, "/users", users)
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/users")
        await dispatcher.process_json(rc)

        assert json.loads(rc.output) == [{"name": "ada"}]

    async def test_no_request_metadata(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        await dispatcher.process_json(rc)
        assert json.loads(rc.output) == {}


class TestWebActions:
    async def test_result_stored_on_context(self) -> None:
        registry = HandlerRegistry()

        async def save(name: str):
            return {"saved": name}

        registry.register(HandlerKind.ACTION, "save", ActionHandlerRef("save", save))
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/", params=QueryParams(b"name=ada"))
        response = await dispatcher.process_web_action("save", rc)

        assert response.result == {"saved": "ada"}
        assert response.success
        assert rc.web_action_response is response

    async def test_unknown_action(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        with pytest.raises(NoWebAction) as excinfo:
            await dispatcher.process_web_action("missing", rc)
        assert excinfo.value.action == "missing"
        assert rc.web_action_response is None

    async def test_handler_error_propagates(self) -> None:
        registry = HandlerRegistry()

        def fail():
            raise PermissionError("read-only")

        registry.register(HandlerKind.ACTION, "fail", ActionHandlerRef("fail", fail))
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/")
        with pytest.raises(PermissionError):
            await dispatcher.process_web_action("fail", rc)
        assert rc.web_action_response is None

    def test_response_json_success_is_bare_result(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        rc.web_action_response = WebActionResponse(result={"id": 7})
        dispatcher.process_web_action_response_json(rc)
        assert json.loads(rc.output) == {"id": 7}

    def test_response_json_error_is_wrapper(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        rc.web_action_response = WebActionResponse(error="bad input")
        dispatcher.process_web_action_response_json(rc)
        assert json.loads(rc.output) == {"error": "bad input", "result": None, "success": False}

    def test_response_json_without_action(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        rc = RequestContext("/")
        dispatcher.process_web_action_response_json(rc)
        assert json.loads(rc.output) is None


class TestResources:
    async def test_handler_writes_output(self) -> None:
        registry = HandlerRegistry()

        def feed(rc):
            rc.writer.write("<rss/>")

        registry.register(HandlerKind.RESOURCE, "/feed.xml", ResourceHandlerRef("/feed.xml", feed))
        dispatcher = _dispatcher(registry)

        assert dispatcher.has_web_resource_handler_for("/feed.xml")
        rc = RequestContext("/feed.xml")
        await dispatcher.process_web_resource_handler(rc)
        assert rc.output == "<rss/>"

    async def test_returned_text_written(self) -> None:
        registry = HandlerRegistry()
        registry.register(
            HandlerKind.RESOURCE, "/robots.txt", ResourceHandlerRef("/robots.txt", lambda: b"ok")
        )
        dispatcher = _dispatcher(registry)

        rc = RequestContext("/robots.txt")
        await dispatcher.process_web_resource_handler(rc)
        assert rc.output == "ok"

    async def test_missing_handler(self) -> None:
        dispatcher = _dispatcher(HandlerRegistry())
        assert not dispatcher.has_web_resource_handler_for("/nope")
        with pytest.raises(NoWebResourceHandler):
            await dispatcher.process_web_resource_handler(RequestContext("/nope"))


class TestLifecycle:
    async def test_pipelines_refuse_before_init(self) -> None:
        dispatcher = Dispatcher(HandlerRegistry(), RecordingRenderer(), JsonRenderer())
        assert not dispatcher.initialized
        with pytest.raises(NotInitializedError):
            await dispatcher.process_template(RequestContext("/"))
        with pytest.raises(NotInitializedError):
            await dispatcher.process_json(RequestContext("/"))
        with pytest.raises(NotInitializedError):
            await dispatcher.process_web_action("save", RequestContext("/"))

    def test_init_order(self) -> None:
        calls: list[str] = []

        class Persistence:
            def init(self) -> None:
                calls.append("persistence")

        class Lifecycle:
            def init(self) -> None:
                calls.append("lifecycle")

            def shutdown(self) -> None:
                calls.append("shutdown")

        registry = HandlerRegistry()
        dispatcher = _dispatcher(registry, lifecycle=Lifecycle(), persistence=Persistence())

        assert dispatcher.initialized
        assert registry.is_frozen
        assert calls == ["persistence", "lifecycle"]

        dispatcher.shutdown()
        assert calls[-1] == "shutdown"

    def test_second_init_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        calls: list[str] = []

        class Lifecycle:
            def init(self) -> None:
                calls.append("init")

            def shutdown(self) -> None:
                pass

        dispatcher = _dispatcher(HandlerRegistry(), lifecycle=Lifecycle())
        with caplog.at_level(logging.ERROR, logger="flurry.dispatch"):
            dispatcher.init()

        assert calls == ["init"]
        assert "more than once" in caplog.text

    async def test_failed_init_leaves_dispatcher_unusable(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        class Lifecycle:
            def init(self) -> None:
                raise ConnectionError("database down")

            def shutdown(self) -> None:
                pass

        with caplog.at_level(logging.ERROR, logger="flurry.dispatch"):
            dispatcher = _dispatcher(HandlerRegistry(), lifecycle=Lifecycle())

        assert not dispatcher.initialized
        assert "Application init failed" in caplog.text
        with pytest.raises(NotInitializedError):
            await dispatcher.process_template(RequestContext("/"))
