"""Invoke helpers: call sync or async handlers uniformly.

flurry handlers can be ``def`` or ``async def``. Any code that calls
a user-provided handler must handle both cases. This module provides
a single helper so the sync/async check lives in exactly one place.

Usage::

    from flurry._internal.invoke import invoke

    result = await invoke(handler, *args, **kwargs)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's a coroutine.

    Works with both sync and async callables::

        # sync: returns immediately, no await needed
        @app.web_model("/users")
        def users(model):
            model["users"] = store.all()

        # async: returns coroutine, awaited automatically
        @app.web_model("/users")
        async def users(model):
            model["users"] = await store.fetch_all()
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
