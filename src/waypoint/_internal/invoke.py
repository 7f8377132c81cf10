"""Invoke helpers: call sync or async handlers uniformly.

Handlers can be ``def`` or ``async def``. Any code that calls a
user-provided handler must handle both cases. This module keeps the
sync/async check in exactly one place.

Usage::

    from waypoint._internal.invoke import invoke

    result = await invoke(handler, *args, **kwargs)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's a coroutine.

    Works with both sync and async callables::

        # sync: returns immediately
        def ping(request):
            return success({"pong": True})

        # async: the coroutine is awaited
        async def show(request, id):
            return success(await repo.find(id))
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
