"""Locate the App a CLI command works on.

Targets look like ``package.module:attr``. ``attr`` defaults to ``app``
and may be dotted (``main:container.app``). A callable that is not an
App is called once as a factory.
"""

import importlib
from functools import reduce

from waypoint.app import App

DEFAULT_ATTRIBUTE = "app"


def _call_factory(factory: object, target: str) -> App:
    try:
        app = factory()  # type: ignore[operator]
    except Exception as exc:
        msg = f"App factory {target!r} raised an error: {exc}"
        raise TypeError(msg) from exc
    if not isinstance(app, App):
        msg = f"App factory {target!r} returned {type(app).__name__}, not a waypoint.App"
        raise TypeError(msg)
    return app


def resolve_app(target: str) -> App:
    """Return the App named by *target*.

    Raises ``ModuleNotFoundError`` or ``AttributeError`` when the target
    does not exist, and ``TypeError`` when it is not an App or its factory
    fails.
    """
    module_path, _, attribute = target.partition(":")
    module = importlib.import_module(module_path)
    obj = reduce(getattr, (attribute or DEFAULT_ATTRIBUTE).split("."), module)

    if isinstance(obj, App):
        return obj
    if callable(obj):
        return _call_factory(obj, target)
    msg = f"{target!r} is a {type(obj).__name__}, not a waypoint.App"
    raise TypeError(msg)
