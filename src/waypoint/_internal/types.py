"""Shared type aliases used across waypoint modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Route handler: user-defined function or bound controller action
Handler: TypeAlias = Callable[..., Any]

# Error handler: receives (request, error?) and returns a response value
ErrorHandler: TypeAlias = Callable[..., Any]

# Middleware identifier as written in a route table: "auth", "throttle:5,1",
# or a middleware callable used directly
MiddlewareRef: TypeAlias = str | Callable[..., Any]
