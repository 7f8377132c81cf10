"""``waypoint routes``: list compiled routes.

Resolves an import string to a waypoint App, freezes it, and prints one
row per route: METHOD, PATH, NAME, HANDLER, MIDDLEWARE.
"""

import argparse
import sys
from fnmatch import fnmatchcase

from waypoint._internal.types import MiddlewareRef
from waypoint.errors import ConfigurationError
from waypoint.routing.route import Route
from waypoint.server.handler import describe_handler

HEADERS = ("METHOD", "PATH", "NAME", "HANDLER", "MIDDLEWARE")


def _describe_middleware(refs: tuple[MiddlewareRef, ...]) -> str:
    names = [
        ref if isinstance(ref, str) else getattr(ref, "__name__", type(ref).__name__)
        for ref in refs
    ]
    return ", ".join(names)


def route_rows(routes: list[Route]) -> list[tuple[str, str, str, str, str]]:
    return [
        (
            "|".join(sorted(route.methods)),
            route.path,
            route.name or "",
            describe_handler(route),
            _describe_middleware(route.middleware),
        )
        for route in routes
    ]


def format_table(rows: list[tuple[str, ...]]) -> str:
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(HEADERS)]
    fmt = "  ".join(f"{{:<{w}}}" for w in widths)
    lines = [fmt.format(*HEADERS).rstrip(), "-" * min(sum(widths) + 2 * (len(widths) - 1), 100)]
    lines.extend(fmt.format(*row).rstrip() for row in rows)
    return "\n".join(lines)


def run_routes(args: argparse.Namespace) -> None:
    """Print the route table of ``args.app``."""
    from waypoint.cli._resolve import resolve_app

    try:
        app = resolve_app(args.app)
        app.freeze()
    except (ModuleNotFoundError, AttributeError, TypeError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    routes = app.router.routes
    if args.name:
        routes = [r for r in routes if r.name and fnmatchcase(r.name, args.name)]
    fallback = app.router.fallback_route
    if fallback is not None and not args.name:
        routes.append(fallback)

    if not routes:
        print("No routes registered.")
        return

    print(format_table(route_rows(routes)))
