"""Waypoint CLI: route table inspection.

Entry point registered as ``waypoint`` in ``pyproject.toml``::

    [project.scripts]
    waypoint = "waypoint.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``waypoint`` command."""
    parser = argparse.ArgumentParser(
        prog="waypoint",
        description="Waypoint: routing and middleware toolkit for ASGI apps.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- waypoint routes ------------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List compiled routes")
    routes_parser.add_argument(
        "app",
        help="Import string (e.g. myapp:app)",
    )
    routes_parser.add_argument(
        "--name",
        default=None,
        help="Only routes whose name matches this pattern (* wildcards)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "routes":
        from waypoint.cli._routes import run_routes

        run_routes(args)
