"""Routing: route table, groups, named routes, and parameter constraints.

Routes are registered during setup and compiled into an immutable
tuple when the app freezes.
"""

from waypoint.routing.params import CONSTRAINTS
from waypoint.routing.route import PathSegment, Route, RouteDefinition, RouteMatch, parse_path
from waypoint.routing.router import ANY_METHODS, RouteGroup, Router

__all__ = [
    "ANY_METHODS",
    "CONSTRAINTS",
    "PathSegment",
    "Route",
    "RouteDefinition",
    "RouteGroup",
    "RouteMatch",
    "Router",
    "parse_path",
]
