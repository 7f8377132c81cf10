"""HTTP primitives: Request, Response, Headers, QueryParams, envelopes."""

from waypoint.http.envelope import created, error, success
from waypoint.http.headers import Headers
from waypoint.http.query import QueryParams
from waypoint.http.request import Request
from waypoint.http.response import Redirect, Response

__all__ = [
    "Headers",
    "QueryParams",
    "Redirect",
    "Request",
    "Response",
    "created",
    "error",
    "success",
]
