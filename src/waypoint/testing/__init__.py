"""Test utilities for waypoint applications.

    from waypoint.testing import TestClient, assert_envelope
"""

from waypoint.testing.assertions import assert_envelope, assert_error_envelope
from waypoint.testing.client import TestClient

__all__ = ["TestClient", "assert_envelope", "assert_error_envelope"]
