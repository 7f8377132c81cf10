"""Path parameter constraints.

A constraint is a regex that a single path token must fully match. The
named kinds below back the ``where_*`` helpers and the inline
``{name:kind}`` placeholder syntax.
"""

import re

UNCONSTRAINED = r"[^/]+"

# kind -> regex for each named constraint
CONSTRAINTS: dict[str, str] = {
    "number": r"[0-9]+",
    "slug": r"[a-z0-9-]+",
    "alpha": r"[a-zA-Z]+",
    "alnum": r"[a-zA-Z0-9]+",
    "uuid": r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}",
    # Catch-all: consumes the rest of the path, slashes included
    "path": r".+",
}

CATCH_ALL = "path"


def one_of(values: tuple[str, ...] | list[str]) -> str:
    """Regex accepting exactly one of *values*."""
    return "|".join(re.escape(v) for v in values)


def compile_constraint(pattern: str) -> re.Pattern[str]:
    """Compile *pattern*; callers match with ``fullmatch``.

    Raises ``re.error`` for an invalid custom pattern.
    """
    return re.compile(pattern)
