"""Query string parameters.

``application/x-www-form-urlencoded`` bodies share the grammar and are
parsed with the same class.
"""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """Read-only multi-valued parameters. Indexing returns the first value."""

    __slots__ = ("_values", "raw")

    def __init__(self, raw: bytes = b"") -> None:
        self.raw = raw
        self._values: dict[str, list[str]] = {}
        for key, value in parse_qsl(raw.decode("utf-8", "replace"), keep_blank_values=True):
            self._values.setdefault(key, []).append(value)

    def __getitem__(self, key: str) -> str:
        return self._values[key][0]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get_list(self, key: str) -> list[str]:
        return list(self._values.get(key, ()))

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """First value as an int; *default* when absent or not numeric."""
        try:
            return int(self[key])
        except (KeyError, ValueError):
            return default
