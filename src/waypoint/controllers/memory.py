"""Thread-safe in-memory repository.

Backs tests and demos of ``ResourceController``. Records are plain dicts
with an auto-incrementing integer ``id``.
"""

import threading
from collections.abc import Iterable, Mapping
from typing import Any


class MemoryRepository:
    """Dict-backed record store.

    Usage::

        repo = MemoryRepository([{"name": "Ada"}])
        repo.create({"name": "Grace"})   # {"id": 2, "name": "Grace"}
        repo.find(1)                     # {"id": 1, "name": "Ada"}
    """

    __slots__ = ("_lock", "_next_id", "_records")

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, dict[str, Any]] = {}
        self._next_id = 1
        for record in records:
            self.create(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def all(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._records.values()]

    def find(self, id: int) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(id)
            return dict(record) if record is not None else None

    def create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        with self._lock:
            record = {**data, "id": self._next_id}
            self._records[self._next_id] = record
            self._next_id += 1
            return dict(record)

    def update(self, id: int, data: Mapping[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(id)
            if record is None:
                return None
            # The primary key is never rewritten
            record.update({k: v for k, v in data.items() if k != "id"})
            return dict(record)

    def delete(self, id: int) -> bool:
        with self._lock:
            return self._records.pop(id, None) is not None
