"""CRUD controller convention.

``ResourceController`` implements the ``index``, ``show``, ``store``,
``update`` and ``destroy`` actions that ``Router.api_resource()`` wires
up, answering every request with a JSON envelope::

    users = ResourceController(
        MemoryRepository(),
        label="User",
        required=("name", "email"),
    )
    app.api_resource("/api/users", users)

Repositories may be sync or async. Sync repositories run in a worker
thread so they never block the event loop.
"""

import inspect
import logging
from collections.abc import Callable, Iterable
from functools import partial
from typing import Any, Protocol

import anyio.to_thread

from waypoint.http import envelope
from waypoint.http.request import Request
from waypoint.http.response import Response

logger = logging.getLogger("waypoint.server")


class Repository(Protocol):
    """Storage a ``ResourceController`` drives.

    Each method may also be ``async def``.
    """

    def all(self) -> list[dict[str, Any]]: ...

    def find(self, id: int) -> dict[str, Any] | None: ...

    def create(self, data: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, id: int, data: dict[str, Any]) -> dict[str, Any] | None: ...

    def delete(self, id: int) -> bool: ...


async def _call(method: Callable[..., Any], *args: Any) -> Any:
    if inspect.iscoroutinefunction(method):
        return await method(*args)
    return await anyio.to_thread.run_sync(partial(method, *args))


def _parse_key(id: str) -> int | None:
    try:
        return int(id)
    except ValueError:
        return None


class ResourceController:
    """JSON CRUD actions over a ``Repository``.

    ``required`` names the fields ``store`` insists on (422 when any is
    missing or empty). ``fillable``, when given, is the allow-list of
    fields copied from the request input.
    """

    def __init__(
        self,
        repository: Repository,
        *,
        label: str = "Record",
        plural: str | None = None,
        required: Iterable[str] = (),
        fillable: Iterable[str] | None = None,
    ) -> None:
        self.repository = repository
        self.label = label
        self.plural = plural or f"{label.lower()}s"
        self.required = tuple(required)
        self.fillable = tuple(fillable) if fillable is not None else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label})"

    def _not_found(self) -> Response:
        return envelope.error(f"{self.label} not found", status=404)

    def _failed(self, action: str) -> Response:
        logger.exception("%s %s failed", self.label, action)
        return envelope.error(f"Failed to {action} {self.label.lower()}", status=500)

    def _fill(self, data: dict[str, Any]) -> dict[str, Any]:
        data = {k: v for k, v in data.items() if k != "id"}
        if self.fillable is None:
            return data
        return {k: v for k, v in data.items() if k in self.fillable}

    def missing_fields(self, data: dict[str, Any]) -> list[str]:
        return [f for f in self.required if data.get(f) in (None, "")]

    # -- Actions --

    async def index(self) -> Response:
        try:
            records = await _call(self.repository.all)
        except Exception:
            return self._failed("fetch")
        return envelope.success({self.plural: records, "count": len(records)})

    async def show(self, id: str) -> Response:
        key = _parse_key(id)
        if key is None:
            return self._not_found()
        try:
            record = await _call(self.repository.find, key)
        except Exception:
            return self._failed("fetch")
        if record is None:
            return self._not_found()
        return envelope.success(record)

    async def store(self, request: Request) -> Response:
        data = await request.input()
        missing = self.missing_fields(data)
        if missing:
            return envelope.error(
                f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
                status=422,
                errors={f: [f"The {f} field is required."] for f in missing},
            )
        try:
            record = await _call(self.repository.create, self._fill(data))
        except Exception:
            return self._failed("create")
        return envelope.created(record, f"{self.label} created successfully")

    async def update(self, request: Request, id: str) -> Response:
        key = _parse_key(id)
        if key is None:
            return self._not_found()
        data = self._fill(await request.input())
        try:
            record = await _call(self.repository.update, key, data)
        except Exception:
            return self._failed("update")
        if record is None:
            return self._not_found()
        return envelope.success(record, f"{self.label} updated successfully")

    async def destroy(self, id: str) -> Response:
        key = _parse_key(id)
        if key is None:
            return self._not_found()
        try:
            deleted = await _call(self.repository.delete, key)
        except Exception:
            return self._failed("delete")
        if not deleted:
            return self._not_found()
        return envelope.success(None, f"{self.label} deleted successfully")
