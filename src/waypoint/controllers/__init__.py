"""CRUD controller convention and an in-memory repository."""

from waypoint.controllers.memory import MemoryRepository
from waypoint.controllers.resource import Repository, ResourceController

__all__ = ["MemoryRepository", "Repository", "ResourceController"]
