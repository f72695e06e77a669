"""Content repository interface consumed by tool handlers.

The host CMS provides one ``ContentRepository`` per resource kind
(collections, entries, roles, ...). ``find`` returns ``None`` for a missing
handle; ``update`` and ``delete`` raise ``NotFoundError`` and ``create``
raises ``ConflictError`` when the handle is taken.

``InMemoryContentRepository`` backs the CLI, the default server and the test
suite.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

RESOURCE_KINDS = (
    "collections",
    "entries",
    "blueprints",
    "globals",
    "forms",
    "roles",
    "sites",
    "users",
    "groups",
)


class DomainError(Exception):
    """Base class for errors raised by content repositories."""


class NotFoundError(DomainError):
    def __init__(self, kind: str, handle: str):
        self.kind = kind
        self.handle = handle
        super().__init__(f"{kind} '{handle}' not found")


class ConflictError(DomainError):
    def __init__(self, kind: str, handle: str, message: Optional[str] = None):
        self.kind = kind
        self.handle = handle
        super().__init__(message or f"{kind} '{handle}' already exists")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Entity:
    """A stored resource: a handle plus structured field data."""

    kind: str
    handle: str
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        result = {"handle": self.handle}
        result.update(copy.deepcopy(self.data))
        result["created_at"] = self.created_at
        result["updated_at"] = self.updated_at
        return result


@runtime_checkable
class ContentRepository(Protocol):
    kind: str

    def find(self, handle: str) -> Optional[Entity]:
        ...

    def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        ...

    def create(self, handle: str, data: Mapping[str, Any]) -> Entity:
        ...

    def update(self, handle: str, patch: Mapping[str, Any]) -> Entity:
        ...

    def delete(self, handle: str) -> None:
        ...


class InMemoryContentRepository:
    """Thread-safe dictionary-backed repository preserving insertion order."""

    def __init__(self, kind: str, entities: Iterable[Entity] = ()):
        self.kind = kind
        self._lock = threading.RLock()
        self._entities: Dict[str, Entity] = {}
        for entity in entities:
            self._entities[entity.handle] = entity

    def find(self, handle: str) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(handle)
            return copy.deepcopy(entity) if entity is not None else None

    def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        with self._lock:
            entities = list(self._entities.values())
        if filter:
            entities = [
                entity
                for entity in entities
                if all(
                    (entity.handle if key == "handle" else entity.data.get(key)) == value
                    for key, value in filter.items()
                )
            ]
        return [copy.deepcopy(entity) for entity in entities]

    def create(self, handle: str, data: Mapping[str, Any]) -> Entity:
        with self._lock:
            if handle in self._entities:
                raise ConflictError(self.kind, handle)
            entity = Entity(kind=self.kind, handle=handle, data=copy.deepcopy(dict(data)))
            self._entities[handle] = entity
            logger.debug("Created %s '%s'", self.kind, handle)
            return copy.deepcopy(entity)

    def update(self, handle: str, patch: Mapping[str, Any]) -> Entity:
        with self._lock:
            entity = self._entities.get(handle)
            if entity is None:
                raise NotFoundError(self.kind, handle)
            entity.data.update(copy.deepcopy(dict(patch)))
            entity.updated_at = _now()
            return copy.deepcopy(entity)

    def delete(self, handle: str) -> None:
        with self._lock:
            if self._entities.pop(handle, None) is None:
                raise NotFoundError(self.kind, handle)
            logger.debug("Deleted %s '%s'", self.kind, handle)

    def __len__(self) -> int:
        return len(self._entities)


class ContentStore:
    """Lookup of one repository per resource kind."""

    def __init__(self, repositories: Optional[Mapping[str, ContentRepository]] = None):
        self._repositories: Dict[str, ContentRepository] = dict(repositories or {})

    @classmethod
    def in_memory(cls, kinds: Iterable[str] = RESOURCE_KINDS) -> "ContentStore":
        return cls({kind: InMemoryContentRepository(kind) for kind in kinds})

    def register(self, kind: str, repository: ContentRepository) -> None:
        self._repositories[kind] = repository

    def repository(self, kind: str) -> ContentRepository:
        try:
            return self._repositories[kind]
        except KeyError:
            raise LookupError(f"No repository registered for '{kind}'") from None

    def kinds(self) -> List[str]:
        return list(self._repositories)

    def load_snapshot(self, snapshot: Mapping[str, Any]) -> int:
        """Seed repositories from ``{kind: {handle: data}}``; returns entities created.

        Kinds without a registered repository get an in-memory one.
        """
        created = 0
        for kind, items in snapshot.items():
            if kind not in self._repositories:
                self._repositories[kind] = InMemoryContentRepository(kind)
            repository = self._repositories[kind]
            for handle, data in dict(items).items():
                repository.create(str(handle), data or {})
                created += 1
        return created
