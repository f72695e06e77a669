"""Helpers shared by the resource tool modules."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from cms_mcp.core.repository import ConflictError, ContentRepository, Entity, NotFoundError
from cms_mcp.core.schema import (
    SchemaBuilder,
    ToolSchema,
    confirm_fragment,
    dry_run_fragment,
    pagination_fragment,
)

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from cms_mcp.core.dispatcher import ActionCall

_HANDLE_INVALID = re.compile(r"[^a-z0-9_-]+")


def sanitize_handle(value: str) -> str:
    """Lowercase ``value`` and collapse characters outside ``[a-z0-9_-]`` to ``_``."""
    handle = _HANDLE_INVALID.sub("_", str(value).strip().lower())
    return handle.strip("_-")


def repository(call: ActionCall, kind: str) -> ContentRepository:
    return call.store.repository(kind)


def require(call: ActionCall, kind: str, handle: str) -> Entity:
    """Fetch an entity or raise ``NotFoundError``."""
    entity = repository(call, kind).find(handle)
    if entity is None:
        raise NotFoundError(kind, handle)
    return entity


def ensure_absent(call: ActionCall, kind: str, handle: str) -> None:
    if repository(call, kind).find(handle) is not None:
        raise ConflictError(kind, handle)


def paginate(items: Sequence[Any], limit: int, offset: int) -> Tuple[List[Any], int]:
    total = len(items)
    return list(items[offset : offset + limit]), total


def list_payload(
    key: str,
    entities: Sequence[Entity],
    arguments: Mapping[str, Any],
    *,
    fields: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Paginated list payload: ``{key: [...], count, total, limit, offset}``."""
    limit = arguments.get("limit", 50)
    offset = arguments.get("offset", 0)
    page, total = paginate(entities, limit, offset)
    items = [summarize(entity, fields) for entity in page]
    return {
        key: items,
        "count": len(items),
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(items) < total,
    }


def summarize(entity: Entity, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Entity dict, reduced to ``handle`` plus ``fields`` when given."""
    full = entity.to_dict()
    if fields is None:
        return full
    return {"handle": entity.handle, **{name: full.get(name) for name in fields}}


def pick(arguments: Mapping[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    """Subset of ``arguments`` for the names that were supplied."""
    return {name: arguments[name] for name in names if name in arguments}


def read_schema(*, handle_description: str) -> ToolSchema:
    return SchemaBuilder().string("handle", handle_description, required=True).build()


def list_schema(*extra: ToolSchema) -> ToolSchema:
    builder = SchemaBuilder().include(pagination_fragment())
    for fragment in extra:
        builder.include(fragment)
    return builder.build()


def delete_schema(*, handle_description: str) -> ToolSchema:
    return (
        SchemaBuilder()
        .string("handle", handle_description, required=True)
        .include(dry_run_fragment())
        .include(confirm_fragment())
        .build()
    )
