"""Cache invalidation policy.

Mutating actions declare an ``OperationCategory``. The category maps to a
fixed, ordered tuple of ``CacheKind`` values; the first kind in each row is
the category's primary kind. The configured ``CacheInvalidator`` clears the
kinds and reports a per-kind outcome. A failed kind never stops the others
and never fails the tool call, since the domain mutation already happened.

    structural-change  primary-index, rendered-static, compiled-view
    content-change     primary-index, rendered-static
    template-change    rendered-static, compiled-view
    asset-change       derived-image, rendered-static
    default            primary-index
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Collection, Dict, List, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

from cms_mcp.core.observability import audit_log

logger = logging.getLogger(__name__)


class CacheKind(str, Enum):
    PRIMARY_INDEX = "primary-index"
    RENDERED_STATIC = "rendered-static"
    DERIVED_IMAGE = "derived-image"
    COMPILED_VIEW = "compiled-view"


class OperationCategory(str, Enum):
    STRUCTURAL_CHANGE = "structural-change"
    CONTENT_CHANGE = "content-change"
    TEMPLATE_CHANGE = "template-change"
    ASSET_CHANGE = "asset-change"
    DEFAULT = "default"


_CATEGORY_KINDS: Mapping[OperationCategory, Tuple[CacheKind, ...]] = MappingProxyType(
    {
        OperationCategory.STRUCTURAL_CHANGE: (
            CacheKind.PRIMARY_INDEX,
            CacheKind.RENDERED_STATIC,
            CacheKind.COMPILED_VIEW,
        ),
        OperationCategory.CONTENT_CHANGE: (CacheKind.PRIMARY_INDEX, CacheKind.RENDERED_STATIC),
        OperationCategory.TEMPLATE_CHANGE: (CacheKind.RENDERED_STATIC, CacheKind.COMPILED_VIEW),
        OperationCategory.ASSET_CHANGE: (CacheKind.DERIVED_IMAGE, CacheKind.RENDERED_STATIC),
        OperationCategory.DEFAULT: (CacheKind.PRIMARY_INDEX,),
    }
)


def resolve_category(category: Union[OperationCategory, str, None]) -> OperationCategory:
    if isinstance(category, OperationCategory):
        return category
    try:
        return OperationCategory(category)
    except ValueError:
        return OperationCategory.DEFAULT


def cache_kinds_for(category: Union[OperationCategory, str, None]) -> Tuple[CacheKind, ...]:
    """Cache kinds to clear for ``category``, primary kind first.

    Unknown or missing categories fall back to the default row.
    """
    return _CATEGORY_KINDS[resolve_category(category)]


@dataclass(frozen=True)
class KindOutcome:
    """Outcome of clearing one cache kind."""

    kind: CacheKind
    succeeded: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls, kind: CacheKind) -> "KindOutcome":
        return cls(kind=kind, succeeded=True)

    @classmethod
    def failed(cls, kind: CacheKind, reason: str) -> "KindOutcome":
        return cls(kind=kind, succeeded=False, reason=reason)

    def to_dict(self) -> Dict[str, Optional[str]]:
        result: Dict[str, Optional[str]] = {"status": "succeeded" if self.succeeded else "failed"}
        if self.reason:
            result["reason"] = self.reason
        return result


@runtime_checkable
class CacheInvalidator(Protocol):
    """Backend that physically clears caches. Expected never to raise."""

    def invalidate(self, kinds: Collection[CacheKind]) -> Mapping[CacheKind, KindOutcome]:
        ...


class NullCacheInvalidator:
    """Invalidator for hosts without physical caches; every kind succeeds."""

    def invalidate(self, kinds: Collection[CacheKind]) -> Mapping[CacheKind, KindOutcome]:
        logger.debug("No cache backend configured; treating %s as cleared", [k.value for k in kinds])
        return {kind: KindOutcome.ok(kind) for kind in kinds}


class CallbackCacheInvalidator:
    """Invalidator that runs one callable per cache kind.

    Kinds without a callback succeed as no-ops. An exception from one
    callback marks that kind failed and the remaining kinds still run.
    """

    def __init__(self, handlers: Mapping[CacheKind, Callable[[], None]]):
        self._handlers = dict(handlers)

    def invalidate(self, kinds: Collection[CacheKind]) -> Mapping[CacheKind, KindOutcome]:
        outcomes: Dict[CacheKind, KindOutcome] = {}
        for kind in kinds:
            handler = self._handlers.get(kind)
            if handler is None:
                outcomes[kind] = KindOutcome.ok(kind)
                continue
            try:
                handler()
            except Exception as exc:
                logger.warning("Failed to clear %s cache: %s", kind.value, exc)
                outcomes[kind] = KindOutcome.failed(kind, str(exc) or type(exc).__name__)
            else:
                outcomes[kind] = KindOutcome.ok(kind)
        return outcomes


@dataclass
class CacheInvalidationReport:
    """Aggregate result of one invalidation pass."""

    category: Optional[OperationCategory]
    requested: Tuple[CacheKind, ...]
    outcomes: Dict[CacheKind, KindOutcome] = field(default_factory=dict)

    @property
    def primary_kind(self) -> Optional[CacheKind]:
        return self.requested[0] if self.requested else None

    @property
    def cache_cleared(self) -> bool:
        primary = self.primary_kind
        if primary is None:
            return False
        outcome = self.outcomes.get(primary)
        return bool(outcome and outcome.succeeded)

    @property
    def cleared_types(self) -> List[str]:
        return [kind.value for kind in self.requested if self.outcomes[kind].succeeded]

    @property
    def failed_types(self) -> List[str]:
        return [kind.value for kind in self.requested if not self.outcomes[kind].succeeded]

    def details(self) -> Dict[str, Dict[str, Optional[str]]]:
        return {kind.value: self.outcomes[kind].to_dict() for kind in self.requested}

    def to_payload(self) -> Dict[str, object]:
        """Envelope fields describing this pass."""
        return {
            "cache_cleared": self.cache_cleared,
            "cleared_types": self.cleared_types,
            "cache_details": self.details(),
        }


class CacheInvalidationPolicy:
    """Resolves categories to cache kinds and drives the invalidator."""

    def __init__(self, invalidator: Optional[CacheInvalidator] = None):
        self.invalidator: CacheInvalidator = (
            invalidator if invalidator is not None else NullCacheInvalidator()
        )

    def apply(self, category: Union[OperationCategory, str, None]) -> CacheInvalidationReport:
        resolved = resolve_category(category)
        return self.invalidate_kinds(cache_kinds_for(resolved), category=resolved)

    def invalidate_kinds(
        self,
        kinds: Collection[CacheKind],
        *,
        category: Optional[OperationCategory] = None,
    ) -> CacheInvalidationReport:
        requested = tuple(dict.fromkeys(kinds))
        try:
            outcomes = dict(self.invalidator.invalidate(requested))
        except Exception as exc:
            logger.warning("Cache invalidator raised: %s", exc)
            outcomes = {kind: KindOutcome.failed(kind, str(exc) or type(exc).__name__) for kind in requested}

        for kind in requested:
            if kind not in outcomes:
                outcomes[kind] = KindOutcome.failed(kind, "no outcome reported")

        report = CacheInvalidationReport(category=category, requested=requested, outcomes=outcomes)
        if report.failed_types:
            logger.warning(
                "Partial cache invalidation: cleared=%s failed=%s",
                report.cleared_types,
                report.failed_types,
            )
        audit_log(
            "cache_invalidation",
            category=category.value if category else None,
            cleared_types=report.cleared_types,
            failed_types=report.failed_types,
        )
        return report
