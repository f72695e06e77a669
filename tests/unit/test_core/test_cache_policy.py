"""
Tests for cache invalidation: category mapping, invalidators and reports.
"""

import logging

import pytest

from cms_mcp.core.cache import (
    CacheInvalidationPolicy,
    CacheKind,
    CallbackCacheInvalidator,
    KindOutcome,
    NullCacheInvalidator,
    OperationCategory,
    cache_kinds_for,
)


class ExplodingInvalidator:
    def invalidate(self, kinds):
        raise RuntimeError("backend offline")


class PartialInvalidator:
    """Reports an outcome for the first kind only."""

    def invalidate(self, kinds):
        first = list(kinds)[0]
        return {first: KindOutcome.ok(first)}


class TestCategoryMapping:
    @pytest.mark.parametrize(
        "category,kinds",
        [
            (
                OperationCategory.STRUCTURAL_CHANGE,
                (CacheKind.PRIMARY_INDEX, CacheKind.RENDERED_STATIC, CacheKind.COMPILED_VIEW),
            ),
            (OperationCategory.CONTENT_CHANGE, (CacheKind.PRIMARY_INDEX, CacheKind.RENDERED_STATIC)),
            (OperationCategory.TEMPLATE_CHANGE, (CacheKind.RENDERED_STATIC, CacheKind.COMPILED_VIEW)),
            (OperationCategory.ASSET_CHANGE, (CacheKind.DERIVED_IMAGE, CacheKind.RENDERED_STATIC)),
            (OperationCategory.DEFAULT, (CacheKind.PRIMARY_INDEX,)),
        ],
    )
    def test_fixed_table(self, category, kinds):
        assert cache_kinds_for(category) == kinds

    def test_string_category(self):
        assert cache_kinds_for("content-change") == cache_kinds_for(OperationCategory.CONTENT_CHANGE)

    @pytest.mark.parametrize("category", ["nonsense", None])
    def test_unknown_category_uses_default(self, category):
        assert cache_kinds_for(category) == (CacheKind.PRIMARY_INDEX,)


class TestInvalidators:
    def test_null_invalidator_succeeds(self):
        outcomes = NullCacheInvalidator().invalidate([CacheKind.PRIMARY_INDEX])
        assert outcomes[CacheKind.PRIMARY_INDEX].succeeded

    def test_callback_failure_does_not_stop_others(self):
        calls = []

        def fail():
            raise OSError("disk full")

        invalidator = CallbackCacheInvalidator(
            {
                CacheKind.PRIMARY_INDEX: fail,
                CacheKind.RENDERED_STATIC: lambda: calls.append("static"),
            }
        )
        outcomes = invalidator.invalidate([CacheKind.PRIMARY_INDEX, CacheKind.RENDERED_STATIC])
        assert outcomes[CacheKind.PRIMARY_INDEX] == KindOutcome.failed(CacheKind.PRIMARY_INDEX, "disk full")
        assert outcomes[CacheKind.RENDERED_STATIC].succeeded
        assert calls == ["static"]

    def test_callback_missing_handler_is_noop_success(self):
        outcomes = CallbackCacheInvalidator({}).invalidate([CacheKind.DERIVED_IMAGE])
        assert outcomes[CacheKind.DERIVED_IMAGE].succeeded


class TestInvalidationPolicy:
    """Tests for CacheInvalidationPolicy and its reports."""

    def test_all_kinds_cleared(self):
        report = CacheInvalidationPolicy().apply(OperationCategory.STRUCTURAL_CHANGE)
        assert report.cache_cleared is True
        assert report.cleared_types == ["primary-index", "rendered-static", "compiled-view"]
        assert report.failed_types == []

    def test_payload_shape(self):
        payload = CacheInvalidationPolicy().apply(OperationCategory.DEFAULT).to_payload()
        assert payload == {
            "cache_cleared": True,
            "cleared_types": ["primary-index"],
            "cache_details": {"primary-index": {"status": "succeeded"}},
        }

    def test_primary_failure_means_not_cleared(self):
        def fail():
            raise RuntimeError("locked")

        invalidator = CallbackCacheInvalidator({CacheKind.PRIMARY_INDEX: fail})
        report = CacheInvalidationPolicy(invalidator).apply(OperationCategory.CONTENT_CHANGE)
        assert report.cache_cleared is False
        assert report.cleared_types == ["rendered-static"]
        assert report.failed_types == ["primary-index"]
        assert report.details()["primary-index"] == {"status": "failed", "reason": "locked"}

    def test_secondary_failure_keeps_cache_cleared(self):
        def fail():
            raise RuntimeError("static offline")

        invalidator = CallbackCacheInvalidator({CacheKind.RENDERED_STATIC: fail})
        report = CacheInvalidationPolicy(invalidator).apply(OperationCategory.CONTENT_CHANGE)
        assert report.cache_cleared is True
        assert report.failed_types == ["rendered-static"]

    def test_raising_invalidator_fails_every_kind(self):
        report = CacheInvalidationPolicy(ExplodingInvalidator()).apply(OperationCategory.CONTENT_CHANGE)
        assert report.cleared_types == []
        assert report.failed_types == ["primary-index", "rendered-static"]

    def test_missing_outcome_is_failure(self):
        report = CacheInvalidationPolicy(PartialInvalidator()).apply(OperationCategory.CONTENT_CHANGE)
        assert report.details()["rendered-static"] == {
            "status": "failed",
            "reason": "no outcome reported",
        }

    def test_explicit_kinds_are_deduplicated(self):
        report = CacheInvalidationPolicy().invalidate_kinds(
            [CacheKind.COMPILED_VIEW, CacheKind.PRIMARY_INDEX, CacheKind.COMPILED_VIEW]
        )
        assert report.requested == (CacheKind.COMPILED_VIEW, CacheKind.PRIMARY_INDEX)
        assert report.category is None
        assert report.primary_kind is CacheKind.COMPILED_VIEW

    def test_empty_request_is_not_cleared(self):
        report = CacheInvalidationPolicy().invalidate_kinds([])
        assert report.cache_cleared is False
        assert report.cleared_types == []

    def test_each_pass_is_audited(self, caplog):
        caplog.set_level(logging.INFO, logger="cms_mcp")
        CacheInvalidationPolicy().apply(OperationCategory.TEMPLATE_CHANGE)
        records = [r for r in caplog.records if r.getMessage() == "AUDIT: cache_invalidation"]
        assert len(records) == 1
        details = records[0].audit["details"]
        assert details["category"] == "template-change"
        assert details["cleared_types"] == ["rendered-static", "compiled-view"]
