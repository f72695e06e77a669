"""
Property-based tests for cache invalidation.

Every category resolves to a non-empty kind list, and a report accounts
for each requested kind exactly once whichever kinds fail.
"""

from hypothesis import given
from hypothesis import strategies as st

from cms_mcp.core.cache import (
    CacheInvalidationPolicy,
    CacheKind,
    CallbackCacheInvalidator,
    OperationCategory,
    cache_kinds_for,
)

categories = st.one_of(
    st.sampled_from(list(OperationCategory)),
    st.sampled_from([c.value for c in OperationCategory]),
    st.text(max_size=20),
    st.none(),
)


def failing(kind):
    def clear():
        raise RuntimeError(f"{kind.value} backend offline")

    return clear


class TestCategoryResolution:
    @given(category=categories)
    def test_kinds_are_never_empty(self, category):
        kinds = cache_kinds_for(category)
        assert kinds
        assert len(set(kinds)) == len(kinds)
        assert all(isinstance(kind, CacheKind) for kind in kinds)

    @given(category=st.text(max_size=20))
    def test_unknown_categories_use_default(self, category):
        if category in {c.value for c in OperationCategory}:
            return
        assert cache_kinds_for(category) == (CacheKind.PRIMARY_INDEX,)


class TestInvalidationReport:
    @given(
        category=st.sampled_from(list(OperationCategory)),
        broken=st.sets(st.sampled_from(list(CacheKind))),
    )
    def test_every_requested_kind_is_accounted_for(self, category, broken):
        invalidator = CallbackCacheInvalidator({kind: failing(kind) for kind in broken})
        report = CacheInvalidationPolicy(invalidator).apply(category)

        requested = [kind.value for kind in cache_kinds_for(category)]
        assert sorted(report.cleared_types + report.failed_types) == sorted(requested)
        assert set(report.failed_types) == {kind.value for kind in broken} & set(requested)
        assert list(report.details()) == requested

        payload = report.to_payload()
        assert payload["cache_cleared"] is (cache_kinds_for(category)[0] not in broken)
        for kind in report.failed_types:
            assert payload["cache_details"][kind]["status"] == "failed"
            assert payload["cache_details"][kind]["reason"].endswith("backend offline")
