"""Unit tests for CacheInvalidator."""

import pytest

from sitedeploy.core.exceptions import CacheInvalidationError
from sitedeploy.stages.cache_invalidator import CacheInvalidator


class TestCacheInvalidator:
    """Tests for primary invalidation and secondary purge."""

    @pytest.fixture
    def invalidator(self, cdn, edge_cache) -> CacheInvalidator:
        return CacheInvalidator(cdn, edge_cache, lookup_attempts=3, lookup_backoff=0)

    async def test_invalidates_whole_distribution(self, invalidator: CacheInvalidator, cdn):
        outcome = await invalidator.invalidate("site-bucket")

        assert cdn.invalidations == [("E123", "/*")]
        assert outcome.distribution_id == "E123"
        assert outcome.invalidation_id == "I1"
        assert outcome.purge_attempted is False

    async def test_no_distribution_is_noop(self, invalidator: CacheInvalidator, cdn):
        outcome = await invalidator.invalidate("unfronted-bucket")

        assert outcome.primary_skipped
        assert cdn.invalidations == []

    async def test_lookup_retried(self, invalidator: CacheInvalidator, cdn):
        cdn.lookup_failures = 2

        outcome = await invalidator.invalidate("site-bucket")

        assert outcome.distribution_id == "E123"

    async def test_lookup_gives_up(self, invalidator: CacheInvalidator, cdn):
        cdn.lookup_failures = 3

        with pytest.raises(CacheInvalidationError):
            await invalidator.invalidate("site-bucket")

    async def test_invalidation_failure_is_fatal(self, invalidator: CacheInvalidator, cdn):
        cdn.fail_invalidate = True

        with pytest.raises(CacheInvalidationError) as exc_info:
            await invalidator.invalidate("site-bucket")

        assert exc_info.value.details["distribution_id"] == "E123"

    async def test_purge_with_credentials(self, invalidator: CacheInvalidator, edge_cache):
        outcome = await invalidator.invalidate("site-bucket", "zone-1", "token")

        assert edge_cache.purges == ["zone-1"]
        assert outcome.purge_attempted
        assert outcome.purge_warning is None

    async def test_purge_skipped_without_token(self, invalidator: CacheInvalidator, edge_cache):
        await invalidator.invalidate("site-bucket", "zone-1", "")

        assert edge_cache.purges == []

    async def test_purge_failure_is_warning(self, invalidator: CacheInvalidator, cdn, edge_cache):
        edge_cache.fail = True

        outcome = await invalidator.invalidate("site-bucket", "zone-1", "token")

        assert outcome.purge_warning is not None
        assert outcome.purge_warning.fatal is False
        assert cdn.invalidations == [("E123", "/*")]
