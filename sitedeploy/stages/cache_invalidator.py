"""Cache invalidator.

Primary CDN invalidation decides the run's outcome; the secondary edge-cache
purge never does.
"""

import asyncio

from sitedeploy.clients.protocols import CDN, EdgeCache
from sitedeploy.config import settings
from sitedeploy.core.exceptions import CacheInvalidationError, CachePurgeWarning
from sitedeploy.stages.base import BaseStage


class InvalidationOutcome:
    """What the invalidator did."""

    def __init__(self):
        self.distribution_id: str | None = None
        self.invalidation_id: str | None = None
        self.purge_attempted = False
        self.purge_warning: CachePurgeWarning | None = None

    @property
    def primary_skipped(self) -> bool:
        return self.distribution_id is None


class CacheInvalidator(BaseStage):
    """Invalidates the CDN distribution bound to a bucket and purges edge caches."""

    def __init__(
        self,
        cdn: CDN,
        edge_cache: EdgeCache | None = None,
        lookup_attempts: int | None = None,
        lookup_backoff: float = 1.0,
    ):
        super().__init__()
        self.cdn = cdn
        self.edge_cache = edge_cache
        self.lookup_attempts = lookup_attempts or settings.cdn_lookup_max_attempts
        self.lookup_backoff = lookup_backoff

    @property
    def name(self) -> str:
        return "invalidate"

    @property
    def description(self) -> str:
        return "Invalidates the bucket's CDN distribution and purges the edge cache"

    async def invalidate(
        self,
        bucket: str,
        zone_id: str = "",
        token: str = "",
    ) -> InvalidationOutcome:
        outcome = InvalidationOutcome()

        secondary = None
        if zone_id and token and self.edge_cache is not None:
            outcome.purge_attempted = True
            secondary = asyncio.create_task(self._purge(zone_id, token))

        try:
            await self._invalidate_primary(bucket, outcome)
        finally:
            if secondary is not None:
                outcome.purge_warning = await secondary

        return outcome

    async def _invalidate_primary(self, bucket: str, outcome: InvalidationOutcome) -> None:
        distribution_id = await self._find_distribution(bucket)
        if distribution_id is None:
            self.logger.info("cache_invalidator.no_distribution", bucket=bucket)
            return

        outcome.distribution_id = distribution_id
        try:
            outcome.invalidation_id = await self.cdn.invalidate(distribution_id, "/*")
        except Exception as e:
            raise CacheInvalidationError(
                f"Invalidation of distribution {distribution_id} failed: {e}",
                {"distribution_id": distribution_id},
            ) from e

        self.logger.info(
            "cache_invalidator.invalidated",
            distribution_id=distribution_id,
            invalidation_id=outcome.invalidation_id,
        )

    async def _find_distribution(self, bucket: str) -> str | None:
        """Look up the distribution; lookup errors are retried, absence is not."""
        for attempt in range(1, self.lookup_attempts + 1):
            try:
                return await self.cdn.find_distribution(bucket)
            except Exception as e:
                self.logger.warning(
                    "cache_invalidator.lookup_failed",
                    bucket=bucket,
                    attempt=attempt,
                    max_attempts=self.lookup_attempts,
                    error=str(e),
                )
                if attempt == self.lookup_attempts:
                    raise CacheInvalidationError(
                        f"Distribution lookup for {bucket} failed: {e}",
                        {"bucket": bucket},
                    ) from e
                await asyncio.sleep(self.lookup_backoff * 2 ** (attempt - 1))
        return None

    async def _purge(self, zone_id: str, token: str) -> CachePurgeWarning | None:
        try:
            await self.edge_cache.purge(zone_id, token)
        except Exception as e:
            warning = CachePurgeWarning(
                f"Edge cache purge failed for zone {zone_id}: {e}",
                {"zone_id": zone_id},
            )
            self.logger.warning(
                "cache_invalidator.purge_failed", zone_id=zone_id, error=str(e)
            )
            return warning

        self.logger.info("cache_invalidator.purged", zone_id=zone_id)
        return None
