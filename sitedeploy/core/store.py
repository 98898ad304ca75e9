"""In-memory registry of deployment runs."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sitedeploy.core.pipeline import DeploymentPipeline
from sitedeploy.models.deployment import DeploymentStatus
from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DeploymentRun:
    """A pipeline and the task driving it."""

    pipeline: DeploymentPipeline
    task: asyncio.Task | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def id(self) -> str:
        return self.pipeline.deployment_id

    @property
    def status(self) -> DeploymentStatus:
        return self.pipeline.deployment.status

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class DeploymentStore:
    """Keeps runs in memory so the API can query, approve and cancel them.

    Note: runs do not survive a restart. Two runs against the same bucket
    prefix are not serialized here; callers must avoid that themselves.
    """

    def __init__(self, ttl_hours: int = 24):
        self._runs: dict[str, DeploymentRun] = {}
        self._ttl = timedelta(hours=ttl_hours)

    def start(self, pipeline: DeploymentPipeline) -> DeploymentRun:
        """Register a pipeline and start it as a background task."""
        self.cleanup_expired()
        run = DeploymentRun(pipeline=pipeline)
        self._runs[run.id] = run
        run.task = asyncio.create_task(self._drive(pipeline), name=f"deploy-{run.id}")
        logger.info(
            "store.run_started",
            deployment_id=run.id,
            environment=pipeline.request.environment,
        )
        return run

    async def _drive(self, pipeline: DeploymentPipeline) -> None:
        try:
            await pipeline.run()
        except asyncio.CancelledError:
            logger.info("store.run_cancelled", deployment_id=pipeline.deployment_id)

    def get(self, deployment_id: str) -> DeploymentRun | None:
        run = self._runs.get(deployment_id)
        if run and not run.running and datetime.utcnow() - run.created_at > self._ttl:
            del self._runs[deployment_id]
            return None
        return run

    def list_runs(
        self,
        status: DeploymentStatus | None = None,
        environment: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[DeploymentRun], int]:
        runs = list(self._runs.values())

        if status:
            runs = [r for r in runs if r.status == status]
        if environment:
            runs = [r for r in runs if r.pipeline.request.environment == environment]

        runs.sort(key=lambda r: r.created_at, reverse=True)

        total = len(runs)
        return runs[offset : offset + limit], total

    def running_count(self) -> int:
        return sum(1 for r in self._runs.values() if r.running)

    def awaiting_approval_count(self) -> int:
        return sum(
            1 for r in self._runs.values() if r.running and r.pipeline.gate.is_pending
        )

    def cancel(self, deployment_id: str) -> bool:
        """Cancel a run. Returns False if it is unknown or already finished."""
        run = self._runs.get(deployment_id)
        if run is None or not run.running:
            return False
        if run.pipeline.cancel():
            return True
        run.task.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancel every running task and wait for them to unwind."""
        tasks = [r.task for r in self._runs.values() if r.running]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def cleanup_expired(self) -> int:
        """Remove finished runs older than the TTL. Returns the count removed."""
        now = datetime.utcnow()
        expired = [
            rid
            for rid, run in self._runs.items()
            if not run.running and now - run.created_at > self._ttl
        ]
        for rid in expired:
            del self._runs[rid]
        return len(expired)

    def clear(self) -> None:
        self._runs.clear()


# Singleton instance
_store: DeploymentStore | None = None


def get_deployment_store() -> DeploymentStore:
    """Get the deployment store singleton."""
    global _store
    if _store is None:
        _store = DeploymentStore()
    return _store
