"""Deployment tracker.

Owns the Deployment record for one run and mirrors it to the external
tracking service. The local record is authoritative: a failure to reach the
tracking service is logged and never changes the run's outcome.
"""

from sitedeploy.clients.protocols import DeploymentService
from sitedeploy.models.deployment import Deployment, DeploymentStatus, ResolvedRef
from sitedeploy.stages.base import BaseStage


class DeploymentTracker(BaseStage):
    """Brackets a run: ``pending`` at start, one terminal status at the end."""

    def __init__(
        self,
        environment: str,
        service: DeploymentService | None = None,
        environment_url: str | None = None,
    ):
        super().__init__()
        self.service = service
        self.environment_url = environment_url or None
        self.deployment = Deployment(environment=environment)

    @property
    def name(self) -> str:
        return "track"

    @property
    def description(self) -> str:
        return "Records deployment status locally and with the tracking service"

    @property
    def status(self) -> DeploymentStatus:
        return self.deployment.status

    @property
    def is_closed(self) -> bool:
        return self.deployment.status.is_terminal

    async def open(self, ref: ResolvedRef) -> Deployment:
        """Attach the resolved ref and create the external record as ``pending``."""
        if self.is_closed:
            return self.deployment
        self.deployment.ref = ref
        if self.service is not None and self.deployment.external_id is None:
            try:
                self.deployment.external_id = await self.service.create(
                    self.deployment.environment, ref.commit_sha
                )
            except Exception as e:
                self.logger.warning(
                    "tracker.remote_create_failed",
                    deployment_id=self.deployment.id,
                    error=str(e),
                )
        self.logger.info(
            "tracker.opened",
            deployment_id=self.deployment.id,
            external_id=self.deployment.external_id,
            environment=self.deployment.environment,
            commit_sha=ref.commit_sha,
        )
        return self.deployment

    async def update_status(self, status: DeploymentStatus) -> bool:
        """Apply a status change. No-op once a terminal status is recorded."""
        previous = self.deployment.status
        if not self.deployment.transition(status):
            self.logger.debug(
                "tracker.update_ignored",
                deployment_id=self.deployment.id,
                current=previous.value,
                requested=status.value,
            )
            return False

        self.logger.info(
            "tracker.status_changed",
            deployment_id=self.deployment.id,
            previous=previous.value,
            status=status.value,
        )
        await self._push(status)
        return True

    async def mark_in_progress(self) -> bool:
        return await self.update_status(DeploymentStatus.IN_PROGRESS)

    async def close(self, status: DeploymentStatus) -> bool:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        return await self.update_status(status)

    async def _push(self, status: DeploymentStatus) -> None:
        if self.service is None or self.deployment.external_id is None:
            return
        url = self.environment_url if status == DeploymentStatus.SUCCESS else None
        try:
            await self.service.update_status(self.deployment.external_id, status, url)
        except Exception as e:
            self.logger.warning(
                "tracker.remote_update_failed",
                deployment_id=self.deployment.id,
                external_id=self.deployment.external_id,
                status=status.value,
                error=str(e),
            )
