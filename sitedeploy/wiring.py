"""Builds the concrete collaborators from settings."""

from functools import lru_cache

from sitedeploy.clients.aws import CloudFrontCDN, S3ObjectStorage
from sitedeploy.clients.github import (
    GitHubClient,
    GitHubDeploymentService,
    GitHubIssueApprovalChannel,
)
from sitedeploy.clients.npm import ShellBuildTool
from sitedeploy.clients.webhooks import CloudflareEdgeCache, SentryReleases, SlackWebhook
from sitedeploy.config import Settings, get_settings
from sitedeploy.core.pipeline import Collaborators
from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)


class ServiceClients:
    """Long-lived clients shared by every run in the process."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.github = GitHubClient(
            repository=settings.github_repository,
            token=settings.github_token,
            base_url=settings.github_api_url,
        )
        self._storage: S3ObjectStorage | None = None
        self._cdn: CloudFrontCDN | None = None

    def collaborators(self) -> Collaborators:
        if self._storage is None:
            self._storage = S3ObjectStorage(region=self.settings.aws_region)
        if self._cdn is None:
            self._cdn = CloudFrontCDN()

        approval_channel = None
        if self.settings.approval_channel == "github":
            approval_channel = GitHubIssueApprovalChannel(self.github)

        return Collaborators(
            source=self.github,
            build_tool=ShellBuildTool(),
            storage=self._storage,
            cdn=self._cdn,
            edge_cache=CloudflareEdgeCache(),
            deployments=GitHubDeploymentService(self.github),
            error_tracker=SentryReleases(),
            chat=SlackWebhook(),
            approval_channel=approval_channel,
        )

    async def aclose(self) -> None:
        await self.github.aclose()


@lru_cache
def get_service_clients() -> ServiceClients:
    """Get the shared service clients."""
    settings = get_settings()
    if not settings.github_repository:
        logger.warning("wiring.github_repository_missing")
    return ServiceClients(settings)
