"""Clients for the external services the pipeline drives."""

from sitedeploy.clients.aws import CloudFrontCDN, S3ObjectStorage
from sitedeploy.clients.github import (
    GitHubClient,
    GitHubDeploymentService,
    GitHubIssueApprovalChannel,
)
from sitedeploy.clients.npm import ShellBuildTool
from sitedeploy.clients.webhooks import CloudflareEdgeCache, SentryReleases, SlackWebhook

__all__ = [
    "S3ObjectStorage",
    "CloudFrontCDN",
    "GitHubClient",
    "GitHubDeploymentService",
    "GitHubIssueApprovalChannel",
    "ShellBuildTool",
    "CloudflareEdgeCache",
    "SentryReleases",
    "SlackWebhook",
]
