"""Data models for sitedeploy."""

from sitedeploy.models.approval import ApprovalAction, ApprovalDecision, ApprovalState
from sitedeploy.models.deployment import (
    BuildArtifact,
    Deployment,
    DeploymentStatus,
    ExitCode,
    NotificationChannel,
    NotificationOutcome,
    PipelineResult,
    PublishResult,
    ResolvedRef,
)
from sitedeploy.models.request import (
    DeploymentCreate,
    DeploymentRequest,
    DeployType,
    PipelineOptions,
)
from sitedeploy.models.source import PullRequestInfo, RemoteObject

__all__ = [
    # Request models
    "DeployType",
    "DeploymentRequest",
    "DeploymentCreate",
    "PipelineOptions",
    # Deployment models
    "ResolvedRef",
    "BuildArtifact",
    "PublishResult",
    "Deployment",
    "DeploymentStatus",
    "NotificationChannel",
    "NotificationOutcome",
    "ExitCode",
    "PipelineResult",
    # Approval models
    "ApprovalState",
    "ApprovalDecision",
    "ApprovalAction",
    # Source models
    "PullRequestInfo",
    "RemoteObject",
]
