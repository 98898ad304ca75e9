"""Pipeline stages for sitedeploy."""

from sitedeploy.stages.approval_gate import ApprovalGate
from sitedeploy.stages.base import BaseStage
from sitedeploy.stages.build_runner import BuildRunner
from sitedeploy.stages.cache_invalidator import CacheInvalidator, InvalidationOutcome
from sitedeploy.stages.notifier import ReleaseNotifier
from sitedeploy.stages.publisher import ArtifactPublisher, SyncPlan
from sitedeploy.stages.ref_resolver import RefResolver
from sitedeploy.stages.tracker import DeploymentTracker

__all__ = [
    "BaseStage",
    "RefResolver",
    "ApprovalGate",
    "BuildRunner",
    "ArtifactPublisher",
    "SyncPlan",
    "CacheInvalidator",
    "InvalidationOutcome",
    "DeploymentTracker",
    "ReleaseNotifier",
]
