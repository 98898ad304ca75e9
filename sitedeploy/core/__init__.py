"""Core functionality for sitedeploy."""

from sitedeploy.core.events import Event, EventBus, get_event_bus
from sitedeploy.core.exceptions import (
    ApprovalCancelledError,
    ApprovalRejectedError,
    BuildCommandError,
    CacheInvalidationError,
    CachePurgeWarning,
    ConfigurationError,
    DependencyInstallError,
    EmptyArtifactError,
    MergeConflictError,
    NotificationError,
    PublishError,
    RefResolutionError,
    SiteDeployError,
)

__all__ = [
    "SiteDeployError",
    "ConfigurationError",
    "RefResolutionError",
    "MergeConflictError",
    "ApprovalRejectedError",
    "ApprovalCancelledError",
    "DependencyInstallError",
    "BuildCommandError",
    "EmptyArtifactError",
    "PublishError",
    "CacheInvalidationError",
    "CachePurgeWarning",
    "NotificationError",
    "Event",
    "EventBus",
    "get_event_bus",
]
