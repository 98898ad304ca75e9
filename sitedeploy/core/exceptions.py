"""Error taxonomy for the deployment pipeline."""

from typing import Any


class SiteDeployError(Exception):
    """Base exception for sitedeploy.

    Subclasses set ``stage`` so a failed run can report which step stopped it;
    errors without one are attributed to the step that was running.
    """

    stage: str | None = None
    fatal: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(SiteDeployError):
    """Invalid or missing required input, detected before anything runs."""

    stage = "preflight"


class RefResolutionError(SiteDeployError):
    """Branch, pull request or tag could not be resolved to a commit."""

    stage = "resolve_ref"

    def __init__(self, kind: str, selector: str, reason: str):
        super().__init__(
            f"Cannot resolve {kind} '{selector}': {reason}",
            {"kind": kind, "selector": selector},
        )


class MergeConflictError(SiteDeployError):
    """Pull request could not be merged into its base."""

    stage = "resolve_ref"

    def __init__(self, pr_number: int, reason: str = "merge conflict"):
        super().__init__(
            f"Pull request #{pr_number} cannot be merged: {reason}",
            {"pull_request": pr_number},
        )


class ApprovalRejectedError(SiteDeployError):
    """An approver rejected the deployment."""

    stage = "approval"

    def __init__(self, actor: str):
        super().__init__(f"Deployment rejected by {actor}", {"actor": actor})
        self.actor = actor


class ApprovalCancelledError(SiteDeployError):
    """The approval wait was cancelled or timed out."""

    stage = "approval"


class DependencyInstallError(SiteDeployError):
    """Dependency installation failed after all attempts."""

    stage = "build"

    def __init__(self, attempts: int, output: str | None = None):
        details: dict[str, Any] = {"attempts": attempts}
        if output:
            details["output"] = output[-2000:]
        super().__init__(
            f"Dependency install failed after {attempts} attempt(s)", details
        )


class BuildCommandError(SiteDeployError):
    """The CI check or the build command exited non-zero."""

    stage = "build"

    def __init__(self, command: str, output: str | None = None):
        details: dict[str, Any] = {"command": command}
        if output:
            details["output"] = output[-2000:]
        super().__init__(f"Command failed: {command}", details)
        self.command = command


class EmptyArtifactError(SiteDeployError):
    """The declared build folder is missing or contains no files."""

    stage = "build"

    def __init__(self, path: str):
        super().__init__(f"Build folder is missing or empty: {path}", {"path": path})


class PublishError(SiteDeployError):
    """Sync to object storage failed; ``succeeded`` lists what did land."""

    stage = "publish"

    def __init__(
        self,
        message: str,
        succeeded: list[str] | None = None,
        failed: list[str] | None = None,
    ):
        self.succeeded = sorted(succeeded or [])
        self.failed = sorted(failed or [])
        super().__init__(
            f"Publish failed: {message}",
            {"succeeded": self.succeeded, "failed": self.failed},
        )


class CacheInvalidationError(SiteDeployError):
    """Primary CDN invalidation could not be submitted."""

    stage = "invalidate"


class CachePurgeWarning(SiteDeployError):
    """Secondary edge-cache purge failed. Logged, never fatal."""

    stage = "invalidate"
    fatal = False


class NotificationError(SiteDeployError):
    """A post-success notification failed. Logged, never fatal."""

    stage = "notify"
    fatal = False

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}", {"channel": channel})
        self.channel = channel
