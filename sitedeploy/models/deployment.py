"""Deployment data models."""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ResolvedRef(BaseModel):
    """A concrete, immutable source reference."""

    model_config = ConfigDict(frozen=True)

    commit_sha: str
    ref_label: str
    merged: bool = False

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:7]


class BuildArtifact(BaseModel):
    """A verified build output directory."""

    root_path: str
    file_count: int


class PublishResult(BaseModel):
    """Counts from one sync of an artifact to a bucket prefix."""

    uploaded: int = 0
    deleted: int = 0
    unchanged: int = 0

    uploaded_paths: list[str] = Field(default_factory=list)
    deleted_paths: list[str] = Field(default_factory=list)


class DeploymentStatus(str, Enum):
    """Tracked deployment status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {DeploymentStatus.SUCCESS, DeploymentStatus.FAILURE, DeploymentStatus.ERROR}
)

_STATUS_ORDER = {
    DeploymentStatus.PENDING: 0,
    DeploymentStatus.IN_PROGRESS: 1,
    DeploymentStatus.SUCCESS: 2,
    DeploymentStatus.FAILURE: 2,
    DeploymentStatus.ERROR: 2,
}


class Deployment(BaseModel):
    """The tracked record for one pipeline run."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    environment: str
    ref: ResolvedRef | None = None
    status: DeploymentStatus = DeploymentStatus.PENDING

    # Id assigned by the external tracking service, once created there
    external_id: str | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    history: list[DeploymentStatus] = Field(
        default_factory=lambda: [DeploymentStatus.PENDING]
    )

    def transition(self, status: DeploymentStatus) -> bool:
        """Move to ``status`` if allowed. Returns False when ignored.

        Terminal states are final and status never moves backwards.
        """
        if self.status.is_terminal:
            return False
        if _STATUS_ORDER[status] < _STATUS_ORDER[self.status]:
            return False
        if status == self.status:
            return False
        self.status = status
        self.history.append(status)
        self.updated_at = datetime.utcnow()
        return True


class NotificationChannel(str, Enum):
    """Post-success notification channels."""

    ERROR_TRACKING = "error_tracking_release"
    SOURCE_RELEASE = "source_release"
    CHAT = "chat"


class NotificationOutcome(BaseModel):
    """Result of one notification sub-action."""

    channel: NotificationChannel
    success: bool = False
    skipped: bool = False
    error: str | None = None


class ExitCode(IntEnum):
    """Process exit status for a pipeline run."""

    SUCCESS = 0
    FAILURE = 1
    ERROR = 2
    CANCELLED = 130


class PipelineResult(BaseModel):
    """Everything a finished run reports."""

    deployment: Deployment
    exit_code: ExitCode
    failed_stage: str | None = None
    error: str | None = None
    error_details: dict[str, Any] | None = None

    publish: PublishResult | None = None
    notifications: list[NotificationOutcome] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS
