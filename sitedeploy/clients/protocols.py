"""Narrow interfaces for the external collaborators the pipeline drives.

Every concrete client in this package satisfies one of these protocols, and
the tests supply in-memory fakes for each.
"""

from pathlib import Path
from typing import Protocol

from sitedeploy.models.approval import ApprovalAction
from sitedeploy.models.deployment import DeploymentStatus
from sitedeploy.models.source import PullRequestInfo, RemoteObject


class SourceHost(Protocol):
    """Repository hosting: refs, merges and releases."""

    async def get_branch_sha(self, branch: str) -> str | None: ...

    async def get_pull_request(self, number: int) -> PullRequestInfo | None: ...

    async def merge_pull_request(self, number: int, expected_head_sha: str) -> str:
        """Merge into the base branch and return the merge commit sha."""
        ...

    async def get_tag_sha(self, tag: str) -> str | None: ...

    async def create_release(self, tag: str, generate_notes: bool = True) -> str: ...


class BuildTool(Protocol):
    """Runs shell commands in the working tree.

    Each call returns ``(success, output)`` rather than raising.
    """

    async def install(self, workdir: Path, clean: bool) -> tuple[bool, str | None]: ...

    async def run_ci(self, workdir: Path) -> tuple[bool, str | None]: ...

    async def build(self, workdir: Path, environment: str) -> tuple[bool, str | None]: ...


class ObjectStorage(Protocol):
    async def list_objects(self, bucket: str, prefix: str) -> list[RemoteObject]: ...

    async def put(
        self, bucket: str, path: str, body: bytes, content_type: str | None = None
    ) -> None: ...

    async def delete(self, bucket: str, path: str) -> None: ...


class CDN(Protocol):
    async def find_distribution(self, bucket: str) -> str | None: ...

    async def invalidate(self, distribution_id: str, paths: str = "/*") -> str: ...


class EdgeCache(Protocol):
    async def purge(self, zone_id: str, token: str) -> None: ...


class DeploymentService(Protocol):
    """External deployment tracking service."""

    async def create(self, environment: str, ref: str) -> str: ...

    async def update_status(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        environment_url: str | None = None,
    ) -> None: ...


class ErrorTracker(Protocol):
    async def create_release(
        self, project: str, org: str, version: str, token: str
    ) -> None: ...


class ChatWebhook(Protocol):
    async def post(self, webhook_url: str, message: str) -> None: ...


class ApprovalChannel(Protocol):
    """Where approvers are asked, and where their answers are read from."""

    async def request(self, approvers: frozenset[str], summary: str) -> str: ...

    async def poll(self, handle: str) -> list[ApprovalAction]: ...

    async def close(self, handle: str, outcome: str) -> None: ...
