"""Pytest configuration and fixtures.

In-memory stand-ins for every external service the pipeline talks to.
"""

import hashlib
from itertools import count
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from sitedeploy.api.deps import get_app_settings, get_collaborators
from sitedeploy.config import Settings
from sitedeploy.core.events import EventBus
from sitedeploy.core.exceptions import MergeConflictError
from sitedeploy.core.pipeline import Collaborators
from sitedeploy.core.store import get_deployment_store
from sitedeploy.main import app
from sitedeploy.models.approval import ApprovalAction
from sitedeploy.models.deployment import DeploymentStatus
from sitedeploy.models.source import PullRequestInfo, RemoteObject


class FakeSourceHost:
    def __init__(self):
        self.branches: dict[str, str] = {"main": "a" * 40}
        self.pull_requests: dict[int, PullRequestInfo] = {}
        self.tags: dict[str, str] = {}
        self.conflicting: set[int] = set()
        self.merged: list[int] = []
        self.releases: list[str] = []
        self.fail_release = False

    async def get_branch_sha(self, branch: str) -> str | None:
        return self.branches.get(branch)

    async def get_pull_request(self, number: int) -> PullRequestInfo | None:
        return self.pull_requests.get(number)

    async def merge_pull_request(self, number: int, expected_head_sha: str) -> str:
        if number in self.conflicting:
            raise MergeConflictError(number)
        self.merged.append(number)
        return f"merge{number:036d}"

    async def get_tag_sha(self, tag: str) -> str | None:
        return self.tags.get(tag)

    async def create_release(self, tag: str, generate_notes: bool = True) -> str:
        if self.fail_release:
            raise RuntimeError("release API unavailable")
        self.releases.append(tag)
        return f"https://github.example/releases/{tag}"


class FakeBuildTool:
    """Writes ``files`` into ``output_folder`` when the build succeeds."""

    def __init__(self, files: dict[str, bytes] | None = None, output_folder: str = "out"):
        self.files = files if files is not None else {
            "index.html": b"<html>home</html>",
            "assets/app.js": b"console.log('hi')",
        }
        self.output_folder = output_folder
        self.install_failures = 0
        self.ci_ok = True
        self.build_ok = True
        self.calls: list[str] = []

    async def install(self, workdir: Path, clean: bool) -> tuple[bool, str | None]:
        self.calls.append("clean_install" if clean else "install")
        if self.install_failures > 0:
            self.install_failures -= 1
            return False, "ECONNRESET"
        return True, None

    async def run_ci(self, workdir: Path) -> tuple[bool, str | None]:
        self.calls.append("ci")
        return (True, None) if self.ci_ok else (False, "lint failed")

    async def build(self, workdir: Path, environment: str) -> tuple[bool, str | None]:
        self.calls.append(f"build:{environment}")
        if not self.build_ok:
            return False, "Exit code: 1\nSTDERR:\nsyntax error"
        out = Path(workdir) / self.output_folder
        for rel, body in self.files.items():
            target = out / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
        return True, None


class FakeObjectStorage:
    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[str, str | None] = {}
        self.put_failures: dict[str, int] = {}
        self.operations: list[tuple[str, str]] = []

    def seed(self, bucket: str, key: str, body: bytes) -> None:
        self.objects[(bucket, key)] = body

    def keys(self, bucket: str) -> set[str]:
        return {k for b, k in self.objects if b == bucket}

    async def list_objects(self, bucket: str, prefix: str) -> list[RemoteObject]:
        key_prefix = f"{prefix}/" if prefix else ""
        return [
            RemoteObject(path=k, content_hash=hashlib.md5(body).hexdigest())
            for (b, k), body in sorted(self.objects.items())
            if b == bucket and k.startswith(key_prefix)
        ]

    async def put(
        self, bucket: str, path: str, body: bytes, content_type: str | None = None
    ) -> None:
        remaining = self.put_failures.get(path, 0)
        if remaining > 0:
            self.put_failures[path] = remaining - 1
            raise ConnectionError(f"connection reset uploading {path}")
        self.operations.append(("put", path))
        self.objects[(bucket, path)] = body
        self.content_types[path] = content_type

    async def delete(self, bucket: str, path: str) -> None:
        self.operations.append(("delete", path))
        self.objects.pop((bucket, path), None)


class FakeCDN:
    def __init__(self):
        self.distributions: dict[str, str] = {}
        self.invalidations: list[tuple[str, str]] = []
        self.lookup_failures = 0
        self.fail_invalidate = False

    async def find_distribution(self, bucket: str) -> str | None:
        if self.lookup_failures > 0:
            self.lookup_failures -= 1
            raise ConnectionError("cloudfront unreachable")
        return self.distributions.get(bucket)

    async def invalidate(self, distribution_id: str, paths: str = "/*") -> str:
        if self.fail_invalidate:
            raise RuntimeError("TooManyInvalidationsInProgress")
        self.invalidations.append((distribution_id, paths))
        return f"I{len(self.invalidations)}"


class FakeEdgeCache:
    def __init__(self):
        self.purges: list[str] = []
        self.fail = False

    async def purge(self, zone_id: str, token: str) -> None:
        if self.fail:
            raise RuntimeError("403 Forbidden")
        self.purges.append(zone_id)


class FakeDeploymentService:
    def __init__(self):
        self.statuses: dict[str, list[DeploymentStatus]] = {}
        self.fail_updates = False

    async def create(self, environment: str, ref: str) -> str:
        deployment_id = str(len(self.statuses) + 1)
        self.statuses[deployment_id] = []
        return deployment_id

    async def update_status(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        environment_url: str | None = None,
    ) -> None:
        if self.fail_updates:
            raise RuntimeError("tracking service down")
        self.statuses[deployment_id].append(status)


class FakeErrorTracker:
    def __init__(self):
        self.releases: list[tuple[str, str, str]] = []
        self.fail = False

    async def create_release(self, project: str, org: str, version: str, token: str) -> None:
        if self.fail:
            raise RuntimeError("sentry 500")
        self.releases.append((project, org, version))


class FakeChat:
    def __init__(self):
        self.messages: list[str] = []
        self.fail = False

    async def post(self, webhook_url: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("webhook 404")
        self.messages.append(message)


class FakeApprovalChannel:
    """Decisions are queued with ``submit`` and handed out on the next poll."""

    def __init__(self):
        self._ids = count(1)
        self.pending: dict[str, list[ApprovalAction]] = {}
        self.closed: dict[str, str] = {}
        self.poll_failures = 0

    async def request(self, approvers: frozenset[str], summary: str) -> str:
        handle = str(next(self._ids))
        self.pending[handle] = []
        return handle

    def submit(self, handle: str, action: ApprovalAction) -> None:
        self.pending[handle].append(action)

    async def poll(self, handle: str) -> list[ApprovalAction]:
        if self.poll_failures > 0:
            self.poll_failures -= 1
            raise ConnectionError("issue tracker unreachable")
        actions, self.pending[handle] = self.pending.get(handle, []), []
        return actions

    async def close(self, handle: str, outcome: str) -> None:
        self.pending.pop(handle, None)
        self.closed[handle] = outcome


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with no waiting and a temporary working tree."""
    return Settings(
        workspace_dir=str(tmp_path),
        install_backoff_seconds=0,
        publish_backoff_seconds=0,
        cdn_lookup_backoff_seconds=0,
        approval_poll_interval_seconds=0.01,
        approval_environments=["production"],
    )


@pytest.fixture
def source() -> FakeSourceHost:
    return FakeSourceHost()


@pytest.fixture
def build_tool() -> FakeBuildTool:
    return FakeBuildTool()


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def cdn() -> FakeCDN:
    fake = FakeCDN()
    fake.distributions["site-bucket"] = "E123"
    return fake


@pytest.fixture
def edge_cache() -> FakeEdgeCache:
    return FakeEdgeCache()


@pytest.fixture
def deployment_service() -> FakeDeploymentService:
    return FakeDeploymentService()


@pytest.fixture
def error_tracker() -> FakeErrorTracker:
    return FakeErrorTracker()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def approval_channel() -> FakeApprovalChannel:
    return FakeApprovalChannel()


@pytest.fixture
def events() -> EventBus:
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def collaborators(
    source,
    build_tool,
    storage,
    cdn,
    edge_cache,
    deployment_service,
    error_tracker,
    chat,
    approval_channel,
) -> Collaborators:
    return Collaborators(
        source=source,
        build_tool=build_tool,
        storage=storage,
        cdn=cdn,
        edge_cache=edge_cache,
        deployments=deployment_service,
        error_tracker=error_tracker,
        chat=chat,
        approval_channel=approval_channel,
    )


@pytest.fixture
async def client(collaborators: Collaborators, test_settings: Settings) -> AsyncClient:
    """Async test client wired to the in-memory collaborators."""
    store = get_deployment_store()
    store.clear()
    app.dependency_overrides[get_collaborators] = lambda: collaborators
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await store.shutdown()
    store.clear()
    app.dependency_overrides.clear()
