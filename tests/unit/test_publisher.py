"""Unit tests for ArtifactPublisher."""

import hashlib
from pathlib import Path

import pytest

from sitedeploy.core.exceptions import PublishError
from sitedeploy.models.deployment import BuildArtifact
from sitedeploy.stages.publisher import ArtifactPublisher, SyncPlan
from sitedeploy.utils.hashing import content_md5

BUCKET = "site-bucket"


def _md5(body: bytes) -> str:
    return hashlib.md5(body).hexdigest()


def _artifact(root: Path, files: dict[str, bytes]) -> BuildArtifact:
    for rel, body in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
    return BuildArtifact(root_path=str(root), file_count=len(files))


class TestSyncPlan:
    """Tests for diffing local and remote trees."""

    def test_plan(self):
        plan = SyncPlan({"f1": "h1", "f2": "h2"}, {"f1": "h1", "f3": "h3"})

        assert plan.to_upload == ["f2"]
        assert plan.to_delete == ["f3"]
        assert plan.unchanged == ["f1"]

    def test_changed_hash_is_uploaded(self):
        plan = SyncPlan({"index.html": "new"}, {"index.html": "old"})

        assert plan.to_upload == ["index.html"]
        assert plan.unchanged == []


class TestArtifactPublisher:
    """Tests for syncing an artifact to object storage."""

    @pytest.fixture
    def publisher(self, storage) -> ArtifactPublisher:
        return ArtifactPublisher(storage, max_attempts=3, backoff=0, workers=4)

    async def test_sync(self, publisher: ArtifactPublisher, storage, tmp_path: Path):
        storage.seed(BUCKET, "site/f1", b"one")
        storage.seed(BUCKET, "site/f3", b"three")
        storage.seed(BUCKET, "other/f9", b"outside prefix")
        artifact = _artifact(tmp_path / "out", {"f1": b"one", "f2": b"two"})

        result = await publisher.publish(artifact, BUCKET, "site")

        assert result.uploaded == 1
        assert result.deleted == 1
        assert result.unchanged == 1
        assert result.uploaded_paths == ["f2"]
        assert result.deleted_paths == ["f3"]
        assert storage.keys(BUCKET) == {"site/f1", "site/f2", "other/f9"}
        assert ("put", "site/f1") not in storage.operations

    async def test_second_run_is_noop(self, publisher: ArtifactPublisher, storage, tmp_path: Path):
        artifact = _artifact(tmp_path / "out", {"index.html": b"<html/>", "a/b.css": b"body{}"})

        await publisher.publish(artifact, BUCKET, "")
        storage.operations.clear()
        result = await publisher.publish(artifact, BUCKET, "")

        assert result.uploaded == 0
        assert result.deleted == 0
        assert result.unchanged == 2
        assert storage.operations == []

    async def test_uploads_before_deletes(
        self, publisher: ArtifactPublisher, storage, tmp_path: Path
    ):
        for name in ("old1", "old2", "old3"):
            storage.seed(BUCKET, name, b"stale")
        artifact = _artifact(tmp_path / "out", {"n1": b"1", "n2": b"2", "n3": b"3"})

        await publisher.publish(artifact, BUCKET, "")

        kinds = [op for op, _ in storage.operations]
        assert kinds == ["put"] * 3 + ["delete"] * 3

    async def test_content_type(self, publisher: ArtifactPublisher, storage, tmp_path: Path):
        artifact = _artifact(tmp_path / "out", {"index.html": b"<html/>"})

        await publisher.publish(artifact, BUCKET, "")

        assert storage.content_types["index.html"] == "text/html"

    async def test_transient_upload_failure_retried(
        self, publisher: ArtifactPublisher, storage, tmp_path: Path
    ):
        storage.put_failures["index.html"] = 2
        artifact = _artifact(tmp_path / "out", {"index.html": b"<html/>"})

        result = await publisher.publish(artifact, BUCKET, "")

        assert result.uploaded == 1
        assert storage.objects[(BUCKET, "index.html")] == b"<html/>"

    async def test_persistent_failure_reports_partial_result(
        self, publisher: ArtifactPublisher, storage, tmp_path: Path
    ):
        storage.seed(BUCKET, "stale.txt", b"old")
        storage.put_failures["broken.js"] = 10
        artifact = _artifact(tmp_path / "out", {"ok.js": b"1", "broken.js": b"2"})

        with pytest.raises(PublishError) as exc_info:
            await publisher.publish(artifact, BUCKET, "")

        assert exc_info.value.succeeded == ["ok.js"]
        assert exc_info.value.failed == ["broken.js"]
        # Nothing is deleted when an upload fails
        assert (BUCKET, "stale.txt") in storage.objects
        assert not any(op == "delete" for op, _ in storage.operations)

    def test_local_hash_matches_etag_form(self, tmp_path: Path):
        artifact = _artifact(tmp_path / "out", {"x": b"payload"})
        assert content_md5(Path(artifact.root_path) / "x") == _md5(b"payload")
