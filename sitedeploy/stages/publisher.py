"""Artifact publisher.

Diff-based sync of a build artifact to ``bucket/deployment_prefix``:

1. Hash every local file and list the remote objects under the prefix.
2. Upload new and changed files (bounded concurrency, per-object retry).
3. Only once every upload has landed, delete remote objects that no longer
   exist locally.

Unchanged objects are never touched. A publish that fails part way is
reported, not rolled back.
"""

import asyncio
import mimetypes
from pathlib import Path

from sitedeploy.clients.protocols import ObjectStorage
from sitedeploy.config import settings
from sitedeploy.core.exceptions import PublishError
from sitedeploy.models.deployment import BuildArtifact, PublishResult
from sitedeploy.stages.base import BaseStage
from sitedeploy.utils.hashing import content_md5, iter_artifact_files


class SyncPlan:
    """What a sync will do, keyed by path relative to the prefix."""

    def __init__(
        self,
        local: dict[str, str],
        remote: dict[str, str],
    ):
        self.to_upload = sorted(p for p, h in local.items() if remote.get(p) != h)
        self.to_delete = sorted(p for p in remote if p not in local)
        self.unchanged = sorted(p for p, h in local.items() if remote.get(p) == h)


class _ResultAccumulator:
    """Collects per-object outcomes from concurrent transfers."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.succeeded: list[str] = []
        self.failed: list[str] = []

    async def record(self, path: str, ok: bool) -> None:
        async with self._lock:
            (self.succeeded if ok else self.failed).append(path)


class ArtifactPublisher(BaseStage):
    """Syncs a BuildArtifact to object storage."""

    def __init__(
        self,
        storage: ObjectStorage,
        max_attempts: int | None = None,
        backoff: float | None = None,
        workers: int | None = None,
    ):
        super().__init__()
        self.storage = storage
        self.max_attempts = max_attempts or settings.publish_max_attempts
        self.backoff = backoff if backoff is not None else settings.publish_backoff_seconds
        self.workers = workers or settings.publish_workers

    @property
    def name(self) -> str:
        return "publish"

    @property
    def description(self) -> str:
        return "Uploads changed files and removes stale ones under the bucket prefix"

    async def publish(
        self, artifact: BuildArtifact, bucket: str, deployment_prefix: str
    ) -> PublishResult:
        root = Path(artifact.root_path)
        prefix = deployment_prefix.strip("/")

        local_files = dict(iter_artifact_files(root))
        local = {
            rel: await asyncio.to_thread(content_md5, path)
            for rel, path in local_files.items()
        }
        remote = {
            _relative_key(obj.path, prefix): obj.content_hash
            for obj in await self.storage.list_objects(bucket, prefix)
        }
        plan = SyncPlan(local, remote)

        self.logger.info(
            "publisher.plan",
            bucket=bucket,
            prefix=prefix,
            upload=len(plan.to_upload),
            delete=len(plan.to_delete),
            unchanged=len(plan.unchanged),
        )

        uploads = await self._transfer_all(
            plan.to_upload,
            lambda rel: self._upload(bucket, _object_key(prefix, rel), local_files[rel]),
        )
        if uploads.failed:
            raise PublishError(
                f"{len(uploads.failed)} upload(s) failed after {self.max_attempts} attempts",
                succeeded=uploads.succeeded,
                failed=uploads.failed,
            )

        deletes = await self._transfer_all(
            plan.to_delete,
            lambda rel: self.storage.delete(bucket, _object_key(prefix, rel)),
        )
        if deletes.failed:
            raise PublishError(
                f"{len(deletes.failed)} delete(s) failed after {self.max_attempts} attempts",
                succeeded=uploads.succeeded + deletes.succeeded,
                failed=deletes.failed,
            )

        result = PublishResult(
            uploaded=len(uploads.succeeded),
            deleted=len(deletes.succeeded),
            unchanged=len(plan.unchanged),
            uploaded_paths=sorted(uploads.succeeded),
            deleted_paths=sorted(deletes.succeeded),
        )
        self.logger.info(
            "publisher.completed",
            uploaded=result.uploaded,
            deleted=result.deleted,
            unchanged=result.unchanged,
        )
        return result

    async def _upload(self, bucket: str, key: str, path: Path) -> None:
        body = await asyncio.to_thread(path.read_bytes)
        content_type, _ = mimetypes.guess_type(path.name)
        await self.storage.put(bucket, key, body, content_type)

    async def _transfer_all(self, paths: list[str], op) -> _ResultAccumulator:
        results = _ResultAccumulator()
        semaphore = asyncio.Semaphore(self.workers)

        async def worker(rel: str) -> None:
            async with semaphore:
                ok = await self._with_retry(rel, op)
            await results.record(rel, ok)

        await asyncio.gather(*(worker(rel) for rel in paths))
        return results

    async def _with_retry(self, rel: str, op) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await op(rel)
                return True
            except Exception as e:
                self.logger.warning(
                    "publisher.transfer_failed",
                    path=rel,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff * 2 ** (attempt - 1))
        return False


def _object_key(prefix: str, rel: str) -> str:
    return f"{prefix}/{rel}" if prefix else rel


def _relative_key(key: str, prefix: str) -> str:
    if prefix and key.startswith(prefix + "/"):
        return key[len(prefix) + 1 :]
    return key
