"""Build runner.

Installs dependencies, optionally runs CI checks, builds for the target
environment and verifies the output folder.
"""

import asyncio
from pathlib import Path

from sitedeploy.clients.protocols import BuildTool
from sitedeploy.config import settings
from sitedeploy.core.exceptions import (
    BuildCommandError,
    DependencyInstallError,
    EmptyArtifactError,
)
from sitedeploy.models.deployment import BuildArtifact, ResolvedRef
from sitedeploy.stages.base import BaseStage


class BuildRunner(BaseStage):
    """Produces a verified BuildArtifact from the working tree.

    Only the dependency install is retried; CI and build failures are
    treated as deterministic for a given ref and environment.
    """

    def __init__(
        self,
        tool: BuildTool,
        workdir: Path | str | None = None,
        install_attempts: int | None = None,
        install_backoff: float | None = None,
    ):
        super().__init__()
        self.tool = tool
        self.workdir = Path(workdir or settings.workspace_dir)
        self.install_attempts = install_attempts or settings.install_max_attempts
        self.install_backoff = (
            install_backoff if install_backoff is not None else settings.install_backoff_seconds
        )

    @property
    def name(self) -> str:
        return "build"

    @property
    def description(self) -> str:
        return "Installs dependencies and builds the site for an environment"

    async def run(
        self,
        ref: ResolvedRef,
        environment: str,
        use_clean_install: bool,
        build_folder: str,
        run_ci: bool = True,
    ) -> BuildArtifact:
        self.logger.info(
            "build_runner.started",
            commit_sha=ref.commit_sha,
            environment=environment,
            clean_install=use_clean_install,
            run_ci=run_ci,
        )

        await self._install(use_clean_install)

        if run_ci:
            success, output = await self.tool.run_ci(self.workdir)
            if not success:
                self.logger.error("build_runner.ci_failed", output_preview=(output or "")[:500])
                raise BuildCommandError("ci", output)

        success, output = await self.tool.build(self.workdir, environment)
        if not success:
            self.logger.error("build_runner.build_failed", output_preview=(output or "")[:500])
            raise BuildCommandError(f"build ({environment})", output)

        artifact = self._verify(build_folder)
        self.logger.info(
            "build_runner.completed",
            root_path=artifact.root_path,
            file_count=artifact.file_count,
        )
        return artifact

    async def _install(self, clean: bool) -> None:
        output: str | None = None
        for attempt in range(1, self.install_attempts + 1):
            success, output = await self.tool.install(self.workdir, clean)
            if success:
                return

            self.logger.warning(
                "build_runner.install_failed",
                attempt=attempt,
                max_attempts=self.install_attempts,
                error_preview=(output or "")[:500],
            )
            if attempt < self.install_attempts:
                await asyncio.sleep(self.install_backoff * 2 ** (attempt - 1))

        raise DependencyInstallError(self.install_attempts, output)

    def _verify(self, build_folder: str) -> BuildArtifact:
        root = Path(build_folder)
        if not root.is_absolute():
            root = self.workdir / root
        if not root.is_dir():
            raise EmptyArtifactError(str(root))

        file_count = sum(1 for p in root.rglob("*") if p.is_file())
        if file_count == 0:
            raise EmptyArtifactError(str(root))
        return BuildArtifact(root_path=str(root), file_count=file_count)
