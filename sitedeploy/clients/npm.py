"""Shell build tool (npm by default)."""

import asyncio
from pathlib import Path

from sitedeploy.config import settings
from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)


class ShellBuildTool:
    """Runs the configured install, CI and build commands.

    Commands come from settings so non-npm toolchains only need env changes.
    """

    def __init__(
        self,
        install_command: str | None = None,
        clean_install_command: str | None = None,
        ci_command: str | None = None,
        build_command: str | None = None,
        timeout: int | None = None,
    ):
        self.install_command = install_command or settings.install_command
        self.clean_install_command = clean_install_command or settings.clean_install_command
        self.ci_command = ci_command or settings.ci_command
        self.build_command = build_command or settings.build_command
        self.timeout = timeout or settings.command_timeout_seconds

    async def install(self, workdir: Path, clean: bool) -> tuple[bool, str | None]:
        cmd = self.clean_install_command if clean else self.install_command
        return await self._run(workdir, cmd)

    async def run_ci(self, workdir: Path) -> tuple[bool, str | None]:
        return await self._run(workdir, self.ci_command)

    async def build(self, workdir: Path, environment: str) -> tuple[bool, str | None]:
        cmd = self.build_command.format(environment=environment)
        return await self._run(workdir, cmd)

    async def _run(self, workdir: Path, cmd: str) -> tuple[bool, str | None]:
        """Run a command in the working tree.

        Returns:
            Tuple of (success, error_output)
        """
        logger.info("build_tool.running_command", cmd=cmd, cwd=str(workdir))

        try:
            process = await asyncio.create_subprocess_shell(
                cmd,
                cwd=str(workdir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return False, str(e)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return False, f"Command timed out after {self.timeout} seconds"

        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""

        if process.returncode != 0:
            error_output = f"Exit code: {process.returncode}\n"
            if stderr_text:
                error_output += f"STDERR:\n{stderr_text}\n"
            if stdout_text:
                error_output += f"STDOUT:\n{stdout_text}"
            return False, error_output

        return True, None
