"""Deployment pipeline.

Coordinates the stages of one deployment run:

    resolve_ref -> approval -> build -> publish -> invalidate -> notify

The deployment tracker brackets the whole run. Every stage failure is mapped
to exactly one terminal status: ``failure`` for the known error kinds,
``error`` for anything unexpected.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, TypeVar

from pydantic import ValidationError

from sitedeploy.clients.protocols import (
    CDN,
    ApprovalChannel,
    BuildTool,
    ChatWebhook,
    DeploymentService,
    EdgeCache,
    ErrorTracker,
    ObjectStorage,
    SourceHost,
)
from sitedeploy.config import Settings, get_settings
from sitedeploy.core.events import EventBus, get_event_bus
from sitedeploy.core.exceptions import (
    ApprovalCancelledError,
    ConfigurationError,
    SiteDeployError,
)
from sitedeploy.models.approval import ApprovalState
from sitedeploy.models.deployment import (
    Deployment,
    DeploymentStatus,
    ExitCode,
    NotificationOutcome,
    PipelineResult,
    PublishResult,
)
from sitedeploy.models.request import DeploymentCreate, DeploymentRequest, PipelineOptions
from sitedeploy.stages.approval_gate import ApprovalGate
from sitedeploy.stages.base import BaseStage
from sitedeploy.stages.build_runner import BuildRunner
from sitedeploy.stages.cache_invalidator import CacheInvalidator
from sitedeploy.stages.notifier import ReleaseNotifier
from sitedeploy.stages.publisher import ArtifactPublisher
from sitedeploy.stages.ref_resolver import RefResolver
from sitedeploy.stages.tracker import DeploymentTracker
from sitedeploy.utils.logging import get_logger

T = TypeVar("T")


@dataclass
class Collaborators:
    """The external services one pipeline run talks to."""

    source: SourceHost
    build_tool: BuildTool
    storage: ObjectStorage
    cdn: CDN
    edge_cache: EdgeCache | None = None
    deployments: DeploymentService | None = None
    error_tracker: ErrorTracker | None = None
    chat: ChatWebhook | None = None
    approval_channel: ApprovalChannel | None = None


def parse_request(data: dict[str, Any]) -> tuple[DeploymentRequest, PipelineOptions]:
    """Build a request and its options from raw input.

    Raises:
        ConfigurationError: The input is invalid
    """
    try:
        return DeploymentCreate.model_validate(data).split()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid deployment request",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def approval_required(
    request: DeploymentRequest, options: PipelineOptions, settings: Settings
) -> bool:
    """Explicit override first, then approvers given or a protected environment."""
    if options.require_approval is not None:
        return options.require_approval
    return bool(options.approvers) or request.environment in settings.approval_environments


class DeploymentPipeline:
    """Runs one deployment from ref resolution to notifications.

    Construction is the pre-flight: an invalid approval setup raises
    ConfigurationError before anything external is touched.
    """

    def __init__(
        self,
        request: DeploymentRequest,
        options: PipelineOptions,
        collaborators: Collaborators,
        events: EventBus | None = None,
        settings: Settings | None = None,
    ):
        self.request = request
        self.options = options
        self.events = events or get_event_bus()
        self.settings = settings or get_settings()
        self.logger = get_logger("pipeline")

        self.tracker = DeploymentTracker(
            request.environment,
            collaborators.deployments,
            environment_url=request.target_url,
        )
        self.gate = ApprovalGate(
            options.approvers,
            approval_required(request, options, self.settings),
            channel=collaborators.approval_channel,
            poll_interval=self.settings.approval_poll_interval_seconds,
            timeout=self.settings.approval_timeout_seconds,
        )
        self.resolver = RefResolver(collaborators.source)
        self.builder = BuildRunner(
            collaborators.build_tool,
            workdir=self.settings.workspace_dir,
            install_attempts=self.settings.install_max_attempts,
            install_backoff=self.settings.install_backoff_seconds,
        )
        self.publisher = ArtifactPublisher(
            collaborators.storage,
            max_attempts=self.settings.publish_max_attempts,
            backoff=self.settings.publish_backoff_seconds,
            workers=self.settings.publish_workers,
        )
        self.invalidator = CacheInvalidator(
            collaborators.cdn,
            collaborators.edge_cache,
            lookup_attempts=self.settings.cdn_lookup_max_attempts,
            lookup_backoff=self.settings.cdn_lookup_backoff_seconds,
        )
        self.notifier = ReleaseNotifier(
            collaborators.error_tracker,
            collaborators.source,
            collaborators.chat,
        )

        self.current_stage: str | None = None
        self.result: PipelineResult | None = None
        self._publish: PublishResult | None = None

    @property
    def deployment(self) -> Deployment:
        return self.tracker.deployment

    @property
    def deployment_id(self) -> str:
        return self.tracker.deployment.id

    @property
    def finished(self) -> bool:
        return self.result is not None

    def cancel(self) -> bool:
        """Cancel a run waiting on approval.

        Returns False when the gate is not pending; callers cancel the
        running task for the other stages.
        """
        return self.gate.cancel("cancelled")

    async def run(self) -> PipelineResult:
        """Run every stage in order and report the outcome.

        Known and unexpected failures are returned in the result; only task
        cancellation propagates.
        """
        log = self.logger.bind(
            deployment_id=self.deployment_id,
            environment=self.request.environment,
            deploy_type=self.request.deploy_type.value,
            selector=self.request.source_selector,
        )
        log.info("pipeline.started")

        try:
            await self._run_stages()
        except ApprovalCancelledError as e:
            # Nothing is held while waiting; the record stays open
            log.info("pipeline.cancelled", stage=self.current_stage, reason=e.message)
            return await self._finish(ExitCode.CANCELLED, e)
        except SiteDeployError as e:
            log.error("pipeline.stage_failed", stage=self.current_stage, error=e.message)
            await self.tracker.close(DeploymentStatus.FAILURE)
            return await self._finish(ExitCode.FAILURE, e)
        except asyncio.CancelledError:
            log.warning("pipeline.task_cancelled", stage=self.current_stage)
            if self._waiting_for_approval():
                # Nothing has started yet; the record stays pending
                self.gate.cancel("cancelled")
                await self._publish_approval_resolved()
            else:
                await self.tracker.close(DeploymentStatus.ERROR)
            await self._finish(
                ExitCode.CANCELLED,
                SiteDeployError("Deployment cancelled", {"stage": self.current_stage}),
            )
            raise
        except Exception as e:
            log.error(
                "pipeline.unexpected_error",
                stage=self.current_stage,
                error=str(e),
                exc_info=True,
            )
            await self.tracker.close(DeploymentStatus.ERROR)
            return await self._finish(ExitCode.ERROR, e)

        notifications = await self._notify()
        log.info(
            "pipeline.completed",
            status=self.deployment.status.value,
            uploaded=self._publish.uploaded if self._publish else 0,
        )
        return await self._finish(ExitCode.SUCCESS, notifications=notifications)

    async def _run_stages(self) -> None:
        request = self.request

        ref = await self._stage(self.resolver, self.resolver.resolve(request))
        await self.tracker.open(ref)

        if self.gate.is_pending:
            await self.events.publish_approval_requested(
                self.deployment_id, sorted(self.gate.approvers)
            )
        try:
            await self._stage(self.gate, self.gate.wait(self._approval_summary()))
        except SiteDeployError:
            await self._publish_approval_resolved()
            raise
        await self._publish_approval_resolved()

        await self.tracker.mark_in_progress()
        artifact = await self._stage(
            self.builder,
            self.builder.run(
                ref,
                request.environment,
                request.use_clean_install,
                request.build_folder,
                run_ci=request.run_ci,
            ),
        )

        self._publish = await self._stage(
            self.publisher,
            self.publisher.publish(artifact, request.bucket, request.deployment_prefix),
        )

        await self._stage(
            self.invalidator,
            self.invalidator.invalidate(
                request.bucket,
                self.options.cloudflare_zone_id,
                self.options.cloudflare_token,
            ),
        )

        await self.tracker.close(DeploymentStatus.SUCCESS)

    def _waiting_for_approval(self) -> bool:
        return self.current_stage == self.gate.name and self.gate.state in (
            ApprovalState.PENDING,
            ApprovalState.CANCELLED,
        )

    async def _publish_approval_resolved(self) -> None:
        if self.gate.state in (ApprovalState.NOT_REQUIRED, ApprovalState.PENDING):
            return
        await self.events.publish_approval_resolved(
            self.deployment_id, self.gate.state.value, self.gate.decided_by
        )

    async def _notify(self) -> list[NotificationOutcome]:
        if self.deployment.status != DeploymentStatus.SUCCESS:
            return []
        self.current_stage = self.notifier.name
        return await self.notifier.notify(self.request, self.options, self.deployment)

    async def _stage(self, stage: BaseStage, work: Awaitable[T]) -> T:
        self.current_stage = stage.name
        await self.events.publish_stage_started(self.deployment_id, stage.name)
        started = time.perf_counter()
        try:
            result = await work
        except Exception as e:
            await self.events.publish_stage_failed(self.deployment_id, stage.name, str(e))
            raise
        duration_ms = int((time.perf_counter() - started) * 1000)
        await self.events.publish_stage_completed(self.deployment_id, stage.name, duration_ms)
        return result

    def _approval_summary(self) -> str:
        r = self.request
        return f"{r.environment} <- {r.deploy_type.value} {r.source_selector}"

    async def _finish(
        self,
        exit_code: ExitCode,
        error: BaseException | None = None,
        notifications: list[NotificationOutcome] | None = None,
    ) -> PipelineResult:
        failed_stage = None
        message = None
        details = None
        if error is not None:
            failed_stage = self.current_stage
            if isinstance(error, SiteDeployError):
                failed_stage = error.stage or self.current_stage
                message = error.message
                details = error.details or None
            else:
                message = f"{type(error).__name__}: {error}"

        self.result = PipelineResult(
            deployment=self.deployment,
            exit_code=exit_code,
            failed_stage=failed_stage,
            error=message,
            error_details=details,
            publish=self._publish,
            notifications=notifications or [],
        )

        if exit_code == ExitCode.SUCCESS:
            await self.events.publish_deployment_complete(
                self.deployment_id,
                self.deployment.status.value,
                self.request.target_url or None,
            )
        else:
            await self.events.publish_error(self.deployment_id, message or "", failed_stage)
        return self.result
