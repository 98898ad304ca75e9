"""Release notifier.

Post-success fan-out to the error tracker, the source host's releases and
chat. Each channel is independent: a skipped or failed channel is reported
in its own outcome and never affects the others or the run.
"""

import asyncio
from typing import Awaitable

from sitedeploy.clients.protocols import ChatWebhook, ErrorTracker, SourceHost
from sitedeploy.core.exceptions import NotificationError
from sitedeploy.models.deployment import (
    Deployment,
    NotificationChannel,
    NotificationOutcome,
)
from sitedeploy.models.request import DeploymentRequest, DeployType, PipelineOptions
from sitedeploy.stages.base import BaseStage


class ReleaseNotifier(BaseStage):
    """Announces a successful deployment."""

    def __init__(
        self,
        error_tracker: ErrorTracker | None = None,
        source: SourceHost | None = None,
        chat: ChatWebhook | None = None,
    ):
        super().__init__()
        self.error_tracker = error_tracker
        self.source = source
        self.chat = chat

    @property
    def name(self) -> str:
        return "notify"

    @property
    def description(self) -> str:
        return "Creates releases and posts a chat message after a successful deploy"

    async def notify(
        self,
        request: DeploymentRequest,
        options: PipelineOptions,
        deployment: Deployment,
    ) -> list[NotificationOutcome]:
        pending = {
            NotificationChannel.ERROR_TRACKING: self._error_tracking_release(options, deployment),
            NotificationChannel.SOURCE_RELEASE: self._source_release(request),
            NotificationChannel.CHAT: self._chat_message(request, options, deployment),
        }
        return list(
            await asyncio.gather(
                *(self._run(channel, action) for channel, action in pending.items())
            )
        )

    def _error_tracking_release(
        self, options: PipelineOptions, deployment: Deployment
    ) -> Awaitable[None] | None:
        if not (options.sentry_enabled and self.error_tracker and deployment.ref):
            return None
        return self.error_tracker.create_release(
            options.sentry_project,
            options.sentry_org,
            deployment.ref.commit_sha,
            options.sentry_token,
        )

    def _source_release(self, request: DeploymentRequest) -> Awaitable[str] | None:
        if request.deploy_type != DeployType.FROM_TAG or self.source is None:
            return None
        return self.source.create_release(request.commit_tag, generate_notes=True)

    def _chat_message(
        self,
        request: DeploymentRequest,
        options: PipelineOptions,
        deployment: Deployment,
    ) -> Awaitable[None] | None:
        if not (options.slack_enabled and self.chat):
            return None
        return self.chat.post(options.slack_webhook, format_message(request, deployment))

    async def _run(
        self,
        channel: NotificationChannel,
        action: Awaitable[object] | None,
    ) -> NotificationOutcome:
        if action is None:
            self.logger.debug("notifier.skipped", channel=channel.value)
            return NotificationOutcome(channel=channel, skipped=True)

        try:
            await action
        except Exception as e:
            error = NotificationError(channel.value, str(e))
            self.logger.warning("notifier.failed", channel=channel.value, error=error.message)
            return NotificationOutcome(channel=channel, error=error.message)

        self.logger.info("notifier.sent", channel=channel.value)
        return NotificationOutcome(channel=channel, success=True)


def format_message(request: DeploymentRequest, deployment: Deployment) -> str:
    """One-line chat summary of a deployment."""
    ref = deployment.ref
    ref_text = f"{ref.ref_label} ({ref.short_sha})" if ref else request.source_selector
    parts = [
        f"Deployment to *{deployment.environment}*",
        f"ref {ref_text}",
        f"status: {deployment.status.value}",
    ]
    if request.target_url:
        parts.append(request.target_url)
    return " | ".join(parts)
