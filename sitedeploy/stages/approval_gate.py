"""Approval gate.

A state machine that blocks a run until a listed approver decides. Decisions
can be pushed in directly (``approve``/``reject``) or read from an approval
channel by polling; both paths go through the same identity check.
"""

import asyncio

from sitedeploy.clients.protocols import ApprovalChannel
from sitedeploy.config import settings
from sitedeploy.core.exceptions import (
    ApprovalCancelledError,
    ApprovalRejectedError,
    ConfigurationError,
)
from sitedeploy.models.approval import ApprovalAction, ApprovalDecision, ApprovalState
from sitedeploy.stages.base import BaseStage

_FINAL_STATES = frozenset(
    {
        ApprovalState.NOT_REQUIRED,
        ApprovalState.APPROVED,
        ApprovalState.REJECTED,
        ApprovalState.CANCELLED,
    }
)


class ApprovalGate(BaseStage):
    """Manual checkpoint for protected environments.

    States: ``not_required`` passes straight through. Otherwise the gate
    starts ``pending`` and moves once to ``approved``, ``rejected`` or
    ``cancelled``; nothing moves it after that.
    """

    def __init__(
        self,
        approvers: frozenset[str],
        required: bool,
        channel: ApprovalChannel | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ):
        super().__init__()
        if required and not approvers:
            raise ConfigurationError(
                "Approval is required but no approvers are configured"
            )
        self.approvers = frozenset(approvers)
        # Logins on the source host are case-insensitive
        self._approver_keys = frozenset(a.casefold() for a in self.approvers)
        self.channel = channel
        self.poll_interval = poll_interval or settings.approval_poll_interval_seconds
        self.timeout = timeout if timeout is not None else settings.approval_timeout_seconds

        self._state = ApprovalState.PENDING if required else ApprovalState.NOT_REQUIRED
        self._resolved = asyncio.Event()
        self.decided_by: str | None = None
        self.reason: str | None = None
        self.handle: str | None = None
        if not required:
            self._resolved.set()

    @property
    def name(self) -> str:
        return "approval"

    @property
    def description(self) -> str:
        return "Blocks until a listed approver approves or rejects the deployment"

    @property
    def state(self) -> ApprovalState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state == ApprovalState.PENDING

    def is_approver(self, actor: str) -> bool:
        return actor.casefold() in self._approver_keys

    def approve(self, actor: str) -> bool:
        """Record an approval. Returns True only if the state changed."""
        return self._decide(actor, ApprovalState.APPROVED)

    def reject(self, actor: str) -> bool:
        """Record a rejection. Returns True only if the state changed."""
        return self._decide(actor, ApprovalState.REJECTED)

    def apply(self, action: ApprovalAction) -> bool:
        if action.decision == ApprovalDecision.APPROVE:
            return self.approve(action.actor)
        return self.reject(action.actor)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel a pending gate from outside. Returns True if it was pending."""
        if self._state != ApprovalState.PENDING:
            return False
        self._state = ApprovalState.CANCELLED
        self.reason = reason
        self._resolved.set()
        self.logger.info("approval_gate.cancelled", reason=reason)
        return True

    def _decide(self, actor: str, target: ApprovalState) -> bool:
        if not self.is_approver(actor):
            self.logger.warning(
                "approval_gate.unauthorized_actor",
                actor=actor,
                decision=target.value,
            )
            return False
        if self._state != ApprovalState.PENDING:
            return False
        self._state = target
        self.decided_by = actor
        self._resolved.set()
        self.logger.info("approval_gate.resolved", state=target.value, actor=actor)
        return True

    async def wait(self, summary: str = "") -> ApprovalState:
        """Block until the gate leaves ``pending``.

        Returns the final state when the run may proceed.

        Raises:
            ApprovalRejectedError: An approver rejected the deployment
            ApprovalCancelledError: Cancelled, or the optional timeout expired
        """
        if self._state == ApprovalState.PENDING:
            await self._wait_pending(summary)

        if self._state == ApprovalState.REJECTED:
            raise ApprovalRejectedError(self.decided_by or "unknown")
        if self._state == ApprovalState.CANCELLED:
            raise ApprovalCancelledError(
                f"Approval {self.reason or 'cancelled'}", {"reason": self.reason}
            )
        return self._state

    async def _wait_pending(self, summary: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout else None

        if self.channel is not None:
            self.handle = await self.channel.request(self.approvers, summary)
        self.logger.info(
            "approval_gate.waiting",
            approvers=sorted(self.approvers),
            handle=self.handle,
            timeout=self.timeout,
        )

        try:
            while self._state == ApprovalState.PENDING:
                if self.channel is not None:
                    await self._poll_channel()
                    if self._state != ApprovalState.PENDING:
                        break

                interval = self.poll_interval
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        self.cancel("timed out")
                        break
                    interval = min(interval, remaining)

                try:
                    await asyncio.wait_for(self._resolved.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            self.cancel("cancelled")
            raise
        finally:
            if self.channel is not None and self.handle is not None:
                await self._close_channel()

    async def _poll_channel(self) -> None:
        try:
            actions = await self.channel.poll(self.handle)
        except Exception as e:
            # The wait may be long; a failed poll is retried on the next tick
            self.logger.warning(
                "approval_gate.poll_failed", handle=self.handle, error=str(e)
            )
            return
        for action in actions:
            self.apply(action)

    async def _close_channel(self) -> None:
        outcome = self._state.value if self._state in _FINAL_STATES else "abandoned"
        try:
            await self.channel.close(self.handle, outcome)
        except Exception as e:
            # The decision is already made; a failed close only leaves the request open
            self.logger.warning(
                "approval_gate.close_failed", handle=self.handle, error=str(e)
            )
