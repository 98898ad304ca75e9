"""Deployment endpoints."""

import asyncio
import json
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from sitedeploy.api.deps import (
    CollaboratorsDep,
    EventsDep,
    RunDep,
    SettingsDep,
    StoreDep,
)
from sitedeploy.core.events import TERMINAL_EVENTS, Event
from sitedeploy.core.pipeline import DeploymentPipeline
from sitedeploy.core.store import DeploymentRun
from sitedeploy.models.approval import ApprovalDecision, ApprovalState
from sitedeploy.models.deployment import (
    DeploymentStatus,
    PipelineResult,
    ResolvedRef,
)
from sitedeploy.models.request import DeploymentCreate

router = APIRouter()


class ApprovalResponse(BaseModel):
    """Approval gate state for a deployment."""

    deployment_id: str
    state: ApprovalState
    approvers: list[str]
    decided_by: str | None = None
    reason: str | None = None


class ApprovalActionRequest(BaseModel):
    """An approver's decision."""

    actor: str = Field(..., min_length=1)
    decision: ApprovalDecision


class DeploymentResponse(BaseModel):
    """API response model for a deployment run."""

    deployment_id: str
    environment: str
    deploy_type: str
    source_selector: str
    target_url: str
    status: DeploymentStatus
    ref: ResolvedRef | None = None
    external_id: str | None = None
    approval: ApprovalState
    current_stage: str | None = None
    created_at: datetime
    updated_at: datetime
    result: PipelineResult | None = None

    @classmethod
    def from_run(cls, run: DeploymentRun) -> "DeploymentResponse":
        pipeline = run.pipeline
        deployment = pipeline.deployment
        return cls(
            deployment_id=deployment.id,
            environment=deployment.environment,
            deploy_type=pipeline.request.deploy_type.value,
            source_selector=pipeline.request.source_selector,
            target_url=pipeline.request.target_url,
            status=deployment.status,
            ref=deployment.ref,
            external_id=deployment.external_id,
            approval=pipeline.gate.state,
            current_stage=pipeline.current_stage,
            created_at=deployment.created_at,
            updated_at=deployment.updated_at,
            result=pipeline.result,
        )


class DeploymentListResponse(BaseModel):
    """Response for listing deployments."""

    deployments: list[DeploymentResponse]
    total: int
    limit: int
    offset: int


def _approval_response(run: DeploymentRun) -> ApprovalResponse:
    gate = run.pipeline.gate
    return ApprovalResponse(
        deployment_id=run.id,
        state=gate.state,
        approvers=sorted(gate.approvers),
        decided_by=gate.decided_by,
        reason=gate.reason,
    )


@router.post(
    "",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a deployment",
    description="Validate the request and start the pipeline. Returns immediately while the run continues in background.",
)
async def create_deployment(
    data: DeploymentCreate,
    store: StoreDep,
    events: EventsDep,
    collaborators: CollaboratorsDep,
    app_settings: SettingsDep,
) -> DeploymentResponse:
    """Create a deployment run and start it."""
    request, options = data.split()
    # Raises ConfigurationError (400) before anything is started
    pipeline = DeploymentPipeline(
        request, options, collaborators, events=events, settings=app_settings
    )
    run = store.start(pipeline)
    return DeploymentResponse.from_run(run)


@router.get(
    "",
    response_model=DeploymentListResponse,
    summary="List deployments",
)
async def list_deployments(
    store: StoreDep,
    status_filter: Annotated[DeploymentStatus | None, Query(alias="status")] = None,
    environment: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeploymentListResponse:
    """List deployment runs with optional filtering."""
    runs, total = store.list_runs(
        status=status_filter,
        environment=environment,
        limit=limit,
        offset=offset,
    )
    return DeploymentListResponse(
        deployments=[DeploymentResponse.from_run(r) for r in runs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{deployment_id}",
    response_model=DeploymentResponse,
    summary="Get deployment details",
)
async def get_deployment(run: RunDep) -> DeploymentResponse:
    return DeploymentResponse.from_run(run)


@router.get(
    "/{deployment_id}/approval",
    response_model=ApprovalResponse,
    summary="Get approval gate state",
)
async def get_approval(run: RunDep) -> ApprovalResponse:
    return _approval_response(run)


@router.post(
    "/{deployment_id}/approval",
    response_model=ApprovalResponse,
    summary="Approve or reject a pending deployment",
)
async def submit_approval(
    run: RunDep,
    data: ApprovalActionRequest,
) -> ApprovalResponse:
    """Record an approver's decision on the gate."""
    gate = run.pipeline.gate
    if not gate.is_approver(data.actor):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"{data.actor} is not an approver for this deployment",
        )
    if data.decision == ApprovalDecision.APPROVE and gate.state == ApprovalState.APPROVED:
        # Repeat approvals are harmless
        return _approval_response(run)
    if not gate.is_pending:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Approval is not pending (state: {gate.state.value})",
        )

    if data.decision == ApprovalDecision.APPROVE:
        gate.approve(data.actor)
    else:
        gate.reject(data.actor)
    return _approval_response(run)


@router.post(
    "/{deployment_id}/cancel",
    response_model=DeploymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel a running deployment",
)
async def cancel_deployment(run: RunDep, store: StoreDep) -> DeploymentResponse:
    """Cancel a deployment. Already uploaded objects stay in place."""
    if not store.cancel(run.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Deployment is not running",
        )
    return DeploymentResponse.from_run(run)


@router.get(
    "/{deployment_id}/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    run: RunDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream real-time events for a deployment using Server-Sent Events."""

    async def event_generator():
        queue = events.subscribe(run.id)

        try:
            yield {
                "event": "connected",
                "data": json.dumps(
                    {"deployment_id": run.id, "status": run.status.value}
                ),
            }

            while True:
                try:
                    event: Event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield event.to_sse()

                    if event.event_type in TERMINAL_EVENTS:
                        break

                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(run.id)

    return EventSourceResponse(event_generator())
