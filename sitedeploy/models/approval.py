"""Approval gate data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ApprovalState(str, Enum):
    """Approval gate state."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalDecision(str, Enum):
    """What an approver asked for."""

    APPROVE = "approve"
    REJECT = "reject"


class ApprovalAction(BaseModel):
    """A single approve/reject action observed on an approval channel."""

    model_config = ConfigDict(frozen=True)

    actor: str
    decision: ApprovalDecision
