"""Deployment request and per-run options."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DeployType(str, Enum):
    """How the source reference is selected."""

    FROM_BRANCH = "from-branch"
    FROM_PR = "from-pr"
    FROM_TAG = "from-tag"


# Selector field each deploy type must populate
SELECTOR_FIELDS: dict[DeployType, str] = {
    DeployType.FROM_BRANCH: "branch",
    DeployType.FROM_PR: "pull_request_nb",
    DeployType.FROM_TAG: "commit_tag",
}


class DeploymentRequest(BaseModel):
    """What to deploy and where. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    deploy_type: DeployType
    branch: str | None = None
    pull_request_nb: int | None = Field(default=None, ge=1)
    commit_tag: str | None = None
    merge_pr: bool = False

    environment: str = Field(..., min_length=1)
    target_url: str = ""
    bucket: str = Field(..., min_length=1)
    deployment_prefix: str = ""
    build_folder: str = Field(default="out", min_length=1)
    use_clean_install: bool = False
    run_ci: bool = True

    @field_validator("deployment_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("branch", "commit_tag")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_selector(self) -> "DeploymentRequest":
        """Exactly one selector, and it must be the one deploy_type reads."""
        populated = [
            name for name in SELECTOR_FIELDS.values()
            if getattr(self, name) is not None
        ]
        expected = SELECTOR_FIELDS[self.deploy_type]
        if populated != [expected]:
            raise ValueError(
                f"deploy_type '{self.deploy_type.value}' requires exactly "
                f"'{expected}' to be set (got: {populated or 'none'})"
            )
        if self.merge_pr and self.deploy_type != DeployType.FROM_PR:
            raise ValueError("merge_pr is only valid for deploy_type 'from-pr'")
        return self

    @property
    def source_selector(self) -> str:
        """The branch name, PR number or tag name, as a string."""
        return str(getattr(self, SELECTOR_FIELDS[self.deploy_type]))


class PipelineOptions(BaseModel):
    """Approval and integration settings for one run.

    Empty credentials disable the matching integration.
    """

    model_config = ConfigDict(frozen=True)

    approvers: frozenset[str] = frozenset()
    require_approval: bool | None = None

    cloudflare_zone_id: str = ""
    cloudflare_token: str = Field(default="", repr=False)

    sentry_project: str = ""
    sentry_org: str = ""
    sentry_token: str = Field(default="", repr=False)

    slack_webhook: str = Field(default="", repr=False)

    @field_validator("approvers", mode="before")
    @classmethod
    def clean_approvers(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(v.strip() for v in value if v and v.strip())
        return value

    @property
    def sentry_enabled(self) -> bool:
        return bool(self.sentry_project and self.sentry_org and self.sentry_token)

    @property
    def slack_enabled(self) -> bool:
        return bool(self.slack_webhook)


class DeploymentCreate(DeploymentRequest):
    """API payload: a request plus its run options, flattened."""

    approvers: list[str] = Field(default_factory=list)
    require_approval: bool | None = None
    cloudflare_zone_id: str = ""
    cloudflare_token: str = Field(default="", repr=False)
    sentry_project: str = ""
    sentry_org: str = ""
    sentry_token: str = Field(default="", repr=False)
    slack_webhook: str = Field(default="", repr=False)

    def split(self) -> tuple[DeploymentRequest, PipelineOptions]:
        """Separate the request from its options."""
        option_fields = set(PipelineOptions.model_fields)
        data = self.model_dump()
        options = {k: data.pop(k) for k in option_fields}
        return DeploymentRequest(**data), PipelineOptions(**options)

