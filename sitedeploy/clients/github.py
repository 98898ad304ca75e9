"""GitHub REST client.

Covers everything the pipeline needs from the source host: ref lookups,
pull request merges, releases, the Deployments API used for status
tracking, and issue-based approval requests.
"""

import re
from typing import Any, AsyncIterator

import httpx

from sitedeploy.config import settings
from sitedeploy.core.exceptions import MergeConflictError
from sitedeploy.models.approval import ApprovalAction, ApprovalDecision
from sitedeploy.models.deployment import DeploymentStatus
from sitedeploy.models.source import PullRequestInfo
from sitedeploy.utils.logging import get_logger

logger = get_logger(__name__)

_APPROVE_WORDS = {"approve", "approved", "lgtm", "yes"}
_REJECT_WORDS = {"deny", "denied", "reject", "rejected", "no"}


class GitHubClient:
    """Thin async wrapper over the GitHub REST API for one repository."""

    def __init__(
        self,
        repository: str | None = None,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.repository = repository or settings.github_repository
        token = token if token is not None else settings.github_token
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.http = httpx.AsyncClient(
            base_url=base_url or settings.github_api_url,
            headers=headers,
            timeout=30.0,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    def repo_path(self, path: str) -> str:
        return f"/repos/{self.repository}{path}"

    async def _get_or_none(self, path: str) -> dict[str, Any] | None:
        response = await self.http.get(self.repo_path(path))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    # Refs

    async def get_branch_sha(self, branch: str) -> str | None:
        data = await self._get_or_none(f"/branches/{branch}")
        if data is None:
            return None
        return data["commit"]["sha"]

    async def get_pull_request(self, number: int) -> PullRequestInfo | None:
        data = await self._get_or_none(f"/pulls/{number}")
        if data is None:
            return None
        return PullRequestInfo(
            number=data["number"],
            state=data["state"],
            head_sha=data["head"]["sha"],
            head_ref=data["head"]["ref"],
            base_ref=data["base"]["ref"],
            mergeable=data.get("mergeable"),
        )

    async def merge_pull_request(self, number: int, expected_head_sha: str) -> str:
        """Merge a PR into its base. GitHub merges atomically or not at all."""
        response = await self.http.put(
            self.repo_path(f"/pulls/{number}/merge"),
            json={"sha": expected_head_sha, "merge_method": "merge"},
        )
        # 405: not mergeable, 409: head moved since we resolved it
        if response.status_code in (405, 409):
            reason = response.json().get("message", "not mergeable")
            raise MergeConflictError(number, reason)
        response.raise_for_status()
        return response.json()["sha"]

    async def get_tag_sha(self, tag: str) -> str | None:
        data = await self._get_or_none(f"/git/ref/tags/{tag}")
        if data is None:
            return None
        target = data["object"]
        # Annotated tags point at a tag object, which points at the commit
        if target["type"] == "tag":
            tag_obj = await self._get_or_none(f"/git/tags/{target['sha']}")
            if tag_obj is None:
                return None
            target = tag_obj["object"]
        return target["sha"]

    # Releases

    async def create_release(self, tag: str, generate_notes: bool = True) -> str:
        response = await self.http.post(
            self.repo_path("/releases"),
            json={"tag_name": tag, "name": tag, "generate_release_notes": generate_notes},
        )
        response.raise_for_status()
        return response.json().get("html_url", "")


class GitHubDeploymentService:
    """Deployment tracking via the GitHub Deployments API."""

    def __init__(self, client: GitHubClient):
        self._github = client

    async def create(self, environment: str, ref: str) -> str:
        response = await self._github.http.post(
            self._github.repo_path("/deployments"),
            json={
                "ref": ref,
                "environment": environment,
                "auto_merge": False,
                "required_contexts": [],
                "transient_environment": environment != "production",
                "production_environment": environment == "production",
            },
        )
        response.raise_for_status()
        return str(response.json()["id"])

    async def update_status(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        environment_url: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {"state": status.value}
        if environment_url:
            payload["environment_url"] = environment_url
        response = await self._github.http.post(
            self._github.repo_path(f"/deployments/{deployment_id}/statuses"),
            json=payload,
        )
        response.raise_for_status()


class GitHubIssueApprovalChannel:
    """Asks for approval by opening an issue assigned to the approvers.

    Approvers answer by commenting; the first word of the comment decides.
    """

    def __init__(self, client: GitHubClient):
        self._github = client
        self._seen: dict[str, set[int]] = {}

    async def request(self, approvers: frozenset[str], summary: str) -> str:
        names = sorted(approvers)
        body = (
            f"{summary}\n\n"
            f"Approvers: {', '.join('@' + n for n in names)}\n\n"
            f"Comment `approve` to proceed or `deny` to stop this deployment."
        )
        response = await self._github.http.post(
            self._github.repo_path("/issues"),
            json={"title": f"Deployment approval: {summary}", "body": body, "assignees": names},
        )
        response.raise_for_status()
        handle = str(response.json()["number"])
        self._seen[handle] = set()
        return handle

    async def poll(self, handle: str) -> list[ApprovalAction]:
        seen = self._seen.setdefault(handle, set())
        actions = []
        async for comment in self._comments(handle):
            if comment["id"] in seen:
                continue
            seen.add(comment["id"])
            decision = parse_decision(comment.get("body", ""))
            if decision is not None:
                actions.append(
                    ApprovalAction(actor=comment["user"]["login"], decision=decision)
                )
        return actions

    async def _comments(self, handle: str) -> AsyncIterator[dict[str, Any]]:
        """Yield every comment on the issue, following Link pagination."""
        url: str | None = self._github.repo_path(f"/issues/{handle}/comments")
        params: dict[str, Any] | None = {"per_page": 100}
        while url:
            response = await self._github.http.get(url, params=params)
            response.raise_for_status()
            for comment in response.json():
                yield comment
            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None

    async def close(self, handle: str, outcome: str) -> None:
        await self._github.http.post(
            self._github.repo_path(f"/issues/{handle}/comments"),
            json={"body": f"Approval {outcome}."},
        )
        response = await self._github.http.patch(
            self._github.repo_path(f"/issues/{handle}"),
            json={"state": "closed"},
        )
        response.raise_for_status()
        self._seen.pop(handle, None)


def parse_decision(text: str) -> ApprovalDecision | None:
    """Map a comment body to a decision using its first word."""
    words = re.findall(r"[a-z]+", text.lower())
    if not words:
        return None
    if words[0] in _APPROVE_WORDS:
        return ApprovalDecision.APPROVE
    if words[0] in _REJECT_WORDS:
        return ApprovalDecision.REJECT
    return None
