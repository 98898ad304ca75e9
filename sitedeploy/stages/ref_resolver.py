"""Ref resolver.

Turns a deploy type and its selector into a concrete commit.
"""

from typing import Awaitable, Callable

from sitedeploy.clients.protocols import SourceHost
from sitedeploy.core.exceptions import MergeConflictError, RefResolutionError
from sitedeploy.models.deployment import ResolvedRef
from sitedeploy.models.request import DeploymentRequest, DeployType
from sitedeploy.stages.base import BaseStage


class RefResolver(BaseStage):
    """Resolves branches, pull requests and tags to commit shas.

    The only side effect is the optional pull request merge.
    """

    def __init__(self, source: SourceHost):
        self.source = source
        super().__init__()
        self._resolvers: dict[
            DeployType, Callable[[DeploymentRequest], Awaitable[ResolvedRef]]
        ] = {
            DeployType.FROM_BRANCH: self._resolve_branch,
            DeployType.FROM_PR: self._resolve_pull_request,
            DeployType.FROM_TAG: self._resolve_tag,
        }

    @property
    def name(self) -> str:
        return "resolve_ref"

    @property
    def description(self) -> str:
        return "Resolves the requested branch, pull request or tag to a commit"

    async def resolve(self, request: DeploymentRequest) -> ResolvedRef:
        ref = await self._resolvers[request.deploy_type](request)
        self.logger.info(
            "ref_resolver.resolved",
            deploy_type=request.deploy_type.value,
            selector=request.source_selector,
            commit_sha=ref.commit_sha,
            merged=ref.merged,
        )
        return ref

    async def _resolve_branch(self, request: DeploymentRequest) -> ResolvedRef:
        sha = await self.source.get_branch_sha(request.branch)
        if not sha:
            raise RefResolutionError("branch", request.branch, "branch not found")
        return ResolvedRef(commit_sha=sha, ref_label=request.branch)

    async def _resolve_pull_request(self, request: DeploymentRequest) -> ResolvedRef:
        number = request.pull_request_nb
        pr = await self.source.get_pull_request(number)
        if pr is None:
            raise RefResolutionError("pull request", str(number), "not found")
        if not pr.is_open:
            raise RefResolutionError("pull request", str(number), f"state is {pr.state}")

        label = f"pr-{number}"
        if not request.merge_pr:
            return ResolvedRef(commit_sha=pr.head_sha, ref_label=label)

        # GitHub reports mergeable=False once it has computed a conflict
        if pr.mergeable is False:
            raise MergeConflictError(number)

        self.logger.info(
            "ref_resolver.merging_pull_request",
            pull_request=number,
            head=pr.head_ref,
            base=pr.base_ref,
        )
        merge_sha = await self.source.merge_pull_request(number, pr.head_sha)
        return ResolvedRef(commit_sha=merge_sha, ref_label=label, merged=True)

    async def _resolve_tag(self, request: DeploymentRequest) -> ResolvedRef:
        sha = await self.source.get_tag_sha(request.commit_tag)
        if not sha:
            raise RefResolutionError("tag", request.commit_tag, "tag not found")
        return ResolvedRef(commit_sha=sha, ref_label=request.commit_tag)
