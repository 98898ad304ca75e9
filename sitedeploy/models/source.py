"""Source hosting data models."""

from pydantic import BaseModel


class PullRequestInfo(BaseModel):
    """The parts of a pull request the resolver needs."""

    number: int
    state: str
    head_sha: str
    head_ref: str
    base_ref: str
    mergeable: bool | None = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class RemoteObject(BaseModel):
    """An object already in the bucket."""

    path: str
    content_hash: str
