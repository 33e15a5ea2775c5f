from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
import base64

import pydantic


class Model(pydantic.BaseModel):
    pass


class Content(Model):
    type: str = "file"
    encoding: Literal["base64"] = "base64"
    name: Optional[str] = None
    path: str
    content: str
    sha: Optional[str] = None
    html_url: Optional[str] = None

    def decoded_content(self) -> str:
        if self.encoding != "base64":
            raise ValueError(f"Unknown encoding {self.encoding}")
        return base64.b64decode(self.content).decode()


class User(Model):
    login: str
    type: Optional[str] = None


class Installation(Model):
    id: int


class Repository(Model):
    id: Optional[int] = None
    name: str
    full_name: Optional[str] = None
    owner: User
    url: Optional[str] = None
    html_url: Optional[str] = None

    @property
    def api_path(self) -> str:
        return f"/repos/{self.owner.login}/{self.name}"


class Issue(Model):
    number: int
    pull_request: Optional[Dict[str, Any]] = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class IssueComment(Model):
    id: int
    body: Optional[str] = None
    user: User


class IssueCommentEvent(Model):
    action: str
    issue: Issue
    comment: IssueComment
    repository: Repository
    installation: Optional[Installation] = None


class PrConnection(Model):
    ref: str
    sha: str
    repo: Optional[Repository] = None


class PullRequest(Model):
    id: Optional[int] = None
    number: int
    state: Optional[Literal["open", "closed"]] = None
    head: PrConnection
    base: PrConnection
    html_url: Optional[str] = None

    def is_from_fork(self, owner: str, name: str) -> bool:
        head_repo = self.head.repo
        if head_repo is None:
            # head repository of a deleted fork
            return True
        return head_repo.owner.login != owner or head_repo.name != name

    def __str__(self) -> str:
        name = ""
        if self.base.repo is not None:
            name = self.base.repo.full_name or self.base.repo.name
        return f"PR({name}#{self.number})"


class PrFile(Model):
    filename: str
    sha: Optional[str] = None
    status: Optional[str] = None


class TeamMembership(Model):
    state: str
    role: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == "active"


class Workflow(Model):
    id: int
    name: str
    path: str
    state: Optional[str] = None


class WorkflowRun(Model):
    id: int
    name: Optional[str] = None
    head_sha: Optional[str] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None


class WorkflowJob(Model):
    id: int
    run_id: int
    name: str
    status: Optional[str] = None
    conclusion: Optional[str] = None


class CheckRunOutput(Model):
    title: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None


class CheckRun(Model):
    id: Optional[int] = None
    name: str
    head_sha: str
    status: Literal["completed", "queued", "in_progress"] = "queued"
    conclusion: Optional[
        Literal[
            "action_required",
            "cancelled",
            "failure",
            "neutral",
            "success",
            "skipped",
            "stale",
            "timed_out",
        ]
    ] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output: Optional[CheckRunOutput] = None

    @classmethod
    def make_completed(cls, name: str, head_sha: str, conclusion: str) -> "CheckRun":
        return cls(
            name=name,
            head_sha=head_sha,
            status="completed",
            conclusion=conclusion,
        )


class RequiredStatusCheck(Model):
    context: str
    app_id: Optional[int] = None

    @property
    def is_any_source(self) -> bool:
        # GitHub reports no app (or 0) when any source may satisfy the check
        return not self.app_id


class MergeGroup(Model):
    head_sha: str
    head_ref: Optional[str] = None
    base_ref: str
    base_sha: Optional[str] = None

    @property
    def base_branch(self) -> str:
        return self.base_ref.removeprefix("refs/heads/")


class MergeGroupEvent(Model):
    action: str
    merge_group: MergeGroup
    repository: Repository
    installation: Optional[Installation] = None


class BranchProtectionChecks(Model):
    checks: List[RequiredStatusCheck] = pydantic.Field(default_factory=list)
