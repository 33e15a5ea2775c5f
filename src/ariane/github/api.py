from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from gidgethub import BadRequest
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from ariane.github.model import (
    BranchProtectionChecks,
    CheckRun,
    Content,
    PrFile,
    PullRequest,
    RequiredStatusCheck,
    TeamMembership,
    Workflow,
    WorkflowJob,
    WorkflowRun,
)
from ariane.metric import record_api_call


class API:
    gh: GitHubAPI
    installation: int
    dry_run: bool

    call_count: int

    def __init__(self, gh: GitHubAPI, installation: int, dry_run: bool = False):
        self.gh = gh
        self.installation = installation
        self.dry_run = dry_run
        self.call_count = 0

    def _count(self, url: str) -> None:
        self.call_count += 1
        record_api_call(endpoint=url)

    async def get_content(
        self, repo_url: str, path: str, ref: Optional[str] = None
    ) -> Content:
        url = f"{repo_url}/contents/{path}"
        self._count(url)
        logger.debug("Get file content: %s at %s", url, ref)
        if ref is None:
            return Content.model_validate(await self.gh.getitem(url))
        return Content.model_validate(
            await self.gh.getitem(url + "{?ref}", {"ref": ref})
        )

    async def get_pulls(
        self, repo_url: str, state: str = "open"
    ) -> AsyncIterator[PullRequest]:
        url = f"{repo_url}/pulls"
        self._count(url)
        logger.debug("Get %s pulls %s", state, url)
        async for item in self.gh.getiter(
            url + "{?state,per_page}", {"state": state, "per_page": 100}
        ):
            yield PullRequest.model_validate(item)

    async def get_pull_request_files(
        self, repo_url: str, number: int
    ) -> AsyncIterator[PrFile]:
        url = f"{repo_url}/pulls/{number}/files"
        self._count(url)
        logger.debug("Getting files for PR #%d %s", number, url)
        async for item in self.gh.getiter(url + "{?per_page}", {"per_page": 100}):
            yield PrFile.model_validate(item)

    async def get_team_membership(
        self, org: str, team_slug: str, username: str
    ) -> Optional[TeamMembership]:
        url = f"/orgs/{org}/teams/{team_slug}/memberships/{username}"
        self._count(url)
        logger.debug("Get team membership %s", url)
        try:
            return TeamMembership.model_validate(await self.gh.getitem(url))
        except BadRequest as e:
            if e.status_code == 404:
                return None
            raise

    async def get_workflow_runs(
        self, repo_url: str, workflow: str, head_sha: str, per_page: int = 1
    ) -> List[WorkflowRun]:
        url = f"{repo_url}/actions/workflows/{workflow}/runs"
        self._count(url)
        logger.debug("Get runs of %s for sha %s", workflow, head_sha)
        data = await self.gh.getitem(
            url + "{?head_sha,per_page}", {"head_sha": head_sha, "per_page": per_page}
        )
        return [WorkflowRun.model_validate(r) for r in data.get("workflow_runs", [])]

    async def get_workflow(self, repo_url: str, workflow: str) -> Workflow:
        url = f"{repo_url}/actions/workflows/{workflow}"
        self._count(url)
        return Workflow.model_validate(await self.gh.getitem(url))

    async def dispatch_workflow(
        self, repo_url: str, workflow: str, ref: str, inputs: Dict[str, str]
    ) -> None:
        url = f"{repo_url}/actions/workflows/{workflow}/dispatches"
        if self.dry_run:
            logger.info("Dry run, not dispatching %s on %s: %s", workflow, ref, inputs)
            return
        self._count(url)
        logger.debug("Dispatching workflow %s on ref %s", workflow, ref)
        await self.gh.post(url, data={"ref": ref, "inputs": inputs})

    async def post_check_run(self, repo_url: str, check_run: CheckRun) -> None:
        fields = {"name", "head_sha", "status"}
        for optional in ("conclusion", "started_at", "completed_at"):
            if getattr(check_run, optional) is not None:
                fields.add(optional)
        payload = check_run.model_dump(include=fields)

        if check_run.output is not None:
            payload["output"] = check_run.output.model_dump(exclude_none=True)

        for k, v in payload.items():
            if isinstance(v, datetime):
                payload[k] = v.strftime("%Y-%m-%dT%H:%M:%SZ")

        if self.dry_run:
            logger.info("Dry run, not posting check run: %s", payload)
            return

        if check_run.id is not None:
            url = f"{repo_url}/check-runs/{check_run.id}"
            self._count(url)
            logger.debug("Updating check run %d, %s", check_run.id, url)
            await self.gh.patch(url, data=payload)
        else:
            url = f"{repo_url}/check-runs"
            self._count(url)
            logger.debug("Creating check run %s on sha %s", url, check_run.head_sha)
            await self.gh.post(url, data=payload)

    async def create_comment_reaction(
        self, repo_url: str, comment_id: int, content: str
    ) -> None:
        url = f"{repo_url}/issues/comments/{comment_id}/reactions"
        if self.dry_run:
            logger.info("Dry run, not reacting %s to comment %d", content, comment_id)
            return
        self._count(url)
        await self.gh.post(url, data={"content": content})

    async def get_required_status_checks(
        self, repo_url: str, branch: str
    ) -> List[RequiredStatusCheck]:
        url = f"{repo_url}/branches/{branch}/protection/required_status_checks"
        self._count(url)
        logger.debug("Get required status checks %s", url)
        data = await self.gh.getitem(url)
        return BranchProtectionChecks.model_validate(data).checks

    async def get_workflow_jobs(self, repo_url: str, run_id: int) -> List[WorkflowJob]:
        url = f"{repo_url}/actions/runs/{run_id}/jobs"
        self._count(url)
        data = await self.gh.getitem(url + "{?per_page}", {"per_page": 100})
        return [WorkflowJob.model_validate(j) for j in data.get("jobs", [])]

    async def rerun_job(self, repo_url: str, job_id: int) -> None:
        url = f"{repo_url}/actions/jobs/{job_id}/rerun"
        if self.dry_run:
            logger.info("Dry run, not re-running job %d", job_id)
            return
        self._count(url)
        await self.gh.post(url, data={})

    async def rerun_failed_jobs(self, repo_url: str, run_id: int) -> None:
        url = f"{repo_url}/actions/runs/{run_id}/rerun-failed-jobs"
        if self.dry_run:
            logger.info("Dry run, not re-running failed jobs of run %d", run_id)
            return
        self._count(url)
        await self.gh.post(url, data={})
