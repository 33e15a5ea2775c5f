from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Mapping

import aiohttp
import gidgethub
from gidgethub import BadRequest
import pydantic
from sanic.log import logger

from ariane import config as app_config
from ariane.exceptions import ConfigError, NotFoundError, ParseError
from ariane.github.api import API
from ariane.github.model import CheckRun, IssueCommentEvent, PullRequest, WorkflowRun
from ariane.handlers.types import EventResult
from ariane.metric import (
    webhook_skipped_counter,
    workflow_dispatch_counter,
    workflow_satisfied_counter,
    workflow_skipped_counter,
)
from ariane.model import ArianeConfig, TriggerMatch
from ariane.repo_config import get_config_from_repo
from ariane.rules import WorkflowAction, check_for_trigger, decide_workflow

ConfigLoader = Callable[[API, str, str], Awaitable[ArianeConfig]]

API_ERRORS = (gidgethub.GitHubException, aiohttp.ClientError)

BOT_SUFFIX = "[bot]"
REACTION = "rocket"
COMMIT_STATUS_START_JOB = "Commit Status Start"


def determine_context_ref(pr: PullRequest, owner: str, name: str) -> tuple[str, str]:
    sha = pr.head.sha
    if pr.is_from_fork(owner, name):
        context_ref = pr.base.ref
        logger.debug(
            "PR is from a fork, workflows for %s will run in the context of the PR target branch %s",
            sha,
            context_ref,
        )
    else:
        context_ref = pr.head.ref
        logger.debug(
            "PR is not from a fork, workflows for %s will run in the context of the PR branch %s",
            sha,
            context_ref,
        )
    return context_ref, sha


def create_workflow_dispatch_inputs(
    pr_number: int, context_ref: str, sha: str, match: TriggerMatch
) -> dict[str, str]:
    inputs = {
        "PR-number": str(pr_number),
        "context-ref": context_ref,
        "SHA": sha,
    }
    if match.extra_args is not None:
        inputs["extra-args"] = json.dumps(match.extra_args)
    return inputs


class PRCommentHandler:
    """Triggers workflows from pull request comments.

    A new comment on a pull request is matched against the triggers of the
    repository's ariane config. Each workflow of the matching trigger is
    dispatched if the changed files are relevant to it, or reported as a
    skipped check run otherwise, unless its last run for the head commit
    already passed. The comment gets a reaction once all workflows are
    handled.

    Events that do not qualify (edited comments, foreign bots, users outside
    the allowed teams, comments without a trigger) are ignored silently.
    """

    handles = ("issue_comment",)

    def __init__(
        self,
        *,
        config_loader: ConfigLoader = get_config_from_repo,
        run_delay: float | None = None,
    ):
        self.config_loader = config_loader
        self.run_delay = app_config.RUN_DELAY if run_delay is None else run_delay
        self._background_tasks: set[asyncio.Task] = set()

    async def handle(self, payload: Mapping[str, Any], api: API) -> EventResult:
        try:
            event = IssueCommentEvent.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ParseError("failed to parse issue_comment event payload") from e

        if not event.issue.is_pull_request:
            logger.debug("Issue comment event is not for a pull request")
            return self._ignore("not_pull_request")

        logger.debug("Event action is %s", event.action)
        if event.action != "created":
            return self._ignore("action")

        repository = event.repository
        owner = repository.owner.login
        repo_url = repository.api_path
        pr_number = event.issue.number
        author = event.comment.user.login

        bot_user = False
        if author.endswith(BOT_SUFFIX):
            if not author.startswith(owner):
                logger.debug(
                    "Issue comment was created by an unsupported bot: %s", author
                )
                return self._ignore("unsupported_bot")
            bot_user = True

        pr = await self.get_pull_request(api, repo_url, pr_number)
        context_ref, sha = determine_context_ref(pr, owner, repository.name)

        try:
            config = await self.config_loader(api, repo_url, context_ref)
        except ConfigError:
            logger.error("Failed to retrieve config file", exc_info=True)
            raise

        if not bot_user and not await self.is_allowed_team_member(
            api, config, owner, author
        ):
            # no feedback is posted for rejected comments
            return self._ignore("not_authorized")

        match = check_for_trigger(config.triggers, event.comment.body or "")
        if match is None:
            return self._ignore("no_trigger")
        logger.debug("Found trigger phrase: %r", match.groups)
        inputs = create_workflow_dispatch_inputs(pr_number, context_ref, sha, match)

        changed_files = [
            f.filename async for f in api.get_pull_request_files(repo_url, pr_number)
        ]
        logger.debug("PR #%d has %d changed files", pr_number, len(changed_files))

        result = EventResult(result="triggered")
        for workflow in match.workflows:
            last_run = await self.get_last_workflow_run(api, repo_url, workflow, sha)
            action = decide_workflow(config, workflow, changed_files, last_run)

            if action == WorkflowAction.satisfied:
                logger.debug(
                    "Skipping, workflow %s already concluded with %s and there are no changes since",
                    workflow,
                    last_run.conclusion,
                )
                workflow_satisfied_counter.labels(workflow=workflow).inc()
                result.satisfied.append(workflow)
            elif action == WorkflowAction.dispatch:
                await self.trigger_workflow(api, repo_url, workflow, context_ref, inputs)
                result.dispatched.append(workflow)
            else:
                await self.mark_workflow_as_skipped(api, repo_url, workflow, sha)
                result.skipped.append(workflow)

        try:
            await api.create_comment_reaction(repo_url, event.comment.id, REACTION)
        except API_ERRORS:
            logger.error("Failed to react to comment", exc_info=True)
            raise

        return result

    def _ignore(self, reason: str) -> EventResult:
        webhook_skipped_counter.labels(event="issue_comment", reason=reason).inc()
        return EventResult.ignored(reason)

    async def get_pull_request(
        self, api: API, repo_url: str, number: int
    ) -> PullRequest:
        async for pr in api.get_pulls(repo_url, state="open"):
            if pr.number == number:
                return pr
        logger.error("pull request #%d not found in %s", number, repo_url)
        raise NotFoundError(f"pull request #{number} not found")

    async def is_allowed_team_member(
        self, api: API, config: ArianeConfig, owner: str, author: str
    ) -> bool:
        if len(config.allowed_teams) == 0:
            return True

        for team in config.allowed_teams:
            try:
                membership = await api.get_team_membership(owner, team, author)
            except API_ERRORS:
                logger.error(
                    "Failed to retrieve membership of %s in team %s",
                    author,
                    team,
                    exc_info=True,
                )
                return False
            if membership is None or not membership.is_active:
                logger.debug(
                    "User %s is not an (active) member of the team %s", author, team
                )
                continue
            return True
        return False

    async def get_last_workflow_run(
        self, api: API, repo_url: str, workflow: str, sha: str
    ) -> WorkflowRun | None:
        try:
            runs = await api.get_workflow_runs(repo_url, workflow, sha, per_page=1)
        except API_ERRORS:
            logger.error(
                "Failed to retrieve list of workflow %s runs for sha=%s",
                workflow,
                sha,
                exc_info=True,
            )
            return None

        if len(runs) == 0:
            logger.debug("No runs of workflow %s for sha=%s", workflow, sha)
            return None

        last_run = runs[0]
        logger.debug(
            "Last run of %s for sha=%s: status=%s conclusion=%s",
            workflow,
            sha,
            last_run.status,
            last_run.conclusion,
        )
        return last_run

    async def trigger_workflow(
        self,
        api: API,
        repo_url: str,
        workflow: str,
        ref: str,
        inputs: dict[str, str],
    ) -> None:
        try:
            await api.dispatch_workflow(repo_url, workflow, ref, inputs)
        except API_ERRORS:
            logger.error(
                "Failed to create workflow dispatch event for %s", workflow, exc_info=True
            )
            raise
        logger.info("Dispatched workflow %s on %s (%s)", workflow, repo_url, ref)
        workflow_dispatch_counter.labels(workflow=workflow).inc()

    async def mark_workflow_as_skipped(
        self, api: API, repo_url: str, workflow: str, sha: str
    ) -> None:
        try:
            github_workflow = await api.get_workflow(repo_url, workflow)
        except BadRequest as e:
            logger.error("Failed to retrieve workflow %s", workflow, exc_info=True)
            if e.status_code == 404:
                raise NotFoundError(f"workflow {workflow} not found") from e
            raise

        check_run = CheckRun.make_completed(
            name=github_workflow.name, head_sha=sha, conclusion="skipped"
        )
        try:
            await api.post_check_run(repo_url, check_run)
        except API_ERRORS:
            logger.error("Failed to set check run for %s", workflow, exc_info=True)
            raise
        logger.debug("Marked workflow %s as skipped on %s", workflow, sha)
        workflow_skipped_counter.labels(workflow=workflow).inc()

    def rerun_failed_jobs(
        self, api: API, repo_url: str, workflow: str, run_id: int
    ) -> asyncio.Task:
        """Re-run the failed jobs of a workflow run in the background.

        Not used when deciding on workflows: a failed run is dispatched again
        rather than re-run. The task is bounded by ``run_delay`` plus five
        seconds; ``wait_for_background`` awaits pending tasks.
        """
        task = asyncio.create_task(
            self._rerun_failed_jobs_bounded(api, repo_url, workflow, run_id)
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background(self) -> None:
        tasks = list(self._background_tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _rerun_failed_jobs_bounded(
        self, api: API, repo_url: str, workflow: str, run_id: int
    ) -> None:
        try:
            await asyncio.wait_for(
                self._rerun_failed_jobs(api, repo_url, workflow, run_id),
                timeout=self.run_delay + 5,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Timed out re-running failed workflow %s run_id %d", workflow, run_id
            )

    async def _rerun_failed_jobs(
        self, api: API, repo_url: str, workflow: str, run_id: int
    ) -> None:
        try:
            jobs = await api.get_workflow_jobs(repo_url, run_id)
        except API_ERRORS:
            logger.error(
                "Failed to list workflow %s jobs run_id %d",
                workflow,
                run_id,
                exc_info=True,
            )
            return

        job_id = next((j.id for j in jobs if j.name == COMMIT_STATUS_START_JOB), None)
        if job_id is not None:
            logger.debug("re-running commit-status-start job %d", job_id)
            try:
                await api.rerun_job(repo_url, job_id)
            except API_ERRORS:
                logger.error(
                    "Failed to re-run commit-status-start job_id %d",
                    job_id,
                    exc_info=True,
                )
                return
            await asyncio.sleep(self.run_delay)

        logger.debug("re-running failed workflow %s run_id %d", workflow, run_id)
        try:
            await api.rerun_failed_jobs(repo_url, run_id)
        except API_ERRORS:
            logger.error(
                "Failed to re-run workflow %s run_id %d",
                workflow,
                run_id,
                exc_info=True,
            )
