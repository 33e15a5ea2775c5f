from __future__ import annotations

from typing import Any, Mapping

import aiohttp
import gidgethub
import pydantic
from sanic.log import logger

from ariane.exceptions import ParseError
from ariane.github.api import API
from ariane.github.model import CheckRun, MergeGroupEvent
from ariane.handlers.types import EventResult
from ariane.metric import (
    error_counter,
    merge_group_check_counter,
    webhook_skipped_counter,
)


class MergeGroupHandler:
    """Reports required checks without a designated app as successful.

    Required status checks that any source may satisfy are expected to have
    run on the pull request already, so they are completed immediately for
    the merge group's head commit. Checks owned by a specific app are left
    to that app.
    """

    handles = ("merge_group",)

    async def handle(self, payload: Mapping[str, Any], api: API) -> EventResult:
        try:
            event = MergeGroupEvent.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ParseError("failed to parse merge_group event payload") from e

        if event.action != "checks_requested":
            webhook_skipped_counter.labels(event="merge_group", reason="action").inc()
            return EventResult.ignored("action")

        repo_url = event.repository.api_path
        branch = event.merge_group.base_branch
        head_sha = event.merge_group.head_sha

        try:
            checks = await api.get_required_status_checks(repo_url, branch)
        except (gidgethub.GitHubException, aiohttp.ClientError):
            logger.error(
                "Failed to retrieve branch protection rules for %s", branch, exc_info=True
            )
            raise

        result = EventResult(result="triggered")
        for check in checks:
            if not check.is_any_source:
                logger.debug(
                    "Status check %s is managed by app %d", check.context, check.app_id
                )
                result.skipped.append(check.context)
                continue

            logger.debug(
                "Setting status check %s to completed, conclusion success",
                check.context,
            )
            check_run = CheckRun.make_completed(
                name=check.context, head_sha=head_sha, conclusion="success"
            )
            try:
                await api.post_check_run(repo_url, check_run)
            except (gidgethub.GitHubException, aiohttp.ClientError):
                # one failing check does not hold back the others
                logger.error(
                    "Failed to set check run %s", check.context, exc_info=True
                )
                error_counter.labels(context="merge_group_check_run").inc()
                merge_group_check_counter.labels(result="error").inc()
                continue
            merge_group_check_counter.labels(result="success").inc()
            result.dispatched.append(check.context)

        return result
