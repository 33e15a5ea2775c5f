from __future__ import annotations

from enum import Enum
import re
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from sanic.log import logger

from ariane.model import ArianeConfig, TriggerConfig, TriggerMatch, WorkflowPathsRegexConfig

if TYPE_CHECKING:
    from ariane.github.model import WorkflowRun

WORKFLOWS_DIR = ".github/workflows"


class WorkflowAction(Enum):
    satisfied = "satisfied"
    dispatch = "dispatch"
    mark_skipped = "mark_skipped"


def check_for_trigger(
    triggers: Mapping[str, TriggerConfig], comment: str
) -> Optional[TriggerMatch]:
    """Return the first trigger whose pattern matches the whole comment.

    Group 0 of the match is the full comment, captures follow. Patterns that
    fail to compile are logged and skipped.
    """
    for pattern, trigger in triggers.items():
        try:
            regex = re.compile("^" + pattern + r"\Z")
        except re.error:
            logger.error("cannot compile regexp %r", pattern, exc_info=True)
            continue
        m = regex.search(comment)
        if m is not None:
            groups = (m.group(0),) + tuple(g or "" for g in m.groups())
            return TriggerMatch(groups=groups, workflows=tuple(trigger.workflows))
    return None


def _workflow_path(workflow: str) -> str:
    return f"{WORKFLOWS_DIR}/{workflow}"


def should_run_only_workflows(workflow: str, changed_files: Sequence[str]) -> bool:
    """Policy for workflows without an entry in the ``workflows`` section.

    Run unless every changed file is some other file under the workflows
    directory. No changed files means nothing to test.
    """
    for filename in changed_files:
        if not filename.startswith(WORKFLOWS_DIR) or filename == _workflow_path(
            workflow
        ):
            return True
    return False


def should_run_workflow(
    workflow: str,
    rule: Optional[WorkflowPathsRegexConfig],
    changed_files: Sequence[str],
) -> bool:
    """Policy for workflows configured with ``paths-regex``/``paths-ignore-regex``.

    A change to the workflow file itself or a ``paths-regex`` hit always runs
    the workflow. Changes to other workflow files never count. With only
    ``paths-ignore-regex``, the workflow runs if any remaining file is not
    ignored. Setting both regexes is unsupported and always runs.
    """
    if len(changed_files) == 0:
        logger.debug("No changed files, nothing to test for %s", workflow)
        return False

    if rule is None:
        return False

    if rule.paths_regex and rule.paths_ignore_regex:
        logger.debug(
            "Workflow %s defines both paths-regex and paths-ignore-regex, running",
            workflow,
        )
        return True

    regex = None
    regex_ignore = None
    try:
        if rule.paths_regex:
            regex = re.compile("^" + rule.paths_regex)
        if rule.paths_ignore_regex:
            regex_ignore = re.compile("^" + rule.paths_ignore_regex)
    except re.error:
        logger.error(
            "cannot compile path regexp for workflow %s", workflow, exc_info=True
        )
        return False

    num_ignored = 0
    for filename in changed_files:
        if filename == _workflow_path(workflow) or (
            regex is not None and regex.search(filename)
        ):
            logger.debug("- %s triggers workflow %s", filename, workflow)
            return True
        elif filename.startswith(WORKFLOWS_DIR):
            # another workflow changing does not qualify this one to run
            num_ignored += 1
            continue

        if regex_ignore is not None and regex_ignore.search(filename):
            num_ignored += 1

    if regex is not None and regex_ignore is None:
        return False

    logger.debug(
        "- %d of %d changed files ignored for workflow %s",
        num_ignored,
        len(changed_files),
        workflow,
    )
    return num_ignored < len(changed_files)


def should_skip_workflow(last_run: Optional[WorkflowRun]) -> bool:
    """True if the latest run for the commit already passed or was skipped.

    A failed run is not skipped. Re-running its failed jobs in place
    (``PRCommentHandler.rerun_failed_jobs``) is disabled, so the workflow is
    evaluated for a fresh dispatch instead.
    """
    if last_run is None:
        return False
    if last_run.status == "completed":
        if last_run.conclusion in ("success", "skipped"):
            return True
        if last_run.conclusion == "failure":
            return False
    return False


def is_workflow_relevant(
    config: ArianeConfig, workflow: str, changed_files: Sequence[str]
) -> bool:
    if workflow in config.workflows:
        return should_run_workflow(workflow, config.workflows[workflow], changed_files)
    return should_run_only_workflows(workflow, changed_files)


def decide_workflow(
    config: ArianeConfig,
    workflow: str,
    changed_files: Sequence[str],
    last_run: Optional[WorkflowRun] = None,
) -> WorkflowAction:
    if should_skip_workflow(last_run):
        return WorkflowAction.satisfied
    if is_workflow_relevant(config, workflow, changed_files):
        return WorkflowAction.dispatch
    return WorkflowAction.mark_skipped
