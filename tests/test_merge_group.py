import http

from gidgethub import BadRequest
import pytest

from ariane.exceptions import ParseError
from ariane.github.model import RequiredStatusCheck
from ariane.handlers.merge_group import MergeGroupHandler
from ariane.metric import error_counter


HEAD_SHA = "c" * 40


def make_payload(action: str = "checks_requested", base_ref="refs/heads/main"):
    return {
        "action": action,
        "merge_group": {
            "head_sha": HEAD_SHA,
            "head_ref": "refs/heads/gh-readonly-queue/main/pr-42-" + "d" * 40,
            "base_ref": base_ref,
            "base_sha": "d" * 40,
        },
        "repository": {
            "id": 1,
            "name": "cilium",
            "full_name": "cilium/cilium",
            "owner": {"login": "cilium"},
        },
        "installation": {"id": 99},
    }


class _FakeAPI:
    def __init__(self, checks, failing=()):
        self.checks = checks
        self.failing = set(failing)
        self.branches = []
        self.check_runs = []

    async def get_required_status_checks(self, repo_url, branch):
        self.branches.append((repo_url, branch))
        return self.checks

    async def post_check_run(self, repo_url, check_run):
        if check_run.name in self.failing:
            raise BadRequest(http.HTTPStatus.UNPROCESSABLE_ENTITY)
        self.check_runs.append((repo_url, check_run))


@pytest.mark.asyncio
async def test_any_source_check_is_completed():
    api = _FakeAPI([RequiredStatusCheck(context="ci/build", app_id=0)])

    result = await MergeGroupHandler().handle(make_payload(), api)

    assert api.branches == [("/repos/cilium/cilium", "main")]
    assert result.dispatched == ["ci/build"]
    (repo_url, check_run), = api.check_runs
    assert repo_url == "/repos/cilium/cilium"
    assert check_run.name == "ci/build"
    assert check_run.head_sha == HEAD_SHA
    assert check_run.status == "completed"
    assert check_run.conclusion == "success"


@pytest.mark.asyncio
async def test_app_managed_check_is_left_alone():
    api = _FakeAPI(
        [
            RequiredStatusCheck(context="ci/build", app_id=15368),
            RequiredStatusCheck(context="ci/lint", app_id=-1),
            RequiredStatusCheck(context="ci/docs"),
        ]
    )

    result = await MergeGroupHandler().handle(make_payload(), api)

    assert result.skipped == ["ci/build", "ci/lint"]
    assert [c.name for _, c in api.check_runs] == ["ci/docs"]


@pytest.mark.asyncio
async def test_failing_check_does_not_stop_others():
    api = _FakeAPI(
        [
            RequiredStatusCheck(context="ci/build", app_id=0),
            RequiredStatusCheck(context="ci/lint", app_id=0),
        ],
        failing=["ci/build"],
    )
    metric = error_counter.labels(context="merge_group_check_run")
    before = metric._value.get()

    result = await MergeGroupHandler().handle(make_payload(), api)

    assert result.dispatched == ["ci/lint"]
    assert [c.name for _, c in api.check_runs] == ["ci/lint"]
    assert metric._value.get() == before + 1


@pytest.mark.asyncio
async def test_other_actions_are_ignored():
    api = _FakeAPI([RequiredStatusCheck(context="ci/build", app_id=0)])

    result = await MergeGroupHandler().handle(make_payload(action="destroyed"), api)

    assert result.result == "ignored"
    assert result.reason == "action"
    assert api.branches == []
    assert api.check_runs == []


@pytest.mark.asyncio
async def test_plain_branch_name():
    api = _FakeAPI([])

    await MergeGroupHandler().handle(make_payload(base_ref="v1.15"), api)

    assert api.branches == [("/repos/cilium/cilium", "v1.15")]


@pytest.mark.asyncio
async def test_malformed_payload():
    payload = make_payload()
    del payload["merge_group"]["head_sha"]

    with pytest.raises(ParseError):
        await MergeGroupHandler().handle(payload, _FakeAPI([]))
