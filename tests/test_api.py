import base64
from datetime import datetime
import http

from gidgethub import BadRequest
import pytest

from ariane.github.api import API
from ariane.github.model import CheckRun, CheckRunOutput


REPO_URL = "/repos/org/repo"


class _FakeGitHub:
    def __init__(self, items=None, iters=None, errors=None):
        self.items = items or {}
        self.iters = iters or {}
        self.errors = errors or {}
        self.calls = []

    async def getitem(self, url, url_vars=None):
        self.calls.append(("GET", url, url_vars))
        if url in self.errors:
            raise self.errors[url]
        return self.items[url]

    async def getiter(self, url, url_vars=None):
        self.calls.append(("GET", url, url_vars))
        for item in self.iters.get(url, []):
            yield item

    async def post(self, url, data=None):
        self.calls.append(("POST", url, data))

    async def patch(self, url, data=None):
        self.calls.append(("PATCH", url, data))


@pytest.mark.asyncio
async def test_get_content_with_ref():
    url = f"{REPO_URL}/contents/.github/ariane-config.yaml"
    gh = _FakeGitHub(
        items={
            url
            + "{?ref}": {
                "type": "file",
                "encoding": "base64",
                "path": ".github/ariane-config.yaml",
                "content": base64.b64encode(b"triggers: {}\n").decode(),
            }
        }
    )
    api = API(gh, installation=1)

    content = await api.get_content(REPO_URL, ".github/ariane-config.yaml", ref="main")

    assert content.decoded_content() == "triggers: {}\n"
    assert gh.calls == [("GET", url + "{?ref}", {"ref": "main"})]
    assert api.call_count == 1


@pytest.mark.asyncio
async def test_get_pulls_and_files_paginate():
    pr = {
        "number": 42,
        "head": {"ref": "feature", "sha": "a" * 40},
        "base": {"ref": "main", "sha": "b" * 40},
    }
    gh = _FakeGitHub(
        iters={
            f"{REPO_URL}/pulls{{?state,per_page}}": [pr],
            f"{REPO_URL}/pulls/42/files{{?per_page}}": [
                {"filename": "a.go"},
                {"filename": "b.go"},
            ],
        }
    )
    api = API(gh, installation=1)

    pulls = [p async for p in api.get_pulls(REPO_URL)]
    files = [f.filename async for f in api.get_pull_request_files(REPO_URL, 42)]

    assert [p.number for p in pulls] == [42]
    assert files == ["a.go", "b.go"]
    assert gh.calls[0][2] == {"state": "open", "per_page": 100}
    assert api.call_count == 2


@pytest.mark.asyncio
async def test_get_team_membership():
    url = "/orgs/org/teams/maintainers/memberships/octocat"
    gh = _FakeGitHub(items={url: {"state": "active", "role": "member"}})
    api = API(gh, installation=1)

    membership = await api.get_team_membership("org", "maintainers", "octocat")
    assert membership.is_active

    gh = _FakeGitHub(errors={url: BadRequest(http.HTTPStatus.NOT_FOUND)})
    api = API(gh, installation=1)
    assert await api.get_team_membership("org", "maintainers", "octocat") is None

    gh = _FakeGitHub(errors={url: BadRequest(http.HTTPStatus.FORBIDDEN)})
    api = API(gh, installation=1)
    with pytest.raises(BadRequest):
        await api.get_team_membership("org", "maintainers", "octocat")


@pytest.mark.asyncio
async def test_get_workflow_runs():
    url = f"{REPO_URL}/actions/workflows/ci.yaml/runs{{?head_sha,per_page}}"
    gh = _FakeGitHub(
        items={
            url: {
                "total_count": 1,
                "workflow_runs": [
                    {"id": 5, "status": "completed", "conclusion": "success"}
                ],
            }
        }
    )
    api = API(gh, installation=1)

    runs = await api.get_workflow_runs(REPO_URL, "ci.yaml", "a" * 40)

    assert [r.id for r in runs] == [5]
    assert gh.calls == [("GET", url, {"head_sha": "a" * 40, "per_page": 1})]


@pytest.mark.asyncio
async def test_get_required_status_checks():
    url = f"{REPO_URL}/branches/main/protection/required_status_checks"
    gh = _FakeGitHub(
        items={
            url: {
                "strict": True,
                "contexts": ["ci/build"],
                "checks": [{"context": "ci/build", "app_id": None}],
            }
        }
    )
    api = API(gh, installation=1)

    checks = await api.get_required_status_checks(REPO_URL, "main")

    assert [c.context for c in checks] == ["ci/build"]
    assert checks[0].is_any_source


@pytest.mark.asyncio
async def test_dispatch_workflow():
    gh = _FakeGitHub()
    api = API(gh, installation=1)

    await api.dispatch_workflow(REPO_URL, "ci.yaml", "main", {"PR-number": "1"})

    assert gh.calls == [
        (
            "POST",
            f"{REPO_URL}/actions/workflows/ci.yaml/dispatches",
            {"ref": "main", "inputs": {"PR-number": "1"}},
        )
    ]


@pytest.mark.asyncio
async def test_post_check_run():
    gh = _FakeGitHub()
    api = API(gh, installation=1)

    await api.post_check_run(
        REPO_URL,
        CheckRun.make_completed(name="docs", head_sha="a" * 40, conclusion="skipped"),
    )
    await api.post_check_run(
        REPO_URL,
        CheckRun(
            id=9,
            name="docs",
            head_sha="a" * 40,
            status="in_progress",
            started_at=datetime(2026, 2, 16, 10, 0, 0),
            output=CheckRunOutput(title="Running"),
        ),
    )

    assert gh.calls == [
        (
            "POST",
            f"{REPO_URL}/check-runs",
            {
                "name": "docs",
                "head_sha": "a" * 40,
                "status": "completed",
                "conclusion": "skipped",
            },
        ),
        (
            "PATCH",
            f"{REPO_URL}/check-runs/9",
            {
                "name": "docs",
                "head_sha": "a" * 40,
                "status": "in_progress",
                "started_at": "2026-02-16T10:00:00Z",
                "output": {"title": "Running"},
            },
        ),
    ]


@pytest.mark.asyncio
async def test_dry_run_skips_writes():
    gh = _FakeGitHub()
    api = API(gh, installation=1, dry_run=True)

    await api.dispatch_workflow(REPO_URL, "ci.yaml", "main", {})
    await api.post_check_run(
        REPO_URL,
        CheckRun.make_completed(name="docs", head_sha="a" * 40, conclusion="skipped"),
    )
    await api.create_comment_reaction(REPO_URL, 1001, "rocket")
    await api.rerun_job(REPO_URL, 12)
    await api.rerun_failed_jobs(REPO_URL, 5)

    assert gh.calls == []
    assert api.call_count == 0


@pytest.mark.asyncio
async def test_reaction_and_reruns():
    gh = _FakeGitHub()
    api = API(gh, installation=1)

    await api.create_comment_reaction(REPO_URL, 1001, "rocket")
    await api.rerun_job(REPO_URL, 12)
    await api.rerun_failed_jobs(REPO_URL, 5)

    assert [c[1] for c in gh.calls] == [
        f"{REPO_URL}/issues/comments/1001/reactions",
        f"{REPO_URL}/actions/jobs/12/rerun",
        f"{REPO_URL}/actions/runs/5/rerun-failed-jobs",
    ]
    assert gh.calls[0][2] == {"content": "rocket"}
    assert api.call_count == 3
