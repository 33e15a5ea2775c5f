from types import SimpleNamespace

import pytest

from ariane import web
from ariane.handlers import EventResult, create_router
from ariane.metric import error_counter, webhook_skipped_counter
from ariane.web import handle_webhook, process_github_event


class _RecordingHandler:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = []

    async def handle(self, payload, api):
        self.calls.append((payload, api))
        if self.exc is not None:
            raise self.exc
        return EventResult(result="triggered")


def make_event(event: str = "issue_comment", installation=True):
    data = {"action": "created"}
    if installation:
        data["installation"] = {"id": 99}
    return SimpleNamespace(event=event, data=data, delivery_id="delivery-1")


def make_app(monkeypatch, comment_handler=None, merge_group_handler=None):
    async def client_for_installation(app, installation_id):
        return SimpleNamespace(installation_id=installation_id)

    monkeypatch.setattr(web, "client_for_installation", client_for_installation)
    return SimpleNamespace(
        config=SimpleNamespace(DRY_RUN=False, GITHUB_V3_API_URL="https://api.github.com"),
        ctx=SimpleNamespace(
            github_router=create_router(
                comment_handler=comment_handler or _RecordingHandler(),
                merge_group_handler=merge_group_handler or _RecordingHandler(),
            )
        ),
    )


@pytest.mark.asyncio
async def test_supported_event_is_dispatched(monkeypatch):
    comment_handler = _RecordingHandler()
    merge_group_handler = _RecordingHandler()
    app = make_app(monkeypatch, comment_handler, merge_group_handler)

    await process_github_event(app, make_event("issue_comment"))

    (payload, api), = comment_handler.calls
    assert payload["installation"]["id"] == 99
    assert api.installation == 99
    assert api.gh.installation_id == 99
    assert not api.dry_run
    assert merge_group_handler.calls == []


@pytest.mark.asyncio
async def test_unsupported_event_is_skipped(monkeypatch):
    comment_handler = _RecordingHandler()
    app = make_app(monkeypatch, comment_handler)
    metric = webhook_skipped_counter.labels(event="push", reason="unsupported_event")
    before = metric._value.get()

    response = await handle_webhook(app, make_event("push"))

    assert response.status == 200
    assert comment_handler.calls == []
    assert metric._value.get() == before + 1


@pytest.mark.asyncio
async def test_missing_installation_is_bad_request(monkeypatch):
    app = make_app(monkeypatch)
    metric = error_counter.labels(context="event_parse")
    before = metric._value.get()

    response = await handle_webhook(app, make_event(installation=False))

    assert response.status == 400
    assert metric._value.get() == before + 1


@pytest.mark.asyncio
async def test_handler_error_is_server_error(monkeypatch):
    app = make_app(monkeypatch, _RecordingHandler(exc=RuntimeError("boom")))
    metric = error_counter.labels(context="event_dispatch")
    before = metric._value.get()

    response = await handle_webhook(app, make_event("issue_comment"))

    assert response.status == 500
    assert metric._value.get() == before + 1


@pytest.mark.asyncio
async def test_merge_group_event_is_dispatched(monkeypatch):
    merge_group_handler = _RecordingHandler()
    app = make_app(monkeypatch, merge_group_handler=merge_group_handler)

    response = await handle_webhook(app, make_event("merge_group"))

    assert response.status == 200
    assert len(merge_group_handler.calls) == 1
