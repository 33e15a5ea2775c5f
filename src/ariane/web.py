import time

import aiohttp
import cachetools
from gidgethub import BadRequest, ValidationFailure, sansio
from gidgethub import aiohttp as gh_aiohttp
from prometheus_client import core
from prometheus_client.exposition import generate_latest
from sanic import Request, Sanic, response
from sanic.log import logger
import sanic.log

from ariane import config
from ariane.exceptions import ParseError
from ariane.github import get_access_token
from ariane.github.api import API
from ariane.handlers import create_router
from ariane.logger import setup_logging
from ariane.metric import (
    error_counter,
    observe_webhook_processing_latency,
    request_counter,
    webhook_counter,
    webhook_skipped_counter,
)

SUPPORTED_EVENTS = ("issue_comment", "merge_group")


async def client_for_installation(app, installation_id):
    gh_pre = gh_aiohttp.GitHubAPI(
        app.ctx.aiohttp_session, __name__, base_url=app.config.GITHUB_V3_API_URL
    )
    token = await get_access_token(gh_pre, installation_id)

    return gh_aiohttp.GitHubAPI(
        app.ctx.aiohttp_session,
        __name__,
        oauth_token=token,
        cache=app.ctx.cache,
        base_url=app.config.GITHUB_V3_API_URL,
    )


async def process_github_event(app, event: sansio.Event) -> None:
    webhook_counter.labels(event=event.event).inc()

    if event.event not in SUPPORTED_EVENTS:
        logger.debug("Ignoring unsupported event %s", event.event)
        webhook_skipped_counter.labels(
            event=event.event, reason="unsupported_event"
        ).inc()
        return

    installation = event.data.get("installation") or {}
    if "id" not in installation:
        raise ParseError(f"{event.event} event payload has no installation id")
    installation_id = installation["id"]
    logger.debug("Installation id: %s", installation_id)

    gh = await client_for_installation(app, installation_id)
    api = API(gh, installation_id, dry_run=app.config.DRY_RUN)

    logger.debug("Dispatching event %s", event.event)
    await app.ctx.github_router.dispatch(event, api)
    logger.debug("Handled %s using %d API calls", event.event, api.call_count)


async def handle_webhook(app, event: sansio.Event):
    started = time.monotonic()
    try:
        await process_github_event(app, event)
    except ParseError as e:
        error_counter.labels(context="event_parse").inc()
        logger.warning("Malformed %s payload: %s", event.event, e)
        result, status = "parse_error", 400
    except Exception:  # noqa: BLE001
        error_counter.labels(context="event_dispatch").inc()
        logger.error("Exception raised when dispatching event", exc_info=True)
        result, status = "error", 500
    else:
        result, status = "ok", 200
    observe_webhook_processing_latency(
        event=event.event, result=result, seconds=time.monotonic() - started
    )
    return response.empty(status)


def create_app():
    app = Sanic("ariane")
    app.update_config(config)

    setup_logging(sanic.log.logger)

    app.ctx.cache = cachetools.LRUCache(maxsize=500)
    app.ctx.github_router = create_router()

    @app.listener("before_server_start")
    async def init(app, _loop):
        logger.debug("Creating aiohttp session")
        app.ctx.aiohttp_session = aiohttp.ClientSession()

    @app.listener("after_server_stop")
    async def close(app, _loop):
        await app.ctx.aiohttp_session.close()

    @app.on_request
    async def on_request(request: Request):
        if request.path == "/metrics":
            return
        request_counter.labels(path=request.path).inc()

    @app.get("/")
    async def index(request):
        return response.text(f"Ariane is running!\nVersion: {app.config.VERSION}")

    @app.get("/healthz")
    async def healthz(request):
        return response.text("OK")

    @app.post(app.config.WEBHOOK_ROUTE)
    async def github(request):
        logger.debug("Webhook received")
        try:
            event = sansio.Event.from_http(
                request.headers, request.body, secret=app.config.GITHUB_WEBHOOK_SECRET
            )
        except ValidationFailure:
            error_counter.labels(context="webhook_signature").inc()
            logger.warning("Webhook signature validation failed")
            return response.empty(401)
        except BadRequest as e:
            error_counter.labels(context="webhook_request").inc()
            logger.warning("Invalid webhook request: %s", e)
            return response.empty(400)

        return await handle_webhook(app, event)

    @app.get("/metrics")
    async def metrics(request):
        data = generate_latest(core.REGISTRY)
        return response.raw(data)

    return app
